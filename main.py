from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from punchlist.api.jobs import router as jobs_router
from punchlist.api.websocket import ws_router
from punchlist.config import configure_logging, settings
from punchlist.services import get_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # release the per-user store watches, if the services were ever built
    if get_services.cache_info().currsize:
        get_services().jobs.close()


def create_app() -> FastAPI:
    app = FastAPI(title="Voice Punchlist", lifespan=lifespan)

    data_dir = Path(settings.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    app.mount(settings.DATA_URL_PREFIX, StaticFiles(directory=str(data_dir)), name="data")

    app.include_router(ws_router)
    app.include_router(jobs_router)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()

if __name__ == "__main__":
    configure_logging()
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
    )
