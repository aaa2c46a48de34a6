import asyncio
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from punchlist.errors import NotFound, PersistenceError, ValidationError
from punchlist.models import ALL_CATEGORIES, ItemFields, PhotoBlob
from punchlist.reports.pdf_report import filter_items, render_punchlist_pdf, report_filename
from punchlist.services import Services, get_services
from punchlist.storage.photos import load_photos

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jobs"])


class JobCreate(BaseModel):
    name: str
    user_id: str


def _validation_detail(e: ValidationError) -> dict:
    return {"message": e.message, "missing_fields": e.missing_fields}


@router.get("/categories")
def list_categories(services: Services = Depends(get_services)):
    return services.categories


@router.get("/jobs")
async def list_jobs(user_id: str, services: Services = Depends(get_services)):
    return [job.summary() for job in services.jobs.list(user_id)]


@router.post("/jobs", status_code=201)
async def create_job(body: JobCreate, services: Services = Depends(get_services)):
    try:
        job = await services.jobs.add(body.name, body.user_id)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return job.summary()


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str, services: Services = Depends(get_services)):
    try:
        cleanup_errors = await services.jobs.remove(job_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)

    return {
        "status": "ok",
        "cleanup_errors": [{"url": e.url, "details": e.details} for e in cleanup_errors],
    }


@router.get("/jobs/{job_id}/items")
async def list_items(job_id: str, services: Services = Depends(get_services)):
    try:
        items = await services.items.list(job_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    return [i.to_dict() for i in items]


@router.post("/jobs/{job_id}/items", status_code=201)
async def create_item(
    job_id: str,
    room: str = Form(""),
    description: str = Form(""),
    category: str = Form(...),
    photo: UploadFile = File(...),
    services: Services = Depends(get_services),
):
    if category not in services.categories:
        raise HTTPException(
            status_code=422,
            detail={"message": f"Unknown category: {category}", "missing_fields": []},
        )

    blob = PhotoBlob(
        filename=photo.filename or "photo.jpg",
        content=await photo.read(),
        content_type=photo.content_type or "image/jpeg",
    )

    try:
        item = await services.items.add(job_id, ItemFields(room, description, category), blob)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    except NotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    except PersistenceError as e:
        raise HTTPException(
            status_code=502,
            detail={"message": e.message, "orphaned_photo_url": e.orphaned_photo_url},
        )
    return item.to_dict()


@router.delete("/jobs/{job_id}/items/{item_id}")
async def delete_item(job_id: str, item_id: str, services: Services = Depends(get_services)):
    try:
        await services.items.remove(job_id, item_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"status": "ok"}


@router.get("/jobs/{job_id}/report")
async def job_report(
    job_id: str,
    category: str = ALL_CATEGORIES,
    services: Services = Depends(get_services),
):
    try:
        job = await services.jobs.get(job_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Job not found")

    items = filter_items(job.items, category)
    photos = await load_photos(items, services.jobs.objects)

    loop = asyncio.get_running_loop()
    pdf = await loop.run_in_executor(
        None,
        render_punchlist_pdf,
        items,
        job.name,
        category,
        photos,
    )

    filename = report_filename(category)
    logger.info("Generated report %s for job %s (%d items)", filename, job_id, len(items))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
