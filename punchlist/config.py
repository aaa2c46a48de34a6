import logging
import os

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings:
    ENV = os.getenv("ENV", "dev")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    VOSK_MODEL_PATH = os.getenv(
        "VOSK_MODEL_PATH", "models/vosk/en/vosk-model-small-en-us-0.15"
    )
    SAMPLE_RATE = int(os.getenv("SAMPLE_RATE", "16000"))

    DATA_DIR = os.getenv("DATA_DIR", "data")
    DATA_URL_PREFIX = os.getenv("DATA_URL_PREFIX", "/data")
    STORE_BACKEND = os.getenv("STORE_BACKEND", "json")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "8000"))


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    logging.getLogger(__name__).debug("GEMINI_MODEL = %s", settings.GEMINI_MODEL)
