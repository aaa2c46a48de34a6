from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, List, Optional

from punchlist.asr.vosk_adapter import VoskSpeechCapture
from punchlist.config import Settings, settings
from punchlist.llm.extractor import FieldExtractor
from punchlist.llm.gemini import GeminiExtractionBackend
from punchlist.models import CSI_DIVISIONS
from punchlist.storage.document_store import InMemoryDocumentStore, JsonFileDocumentStore
from punchlist.storage.item_store import ItemStore
from punchlist.storage.job_store import JobStore
from punchlist.storage.object_store import LocalObjectStore


@dataclass
class Services:
    jobs: JobStore
    items: ItemStore
    extractor: FieldExtractor
    capture_factory: Callable[[], VoskSpeechCapture]
    categories: List[str] = field(default_factory=lambda: list(CSI_DIVISIONS))

    def new_capture(self) -> VoskSpeechCapture:
        return self.capture_factory()


def build_services(config: Optional[Settings] = None) -> Services:
    config = config or settings

    if config.STORE_BACKEND == "json":
        documents = JsonFileDocumentStore(config.DATA_DIR)
    elif config.STORE_BACKEND == "memory":
        documents = InMemoryDocumentStore()
    else:
        raise ValueError(f"unknown STORE_BACKEND: {config.STORE_BACKEND}")

    objects = LocalObjectStore(config.DATA_DIR, config.DATA_URL_PREFIX)
    jobs = JobStore(documents, objects)

    return Services(
        jobs=jobs,
        items=ItemStore(jobs),
        extractor=FieldExtractor(GeminiExtractionBackend(model=config.GEMINI_MODEL), CSI_DIVISIONS),
        capture_factory=lambda: VoskSpeechCapture(config.VOSK_MODEL_PATH, config.SAMPLE_RATE),
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services()
