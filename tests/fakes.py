import asyncio
from typing import List, Optional

from punchlist.asr.base import RecognitionEnded, RecognitionError, RecognitionResult
from punchlist.core.events import EventEmitter
from punchlist.storage.document_store import InMemoryDocumentStore
from punchlist.storage.object_store import LocalObjectStore

VALID_RESPONSE = (
    '{"room": "101", "description": "cracked tile floor", '
    '"category": "Division 09 - Finishes"}'
)


class FakeSpeechCapture:
    """Speech capture driven by the test: say() pushes recognition events."""

    def __init__(self, available: bool = True):
        self.available = available
        self.active = False
        self.started = 0
        self.stopped = 0
        self._events = EventEmitter()

    def subscribe(self, listener):
        return self._events.subscribe(listener)

    def start(self):
        self.started += 1
        self.active = True

    def stop(self):
        self.stopped += 1
        if self.active:
            self.active = False
            self._events.emit(RecognitionEnded())

    def say(self, *segments, is_final=False):
        self._events.emit(RecognitionResult(tuple(segments), is_final=is_final))

    def end(self):
        self.active = False
        self._events.emit(RecognitionEnded())

    def fail(self, reason):
        self.active = False
        self._events.emit(RecognitionError(reason))

    def feed(self, data: bytes):
        self.say(data.decode("utf-8"), is_final=True)


class FakeBackend:
    """Extraction backend returning canned responses in order (last one repeats)."""

    def __init__(self, *responses: str, error: Optional[Exception] = None):
        self.responses: List[str] = list(responses) or [VALID_RESPONSE]
        self.error = error
        self.prompts: List[str] = []
        self.categories = None
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, prompt, categories):
        self.prompts.append(prompt)
        self.categories = list(categories)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class RecordingItemSink:
    def __init__(self, error: Optional[Exception] = None):
        self.calls = []
        self.error = error

    async def add(self, job_id, fields, photo):
        self.calls.append((job_id, fields, photo))
        if self.error is not None:
            raise self.error
        from punchlist.models import PunchlistItem

        return PunchlistItem(
            id=f"item-{len(self.calls)}",
            room=fields.room,
            description=fields.description,
            category=fields.category,
            photo="/data/images/fake.jpg",
            created_at="2026-01-01T00:00:00+00:00",
        )


class FailingDeleteObjectStore(LocalObjectStore):
    """Deletes fail for urls containing any of the given markers."""

    def __init__(self, root_dir, markers=("",)):
        super().__init__(root_dir)
        self.markers = markers

    async def delete(self, url):
        if any(m in url for m in self.markers):
            raise PermissionError("storage refused delete")
        await super().delete(url)


class FailingUpdateDocumentStore(InMemoryDocumentStore):
    def __init__(self):
        super().__init__()
        self.fail_updates = False

    async def update(self, doc_id, fields):
        if self.fail_updates:
            raise ConnectionError("store unavailable")
        await super().update(doc_id, fields)
