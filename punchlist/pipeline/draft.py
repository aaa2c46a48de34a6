import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from punchlist.asr.accumulator import TranscriptAccumulator
from punchlist.core.events import EventEmitter, Subscription
from punchlist.errors import (
    CapabilityUnavailable,
    CaptureError,
    InvalidTransition,
    ValidationError,
)
from punchlist.llm.extractor import ExtractionResult, FieldExtractor
from punchlist.models import (
    CSI_DIVISIONS,
    DraftRecord,
    ExtractedFields,
    ItemFields,
    PhotoBlob,
    PunchlistItem,
)

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_MESSAGE = "Could not understand the command. Please try again or fill manually."


class DraftState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


SUBMITTABLE_STATES = (DraftState.IDLE, DraftState.REVIEWING)
TERMINAL_STATES = (DraftState.SUBMITTED, DraftState.CANCELLED)


class ItemSink(Protocol):
    async def add(self, job_id: str, fields: ItemFields, photo: PhotoBlob) -> PunchlistItem: ...


class DraftReconciler:
    """
    State machine for one in-progress punchlist item.

    idle -> listening -> extracting -> reviewing, with submitted and cancelled
    both resetting to idle on a fresh draft. Extraction results are tagged
    with a generation number; results for an older generation, or arriving
    after the state moved on, are dropped.
    """

    def __init__(
        self,
        job_id: str,
        accumulator: TranscriptAccumulator,
        extractor: FieldExtractor,
        items: ItemSink,
        categories: Optional[Sequence[str]] = None,
    ):
        self.job_id = job_id
        self.accumulator = accumulator
        self.extractor = extractor
        self.items = items
        self.categories = list(categories or extractor.categories or CSI_DIVISIONS)

        self.state = DraftState.IDLE
        self.draft = self._new_draft()
        self._generation = 0
        self._extraction: Optional[asyncio.Task] = None
        self._changes: EventEmitter[DraftRecord] = EventEmitter()

        self._subscriptions: List[Subscription] = [
            accumulator.on_live(self._on_live_transcript),
            accumulator.on_final(self._on_transcript_final),
            accumulator.on_error(self._on_capture_error),
        ]

    def _new_draft(self) -> DraftRecord:
        return DraftRecord(category=self.categories[0])

    def subscribe(self, listener: Callable[[DraftRecord], None]) -> Subscription:
        return self._changes.subscribe(listener)

    def _changed(self) -> None:
        self.draft.is_listening = self.state == DraftState.LISTENING
        self.draft.is_extracting = self.state == DraftState.EXTRACTING
        self._changes.emit(self.draft)

    # ---------------- capture ----------------

    def start_capture(self) -> None:
        if self.state in TERMINAL_STATES:
            raise InvalidTransition(f"Cannot start capture while {self.state.value}")

        try:
            self.accumulator.start()
        except CapabilityUnavailable as e:
            self.draft.last_error = str(e)
            self._changed()
            raise

        # an in-flight extraction result is dropped by the generation check
        self._generation += 1
        self.state = DraftState.LISTENING
        self.draft.room = ""
        self.draft.description = ""
        self.draft.category = self.categories[0]
        self.draft.live_transcript = ""
        self.draft.last_error = None
        self._changed()

    def stop_capture(self) -> None:
        self.accumulator.stop()

    def _on_live_transcript(self, transcript: str) -> None:
        self.draft.live_transcript = transcript
        self._changed()

    def _on_capture_error(self, error: CaptureError) -> None:
        if self.state != DraftState.LISTENING:
            return
        self.state = DraftState.REVIEWING
        self.draft.live_transcript = ""
        self.draft.last_error = error.message
        self._changed()

    def _on_transcript_final(self, transcript: str) -> None:
        if self.state == DraftState.EXTRACTING:
            logger.info("Extraction already in flight, ignoring finalized transcript")
            return
        if self.state != DraftState.LISTENING:
            logger.info("Ignoring finalized transcript in state %s", self.state.value)
            return

        self.state = DraftState.EXTRACTING
        self._generation += 1
        self.draft.live_transcript = transcript
        self._changed()

        loop = asyncio.get_running_loop()
        self._extraction = loop.create_task(self._run_extraction(self._generation, transcript))

    async def _run_extraction(self, generation: int, transcript: str) -> None:
        result = await self.extractor.extract(transcript)
        self.apply_extraction(generation, transcript, result)

    def apply_extraction(self, generation: int, transcript: str, result: ExtractionResult) -> bool:
        if generation != self._generation or self.state != DraftState.EXTRACTING:
            logger.info("Dropping stale extraction result (generation %d)", generation)
            return False

        self.state = DraftState.REVIEWING
        if isinstance(result, ExtractedFields):
            self.draft.room = result.room
            self.draft.description = result.description
            self.draft.category = result.category
            self.draft.last_error = None
        else:
            logger.warning("Extraction failed: %s", result.reason)
            if not self.draft.description.strip():
                self.draft.description = transcript
            self.draft.last_error = EXTRACTION_FAILED_MESSAGE

        self._changed()
        return True

    async def wait_for_extraction(self) -> None:
        if self._extraction is not None:
            await self._extraction

    # ---------------- manual edits ----------------

    def edit(
        self,
        room: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
    ) -> None:
        if self.state in TERMINAL_STATES:
            raise InvalidTransition(f"Cannot edit the draft while {self.state.value}")
        if category is not None and category not in self.categories:
            raise ValidationError(f"Unknown category: {category}", ["category"])

        if room is not None:
            self.draft.room = room
        if description is not None:
            self.draft.description = description
        if category is not None:
            self.draft.category = category

        if self.state == DraftState.IDLE:
            self.state = DraftState.REVIEWING
        self._changed()

    def attach_photo(self, photo: PhotoBlob) -> None:
        self.draft.photo = photo
        self._changed()

    def missing_fields(self) -> List[str]:
        missing = []
        if self.draft.photo is None or not self.draft.photo.content:
            missing.append("photo")
        if not self.draft.room.strip():
            missing.append("room")
        if not self.draft.description.strip():
            missing.append("description")
        return missing

    # ---------------- submit / cancel ----------------

    async def submit(self) -> PunchlistItem:
        if self.state not in SUBMITTABLE_STATES:
            raise InvalidTransition(f"Cannot submit while {self.state.value}")

        missing = self.missing_fields()
        if missing:
            self.state = DraftState.REVIEWING
            self.draft.last_error = f"Missing required fields: {', '.join(missing)}"
            self._changed()
            raise ValidationError(self.draft.last_error, missing)

        self.state = DraftState.SUBMITTED
        self._changed()

        try:
            item = await self.items.add(self.job_id, self.draft.fields(), self.draft.photo)
        except Exception as e:
            self.state = DraftState.REVIEWING
            self.draft.last_error = str(e) or "Failed to save item."
            self._changed()
            raise

        self._reset()
        return item

    def cancel(self) -> None:
        # leave listening first so the stop below cannot start an extraction
        self.state = DraftState.CANCELLED
        self._generation += 1
        self.accumulator.stop()
        self._reset()

    def _reset(self) -> None:
        self.state = DraftState.IDLE
        self.draft = self._new_draft()
        self._changed()

    def close(self) -> None:
        self.cancel()
        for subscription in self._subscriptions:
            subscription.cancel()
