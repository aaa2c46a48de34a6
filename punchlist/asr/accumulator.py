import logging
from typing import Callable, Iterable, Optional

from punchlist.asr.base import (
    UNSUPPORTED_MESSAGE,
    CaptureEvent,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
    SpeechCaptureService,
    error_message,
    normalize_reason,
)
from punchlist.core.events import EventEmitter, Subscription
from punchlist.errors import CapabilityUnavailable, CaptureError

logger = logging.getLogger(__name__)


def join_segments(segments: Iterable[str]) -> str:
    return " ".join(s.strip() for s in segments if s and s.strip())


class TranscriptAccumulator:
    """
    Owns one speech-recognition session at a time.

    Republishes the running transcript after every recognition event and
    hands the trimmed transcript to final subscribers when the session ends.
    Errors discard the transcript instead.
    """

    def __init__(self, capture: SpeechCaptureService):
        self._capture = capture
        self._session: Optional[Subscription] = None
        self.active = False
        self.live_transcript = ""

        self._live: EventEmitter[str] = EventEmitter()
        self._final: EventEmitter[str] = EventEmitter()
        self._errors: EventEmitter[CaptureError] = EventEmitter()

    def on_live(self, listener: Callable[[str], None]) -> Subscription:
        return self._live.subscribe(listener)

    def on_final(self, listener: Callable[[str], None]) -> Subscription:
        return self._final.subscribe(listener)

    def on_error(self, listener: Callable[[CaptureError], None]) -> Subscription:
        return self._errors.subscribe(listener)

    def start(self) -> None:
        if not self._capture.available:
            raise CapabilityUnavailable(UNSUPPORTED_MESSAGE)

        if self.active:
            logger.info("Restarting capture, discarding previous transcript")
            self._end_session()
            self._capture.stop()

        self.live_transcript = ""
        self._session = self._capture.subscribe(self._handle_event)
        self.active = True

        try:
            self._capture.start()
        except Exception:
            self._end_session()
            raise

    def stop(self) -> None:
        if not self.active:
            return

        self._capture.stop()

        # capture services that end asynchronously still finalize here
        if self.active:
            self._finalize()

    def _handle_event(self, event: CaptureEvent) -> None:
        if not self.active:
            return

        if isinstance(event, RecognitionResult):
            self.live_transcript = join_segments(event.segments)
            self._live.emit(self.live_transcript)

        elif isinstance(event, RecognitionError):
            reason = normalize_reason(event.reason)
            logger.warning("Speech recognition error: %s", event.reason)
            self._end_session()
            self.live_transcript = ""
            self._errors.emit(CaptureError(reason.value, error_message(reason.value)))

        elif isinstance(event, RecognitionEnded):
            self._finalize()

    def _finalize(self) -> None:
        self._end_session()
        final = self.live_transcript.strip()
        logger.info("Capture finalized (%d chars)", len(final))
        self._final.emit(final)

    def _end_session(self) -> None:
        self.active = False
        if self._session is not None:
            self._session.cancel()
            self._session = None
