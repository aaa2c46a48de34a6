import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from vosk import KaldiRecognizer, Model

from punchlist.asr.base import (
    CaptureEvent,
    ErrorReason,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
)
from punchlist.config import settings
from punchlist.core.events import EventEmitter, Subscription
from punchlist.errors import CapabilityUnavailable

logger = logging.getLogger(__name__)

_models: Dict[str, Model] = {}


def load_model(model_path: str) -> Model:
    if model_path not in _models:
        logger.info("Loading Vosk model from %s", model_path)
        _models[model_path] = Model(model_path)
    return _models[model_path]


class VoskSpeechCapture:
    """
    Continuous recognition over raw 16-bit mono PCM chunks pushed with feed().

    Finalized Vosk results become segments; every event carries all segments
    of the session plus the current partial hypothesis.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        sample_rate: Optional[int] = None,
        model: Optional[Model] = None,
    ):
        self.model_path = model_path or settings.VOSK_MODEL_PATH
        self.sample_rate = sample_rate or settings.SAMPLE_RATE
        self._model = model
        self._events: EventEmitter[CaptureEvent] = EventEmitter()
        self._recognizer: Optional[KaldiRecognizer] = None
        self._segments: List[str] = []
        self.active = False

    @property
    def available(self) -> bool:
        return self._model is not None or Path(self.model_path).is_dir()

    def subscribe(self, listener: Callable[[CaptureEvent], None]) -> Subscription:
        return self._events.subscribe(listener)

    def start(self) -> None:
        if not self.available:
            raise CapabilityUnavailable(f"Vosk model not found at {self.model_path}")

        if self._model is None:
            self._model = load_model(self.model_path)

        self._recognizer = KaldiRecognizer(self._model, self.sample_rate)
        self._recognizer.SetPartialWords(True)
        self._segments = []
        self.active = True

    def feed(self, data: bytes) -> None:
        if not self.active or not data:
            return

        try:
            accepted = self._recognizer.AcceptWaveform(data)
        except Exception:
            logger.exception("Vosk rejected an audio chunk")
            self.fail(ErrorReason.AUDIO_CAPTURE.value)
            return

        if accepted:
            text = json.loads(self._recognizer.Result()).get("text", "").strip()
            if text:
                self._segments.append(text)
                self._events.emit(RecognitionResult(tuple(self._segments), is_final=True))
        else:
            partial = json.loads(self._recognizer.PartialResult()).get("partial", "").strip()
            if partial:
                self._events.emit(
                    RecognitionResult(tuple(self._segments + [partial]), is_final=False)
                )

    def stop(self) -> None:
        if not self.active:
            return

        text = json.loads(self._recognizer.FinalResult()).get("text", "").strip()
        if text:
            self._segments.append(text)

        self.active = False
        self._recognizer = None

        if not self._segments:
            self._events.emit(RecognitionError(ErrorReason.NO_SPEECH.value))
            return

        self._events.emit(RecognitionResult(tuple(self._segments), is_final=True))
        self._events.emit(RecognitionEnded())

    def fail(self, reason: str) -> None:
        """Abort the session with an error reported by the audio source."""
        if not self.active:
            return
        self.active = False
        self._recognizer = None
        self._events.emit(RecognitionError(reason))
