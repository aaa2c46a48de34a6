from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Tuple, Union

from punchlist.core.events import Subscription


class ErrorReason(str, Enum):
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    NOT_ALLOWED = "not-allowed"
    NETWORK = "network"
    OTHER = "other"


CAPTURE_ERROR_MESSAGES = {
    ErrorReason.NO_SPEECH: (
        "No speech was detected. Please make sure your microphone is working "
        "and you are speaking clearly."
    ),
    ErrorReason.AUDIO_CAPTURE: (
        "Audio capture failed. Please check your microphone connection and permissions."
    ),
    ErrorReason.NOT_ALLOWED: (
        "Microphone access was denied. Please allow microphone access to use this feature."
    ),
    ErrorReason.NETWORK: (
        "A network error occurred with the speech service. "
        "Please check your internet connection."
    ),
    ErrorReason.OTHER: "Speech recognition failed. Please try again.",
}

UNSUPPORTED_MESSAGE = "Speech recognition is not supported on this device."


def normalize_reason(reason: str) -> ErrorReason:
    try:
        return ErrorReason(reason)
    except ValueError:
        return ErrorReason.OTHER


def error_message(reason: str) -> str:
    return CAPTURE_ERROR_MESSAGES[normalize_reason(reason)]


@dataclass(frozen=True)
class RecognitionResult:
    """Best current interpretation of everything spoken since start()."""

    segments: Tuple[str, ...]
    is_final: bool


@dataclass(frozen=True)
class RecognitionError:
    reason: str


@dataclass(frozen=True)
class RecognitionEnded:
    pass


CaptureEvent = Union[RecognitionResult, RecognitionError, RecognitionEnded]


class SpeechCaptureService(Protocol):
    @property
    def available(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def subscribe(self, listener: Callable[[CaptureEvent], None]) -> Subscription: ...
