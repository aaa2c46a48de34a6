import json

import pytest

from punchlist.asr import vosk_adapter
from punchlist.asr.accumulator import TranscriptAccumulator
from punchlist.asr.base import (
    CAPTURE_ERROR_MESSAGES,
    ErrorReason,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
    error_message,
)
from punchlist.asr.vosk_adapter import VoskSpeechCapture
from punchlist.errors import CapabilityUnavailable, UnsupportedCapability

from fakes import FakeSpeechCapture


def _accumulator(capture=None):
    capture = capture or FakeSpeechCapture()
    acc = TranscriptAccumulator(capture)
    finals, lives, errors = [], [], []
    acc.on_final(finals.append)
    acc.on_live(lives.append)
    acc.on_error(errors.append)
    return capture, acc, finals, lives, errors


def test_live_transcript_is_republished_after_every_event():
    capture, acc, finals, lives, _ = _accumulator()
    acc.start()

    capture.say("room one")
    capture.say("room one", "hundred leak")

    assert lives == ["room one", "room one hundred leak"]
    assert acc.live_transcript == "room one hundred leak"
    assert finals == []


def test_stop_hands_trimmed_transcript_to_final_listeners():
    capture, acc, finals, _, _ = _accumulator()
    acc.start()
    capture.say("  room 101 cracked tile  ", is_final=True)

    acc.stop()

    assert finals == ["room 101 cracked tile"]
    assert not acc.active


def test_natural_end_finalizes_without_stop():
    capture, acc, finals, _, _ = _accumulator()
    acc.start()
    capture.say("kitchen sink leaking", is_final=True)

    capture.end()

    assert finals == ["kitchen sink leaking"]
    assert not acc.active


def test_stop_twice_finalizes_once():
    capture, acc, finals, _, _ = _accumulator()
    acc.start()
    capture.say("lobby door sticks", is_final=True)

    acc.stop()
    acc.stop()
    capture.end()

    assert finals == ["lobby door sticks"]
    assert capture.stopped == 1


def test_stop_without_start_is_noop():
    capture, acc, finals, _, _ = _accumulator()
    acc.stop()
    assert capture.stopped == 0
    assert finals == []


def test_start_without_speech_support_raises():
    capture, acc, _, _, _ = _accumulator(FakeSpeechCapture(available=False))

    with pytest.raises(CapabilityUnavailable):
        acc.start()

    assert UnsupportedCapability is CapabilityUnavailable
    assert capture.started == 0
    assert not acc.active


def test_error_discards_transcript_and_resets():
    capture, acc, finals, _, errors = _accumulator()
    acc.start()
    capture.say("room 12 broken")

    capture.fail("not-allowed")

    assert finals == []
    assert not acc.active
    assert acc.live_transcript == ""
    assert len(errors) == 1
    assert errors[0].reason == "not-allowed"
    assert errors[0].message == CAPTURE_ERROR_MESSAGES[ErrorReason.NOT_ALLOWED]


def test_every_error_reason_has_its_own_message():
    messages = {error_message(r.value) for r in ErrorReason}
    assert len(messages) == len(ErrorReason)
    assert error_message("something-new") == CAPTURE_ERROR_MESSAGES[ErrorReason.OTHER]


def test_restart_discards_previous_session_transcript():
    capture, acc, finals, _, _ = _accumulator()
    acc.start()
    capture.say("room one hundred leak", is_final=True)

    acc.start()

    assert finals == []
    assert acc.live_transcript == ""
    assert acc.active

    capture.say("room two oven broken", is_final=True)
    acc.stop()

    assert finals == ["room two oven broken"]


def test_events_after_session_end_are_ignored():
    capture, acc, finals, lives, _ = _accumulator()
    acc.start()
    capture.say("room 5", is_final=True)
    acc.stop()

    capture.say("late result")

    assert lives == ["room 5"]
    assert finals == ["room 5"]


class FakeRecognizer:
    """Chunks starting with F finalize, P are partial hypotheses."""

    def __init__(self, model, sample_rate):
        self.sample_rate = sample_rate
        self.last = ""

    def SetPartialWords(self, enabled):
        pass

    def AcceptWaveform(self, data):
        self.last = data[1:].decode()
        return data.startswith(b"F")

    def Result(self):
        return json.dumps({"text": self.last})

    def PartialResult(self):
        return json.dumps({"partial": self.last})

    def FinalResult(self):
        return json.dumps({"text": ""})


@pytest.fixture
def vosk_capture(monkeypatch):
    monkeypatch.setattr(vosk_adapter, "KaldiRecognizer", FakeRecognizer)
    capture = VoskSpeechCapture(model=object(), sample_rate=16000)
    events = []
    capture.subscribe(events.append)
    return capture, events


def test_vosk_capture_emits_partial_and_final_segments(vosk_capture):
    capture, events = vosk_capture
    capture.start()

    capture.feed(b"Proom one")
    capture.feed(b"Froom one hundred")
    capture.feed(b"Pleak")
    capture.stop()

    assert events[0] == RecognitionResult(("room one",), is_final=False)
    assert events[1] == RecognitionResult(("room one hundred",), is_final=True)
    assert events[2] == RecognitionResult(("room one hundred", "leak"), is_final=False)
    assert events[-2] == RecognitionResult(("room one hundred",), is_final=True)
    assert events[-1] == RecognitionEnded()
    assert not capture.active


def test_vosk_capture_without_speech_reports_no_speech(vosk_capture):
    capture, events = vosk_capture
    capture.start()
    capture.stop()

    assert events == [RecognitionError("no-speech")]


def test_vosk_capture_unavailable_without_model(tmp_path):
    capture = VoskSpeechCapture(model_path=str(tmp_path / "missing"))
    assert not capture.available
    with pytest.raises(CapabilityUnavailable):
        capture.start()


def test_vosk_session_through_accumulator(vosk_capture):
    capture, _ = vosk_capture
    acc = TranscriptAccumulator(capture)
    finals = []
    acc.on_final(finals.append)

    acc.start()
    capture.feed(b"Froom 101 cracked tile")
    acc.stop()

    assert finals == ["room 101 cracked tile"]
