import asyncio

import pytest

from punchlist.llm.extractor import FieldExtractor
from punchlist.llm.gemini import GeminiExtractionBackend
from punchlist.models import CSI_DIVISIONS, ExtractedFields, ExtractionFailure

from fakes import VALID_RESPONSE, FakeBackend


def _extract(backend, transcript, categories=None):
    extractor = FieldExtractor(backend, categories)
    return asyncio.run(extractor.extract(transcript))


@pytest.mark.parametrize("transcript", ["", "   ", None])
def test_empty_transcript_fails_without_remote_call(transcript):
    backend = FakeBackend()
    result = _extract(backend, transcript)

    assert result == ExtractionFailure("empty_transcript")
    assert backend.prompts == []


def test_valid_response_returns_fields():
    backend = FakeBackend(VALID_RESPONSE)
    result = _extract(backend, "room 101 cracked tile floor, division 9")

    assert result == ExtractedFields(
        room="101",
        description="cracked tile floor",
        category="Division 09 - Finishes",
        category_unexpected=False,
    )
    assert len(backend.prompts) == 1
    assert "room 101 cracked tile floor, division 9" in backend.prompts[0]
    assert backend.categories == CSI_DIVISIONS


def test_markdown_fenced_json_is_accepted():
    backend = FakeBackend("```json\n" + VALID_RESPONSE + "\n```")
    result = _extract(backend, "room 101 cracked tile")
    assert isinstance(result, ExtractedFields)
    assert result.room == "101"


@pytest.mark.parametrize(
    "raw, reason",
    [
        ("{not json", "invalid_json"),
        ("", "empty_response"),
        ("   ", "empty_response"),
        ('["101", "leak"]', "invalid_schema"),
        ('{"room": "101", "description": "leak"}', "invalid_schema"),
        ('{"room": "", "description": "leak", "category": "Division 22 - Plumbing"}', "invalid_schema"),
        ('{"room": 101, "description": "leak", "category": "Division 22 - Plumbing"}', "invalid_schema"),
    ],
)
def test_bad_responses_are_failures_never_partial_fields(raw, reason):
    result = _extract(FakeBackend(raw), "room 101 leak")
    assert isinstance(result, ExtractionFailure)
    assert result.reason == reason


def test_transport_error_is_a_failure():
    backend = FakeBackend(error=ConnectionError("network down"))
    result = _extract(backend, "room 101 leak")

    assert isinstance(result, ExtractionFailure)
    assert result.reason == "llm_call_failed"
    assert "network down" in result.details


def test_unexpected_category_is_flagged_not_rejected(caplog):
    raw = '{"room": "Lobby", "description": "scratched glass", "category": "Glazing"}'
    result = _extract(FakeBackend(raw), "lobby scratched glass glazing")

    assert isinstance(result, ExtractedFields)
    assert result.category == "Glazing"
    assert result.category_unexpected is True
    assert "unexpected category" in caplog.text


def test_caller_supplied_categories_are_used():
    raw = '{"room": "3", "description": "outlet dead", "category": "Electrical"}'
    backend = FakeBackend(raw)
    result = _extract(backend, "room 3 outlet dead", categories=["General", "Electrical"])

    assert result.category_unexpected is False
    assert backend.categories == ["General", "Electrical"]


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModels:
    def __init__(self, text):
        self.text = text
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return FakeResponse(self.text)


class FakeClient:
    def __init__(self, text):
        self.models = FakeModels(text)


def test_gemini_backend_constrains_response_to_schema():
    client = FakeClient(VALID_RESPONSE)
    backend = GeminiExtractionBackend(client=client, model="gemini-test")

    result = _extract(backend, "room 101 cracked tile floor")

    assert isinstance(result, ExtractedFields)
    call = client.models.calls[0]
    assert call["model"] == "gemini-test"
    config = call["config"]
    assert config["response_mime_type"] == "application/json"
    schema = config["response_schema"]
    assert schema["required"] == ["room", "description", "category"]
    assert schema["properties"]["category"]["enum"] == CSI_DIVISIONS


def test_gemini_backend_blank_text_is_empty_response():
    result = _extract(GeminiExtractionBackend(client=FakeClient(None)), "room 4 leak")
    assert result == ExtractionFailure("empty_response")
