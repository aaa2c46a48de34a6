import json
import logging
from typing import Optional, Sequence, Union

from punchlist.llm.gemini import ExtractionBackend, build_prompt
from punchlist.models import CSI_DIVISIONS, ExtractedFields, ExtractionFailure

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("room", "description", "category")

ExtractionResult = Union[ExtractedFields, ExtractionFailure]


def strip_markdown(raw_text: str) -> str:
    raw_text = raw_text.strip()
    if raw_text.startswith("```"):
        raw_text = raw_text.strip("`")
        if raw_text.lower().startswith("json"):
            raw_text = raw_text[4:]
    return raw_text.strip()


class FieldExtractor:
    """
    Turns a finished transcript into room / description / category.

    Returns ExtractionFailure instead of raising; it is up to the caller to
    fall back to manual entry.
    """

    def __init__(
        self,
        backend: ExtractionBackend,
        categories: Optional[Sequence[str]] = None,
    ):
        self.backend = backend
        self.categories = list(categories or CSI_DIVISIONS)

    async def extract(self, transcript: str) -> ExtractionResult:
        transcript = (transcript or "").strip()
        if not transcript:
            return ExtractionFailure("empty_transcript")

        try:
            raw_text = await self.backend.generate(build_prompt(transcript), self.categories)
        except Exception as e:
            logger.error("Extraction call failed: %s", e)
            return ExtractionFailure("llm_call_failed", details=str(e))

        return self.parse(raw_text)

    def parse(self, raw_text: Optional[str]) -> ExtractionResult:
        raw_text = strip_markdown(raw_text or "")
        if not raw_text:
            logger.error("Extraction returned empty text")
            return ExtractionFailure("empty_response")

        try:
            parsed = json.loads(raw_text)
        except json.JSONDecodeError as e:
            return ExtractionFailure("invalid_json", details=str(e), raw_text=raw_text)

        if not isinstance(parsed, dict):
            return ExtractionFailure("invalid_schema", raw_text=raw_text)

        values = {}
        for key in REQUIRED_FIELDS:
            value = parsed.get(key)
            if not isinstance(value, str) or not value.strip():
                return ExtractionFailure(
                    "invalid_schema",
                    details=f"missing field: {key}",
                    raw_text=raw_text,
                )
            values[key] = value.strip()

        unexpected = values["category"] not in self.categories
        if unexpected:
            logger.warning("Extraction returned unexpected category %r", values["category"])

        return ExtractedFields(
            room=values["room"],
            description=values["description"],
            category=values["category"],
            category_unexpected=unexpected,
        )
