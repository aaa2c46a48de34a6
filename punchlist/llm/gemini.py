import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from google import genai

from punchlist.config import settings

logger = logging.getLogger(__name__)


class ExtractionBackend(Protocol):
    async def generate(self, prompt: str, categories: Sequence[str]) -> str: ...


def build_prompt(transcript: str) -> str:
    return f"""
Parse the following voice command from a construction site manager.

Extract:
- room: the room number or location of the issue (e.g. "101", "Lobby", "Kitchen")
- description: a description of the construction issue or snag
- category: the trade division responsible for fixing the issue

Rules:
- Do NOT invent information that was not spoken.
- category MUST be one of the allowed values.
- Return ONLY valid JSON.
- No markdown. No explanations.

The command is: "{transcript}"
"""


def build_response_schema(categories: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "room": {
                "type": "STRING",
                "description": "The room number or location of the issue.",
            },
            "description": {
                "type": "STRING",
                "description": "A detailed description of the construction issue or snag.",
            },
            "category": {
                "type": "STRING",
                "description": "The trade category responsible for fixing the issue.",
                "enum": list(categories),
            },
        },
        "required": ["room", "description", "category"],
    }


class GeminiExtractionBackend:
    """Structured extraction through the Gemini generate_content API."""

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GEMINI_MODEL

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=settings.GEMINI_API_KEY)
        return self._client

    def _generate_sync(self, prompt: str, categories: List[str]) -> str:
        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config={
                "temperature": 0.0,
                "response_mime_type": "application/json",
                "response_schema": build_response_schema(categories),
            },
        )
        return (response.text or "").strip()

    async def generate(self, prompt: str, categories: Sequence[str]) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._generate_sync,
            prompt,
            list(categories),
        )
