"""Gemini refinement backend using google-genai.

Polishing asks the model to act as an editor for one raw segment, using the
preceding segments and reference documents to resolve typos and homophones.
Translation maps a segment to its counterpart language (ZH-CN <-> EN).
"""

from __future__ import annotations

import logging
import os

from smartrec.backends.base import RefinementBackend
from smartrec.backends.gemini_client import create_client
from smartrec.errors import EnrichmentError

logger = logging.getLogger(__name__)

REFINE_MODEL = os.getenv("REFINE_MODEL", "gemini-3-flash-preview")
MAX_REFERENCE_DOCS = int(os.getenv("MAX_REFERENCE_DOCS", "5"))

POLISH_PROMPT_TEMPLATE = """Act as an editor. Refine this raw classroom transcription segment into polished text.
- Correct typos/homophones based on Context: {references}
- Preceding segments (for continuity, do not repeat them): {context}
- Maintain original meaning.
- Simplified Chinese (简体中文).
- Return ONLY polished text.

Raw Segment: {text}"""

TRANSLATE_PROMPT_TEMPLATE = """Translate the following classroom segment to the other language (ZH-CN <-> EN).
Rules: Simplified Chinese only. Return ONLY translation.
Segment: {text}"""


class GeminiRefinementBackend(RefinementBackend):
    """Polish and translate segments with a Gemini text model."""

    def __init__(self, api_key: str | None = None, model: str = REFINE_MODEL) -> None:
        self._api_key = api_key
        self.model = model
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = create_client(self._api_key)
        return self._client

    async def polish(
        self,
        text: str,
        context: list[str] | None = None,
        references: list[str] | None = None,
    ) -> str:
        prompt = POLISH_PROMPT_TEMPLATE.format(
            references="\n".join((references or [])[:MAX_REFERENCE_DOCS]),
            context="\n".join(context or []),
            text=text,
        )
        polished = await self._generate(prompt)
        return polished or text

    async def translate(self, text: str) -> str:
        return await self._generate(TRANSLATE_PROMPT_TEMPLATE.format(text=text))

    async def _generate(self, prompt: str) -> str:
        try:
            client = self._get_client()
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
            )
        except Exception as e:
            raise EnrichmentError(str(e)) from e
        return (response.text or "").strip()
