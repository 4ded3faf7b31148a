"""Gemini Live transcription backend using google-genai.

Opens a Live API session with input audio transcription enabled. The model's
own audio replies are ignored; only ``input_transcription`` deltas and
``turn_complete`` markers are surfaced as TranscriptEvents.

The system instruction asks for fast Simplified Chinese transcription and
includes the reference documents so domain terms are recognized.
"""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import AsyncIterator

from smartrec.backends.base import LiveSession, TranscriptionBackend
from smartrec.backends.gemini_client import create_client
from smartrec.backends.types import TranscriptEvent
from smartrec.errors import TransportError
from smartrec.models import ReferenceDocument

logger = logging.getLogger(__name__)

LIVE_MODEL = os.getenv("LIVE_MODEL", "gemini-2.5-flash-native-audio-preview-09-2025")
LIVE_SAMPLE_RATE = int(os.getenv("LIVE_SAMPLE_RATE", "16000"))

SYSTEM_INSTRUCTION_TEMPLATE = """You are an elite academic real-time transcriber.
CONTEXT FROM DOCUMENTS: {references}

CORE MISSION:
1. Speed: Output text as fast as possible.
2. Accuracy: Use context to fix homophones.
3. Language: STRICT Simplified Chinese (简体中文).
4. Format: Natural phrasing. Remove filler words.
5. NO HALLUCINATION: If silent, output nothing. Do NOT repeat words.
6. Academic: Match terms to provided CONTEXT."""


def build_system_instruction(references: list[ReferenceDocument] | None) -> str:
    joined = "\n".join(doc.content for doc in references or [])
    return SYSTEM_INSTRUCTION_TEMPLATE.format(references=joined)


class GeminiLiveSession(LiveSession):
    """A connected Gemini Live session.

    Owns the ``live.connect`` async context manager through an exit stack so
    close() can be called from a different task than connect().
    """

    def __init__(self, session, exit_stack: contextlib.AsyncExitStack) -> None:
        self._session = session
        self._exit_stack = exit_stack
        self._closed = False

    async def send_audio(self, pcm16: bytes) -> None:
        from google.genai import types

        try:
            await self._session.send_realtime_input(
                audio=types.Blob(data=pcm16, mime_type=f"audio/pcm;rate={LIVE_SAMPLE_RATE}")
            )
        except Exception as e:
            raise TransportError(f"send failed: {e}") from e

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        # receive() stops after each model turn, so it is re-entered per turn
        while not self._closed:
            received = 0
            try:
                async for message in self._session.receive():
                    received += 1
                    content = message.server_content
                    if content is None:
                        continue
                    transcription = content.input_transcription
                    if transcription is not None and transcription.text:
                        yield TranscriptEvent(text=transcription.text)
                    if content.turn_complete:
                        yield TranscriptEvent(turn_complete=True)
            except Exception as e:
                if self._closed:
                    return
                raise TransportError(f"receive failed: {e}") from e
            if received == 0 and not self._closed:
                raise TransportError("live session closed by server")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._exit_stack.aclose()
        except Exception as e:
            logger.debug("Error closing live session: %s", e)


class GeminiLiveBackend(TranscriptionBackend):
    """Gemini Live API transcription source."""

    def __init__(self, api_key: str | None = None, model: str = LIVE_MODEL) -> None:
        self._api_key = api_key
        self.model = model
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = create_client(self._api_key)
        return self._client

    async def connect(self, references: list[ReferenceDocument] | None = None) -> LiveSession:
        from google.genai import types

        client = self._get_client()
        config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            input_audio_transcription=types.AudioTranscriptionConfig(),
            system_instruction=build_system_instruction(references),
        )

        exit_stack = contextlib.AsyncExitStack()
        try:
            session = await exit_stack.enter_async_context(
                client.aio.live.connect(model=self.model, config=config)
            )
        except Exception as e:
            await exit_stack.aclose()
            raise TransportError(f"connect failed: {e}") from e

        logger.info("Live session opened (model=%s)", self.model)
        return GeminiLiveSession(session, exit_stack)
