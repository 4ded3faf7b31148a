"""Abstract base classes for pluggable transcription and refinement backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from smartrec.backends.types import TranscriptEvent
from smartrec.models import ReferenceDocument


class LiveSession(ABC):
    """An open bidirectional streaming session with a transcription source."""

    @abstractmethod
    async def send_audio(self, pcm16: bytes) -> None:
        """Send one frame of PCM16 mono audio.

        Raises:
            TransportError: If the frame could not be delivered.
        """

    @abstractmethod
    def events(self) -> AsyncIterator[TranscriptEvent]:
        """Iterate inbound transcript events until the session ends.

        Ending for any reason other than close() raises TransportError.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Safe to call more than once."""


class TranscriptionBackend(ABC):
    """Abstract interface for live speech transcription sources."""

    @abstractmethod
    async def connect(self, references: list[ReferenceDocument] | None = None) -> LiveSession:
        """Open a live session.

        Args:
            references: Documents whose content is given to the model as context.

        Raises:
            TransportError: If the session could not be opened.
        """


class RefinementBackend(ABC):
    """Abstract interface for text polishing and translation."""

    @abstractmethod
    async def polish(
        self,
        text: str,
        context: list[str] | None = None,
        references: list[str] | None = None,
    ) -> str:
        """Rewrite a transcribed segment for fluency and correctness.

        Args:
            text: Raw segment text.
            context: Texts of up to three preceding segments, oldest first.
            references: Reference document excerpts.

        Returns:
            Polished text (the input text if the model returned nothing).

        Raises:
            EnrichmentError: If the call failed.
        """

    @abstractmethod
    async def translate(self, text: str) -> str:
        """Translate a segment into its counterpart language (ZH-CN <-> EN).

        Raises:
            EnrichmentError: If the call failed.
        """
