"""
Recording lifecycle: start, pause, resume, stop.

Recorder wires the core together for one client:

    audio frames -> ConnectionManager -> live session
    live session -> ConnectionManager -> Segmenter -> EnrichmentQueue
    EnrichmentQueue -> RecorderState.apply_update -> live list / archived session

Stopping archives the live segments as a RecordingSession and switches the
view to it. Queued enrichment jobs keep draining against the archived copy;
close() waits up to CLOSE_DRAIN_SEC for them before stopping the worker.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from smartrec.audio import as_pcm16
from smartrec.backends import get_refinement_backend, get_transcription_backend
from smartrec.backends.base import RefinementBackend, TranscriptionBackend
from smartrec.connection import ConnectionManager, ErrorCallback
from smartrec.enrichment import EnrichmentQueue
from smartrec.models import (
    RecorderStatus,
    RecordingSession,
    ReferenceDocument,
    TranscriptionSegment,
    new_id,
)
from smartrec.scheduler import Scheduler
from smartrec.segmenter import Segmenter
from smartrec.state import RecorderState, SessionStore

logger = logging.getLogger(__name__)

REFERENCE_DIR = os.getenv("REFERENCE_DIR", "")
REFERENCE_SUFFIXES = (".txt", ".md")
CLOSE_DRAIN_SEC = float(os.getenv("CLOSE_DRAIN_SEC", "120"))


def load_references(directory: str | Path) -> list[ReferenceDocument]:
    """Load every .txt/.md file in ``directory`` as a reference document."""
    path = Path(directory)
    if not path.is_dir():
        return []
    docs = []
    for file in sorted(path.iterdir()):
        if file.suffix.lower() not in REFERENCE_SUFFIXES:
            continue
        try:
            docs.append(ReferenceDocument.from_path(file))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping reference %s: %s", file.name, e)
    return docs


def format_transcript(segments: Iterable[TranscriptionSegment], include_translations: bool = True) -> str:
    """Copy-all text export: one paragraph per segment, translations on a
    ``[Translation]:`` line when present and requested."""
    parts = []
    for seg in segments:
        text = seg.text
        if include_translations and seg.translated_text:
            text += f"\n[Translation]: {seg.translated_text}"
        parts.append(text)
    return "\n\n".join(parts)


class Recorder:
    """Controls one recording workspace and exposes its state to the UI layer."""

    def __init__(
        self,
        transcription_backend: TranscriptionBackend | None = None,
        refinement_backend: RefinementBackend | None = None,
        store: SessionStore | None = None,
        scheduler: Scheduler | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.scheduler = scheduler or Scheduler()
        self.state = RecorderState(store=store)
        self.queue = EnrichmentQueue(
            self.state,
            refinement_backend or get_refinement_backend(),
            self.scheduler,
        )
        self.segmenter = Segmenter(self.state, self.queue.enqueue)
        self.connection = ConnectionManager(
            self.state,
            transcription_backend or get_transcription_backend(),
            self.segmenter,
            self.scheduler,
            on_error=on_error,
        )
        if REFERENCE_DIR:
            self.state.references = load_references(REFERENCE_DIR)

    @property
    def status(self) -> RecorderStatus:
        return self.state.status

    @property
    def partial_text(self) -> str:
        if self.state.status != RecorderStatus.RECORDING:
            return ""
        return self.segmenter.partial_text

    async def start(self) -> None:
        if self.state.is_active:
            return
        self.state.viewing_session_id = None
        self.state.live.clear()
        self.state.clock.reset()
        self.segmenter.reset()
        self.queue.clear()
        self.state.status = RecorderStatus.RECORDING
        self.queue.start()
        await self.connection.start()

    def pause(self) -> None:
        if self.state.status != RecorderStatus.RECORDING:
            return
        self.state.status = RecorderStatus.PAUSED
        self.segmenter.finalize()

    def resume(self) -> None:
        if self.state.status != RecorderStatus.PAUSED:
            return
        self.state.status = RecorderStatus.RECORDING

    async def stop(self) -> RecordingSession | None:
        """Stop recording and archive the live segments. Returns the new session."""
        if self.state.status == RecorderStatus.IDLE:
            return None

        await self.connection.stop()

        now = datetime.now()
        session = RecordingSession(
            id=new_id(),
            title=f"Lesson {now:%H:%M}",
            date=now.date().isoformat(),
            segments=list(self.state.live.snapshot()),
            duration=self.state.elapsed(),
        )
        self.state.store.add(session)
        self.state.viewing_session_id = session.id
        self.state.live.clear()
        self.segmenter.reset()
        self.state.status = RecorderStatus.IDLE
        logger.info("Archived session %s with %d segments", session.id[:8], len(session.segments))
        return session

    async def close(self) -> None:
        """Stop recording, let queued enrichment drain (bounded), then stop the worker."""
        if self.state.status != RecorderStatus.IDLE:
            await self.stop()
        try:
            await asyncio.wait_for(self.queue.join(), timeout=CLOSE_DRAIN_SEC)
        except TimeoutError:
            logger.warning("Closing with %d enrichment jobs unfinished", self.queue.pending)
        await self.queue.close()

    def push_audio(self, frame) -> bool:
        return self.connection.send_audio(as_pcm16(frame))

    def set_bilingual(self, enabled: bool) -> None:
        self.state.bilingual = enabled

    def view_session(self, session_id: str | None) -> bool:
        if session_id is not None and self.state.store.get(session_id) is None:
            return False
        self.state.viewing_session_id = session_id
        return True

    def add_reference(self, doc: ReferenceDocument) -> None:
        self.state.references.append(doc)

    def transcript_text(self) -> str:
        """Plain-text export of the active segments."""
        return format_transcript(self.state.active_segments(), include_translations=self.state.bilingual)

    def snapshot(self) -> dict:
        return {
            "status": self.state.status.value,
            "elapsed": self.state.elapsed(),
            "bilingual": self.state.bilingual,
            "session_id": self.state.viewing_session_id,
            "partial": self.partial_text,
            "segments": [s.to_dict() for s in self.state.active_segments()],
        }
