"""
Background polishing and translation of finalized segments.

A single worker task drains a FIFO job channel (asyncio.Queue), so at most one
refinement call is outstanding at any time. Results are written back through
RecorderState.apply_update, which replaces segments by id.

Job lifecycle:
    1. QUEUED: enqueue() puts the job on the channel (once per segment+kind)
    2. RESOLVE: the worker looks the segment up in the viewed session or the
       live list; a segment that no longer exists discards the job
    3. DISPATCH: polish or translate call; a translate job whose segment was
       finalized in bilingual mode that has since been switched off is a no-op
    4. SUCCESS: result applied, cooldown shrinks, worker sleeps the cooldown
    5. FAILURE: cooldown grows; the job is re-queued after
       2**retry_count * RETRY_BASE_MS, or dropped after MAX_JOB_RETRIES

Pacing policy:
    cooldown starts at COOLDOWN_BASE_MS, -COOLDOWN_STEP_DOWN_MS per success,
    +COOLDOWN_STEP_UP_MS per failure, clamped to [COOLDOWN_MIN_MS,
    COOLDOWN_MAX_MS]. After a failure the worker pauses FAILURE_PAUSE_MS
    before taking the next job.
"""

import asyncio
import contextlib
import logging
import os
from dataclasses import asdict, dataclass

from smartrec.backends.base import RefinementBackend
from smartrec.models import EnrichmentJob, JobKind, TranscriptionSegment
from smartrec.scheduler import Scheduler
from smartrec.state import RecorderState

logger = logging.getLogger(__name__)

COOLDOWN_BASE_MS = float(os.getenv("COOLDOWN_BASE_MS", "2500"))
COOLDOWN_MIN_MS = float(os.getenv("COOLDOWN_MIN_MS", "2000"))
COOLDOWN_MAX_MS = float(os.getenv("COOLDOWN_MAX_MS", "15000"))
COOLDOWN_STEP_DOWN_MS = 500.0
COOLDOWN_STEP_UP_MS = 2000.0
FAILURE_PAUSE_MS = 1000.0

MAX_JOB_RETRIES = int(os.getenv("MAX_JOB_RETRIES", "5"))
RETRY_BASE_MS = float(os.getenv("RETRY_BASE_MS", "2000"))
CONTEXT_SEGMENTS = 3


def retry_delay_ms(retry_count: int) -> float:
    """Backoff before re-queuing a job that failed on attempt ``retry_count``."""
    return 2**retry_count * RETRY_BASE_MS


@dataclass
class QueueStats:
    completed: int = 0
    failed: int = 0
    dropped: int = 0
    discarded: int = 0
    skipped: int = 0


class EnrichmentQueue:
    """
    Single-worker job queue for polish and translate calls.

    Attributes:
        state: Shared recorder state used to resolve and update segments
        backend: Refinement backend performing the external calls
        scheduler: Source of retry timers and pacing sleeps
        busy: True while a job is being dispatched or paced
        cooldown_ms: Current pause between successful calls
    """

    def __init__(
        self,
        state: RecorderState,
        backend: RefinementBackend,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.state = state
        self.backend = backend
        self.scheduler = scheduler or Scheduler()
        self.busy = False
        self.cooldown_ms = COOLDOWN_BASE_MS
        self.stats = QueueStats()
        self._jobs: asyncio.Queue[EnrichmentJob] = asyncio.Queue()
        self._outstanding: set[tuple[str, JobKind]] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._worker: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        """Jobs queued or waiting for a retry timer."""
        return self._jobs.qsize() + len(self.scheduler.pending("retry"))

    def enqueue(self, job: EnrichmentJob) -> bool:
        """Submit a job. Returns False if the same segment+kind is already outstanding."""
        if job.key in self._outstanding:
            return False
        self._outstanding.add(job.key)
        self._idle.clear()
        self._jobs.put_nowait(job)
        return True

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="enrichment-worker")

    def clear(self) -> None:
        """Forget queued jobs and pending retries (an in-flight call still completes)."""
        self.scheduler.cancel_all("retry")
        while not self._jobs.empty():
            self._jobs.get_nowait()
        self._outstanding.clear()
        self._idle.set()

    async def join(self) -> None:
        """Wait until every submitted job has completed, been dropped or discarded."""
        await self._idle.wait()

    async def close(self) -> None:
        self.scheduler.cancel_all("retry")
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        self.busy = False

    def metrics(self) -> dict:
        return {**asdict(self.stats), "pending": self.pending, "cooldown_ms": self.cooldown_ms}

    async def _run(self) -> None:
        while True:
            job = await self._jobs.get()
            self.busy = True
            try:
                await self._process(job)
            except Exception:
                logger.exception("Enrichment worker error on %s", job)
                self._finish(job)
            finally:
                self.busy = False

    async def _process(self, job: EnrichmentJob) -> None:
        segment = self.state.find_segment(job.segment_id)
        if segment is None:
            logger.debug("Discarding %s job: segment %s not found", job.kind.value, job.segment_id[:8])
            self.stats.discarded += 1
            self._finish(job)
            return

        if job.kind == JobKind.TRANSLATE and not self.state.bilingual:
            self.stats.skipped += 1
            self._finish(job)
            return

        try:
            await self._dispatch(job, segment)
        except Exception as e:
            self.stats.failed += 1
            self._handle_failure(job, e)
            await self.scheduler.sleep(FAILURE_PAUSE_MS, name="failure-pause")
            return

        self.stats.completed += 1
        self._finish(job)
        self.cooldown_ms = max(COOLDOWN_MIN_MS, self.cooldown_ms - COOLDOWN_STEP_DOWN_MS)
        await self.scheduler.sleep(self.cooldown_ms, name="cooldown")

    async def _dispatch(self, job: EnrichmentJob, segment: TranscriptionSegment) -> None:
        if job.kind == JobKind.POLISH:
            context = [s.text for s in self.state.preceding_segments(segment.id, CONTEXT_SEGMENTS)]
            references = [doc.content for doc in self.state.references]
            polished = await self.backend.polish(segment.text, context=context, references=references)
            if polished and polished != segment.text:
                self._apply(segment.id, text=polished)
        else:
            translated = await self.backend.translate(segment.text)
            self._apply(segment.id, translated_text=translated)

    def _apply(self, segment_id: str, **changes) -> None:
        if not self.state.apply_update(segment_id, **changes):
            logger.debug("Result for segment %s arrived after it was removed", segment_id[:8])

    def _handle_failure(self, job: EnrichmentJob, error: Exception) -> None:
        self.cooldown_ms = min(COOLDOWN_MAX_MS, self.cooldown_ms + COOLDOWN_STEP_UP_MS)

        if job.retry_count >= MAX_JOB_RETRIES:
            logger.warning(
                "Dropping %s job for segment %s after %d retries: %s",
                job.kind.value,
                job.segment_id[:8],
                job.retry_count,
                error,
            )
            self.stats.dropped += 1
            self._finish(job)
            return

        delay = retry_delay_ms(job.retry_count)
        logger.warning(
            "Retrying %s for segment %s in %.0fms: %s",
            job.kind.value,
            job.segment_id[:8],
            delay,
            error,
        )
        retry = job.next_attempt()
        self.scheduler.call_later(delay, lambda: self._requeue(retry), name="retry")

    def _requeue(self, job: EnrichmentJob) -> None:
        if job.key in self._outstanding:
            self._jobs.put_nowait(job)

    def _finish(self, job: EnrichmentJob) -> None:
        self._outstanding.discard(job.key)
        if not self._outstanding:
            self._idle.set()
