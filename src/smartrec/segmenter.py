"""
Segmentation of a live transcript stream into finalized segments.

Text deltas from the transcription source are appended to a pending buffer.
After every delta the whole buffer is cleaned (repeats can straddle chunk
boundaries) and checked against the finalization triggers:

    - Length: cleaned text longer than MAX_SEGMENT_CHARS
    - Punctuation: cleaned text longer than MIN_SENTENCE_CHARS and ending in
      a sentence mark (. ! ? 。 ！ ？) or the buffer ending in a newline
    - Turn complete / stop / pause: the caller invokes finalize() directly

Finalize state machine:
    1. ACCUMULATING: deltas are appended, partial_text shows the cleaned buffer
    2. FINALIZING: buffer is cleaned; text shorter than MIN_SEGMENT_CHARS is
       dropped as noise, otherwise a segment [last_boundary, now] is appended
       to the live list and queued for polishing (and translation when
       bilingual mode is on)
    3. Back to ACCUMULATING with an empty buffer

Segments form a contiguous timeline: each segment starts where the previous
one ended and lasts at least one second.
"""

import logging
import os
from collections.abc import Callable

from smartrec.models import EnrichmentJob, JobKind, TranscriptionSegment, new_id
from smartrec.normalizer import clean
from smartrec.state import RecorderState

logger = logging.getLogger(__name__)

MAX_SEGMENT_CHARS = int(os.getenv("MAX_SEGMENT_CHARS", "120"))
MIN_SENTENCE_CHARS = int(os.getenv("MIN_SENTENCE_CHARS", "25"))
MIN_SEGMENT_CHARS = int(os.getenv("MIN_SEGMENT_CHARS", "2"))

SENTENCE_ENDINGS = frozenset(".!?。！？")

EnqueueFn = Callable[[EnrichmentJob], object]


class Segmenter:
    """
    Accumulates cleaned transcript text and cuts it into segments.

    Attributes:
        state: Shared recorder state (clock, bilingual flag, live list)
        enqueue: Called with each enrichment job for a new segment
        last_boundary: End time of the most recent segment
    """

    def __init__(
        self,
        state: RecorderState,
        enqueue: EnqueueFn,
        max_chars: int = MAX_SEGMENT_CHARS,
        min_sentence_chars: int = MIN_SENTENCE_CHARS,
        min_chars: int = MIN_SEGMENT_CHARS,
    ) -> None:
        self.state = state
        self.enqueue = enqueue
        self.max_chars = max_chars
        self.min_sentence_chars = min_sentence_chars
        self.min_chars = min_chars
        self.last_boundary = 0
        self._buffer = ""

    @property
    def partial_text(self) -> str:
        """Cleaned pending text for "currently speaking" display."""
        return clean(self._buffer)

    def reset(self) -> None:
        self._buffer = ""
        self.last_boundary = 0

    def add_delta(self, text: str) -> TranscriptionSegment | None:
        """Append a transcript delta; finalize if a trigger fires."""
        if not text:
            return None
        self._buffer += text
        cleaned = clean(self._buffer)

        if len(cleaned) > self.max_chars:
            return self.finalize()
        if len(cleaned) > self.min_sentence_chars and self._ends_sentence(cleaned):
            return self.finalize()
        return None

    def finalize(self) -> TranscriptionSegment | None:
        """Close the pending buffer into a segment (or drop it if too short)."""
        text = clean(self._buffer)
        self._buffer = ""

        if len(text) < self.min_chars:
            if text:
                logger.debug("Discarding short buffer: %r", text)
            return None

        start_time = self.last_boundary
        end_time = max(self.state.elapsed(), start_time + 1)
        segment = TranscriptionSegment(
            id=new_id(),
            start_time=start_time,
            end_time=end_time,
            text=text,
        )
        self.state.live.append(segment)
        self.last_boundary = end_time
        logger.info("Segment %s [%ds-%ds]: %s", segment.id[:8], start_time, end_time, text[:50])

        self.enqueue(EnrichmentJob(segment.id, JobKind.POLISH))
        if self.state.bilingual:
            self.enqueue(EnrichmentJob(segment.id, JobKind.TRANSLATE))
        return segment

    def _ends_sentence(self, cleaned: str) -> bool:
        return cleaned[-1] in SENTENCE_ENDINGS or self._buffer.endswith("\n")
