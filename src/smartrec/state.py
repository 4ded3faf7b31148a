"""
Shared recording state read by the connection manager and enrichment queue.

RecorderState bundles everything the core needs to consult while running:
    - status: the single current RecorderStatus
    - clock: elapsed recording seconds (advances only while recording)
    - bilingual: whether finalized segments are also translated
    - live: segments of the recording in progress
    - store: archived sessions, one of which may be viewed
    - references: reference documents used as context

Segment lists are written only through ``RecorderState.apply_update`` (for
enrichment results) and ``SegmentList.append`` (for new segments). Both
identify segments by id, never by position, since the list can change while
an enrichment call is in flight.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import Path

from smartrec.models import (
    RecorderStatus,
    RecordingSession,
    ReferenceDocument,
    TranscriptionSegment,
)

logger = logging.getLogger(__name__)

SESSIONS_PATH = os.getenv("SESSIONS_PATH", "")

StatusCallback = Callable[[RecorderStatus, RecorderStatus], None]


def replace_by_id(
    segments: Iterable[TranscriptionSegment], segment_id: str, **changes
) -> tuple[list[TranscriptionSegment], bool]:
    """Return a copy of ``segments`` with the matching segment replaced."""
    found = False
    result = []
    for seg in segments:
        if seg.id == segment_id:
            seg = replace(seg, **changes)
            found = True
        result.append(seg)
    return result, found


class RecordingClock:
    """Elapsed whole seconds of recording, not counting paused time."""

    def __init__(self, now: Callable[[], float] = time.monotonic) -> None:
        self._now = now
        self._accumulated = 0.0
        self._running_since: float | None = None

    def reset(self) -> None:
        self._accumulated = 0.0
        self._running_since = None

    def resume(self) -> None:
        if self._running_since is None:
            self._running_since = self._now()

    def pause(self) -> None:
        if self._running_since is not None:
            self._accumulated += self._now() - self._running_since
            self._running_since = None

    @property
    def running(self) -> bool:
        return self._running_since is not None

    def elapsed(self) -> int:
        total = self._accumulated
        if self._running_since is not None:
            total += self._now() - self._running_since
        return int(total)


class SegmentList:
    """Append-only list of segments with replace-by-id updates."""

    def __init__(self, segments: Iterable[TranscriptionSegment] = ()) -> None:
        self._segments: list[TranscriptionSegment] = list(segments)

    def __len__(self) -> int:
        return len(self._segments)

    def append(self, segment: TranscriptionSegment) -> None:
        self._segments.append(segment)

    def clear(self) -> None:
        self._segments = []

    def snapshot(self) -> tuple[TranscriptionSegment, ...]:
        return tuple(self._segments)

    def find(self, segment_id: str) -> TranscriptionSegment | None:
        for seg in self._segments:
            if seg.id == segment_id:
                return seg
        return None

    def update(self, segment_id: str, **changes) -> bool:
        self._segments, found = replace_by_id(self._segments, segment_id, **changes)
        return found


class SessionStore:
    """
    Archive of finished recordings.

    Kept in memory; when ``path`` is set every change is also written to a JSON
    file. Writes are best effort: a failed write is logged and the in-memory
    copy stays authoritative.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._sessions: dict[str, RecordingSession] = {}
        if path is not None:
            self._load()

    @classmethod
    def from_env(cls) -> SessionStore:
        return cls(Path(SESSIONS_PATH) if SESSIONS_PATH else None)

    def add(self, session: RecordingSession) -> None:
        self._sessions[session.id] = session
        self._save()

    def get(self, session_id: str) -> RecordingSession | None:
        return self._sessions.get(session_id)

    def list(self) -> list[RecordingSession]:
        """Sessions, newest first."""
        return list(reversed(self._sessions.values()))

    def update_segment(self, session_id: str, segment_id: str, **changes) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.segments, found = replace_by_id(session.segments, segment_id, **changes)
        if found:
            self._save()
        return found

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            sessions = [RecordingSession.from_dict(item) for item in data]
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning("Could not read sessions from %s: %s", self._path, e)
            return
        for session in sessions:
            self._sessions[session.id] = session

    def _save(self) -> None:
        if self._path is None:
            return
        data = [s.to_dict() for s in self._sessions.values()]
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write sessions to %s: %s", self._path, e)


class RecorderState:
    """State shared by the segmenter, enrichment queue and connection manager."""

    def __init__(
        self,
        store: SessionStore | None = None,
        clock: RecordingClock | None = None,
        on_status_change: StatusCallback | None = None,
    ) -> None:
        self.store = store or SessionStore()
        self.clock = clock or RecordingClock()
        self.live = SegmentList()
        self.bilingual = False
        self.viewing_session_id: str | None = None
        self.references: list[ReferenceDocument] = []
        self.on_status_change = on_status_change
        self._status = RecorderStatus.IDLE

    @property
    def status(self) -> RecorderStatus:
        return self._status

    @status.setter
    def status(self, value: RecorderStatus) -> None:
        previous = self._status
        if previous == value:
            return
        self._status = value
        if value == RecorderStatus.RECORDING:
            self.clock.resume()
        else:
            self.clock.pause()
        logger.info("Recorder status %s -> %s", previous.value, value.value)
        if self.on_status_change:
            self.on_status_change(previous, value)

    @property
    def is_active(self) -> bool:
        return self._status in (RecorderStatus.RECORDING, RecorderStatus.PAUSED)

    def elapsed(self) -> int:
        return self.clock.elapsed()

    def active_segments(self) -> tuple[TranscriptionSegment, ...]:
        """Segments of the viewed archived session, or the live list when none is viewed."""
        if self.viewing_session_id is not None:
            session = self.store.get(self.viewing_session_id)
            return tuple(session.segments) if session else ()
        return self.live.snapshot()

    def find_segment(self, segment_id: str) -> TranscriptionSegment | None:
        for seg in self.active_segments():
            if seg.id == segment_id:
                return seg
        return None

    def preceding_segments(self, segment_id: str, limit: int) -> list[TranscriptionSegment]:
        segments = self.active_segments()
        for i, seg in enumerate(segments):
            if seg.id == segment_id:
                return list(segments[max(0, i - limit) : i])
        return []

    def apply_update(self, segment_id: str, **changes) -> bool:
        """Replace a segment's fields by id in the live list and the viewed session."""
        updated = self.live.update(segment_id, **changes)
        if self.viewing_session_id is not None:
            updated = self.store.update_segment(self.viewing_session_id, segment_id, **changes) or updated
        return updated
