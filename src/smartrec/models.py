"""
Core data types for live transcription sessions.

Segments are immutable value objects: enrichment never edits a segment in
place, it builds a new instance with ``dataclasses.replace`` and swaps it into
its list by id. Only ``text`` (polish) and ``translated_text`` (translate) ever
change after a segment is created.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from pathlib import Path


def new_id() -> str:
    """Generate a process-unique identifier for segments and sessions."""
    return uuid.uuid4().hex


class RecorderStatus(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PAUSED = "PAUSED"
    ERROR = "ERROR"


class JobKind(str, Enum):
    POLISH = "polish"
    TRANSLATE = "translate"


@dataclass(frozen=True)
class TranscriptionSegment:
    """
    A finalized span of transcribed speech.

    Attributes:
        id: Unique identifier, fixed at creation
        start_time: Elapsed recording seconds when the segment started
        end_time: Elapsed recording seconds when the segment was finalized
        text: Transcribed (and possibly polished) text
        translated_text: Translation into the counterpart language, if any
        is_final: Always True for segments produced by the segmenter
    """

    id: str
    start_time: int
    end_time: int
    text: str
    translated_text: str | None = None
    is_final: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TranscriptionSegment:
        return cls(
            id=data["id"],
            start_time=int(data["start_time"]),
            end_time=int(data["end_time"]),
            text=data["text"],
            translated_text=data.get("translated_text"),
            is_final=data.get("is_final", True),
        )


@dataclass(frozen=True)
class EnrichmentJob:
    """A queued request to polish or translate one segment."""

    segment_id: str
    kind: JobKind
    retry_count: int = 0

    @property
    def key(self) -> tuple[str, JobKind]:
        return (self.segment_id, self.kind)

    def next_attempt(self) -> EnrichmentJob:
        return replace(self, retry_count=self.retry_count + 1)


@dataclass
class RecordingSession:
    """An archived recording with its segment list."""

    id: str
    title: str
    date: str
    segments: list[TranscriptionSegment] = field(default_factory=list)
    duration: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "segments": [s.to_dict() for s in self.segments],
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> RecordingSession:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            date=data.get("date", ""),
            segments=[TranscriptionSegment.from_dict(s) for s in data.get("segments", [])],
            duration=int(data.get("duration", 0)),
        )


@dataclass(frozen=True)
class ReferenceDocument:
    """A reference text (lecture notes, glossary) used as transcription context."""

    id: str
    name: str
    content: str

    @classmethod
    def from_path(cls, path: Path) -> ReferenceDocument:
        return cls(id=new_id(), name=path.name, content=path.read_text(encoding="utf-8"))
