"""Shared data types for backend interfaces."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TranscriptEvent:
    """An inbound event from a live transcription session.

    Either a text delta (``text`` set) or a turn-complete signal.
    """

    text: str = ""
    turn_complete: bool = False
