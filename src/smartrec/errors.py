"""Exception types raised inside the transcription core."""

from __future__ import annotations


class SmartRecError(Exception):
    """Base class for errors raised by smartrec."""


class TransportError(SmartRecError):
    """The live transcription session failed to open, send or receive."""


class EnrichmentError(SmartRecError):
    """A polish or translate call failed."""


class BackendConfigError(SmartRecError, ValueError):
    """A backend is unknown or missing required configuration."""
