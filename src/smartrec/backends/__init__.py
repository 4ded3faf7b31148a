"""Backend selection for live transcription and text refinement.

LIVE_BACKEND picks the source of live transcript events and REFINE_BACKEND
the model that polishes and translates finished segments. Both default to
"gemini". A backend module is imported only when it is selected, and the
instance is cached for the life of the process.
"""

from __future__ import annotations

import os
from functools import lru_cache

from smartrec.backends.base import RefinementBackend, TranscriptionBackend
from smartrec.errors import BackendConfigError


@lru_cache(maxsize=1)
def get_transcription_backend() -> TranscriptionBackend:
    """Get the configured live transcription backend singleton."""
    name = os.getenv("LIVE_BACKEND", "gemini")
    if name == "gemini":
        from smartrec.backends.live.gemini import GeminiLiveBackend

        return GeminiLiveBackend()
    raise BackendConfigError(f"Unknown live backend: {name}")


@lru_cache(maxsize=1)
def get_refinement_backend() -> RefinementBackend:
    """Get the configured refinement backend singleton."""
    name = os.getenv("REFINE_BACKEND", "gemini")
    if name == "gemini":
        from smartrec.backends.refinement.gemini import GeminiRefinementBackend

        return GeminiRefinementBackend()
    raise BackendConfigError(f"Unknown refinement backend: {name}")
