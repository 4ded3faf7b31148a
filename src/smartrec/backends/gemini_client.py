"""Construction of google-genai clients shared by the Gemini backends."""

from __future__ import annotations

import os

from smartrec.errors import BackendConfigError

GEMINI_TIMEOUT_MS = int(os.getenv("GEMINI_TIMEOUT_MS", "30000"))


def create_client(api_key: str | None = None):
    """Create a google-genai client.

    Args:
        api_key: Gemini API key. If None, uses GEMINI_API_KEY env var.

    Raises:
        BackendConfigError: If no API key is available.
    """
    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise BackendConfigError("GEMINI_API_KEY environment variable not set")

    from google import genai
    from google.genai import types

    # A request stalled past the timeout raises and counts as a failure
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=GEMINI_TIMEOUT_MS),
    )
