"""SmartRec: live lecture transcription with background polishing and translation."""

__version__ = "0.1.0"
