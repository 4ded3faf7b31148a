"""
Removal of repeated-token artifacts from streaming transcription text.

Live transcription models hallucinate repetitions during silence or noise
("aaaaaaa", "谢谢谢谢谢谢", "thank you thank you thank you"). These are collapsed
before text is shown or finalized.

Rules, applied until the text stops changing:
    1. A single character repeated 6+ times in a row becomes one character
    2. A substring of 4+ characters repeated 3+ times in a row becomes one copy

Python strings index code points, so a CJK ideograph counts as one unit just
like a Latin letter.
"""

import re

MIN_CHAR_RUN = 6
MIN_PHRASE_LEN = 4
MIN_PHRASE_REPEATS = 3

_CHAR_RUN = re.compile(r"(.)\1{%d,}" % (MIN_CHAR_RUN - 1), re.DOTALL)
_PHRASE_RUN = re.compile(r"(.{%d,}?)\1{%d,}" % (MIN_PHRASE_LEN, MIN_PHRASE_REPEATS - 1), re.DOTALL)


def clean(text: str) -> str:
    """Collapse repeated characters and phrases, then trim surrounding whitespace."""
    if not text:
        return ""

    changed = True
    while changed:
        collapsed = _CHAR_RUN.sub(r"\1", text)
        collapsed = _PHRASE_RUN.sub(r"\1", collapsed)
        changed = collapsed != text
        text = collapsed

    return text.strip()
