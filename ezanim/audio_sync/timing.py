"""Narration timing rules shared by preview and render."""

from __future__ import annotations

from ezanim.audio_sync.transcriber import WordTimestamp
from ezanim.config import DEFAULT_DURATION_SECONDS, DURATION_TAIL_SECONDS


def compute_duration(
    words: list[WordTimestamp],
    tail: float = DURATION_TAIL_SECONDS,
    default: float = DEFAULT_DURATION_SECONDS,
) -> float:
    """Video length in seconds: end of the last spoken word plus a tail.

    Falls back to *default* when the transcription produced no words.
    """
    if not words:
        return float(default)
    return float(words[-1].end) + tail
