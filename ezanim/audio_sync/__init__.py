"""
audio_sync: narration transcription and timing.

    from ezanim.audio_sync import Transcriber, compute_duration

    transcript = await Transcriber().transcribe(audio_bytes)
    duration   = compute_duration(transcript.words)
    cues       = transcript.vtt
"""

from __future__ import annotations

from .transcriber import (
    Transcriber,
    Transcript,
    WordTimestamp,
    build_vtt,
    extract_words,
    format_vtt_timestamp,
)
from .timing import compute_duration

__all__ = [
    "Transcriber",
    "Transcript",
    "WordTimestamp",
    "build_vtt",
    "extract_words",
    "format_vtt_timestamp",
    "compute_duration",
]
