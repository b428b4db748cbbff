"""
Whisper transcription via the OpenAI API.

Produces word-level timestamps for the narration audio. Uses the hosted
OpenAI Whisper API exclusively, no local model.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from ezanim.config import OPENAI_API_KEY, TRANSCRIPTION_MODEL

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------

class WordTimestamp:
    """A single transcribed word with start/end seconds."""

    __slots__ = ("word", "start", "end")

    def __init__(self, word: str, start: float, end: float) -> None:
        self.word = word
        self.start = start
        self.end = end

    def to_dict(self) -> dict:
        return {"word": self.word, "start": self.start, "end": self.end}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WordTimestamp):
            return NotImplemented
        return (self.word, self.start, self.end) == (other.word, other.start, other.end)

    def __repr__(self) -> str:
        return f"WordTimestamp({self.word!r}, {self.start:.2f}, {self.end:.2f})"


class Transcript:
    """Full transcription text plus its word timings."""

    __slots__ = ("text", "words")

    def __init__(self, text: str, words: list[WordTimestamp]) -> None:
        self.text = text
        self.words = words

    @property
    def vtt(self) -> str:
        return build_vtt(self.words)


# ---------------------------------------------------------------------------
# Word extraction
# ---------------------------------------------------------------------------

def extract_words(raw_result: dict[str, Any]) -> list[WordTimestamp]:
    """
    Normalise Whisper API output into a flat list of WordTimestamp objects.
    """
    words: list[WordTimestamp] = []

    # API format: flat list at top level
    if isinstance(raw_result.get("words"), list):
        for w in raw_result["words"]:
            words.append(WordTimestamp(
                word=w.get("word", "").strip(),
                start=float(w.get("start", 0)),
                end=float(w.get("end", 0)),
            ))
        return words

    # Fallback: words nested in segments (older API response format)
    for segment in raw_result.get("segments") or []:
        for w in segment.get("words", []):
            words.append(WordTimestamp(
                word=w.get("word", "").strip(),
                start=float(w.get("start", 0)),
                end=float(w.get("end", 0)),
            ))

    return words


# ---------------------------------------------------------------------------
# WebVTT
# ---------------------------------------------------------------------------

def format_vtt_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.mmm``."""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def build_vtt(words: list[WordTimestamp]) -> str:
    """Build a WebVTT document with one cue per spoken word."""
    lines = ["WEBVTT", ""]
    for index, word in enumerate(words, start=1):
        lines.append(str(index))
        lines.append(f"{format_vtt_timestamp(word.start)} --> {format_vtt_timestamp(word.end)}")
        lines.append(word.word)
        lines.append("")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# OpenAI Whisper API transcription
# ---------------------------------------------------------------------------

class Transcriber:
    """Transcribes narration audio into text plus word timings."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = TRANSCRIPTION_MODEL,
    ):
        self.api_key = api_key or OPENAI_API_KEY
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not found in environment")
        self.model = model
        self.client = AsyncOpenAI(api_key=self.api_key)

    async def transcribe(self, audio: bytes, filename: str = "narration.mp3") -> Transcript:
        """
        Transcribe audio via the OpenAI Whisper API (hosted, no GPU needed).

        Args:
            audio: Encoded audio bytes.
            filename: Name reported to the API; its extension tells Whisper
                the container format.

        Returns:
            Transcript with the full text and a flat word list.
        """
        result = await self.client.audio.transcriptions.create(
            model=self.model,
            file=(filename, audio),
            response_format="verbose_json",
            timestamp_granularities=["word"],
        )
        raw = result.model_dump() if hasattr(result, "model_dump") else dict(result)
        words = extract_words(raw)
        logger.info("Transcribed %d words", len(words))
        return Transcript(text=raw.get("text", ""), words=words)
