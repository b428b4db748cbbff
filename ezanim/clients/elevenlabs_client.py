"""ElevenLabs voice synthesis client."""

import logging
from typing import Optional

import httpx

from ezanim.config import (
    ELEVENLABS_API_KEY,
    ELEVENLABS_MODEL_ID,
    ELEVENLABS_OUTPUT_FORMAT,
    ELEVENLABS_VOICE_ID,
)

logger = logging.getLogger(__name__)


class ElevenLabsClient:
    """Client for text-to-speech via the ElevenLabs REST API."""

    API_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice_id: Optional[str] = None,
        model_id: str = ELEVENLABS_MODEL_ID,
        output_format: str = ELEVENLABS_OUTPUT_FORMAT,
        timeout: float = 120.0,
    ):
        self.api_key = api_key or ELEVENLABS_API_KEY
        if not self.api_key:
            raise ValueError("ELEVENLABS_API_KEY not found in environment")

        self.voice_id = voice_id or ELEVENLABS_VOICE_ID
        self.model_id = model_id
        self.output_format = output_format
        self.timeout = timeout

    async def synthesize(
        self,
        text: str,
        voice_id: Optional[str] = None,
        stability: float = 0.5,
        similarity_boost: float = 0.75,
    ) -> bytes:
        """Convert text (SSML break tags allowed) to speech.

        Args:
            text: Narration text
            voice_id: Voice ID to use (uses default if not specified)
            stability: Voice stability (0-1)
            similarity_boost: Voice similarity (0-1)

        Returns:
            Encoded audio bytes in ``output_format`` (MP3 by default)
        """
        target_voice = voice_id or self.voice_id

        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }

        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": stability,
                "similarity_boost": similarity_boost,
            },
        }

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.API_URL.format(voice_id=target_voice),
                params={"output_format": self.output_format},
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()

        audio = response.content
        if not audio:
            raise RuntimeError("ElevenLabs returned an empty audio stream")
        logger.info("Synthesized %d bytes of audio with voice %s", len(audio), target_voice)
        return audio
