"""Narration script generation."""

import logging

from ezanim.config import SCRIPT_MODEL
from ezanim.generation.parsing import MalformedResponseError, extract_json_object

logger = logging.getLogger(__name__)


SCRIPT_PROMPT = """You are an expert scriptwriter for short explanatory videos.
The user wants a script about: "{topic}"

Your task is to write a natural-sounding script for a voiceover.
CRITICAL: You MUST use ElevenLabs SSML tags to control the pacing and delivery.
Follow these best practices:
1. Use <break time="x.xs" /> for natural pauses (e.g., <break time="0.5s" /> after sentences, <break time="1.0s" /> between sections).
2. Do NOT use too many breaks or it will sound unnatural.
3. Keep the script concise and engaging.
4. The script should be suitable for a 15-30 second video unless the topic requires more.
5. Write the script in the same language as the topic.

Respond ONLY with a valid JSON object in this exact format:
{{
  "script": "The full script text with SSML tags...",
  "estimatedDuration": 20
}}"""


class ScriptWriter:
    """Turns a user prompt into narration text for the voiceover."""

    def __init__(self, client, model: str = SCRIPT_MODEL):
        self.client = client
        self.model = model

    async def generate_script(self, topic: str) -> str:
        """Generate narration for *topic*.

        A response that is not the requested JSON is used verbatim as the
        script rather than failing the request.

        Returns:
            Narration text, possibly containing SSML break tags
        """
        text = await self.client.generate(
            SCRIPT_PROMPT.format(topic=topic),
            model=self.model,
            max_tokens=2048,
            temperature=0.7,
        )

        try:
            parsed = extract_json_object(text)
            script = str(parsed.get("script") or "").strip()
        except MalformedResponseError as e:
            logger.warning("Script response was not JSON (%s), using raw text", e)
            script = text.replace("```", "").strip()

        if not script:
            raise RuntimeError("Script generation returned no narration")

        logger.info("Generated script (%d chars)", len(script))
        return script
