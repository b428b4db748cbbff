"""Animation authoring: writes and revises the self-contained HTML animation."""

import logging
from typing import Optional

from ezanim.config import ANIMATION_MODEL, CAPTURE_FLAG, REVIEW_HTML_LIMIT, TIMELINE_GLOBAL
from ezanim.generation.parsing import extract_html_document

logger = logging.getLogger(__name__)


CREATE_PROMPT = """Act as an expert frontend web developer and creative animator.

I want you to create an educational animation about: "{topic}".
{timing_context}{assets_context}
Strict Technical Requirements:

Format: A single HTML file containing all necessary CSS and JS.

Libraries:
- Use Anime.js (v3.2.1 via CDN) for all animations: https://cdn.jsdelivr.net/npm/animejs@3.2.1/lib/anime.min.js
- Use FontAwesome (v6.4.0 via CDN) for icons.
- Use Google Fonts: Import 'Poppins' (weights 400, 600, 800) and 'Roboto' (400, 500) for professional typography.
- Illustrations: Use detailed, multi-colored inline SVGs for main visuals. Avoid simple geometric shapes unless abstract.

Visual Structure (Full Screen Cinematic):
- The animation must occupy the entire viewport (100vw, 100vh). Body has margin: 0 and overflow: hidden.
- The layout must be optimized for a **{aspect_ratio}** aspect ratio ({width}x{height} pixels).{scaling_instruction}
- No visible video player controls (play button, progress bar, etc.) should be rendered.
- CRITICAL: Do NOT include any "Click to Start", "Play", or "Start Learning" overlays, buttons, or splash screens.
- Stage: The entire body is the stage. Use absolute positioning for elements relative to the viewport.
- Subtitles: A clean, cinematic subtitle overlay at the bottom center, with a semi-transparent background for readability. Use 'Roboto' font.

Animation Style:
- Use anime.timeline() to sequence the entire story. The timeline must last {duration:.1f} seconds in total.
- Easing: Use 'easeOutExpo' for snappy entrances and 'easeInOutQuad' for smooth transitions.
- Micro-interactions: Use anime.stagger(100) to animate groups of elements.
- Colors: Use a professional color palette defined with CSS variables.

Code Logic:
- Expose the timeline globally as 'window.{timeline}' so it can be paused and seeked externally.
- Create the timeline with autoplay: false. Never call play() while window.{capture_flag} is true;
  the page is captured frame by frame by seeking the timeline.
- Do not drive any visual state from setTimeout, setInterval, requestAnimationFrame loops or CSS
  animations: everything that moves must live on the timeline so seeking reproduces it exactly.

The code must be complete, copy-pasteable, and runnable. Return ONLY the HTML code, no markdown code blocks."""

TIMING_CONTEXT = """
Context - Timing (VTT):
Use these timestamps to synchronize the animation events exactly with the voiceover. The VTT
contains the start and end time of each spoken word. You MUST use these times to schedule your
animations using absolute offsets (in milliseconds) in anime.timeline().add().

VTT Content:
"{vtt}"
"""

ASSETS_CONTEXT = """
Available illustrations (inline them as-is where they fit the story):
{assets}
"""

VERTICAL_SCALING = (
    "\n- CRITICAL FOR 9:16: Since this is a vertical video, all elements (text, icons, SVGs) must be "
    "SCALED UP significantly (2x-3x larger than desktop) to be legible on mobile screens. Use large "
    "font sizes (e.g., 3rem+ for headings) and fill the width of the screen."
)

REFINE_PROMPT = """You are the same expert frontend developer.
You previously generated an animation, but a reviewer found some issues.

Critique to Address:
"{critique}"

Your Task:
- Fix the issues mentioned in the critique.
- Keep the rest of the code intact if it works well.
- Keep exposing the paused, seekable timeline as window.{timeline} and keep honouring window.{capture_flag}.
- Ensure the final output is still a single, valid HTML file with Anime.js.

Current HTML Code:
{html}

Return ONLY the corrected HTML code. Do not include any conversational text or explanations."""


class AnimationAuthor:
    """Writes the animation draft and revises it against critiques."""

    def __init__(self, client, model: str = ANIMATION_MODEL, asset_search=None, asset_results: int = 3):
        self.client = client
        self.model = model
        self.asset_search = asset_search
        self.asset_results = asset_results

    async def create(
        self,
        topic: str,
        duration: float,
        vtt: Optional[str],
        aspect_ratio: str,
        width: int,
        height: int,
    ) -> str:
        """Generate the first animation draft.

        Args:
            topic: The user's original prompt
            duration: Authoritative video length in seconds
            vtt: Word-level WebVTT cues of the narration
            aspect_ratio: "16:9", "9:16" or "1:1"
            width: Viewport width in pixels
            height: Viewport height in pixels

        Returns:
            A complete HTML document

        Raises:
            MalformedResponseError: The model did not return an HTML document.
        """
        logger.info("Creating animation (%s, %.1fs) for: %s", aspect_ratio, duration, topic)

        assets_context = ""
        if self.asset_search is not None:
            assets = await self.asset_search.search(topic, k=self.asset_results)
            if assets:
                assets_context = ASSETS_CONTEXT.format(
                    assets="\n\n".join(f"<!-- {a.name} -->\n{a.svg}" for a in assets)
                )

        prompt = CREATE_PROMPT.format(
            topic=topic,
            timing_context=TIMING_CONTEXT.format(vtt=vtt) if vtt else "",
            assets_context=assets_context,
            aspect_ratio=aspect_ratio,
            width=width,
            height=height,
            scaling_instruction=VERTICAL_SCALING if aspect_ratio == "9:16" else "",
            duration=duration,
            timeline=TIMELINE_GLOBAL,
            capture_flag=CAPTURE_FLAG,
        )

        response = await self.client.generate(
            prompt,
            model=self.model,
            max_tokens=16000,
            temperature=0.7,
        )
        html = extract_html_document(response)
        self._check_contract(html)
        return html

    async def refine(self, current_html: str, critique: str) -> str:
        """Revise *current_html* to address *critique*.

        Raises:
            MalformedResponseError: The model did not return an HTML document.
        """
        logger.info("Refining animation based on critique")
        prompt = REFINE_PROMPT.format(
            critique=critique,
            html=current_html[:REVIEW_HTML_LIMIT],
            timeline=TIMELINE_GLOBAL,
            capture_flag=CAPTURE_FLAG,
        )
        response = await self.client.generate(
            prompt,
            model=self.model,
            max_tokens=16000,
            temperature=0.4,
        )
        html = extract_html_document(response)
        self._check_contract(html)
        return html

    @staticmethod
    def _check_contract(html: str) -> None:
        if f"window.{TIMELINE_GLOBAL}" not in html:
            logger.warning("Generated markup never mentions window.%s; capture may time out", TIMELINE_GLOBAL)
