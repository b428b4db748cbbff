"""The critic: reviews generated animation markup and lists what to fix."""

import logging
from dataclasses import dataclass
from typing import Optional

from ezanim.config import CRITIC_MODEL, REVIEW_HTML_LIMIT, TIMELINE_GLOBAL
from ezanim.generation.parsing import MalformedResponseError, ParsePolicy, extract_json_object

logger = logging.getLogger(__name__)


CRITIC_SYSTEM_PROMPT = """You are "The Critic", an expert UI/UX designer and Animation QA specialist.
Your job is to strictly review the provided HTML/CSS/JS (Anime.js) code for a video animation about: "{topic}".

Check for the following Quality Criteria:
1. VISUAL LAYOUT: Are elements centered? Do they have proper spacing? Are colors consistent?
2. OVERLAPPING: Do elements overlap text or other important elements unintentionally?
3. OFF-SCREEN: Do elements animate off-screen or start off-screen without entering?
4. ANIMATION QUALITY: Are animations smooth (easing)? Is the timing logical? Do they use 'anime.stagger' for lists?
5. CODE INTEGRITY: Is the HTML structure valid? Is 'window.{timeline}' exposed, paused, and seekable?

Return JSON only:
{{
  "hasIssues": boolean,
  "critique": "A concise list of specific things to fix. If no issues, say 'Approved'.",
  "score": number (0-100, below 80 implies issues)
}}"""


@dataclass(frozen=True)
class Review:
    has_issues: bool
    critique: str
    score: int


class Critic:
    """Reviews animation markup for layout, overlap and timing problems."""

    # Score below which a review counts as failing when hasIssues is missing
    PASS_THRESHOLD = 80

    def __init__(self, client, model: str = CRITIC_MODEL, policy: Optional[ParsePolicy] = None):
        self.client = client
        self.model = model
        self.policy = policy or ParsePolicy()

    async def review(self, html: str, topic: str) -> Review:
        """Review *html* for the animation about *topic*.

        An unparseable response is resolved by the parse policy: a failed
        review (default) or an approval, or MalformedResponseError when
        strict. API errors propagate.
        """
        logger.info("Critic reviewing %d chars of markup", len(html))

        response = await self.client.generate(
            f"HTML Code to Review:\n{html[:REVIEW_HTML_LIMIT]}",
            system_prompt=CRITIC_SYSTEM_PROMPT.format(topic=topic, timeline=TIMELINE_GLOBAL),
            model=self.model,
            max_tokens=2000,
            temperature=0.0,
        )

        try:
            result = extract_json_object(response)
        except MalformedResponseError:
            if self.policy.strict:
                raise
            return self._fallback()

        try:
            score = int(result.get("score", 0))
        except (TypeError, ValueError):
            score = 0
        has_issues = result.get("hasIssues")
        if not isinstance(has_issues, bool):
            has_issues = score < self.PASS_THRESHOLD
        critique = str(result.get("critique") or "").strip()

        logger.info("Critic score: %d/100, issues: %s", score, has_issues)
        return Review(has_issues=has_issues, critique=critique, score=score)

    def _fallback(self) -> Review:
        if self.policy.critic_fallback == "approve":
            logger.warning("Critic response unparseable, treating as approved")
            return Review(has_issues=False, critique="Approved", score=100)
        logger.warning("Critic response unparseable, assuming issues")
        return Review(
            has_issues=True,
            critique="Failed to parse review. Please re-check code structure.",
            score=50,
        )
