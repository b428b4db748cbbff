"""The judge: decides whether a fix resolved the critic's findings."""

import logging
from enum import Enum
from typing import Optional

from ezanim.config import JUDGE_MODEL, REVIEW_HTML_LIMIT
from ezanim.generation.parsing import MalformedResponseError, ParsePolicy, extract_json_object

logger = logging.getLogger(__name__)


class JudgeDecision(str, Enum):
    APPROVE = "APPROVE"
    REVIEW_AGAIN = "REVIEW_AGAIN"


JUDGE_PROMPT = """You are "The Judge".
The "Critic" previously found these issues in the animation code:
"{critique}"

The Developer has attempted to fix these issues. Here is the updated HTML code.

Your Task:
Determine if the code is now acceptable or if it needs another round of review by the Critic.
- If the code looks broken or the fixes seem insufficient, return "REVIEW_AGAIN".
- If the code looks solid and the issues appear addressed, return "APPROVE".

Return JSON only:
{{
  "decision": "APPROVE" | "REVIEW_AGAIN",
  "reasoning": "short explanation"
}}

Updated HTML Code:
{html}"""


class Judge:
    def __init__(self, client, model: str = JUDGE_MODEL, policy: Optional[ParsePolicy] = None):
        self.client = client
        self.model = model
        self.policy = policy or ParsePolicy()

    async def evaluate(self, critique: str, html: str) -> JudgeDecision:
        """Return APPROVE or REVIEW_AGAIN for the revised *html*.

        Anything other than an explicit REVIEW_AGAIN approves, so a malformed
        verdict ends the loop instead of extending it.
        """
        response = await self.client.generate(
            JUDGE_PROMPT.format(critique=critique, html=html[:REVIEW_HTML_LIMIT]),
            model=self.model,
            max_tokens=500,
            temperature=0.0,
        )

        try:
            result = extract_json_object(response)
        except MalformedResponseError:
            if self.policy.strict:
                raise
            logger.warning("Judge response unparseable, approving")
            return JudgeDecision.APPROVE

        decision = str(result.get("decision", "")).strip().upper()
        logger.info("Judge decision: %s (%s)", decision or "?", result.get("reasoning", ""))
        if decision == JudgeDecision.REVIEW_AGAIN.value:
            return JudgeDecision.REVIEW_AGAIN
        return JudgeDecision.APPROVE
