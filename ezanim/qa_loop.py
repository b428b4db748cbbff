"""Bounded critic -> fixer -> judge refinement loop.

    review = critic(html)
    if no issues: done (approved)
    html = fixer(html, critique)      # persisted via on_revision
    verdict = judge(critique, html)
    APPROVE -> done, REVIEW_AGAIN -> next iteration, up to max_loops

Running out of iterations is not a failure: the last revision wins.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ezanim.config import MAX_QA_LOOPS
from ezanim.generation.judge import JudgeDecision
from ezanim.generation.parsing import MalformedResponseError, ParsePolicy

logger = logging.getLogger(__name__)


@dataclass
class QAResult:
    html: str
    approved: bool
    iterations: int
    critiques: list[str] = field(default_factory=list)


class RefinementLoop:
    """Drives one QA run; all loop state lives in ``run``."""

    def __init__(
        self,
        critic,
        author,
        judge,
        max_loops: int = MAX_QA_LOOPS,
        policy: Optional[ParsePolicy] = None,
    ):
        if max_loops < 1:
            raise ValueError("max_loops must be at least 1")
        self.critic = critic
        self.author = author
        self.judge = judge
        self.max_loops = max_loops
        self.policy = policy or ParsePolicy()

    async def run(
        self,
        html: str,
        topic: str,
        on_revision: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> QAResult:
        """Review and fix *html* until approved or the loop bound is hit.

        Args:
            html: The draft markup
            topic: The user's prompt, given to the critic as context
            on_revision: Awaited with every revised document as soon as it
                exists, so the latest markup is never lost

        Returns:
            QAResult with the final markup
        """
        critiques = []
        iterations = 0

        while iterations < self.max_loops:
            iterations += 1
            logger.info("QA iteration %d/%d", iterations, self.max_loops)

            review = await self.critic.review(html, topic)
            if not review.has_issues:
                logger.info("Critic approved (score %d)", review.score)
                return QAResult(html=html, approved=True, iterations=iterations, critiques=critiques)

            critiques.append(review.critique)
            logger.info("Critic found issues (score %d): %s", review.score, review.critique[:200])

            try:
                revised = await self.author.refine(html, review.critique)
            except MalformedResponseError as e:
                if self.policy.strict:
                    raise
                logger.warning("Fixer returned no HTML document (%s), keeping previous markup", e)
                revised = None

            if revised:
                html = revised
                if on_revision is not None:
                    await on_revision(html)

            decision = await self.judge.evaluate(review.critique, html)
            if decision == JudgeDecision.APPROVE:
                logger.info("Judge approved after %d iteration(s)", iterations)
                return QAResult(html=html, approved=True, iterations=iterations, critiques=critiques)

        logger.info("QA loop reached %d iterations, keeping last revision", self.max_loops)
        return QAResult(html=html, approved=False, iterations=iterations, critiques=critiques)
