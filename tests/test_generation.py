"""Tests for the model-backed generators, with the text client mocked."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ezanim.generation import (
    AnimationAuthor,
    Asset,
    Critic,
    Judge,
    JudgeDecision,
    MalformedResponseError,
    ParsePolicy,
    ScriptWriter,
)

HTML = "<!DOCTYPE html><html><body><script>window.tl = anime.timeline({autoplay: false});</script></body></html>"


def _client(response=None, error=None):
    client = MagicMock()
    client.generate = AsyncMock(return_value=response, side_effect=error)
    return client


def _prompt_of(client) -> str:
    call = client.generate.call_args
    return call.args[0] if call.args else call.kwargs["prompt"]


# ---------------------------------------------------------------------------
# Script writer
# ---------------------------------------------------------------------------

class TestScriptWriter:
    def test_json_response(self):
        client = _client('{"script": "Water evaporates. <break time=\\"0.5s\\" /> Then it rains.", "estimatedDuration": 18}')
        script = asyncio.run(ScriptWriter(client).generate_script("Explain the water cycle"))
        assert script.startswith("Water evaporates.")
        assert "Explain the water cycle" in _prompt_of(client)

    def test_non_json_response_used_verbatim(self):
        client = _client("Water evaporates, then it rains.")
        script = asyncio.run(ScriptWriter(client).generate_script("Explain the water cycle"))
        assert script == "Water evaporates, then it rains."

    def test_empty_script_fails(self):
        client = _client('{"script": ""}')
        with pytest.raises(RuntimeError):
            asyncio.run(ScriptWriter(client).generate_script("Explain the water cycle"))


# ---------------------------------------------------------------------------
# Animation author
# ---------------------------------------------------------------------------

class TestAnimationAuthor:
    def test_create_builds_timed_prompt(self):
        client = _client(f"```html\n{HTML}\n```")
        author = AnimationAuthor(client)
        html = asyncio.run(author.create(
            "Explain the water cycle", 14.3, "WEBVTT\n\n1\n00:00:00.000 --> 00:00:00.400\nWater\n",
            "9:16", 1080, 1920,
        ))
        assert html == HTML
        prompt = _prompt_of(client)
        assert "1080x1920" in prompt
        assert "CRITICAL FOR 9:16" in prompt
        assert "00:00:00.000 --> 00:00:00.400" in prompt
        assert "14.3 seconds" in prompt
        assert "window.tl" in prompt
        assert "__CAPTURE_MODE__" in prompt

    def test_landscape_has_no_vertical_scaling(self):
        client = _client(HTML)
        asyncio.run(AnimationAuthor(client).create("Explain the water cycle", 20.0, None, "16:9", 1920, 1080))
        prompt = _prompt_of(client)
        assert "CRITICAL FOR 9:16" not in prompt
        assert "VTT Content" not in prompt

    def test_create_includes_retrieved_assets(self):
        client = _client(HTML)
        search = MagicMock()
        search.search = AsyncMock(return_value=[Asset(name="cloud", svg="<svg id='cloud'/>", score=0.9)])
        author = AnimationAuthor(client, asset_search=search, asset_results=2)
        asyncio.run(author.create("Explain the water cycle", 20.0, None, "16:9", 1920, 1080))
        search.search.assert_awaited_once_with("Explain the water cycle", k=2)
        assert "<svg id='cloud'/>" in _prompt_of(client)

    def test_create_without_html_fails(self):
        client = _client("Sorry, I can't do that.")
        with pytest.raises(MalformedResponseError):
            asyncio.run(AnimationAuthor(client).create("Explain the water cycle", 20.0, None, "16:9", 1920, 1080))

    def test_refine_sends_critique_and_markup(self):
        client = _client(HTML)
        html = asyncio.run(AnimationAuthor(client).refine("<html>old</html>", "Title overlaps the sun"))
        assert html == HTML
        prompt = _prompt_of(client)
        assert "Title overlaps the sun" in prompt
        assert "<html>old</html>" in prompt


# ---------------------------------------------------------------------------
# Critic
# ---------------------------------------------------------------------------

class TestCritic:
    def test_parses_review(self):
        client = _client('{"hasIssues": true, "critique": "Text overlaps icon", "score": 62}')
        review = asyncio.run(Critic(client, policy=ParsePolicy(strict=False)).review(HTML, "water cycle"))
        assert review.has_issues is True
        assert review.critique == "Text overlaps icon"
        assert review.score == 62

    def test_missing_flag_uses_score(self):
        client = _client('{"critique": "Approved", "score": 95}')
        review = asyncio.run(Critic(client, policy=ParsePolicy(strict=False)).review(HTML, "water cycle"))
        assert review.has_issues is False

    def test_unparseable_counts_as_issues_by_default(self):
        client = _client("Looks fine to me!")
        policy = ParsePolicy(strict=False, critic_fallback="issues")
        review = asyncio.run(Critic(client, policy=policy).review(HTML, "water cycle"))
        assert review.has_issues is True
        assert review.score == 50

    def test_unparseable_can_count_as_approval(self):
        client = _client("Looks fine to me!")
        policy = ParsePolicy(strict=False, critic_fallback="approve")
        review = asyncio.run(Critic(client, policy=policy).review(HTML, "water cycle"))
        assert review.has_issues is False

    def test_strict_raises(self):
        client = _client("Looks fine to me!")
        with pytest.raises(MalformedResponseError):
            asyncio.run(Critic(client, policy=ParsePolicy(strict=True)).review(HTML, "water cycle"))

    def test_api_errors_propagate(self):
        client = _client(error=RuntimeError("overloaded"))
        with pytest.raises(RuntimeError, match="overloaded"):
            asyncio.run(Critic(client, policy=ParsePolicy(strict=False)).review(HTML, "water cycle"))

    def test_markup_is_truncated(self):
        client = _client('{"hasIssues": false, "critique": "Approved", "score": 90}')
        asyncio.run(Critic(client, policy=ParsePolicy(strict=False)).review("x" * 60000, "water cycle"))
        assert _prompt_of(client).count("x") <= 50000 + 100


# ---------------------------------------------------------------------------
# Judge
# ---------------------------------------------------------------------------

class TestJudge:
    @pytest.mark.parametrize(
        "response, expected",
        [
            ('{"decision": "APPROVE", "reasoning": "fixed"}', JudgeDecision.APPROVE),
            ('{"decision": "REVIEW_AGAIN", "reasoning": "still broken"}', JudgeDecision.REVIEW_AGAIN),
            ('{"decision": "review_again"}', JudgeDecision.REVIEW_AGAIN),
            ('{"decision": "MAYBE"}', JudgeDecision.APPROVE),
            ("no json at all", JudgeDecision.APPROVE),
        ],
    )
    def test_decisions(self, response, expected):
        judge = Judge(_client(response), policy=ParsePolicy(strict=False))
        assert asyncio.run(judge.evaluate("Text overlaps icon", HTML)) == expected

    def test_strict_raises(self):
        judge = Judge(_client("no json at all"), policy=ParsePolicy(strict=True))
        with pytest.raises(MalformedResponseError):
            asyncio.run(judge.evaluate("Text overlaps icon", HTML))
