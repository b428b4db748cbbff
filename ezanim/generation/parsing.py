"""Helpers for pulling structured data out of model responses."""

import json
import re
from dataclasses import dataclass

from ezanim.config import CRITIC_PARSE_FALLBACK, QA_STRICT_PARSING


class MalformedResponseError(ValueError):
    """Raised when a model response does not have the expected structure."""


@dataclass(frozen=True)
class ParsePolicy:
    """What the QA steps do with a response they cannot parse.

    strict: raise MalformedResponseError and let the job fail.
    critic_fallback: "issues" treats an unreadable review as a failed review,
        "approve" treats it as a pass. The judge always falls back to APPROVE
        so a malformed verdict can never keep the loop spinning.
    """

    strict: bool = QA_STRICT_PARSING
    critic_fallback: str = CRITIC_PARSE_FALLBACK

    def __post_init__(self):
        if self.critic_fallback not in ("issues", "approve"):
            raise ValueError(f"critic_fallback must be 'issues' or 'approve', got {self.critic_fallback!r}")


_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_FENCED_BLOCK = re.compile(r"```(?:[a-zA-Z]+)?\s*\n?([\s\S]*?)```")


def extract_json_object(text: str) -> dict:
    """Return the outermost JSON object embedded in *text*.

    Tolerates markdown fences and chatter around the object.
    """
    clean = text.replace("```json", "").replace("```", "").strip()
    match = _JSON_OBJECT.search(clean)
    if not match:
        raise MalformedResponseError("No JSON object found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError("Response JSON is not an object")
    return data


def extract_html_document(text: str) -> str:
    """Return the HTML document in *text*, unwrapping a code fence if present.

    Raises MalformedResponseError when no HTML document is found.
    """
    html = text.strip()
    match = _FENCED_BLOCK.search(html)
    if match:
        html = match.group(1).strip()

    lowered = html.lower()
    start = lowered.find("<!doctype")
    if start == -1:
        start = lowered.find("<html")
    if start == -1:
        raise MalformedResponseError("Response does not contain an HTML document")

    end = lowered.rfind("</html>")
    if end == -1:
        return html[start:].strip()
    return html[start:end + len("</html>")].strip()
