"""Model-backed content generators."""

from .animator import AnimationAuthor
from .assets import Asset, AssetSearch
from .judge import Judge, JudgeDecision
from .parsing import MalformedResponseError, ParsePolicy
from .qc_checker import Critic, Review
from .script_writer import ScriptWriter

__all__ = [
    "AnimationAuthor",
    "Asset",
    "AssetSearch",
    "Critic",
    "Judge",
    "JudgeDecision",
    "MalformedResponseError",
    "ParsePolicy",
    "Review",
    "ScriptWriter",
]
