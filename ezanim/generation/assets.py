"""Similarity search over a catalog of SVG illustrations.

The catalog is a JSON list of entries::

    [{"name": "lecturer", "description": "person pointing at a board",
      "svg": "<svg ...>...</svg>", "embedding": [0.01, ...]}, ...]

Entries without an ``embedding`` are embedded on first use. Search never
raises: any failure is logged and yields no assets, since illustrations only
enrich the animation prompt.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from openai import AsyncOpenAI

from ezanim.config import EMBEDDING_MODEL, OPENAI_API_KEY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Asset:
    name: str
    svg: str
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for empty or mismatched vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na <= 0.0 or nb <= 0.0:
        return 0.0
    return max(-1.0, min(1.0, dot / (math.sqrt(na) * math.sqrt(nb))))


class AssetSearch:
    """Finds catalog illustrations that match a free-text query."""

    def __init__(
        self,
        catalog_path: Optional[str],
        api_key: Optional[str] = None,
        model: str = EMBEDDING_MODEL,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.catalog_path = Path(catalog_path) if catalog_path else None
        self.model = model
        self._client = client
        self._api_key = api_key or OPENAI_API_KEY
        self._entries: Optional[list[dict]] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def search(self, query: str, k: int = 3) -> list[Asset]:
        """Return up to *k* assets ranked by similarity to *query*."""
        if self.catalog_path is None or k <= 0:
            return []
        try:
            entries = await self._load_entries()
            if not entries:
                return []
            query_vector = (await self._embed([query]))[0]
            ranked = sorted(
                (
                    Asset(
                        name=entry.get("name", ""),
                        svg=entry["svg"],
                        score=cosine_similarity(query_vector, entry["embedding"]),
                    )
                    for entry in entries
                ),
                key=lambda asset: asset.score,
                reverse=True,
            )
            return ranked[:k]
        except Exception as e:
            logger.warning("Asset search failed for %r: %s", query, e)
            return []

    async def _load_entries(self) -> list[dict]:
        if self._entries is not None:
            return self._entries

        with open(self.catalog_path) as f:
            raw = json.load(f)

        entries = [e for e in raw if "<svg" in (e.get("svg") or "")]
        missing = [e for e in entries if not e.get("embedding")]
        if missing:
            texts = [f"{e.get('name', '')}: {e.get('description', '')}" for e in missing]
            vectors = await self._embed(texts)
            for entry, vector in zip(missing, vectors):
                entry["embedding"] = vector
            logger.info("Embedded %d catalog assets", len(missing))

        self._entries = entries
        return entries

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(model=self.model, input=texts)
        return [list(item.embedding) for item in response.data]
