from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from common.config import yaml_config
from common.exceptions import ConfigurationError
from common.logger import get_logger
from vectorstore.chroma_store import ScoredText

log = get_logger(__name__)


@dataclass(frozen=True)
class RetrievedMatch:
    content: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> Optional[str]:
        return self.metadata.get("path")


class SearchableStore(Protocol):
    def search(
        self, query: str, k: int, where: Optional[Dict[str, Any]] = None
    ) -> List[ScoredText]: ...


class ScoredRetriever:
    """
    Top-k similarity retriever that drops every match scoring below the
    threshold. An empty result is a valid outcome, not an error.
    """

    def __init__(
        self,
        store: SearchableStore,
        k: int = 5,
        score_threshold: float = 0.55,
        where: Optional[Dict[str, Any]] = None,
    ):
        if k <= 0:
            raise ConfigurationError("Retrieval k must be > 0", context={"k": k})
        if not 0.0 <= score_threshold <= 1.0:
            raise ConfigurationError(
                "score_threshold must be within [0, 1]",
                context={"score_threshold": score_threshold},
            )
        self.store = store
        self.k = k
        self.score_threshold = score_threshold
        self.where = where or None

    def retrieve(self, query: str) -> List[RetrievedMatch]:
        results = self.store.search(query, k=self.k, where=self.where)
        matches = [
            RetrievedMatch(content=content, score=score, metadata=metadata)
            for content, metadata, score in results
            if score >= self.score_threshold
        ]
        log.info(
            "Retrieved %d/%d matches above %.2f", len(matches), len(results), self.score_threshold
        )
        return matches

    async def aretrieve(self, query: str) -> List[RetrievedMatch]:
        return await asyncio.to_thread(self.retrieve, query)


def build_retriever(
    store: SearchableStore,
    k: Optional[int] = None,
    score_threshold: Optional[float] = None,
    where: Optional[Dict] = None,  # metadata filter from build_where_filter(...)
) -> ScoredRetriever:
    """
    Return a thresholded retriever; unset arguments fall back to config.
    """
    cfg = yaml_config.retrieval
    retriever = ScoredRetriever(
        store,
        k=cfg.k if k is None else k,
        score_threshold=cfg.score_threshold if score_threshold is None else score_threshold,
        where=where,
    )
    log.info(
        "Built similarity retriever k=%d threshold=%.2f", retriever.k, retriever.score_threshold
    )
    return retriever
