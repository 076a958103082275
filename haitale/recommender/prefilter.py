"""Candidate pre-filtering.

Narrows a large catalog to the entries worth sending to the model, which
keeps prompts short and API costs down.
"""

from typing import List, Optional, Sequence

import structlog

from ..catalog.models import CatalogEntry
from .scoring import RelevanceScorer

logger = structlog.get_logger(__name__)


class PreFilter:
    """Keyword pre-filter applied before the AI call."""

    # Catalogs at or below this size are sent as-is
    SMALL_CATALOG_SIZE = 20
    # Fewer survivors than this means the filter was too aggressive
    MIN_CANDIDATES = 5

    def __init__(
        self,
        scorer: Optional[RelevanceScorer] = None,
        threshold: float = 0.15,
        max_candidates: int = 50,
    ):
        """Initialize the pre-filter.

        Args:
            scorer: Relevance scorer (a default one is created if omitted)
            threshold: Entries must score strictly above this to survive
            max_candidates: Maximum number of candidates returned
        """
        self.scorer = scorer or RelevanceScorer()
        self.threshold = threshold
        self.max_candidates = max_candidates
        self.logger = structlog.get_logger(self.__class__.__name__)

    def filter(
        self, catalog: Sequence[CatalogEntry], description: str
    ) -> List[CatalogEntry]:
        """Shrink the catalog to a bounded candidate set.

        Args:
            catalog: Full catalog in catalog order
            description: Free-text world description

        Returns:
            Candidates, best first; never empty unless the catalog is empty
        """
        if len(catalog) <= self.SMALL_CATALOG_SIZE:
            return list(catalog)

        scored = [(self.scorer.score(entry, description), entry) for entry in catalog]
        survivors = [pair for pair in scored if pair[0] > self.threshold]
        # sorted() is stable, so ties keep catalog order
        survivors = sorted(survivors, key=lambda pair: pair[0], reverse=True)
        candidates = [entry for _, entry in survivors[: self.max_candidates]]

        if len(candidates) < self.MIN_CANDIDATES:
            self.logger.warning(
                "Pre-filtering too aggressive, using leading catalog entries",
                survivors=len(candidates),
                fallback_count=min(self.SMALL_CATALOG_SIZE, len(catalog)),
            )
            return list(catalog[: self.SMALL_CATALOG_SIZE])

        return candidates
