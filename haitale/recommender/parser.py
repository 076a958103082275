"""Parsing of untrusted model output into recommendations."""

import json
from typing import Any, Dict, List, Optional, Sequence, Set

import structlog
from pydantic import ValidationError

from ..catalog.models import CatalogEntry
from .models import AIRecommendation, Recommendation, ResponseParseError

logger = structlog.get_logger(__name__)


class ResponseParser:
    """Extracts a recommendation list from raw, possibly noisy, model text."""

    def __init__(self) -> None:
        self.logger = structlog.get_logger(self.__class__.__name__)

    def parse(
        self, raw_text: str, candidates: Sequence[CatalogEntry]
    ) -> List[Recommendation]:
        """Parse model text and resolve it against the candidate set.

        Args:
            raw_text: Raw completion text, possibly wrapped in prose or code fences
            candidates: Entries the model was allowed to choose from

        Returns:
            Recommendations in model order; unknown ids are dropped

        Raises:
            ResponseParseError: If no JSON array can be decoded
        """
        json_array = self.extract_json_array(raw_text)

        try:
            data = json.loads(json_array)
        except json.JSONDecodeError as e:
            raise ResponseParseError(
                f"Failed to decode model output as JSON: {str(e)}", raw_text=raw_text
            )

        if not isinstance(data, list):
            raise ResponseParseError(
                f"Expected a JSON array, got {type(data).__name__}", raw_text=raw_text
            )

        by_id: Dict[str, CatalogEntry] = {}
        for entry in candidates:
            by_id.setdefault(entry.id, entry)

        seen: Set[str] = set()
        recommendations: List[Recommendation] = []

        for raw_item in data:
            item = self._validate_item(raw_item)
            if item is None:
                continue

            entry = by_id.get(item.mod_id)
            if entry is None:
                self.logger.debug("Dropping unknown mod id", mod_id=item.mod_id)
                continue
            if item.mod_id in seen:
                continue
            seen.add(item.mod_id)

            recommendations.append(
                Recommendation(
                    entry=entry,
                    reasoning=item.reasoning,
                    relevance_score=max(0.0, min(item.relevance_score, 1.0)),
                )
            )

        return recommendations

    @staticmethod
    def extract_json_array(text: str) -> str:
        """Return the text between the first '[' and the last ']' inclusive."""
        start = text.find("[")
        end = text.rfind("]")
        if start >= 0 and end > start:
            return text[start : end + 1]
        return text

    def _validate_item(self, raw_item: Any) -> Optional[AIRecommendation]:
        try:
            return AIRecommendation.model_validate(raw_item)
        except ValidationError as e:
            self.logger.warning(
                "Failed to parse recommendation",
                error=str(e),
                raw_recommendation=raw_item,
            )
            return None
