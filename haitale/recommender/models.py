"""Recommendation models for HaiTale.

This module defines the recommendation returned to callers, the triple the
model is asked to produce, the tagged outcome of the AI path and the
recommender errors.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ..catalog.models import CatalogEntry


class Recommendation(BaseModel):
    """A catalog entry recommended for a world description."""

    entry: CatalogEntry = Field(..., description="Recommended catalog entry")
    reasoning: str = Field(..., description="Why the entry fits the description")
    relevance_score: float = Field(
        ..., ge=0.0, le=1.0, description="Relevance (0.0-1.0)"
    )

    def __str__(self) -> str:
        """String representation of the recommendation."""
        return (
            f"[{self.relevance_score * 100:.0f}%] {self.entry.name}\n"
            f"  Reason: {self.reasoning}"
        )


class AIRecommendation(BaseModel):
    """One element of the JSON array the model is asked to return."""

    model_config = ConfigDict(populate_by_name=True)

    mod_id: str = Field(..., alias="modId", description="Catalog identifier")
    relevance_score: float = Field(
        0.0,
        alias="relevanceScore",
        allow_inf_nan=False,
        description="Model-assigned relevance",
    )
    reasoning: str = Field("", description="Model-provided explanation")

    @field_validator("relevance_score", "reasoning", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        """Treat an explicit JSON null like a missing field."""
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class AIRecommendations(BaseModel):
    """The AI path produced a usable, non-empty list."""

    recommendations: List[Recommendation] = Field(..., min_length=1)


class NeedsFallback(BaseModel):
    """The AI path was skipped or produced nothing usable."""

    reason: str = Field(..., description="Why the rule-based path is needed")


RecommendationOutcome = Union[AIRecommendations, NeedsFallback]


class RecommendationError(Exception):
    """Base exception for recommender errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "RECOMMENDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ResponseParseError(RecommendationError):
    """Raised when model output holds no parseable recommendation array."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message, "PARSE_ERROR")
        self.details = {"raw_text": (raw_text or "")[:500]}
