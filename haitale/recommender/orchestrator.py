"""Recommendation orchestration for HaiTale.

This module coordinates pre-filtering, the AI call and response parsing,
and falls back to rule-based scoring whenever the AI path is unavailable
or produces nothing usable. ``recommend()`` never raises.
"""

from typing import List, Optional, Sequence

import structlog

from ..ai.cache import ResponseCache
from ..ai.circuit_breaker import CircuitBreaker
from ..ai.client import ResilientAIClient
from ..ai.retry import RetryPolicy
from ..catalog.models import CatalogEntry
from ..catalog.provider import CatalogProvider
from ..config import HaitaleConfig
from .models import (
    AIRecommendations,
    NeedsFallback,
    Recommendation,
    RecommendationError,
    RecommendationOutcome,
)
from .parser import ResponseParser
from .prefilter import PreFilter
from .scoring import RelevanceScorer

logger = structlog.get_logger(__name__)

# Minimum score for a rule-based recommendation
RULE_BASED_THRESHOLD = 0.3
MAX_AI_RECOMMENDATIONS = 5


def build_system_prompt(candidate_lines: Sequence[str]) -> str:
    """Build the system prompt listing every candidate."""
    lines = [
        "You are a helpful assistant that recommends HyTale mods based on user "
        "preferences. Given a description of the world a user wants to create, "
        "recommend the most suitable mods from the available list.",
        "",
        "Available mods:",
    ]
    lines.extend(f"- {line}" for line in candidate_lines)
    lines.extend(
        [
            "",
            "Respond in this exact JSON format:",
            "[",
            "  {",
            '    "modId": "mod-id-here",',
            '    "relevanceScore": 0.95,',
            '    "reasoning": "Brief explanation of why this mod fits"',
            "  }",
            "]",
            "",
            "Only recommend mods that actually match the user's description. "
            "Score should be between 0.0 and 1.0 based on relevance. "
            f"Return at most {MAX_AI_RECOMMENDATIONS} recommendations, sorted by relevance.",
        ]
    )
    return "\n".join(lines)


def build_user_prompt(description: str) -> str:
    """Build the user prompt for a world description."""
    return f"I want to create: {description}"


class RecommendationOrchestrator:
    """Produces mod recommendations, preferring the AI path."""

    def __init__(
        self,
        client: ResilientAIClient,
        scorer: Optional[RelevanceScorer] = None,
        prefilter: Optional[PreFilter] = None,
        parser: Optional[ResponseParser] = None,
        prefilter_enabled: bool = True,
        description_max_length: int = 100,
    ):
        """Initialize the orchestrator.

        Args:
            client: AI client; owns the shared cache and circuit breaker
            scorer: Relevance scorer shared by pre-filter and fallback
            prefilter: Candidate pre-filter
            parser: Model output parser
            prefilter_enabled: Send the whole catalog to the model when False
            description_max_length: Per-candidate description length in the prompt
        """
        self.client = client
        self.scorer = scorer or RelevanceScorer()
        self.prefilter = prefilter or PreFilter(scorer=self.scorer)
        self.parser = parser or ResponseParser()
        self.prefilter_enabled = prefilter_enabled
        self.description_max_length = description_max_length
        self.logger = structlog.get_logger(self.__class__.__name__)

    @classmethod
    def create(
        cls,
        config: HaitaleConfig,
        client: Optional[ResilientAIClient] = None,
    ) -> "RecommendationOrchestrator":
        """Wire the full pipeline from configuration.

        Args:
            config: Pipeline configuration
            client: Pre-built AI client (built from config if omitted)

        Returns:
            Ready orchestrator
        """
        if client is None:
            cache = (
                ResponseCache(
                    ttl_seconds=config.cache_ttl_seconds,
                    max_entries=config.cache_max_entries,
                )
                if config.cache_enabled
                else None
            )
            circuit_breaker = CircuitBreaker(
                failure_threshold=config.circuit_failure_threshold,
                reset_timeout_seconds=config.circuit_reset_timeout_seconds,
                enabled=config.circuit_enabled,
            )
            client = ResilientAIClient(
                api_key=config.api_key,
                model=config.model,
                api_url=config.api_url,
                site_url=config.site_url,
                site_name=config.site_name,
                retry_policy=RetryPolicy(
                    max_attempts=config.retry_max_attempts,
                    initial_backoff_ms=config.retry_initial_backoff_ms,
                    max_backoff_ms=config.retry_max_backoff_ms,
                    jitter_fraction=config.retry_jitter_fraction,
                ),
                cache=cache,
                circuit_breaker=circuit_breaker,
                timeout_seconds=config.request_timeout_seconds,
            )

        scorer = RelevanceScorer()
        return cls(
            client=client,
            scorer=scorer,
            prefilter=PreFilter(
                scorer=scorer,
                threshold=config.prefilter_threshold,
                max_candidates=config.prefilter_max_candidates,
            ),
            prefilter_enabled=config.prefilter_enabled,
            description_max_length=config.description_max_length,
        )

    async def aclose(self) -> None:
        """Release the AI client's resources."""
        await self.client.aclose()

    async def recommend(
        self, catalog: Sequence[CatalogEntry], description: str
    ) -> List[Recommendation]:
        """Recommend catalog entries for a world description.

        Args:
            catalog: Full catalog
            description: Free-text world description

        Returns:
            Recommendations, best first; possibly empty
        """
        self.logger.info(
            "Generating recommendations",
            description=description,
            catalog_size=len(catalog),
        )

        try:
            outcome = await self._ai_recommendations(catalog, description)
        except Exception as e:
            self.logger.error(
                "AI recommendation path failed unexpectedly",
                error=str(e),
                exc_info=True,
            )
            outcome = NeedsFallback(reason=f"unexpected error: {type(e).__name__}")

        if isinstance(outcome, AIRecommendations):
            self.logger.info(
                "Using AI-powered recommendations",
                count=len(outcome.recommendations),
            )
            return outcome.recommendations

        self.logger.info("Using rule-based recommendations", reason=outcome.reason)
        return self.rule_based_recommendations(catalog, description)

    async def recommend_from_provider(
        self, provider: CatalogProvider, description: str
    ) -> List[Recommendation]:
        """Fetch the free catalog from a provider and recommend from it."""
        return await self.recommend(provider.get_free_catalog(), description)

    def rule_based_recommendations(
        self, catalog: Sequence[CatalogEntry], description: str
    ) -> List[Recommendation]:
        """Score the whole catalog with keyword and category rules.

        Args:
            catalog: Full catalog
            description: Free-text world description

        Returns:
            Entries scoring above the threshold, best first
        """
        recommendations: List[Recommendation] = []
        seen = set()

        for entry in catalog:
            if entry.id in seen:
                continue
            score = self.scorer.score(entry, description)
            if score > RULE_BASED_THRESHOLD:
                seen.add(entry.id)
                recommendations.append(
                    Recommendation(
                        entry=entry,
                        reasoning=self.scorer.generate_reasoning(entry, description),
                        relevance_score=score,
                    )
                )

        recommendations.sort(key=lambda r: r.relevance_score, reverse=True)

        self.logger.info("Generated rule-based recommendations", count=len(recommendations))
        return recommendations

    async def _ai_recommendations(
        self, catalog: Sequence[CatalogEntry], description: str
    ) -> RecommendationOutcome:
        if self.prefilter_enabled:
            candidates = self.prefilter.filter(catalog, description)
            self.logger.info(
                "Pre-filtered catalog",
                catalog_size=len(catalog),
                candidate_count=len(candidates),
            )
        else:
            candidates = list(catalog)

        if not candidates:
            return NeedsFallback(reason="no candidates")

        system_prompt = build_system_prompt(
            [self._describe_candidate(entry) for entry in candidates]
        )
        user_prompt = build_user_prompt(description)
        cache_key = self.client.build_cache_key(
            description, [entry.id for entry in candidates]
        )

        text = await self.client.complete(system_prompt, user_prompt, cache_key=cache_key)
        if not text:
            return NeedsFallback(reason="no model response")

        try:
            recommendations = self.parser.parse(text, candidates)
        except RecommendationError as e:
            self.logger.error(
                "Failed to parse AI response", error=e.message, error_code=e.error_code
            )
            return NeedsFallback(reason="unparseable model response")

        if not recommendations:
            return NeedsFallback(reason="no recommendations matched the catalog")

        # Model order is kept for equal scores
        recommendations.sort(key=lambda r: r.relevance_score, reverse=True)
        return AIRecommendations(recommendations=recommendations)

    def _describe_candidate(self, entry: CatalogEntry) -> str:
        return f"{entry.id}: {entry.name} - {self._truncate(entry.description)}"

    def _truncate(self, text: str) -> str:
        if len(text) <= self.description_max_length:
            return text
        return text[: self.description_max_length] + "..."
