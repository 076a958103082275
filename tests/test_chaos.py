"""Chaos tests for the HaiTale recommendation pipeline.

These tests simulate upstream outages, flapping availability and concurrent
load to verify that the pipeline degrades to rule-based results instead of
failing.
"""

import asyncio
import json
import random

import httpx
import pytest

from conftest import ScriptedHandler, completion_body, ok, status
from haitale.ai.models import CircuitStatus
from haitale.recommender.orchestrator import RecommendationOrchestrator

MAGIC_REPLY = json.dumps(
    [{"modId": "castle-walls", "relevanceScore": 0.9, "reasoning": "AI pick"}]
)


class FlappingHandler:
    """Transport handler that fails at random with a fixed seed."""

    def __init__(self, failure_rate: float, seed: int = 7):
        self.failure_rate = failure_rate
        self.rng = random.Random(seed)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        roll = self.rng.random()
        if roll < self.failure_rate / 2:
            raise httpx.ConnectError("connection reset")
        if roll < self.failure_rate:
            return httpx.Response(503, text="upstream unavailable")
        return httpx.Response(200, json=completion_body(MAGIC_REPLY))


def assert_well_formed(recommendations):
    scores = [r.relevance_score for r in recommendations]
    ids = [r.entry.id for r in recommendations]
    assert scores == sorted(scores, reverse=True)
    assert len(ids) == len(set(ids))
    assert all(0.0 <= s <= 1.0 for s in scores)


class TestUpstreamOutage:
    """Test a completely unavailable API."""

    @pytest.mark.asyncio
    @pytest.mark.chaos
    async def test_outage_opens_circuit_and_falls_back(self, make_client, sample_catalog):
        """Test that a dead upstream stops receiving traffic once the circuit opens."""
        handler = ScriptedHandler(httpx.ConnectError("no route to host"))
        client = make_client(handler, max_attempts=3, failure_threshold=5)
        orchestrator = RecommendationOrchestrator(client)

        for i in range(10):
            result = await orchestrator.recommend(sample_catalog, f"I want magic {i}")
            assert [r.entry.id for r in result] == ["magic-realms-2"]

        # 5 calls x 3 attempts before the circuit opened
        assert handler.call_count == 15
        assert client.circuit_breaker.status == CircuitStatus.OPEN

    @pytest.mark.asyncio
    @pytest.mark.chaos
    async def test_recovery_after_reset_timeout(
        self, make_client, sample_catalog, fake_clock
    ):
        """Test that the AI path resumes once the upstream recovers."""
        handler = ScriptedHandler(status(500))
        client = make_client(handler, max_attempts=1, failure_threshold=2)
        orchestrator = RecommendationOrchestrator(client)

        for i in range(3):
            await orchestrator.recommend(sample_catalog, f"magic {i}")
        assert handler.call_count == 2

        fake_clock.advance(60)
        handler.steps = [ok(MAGIC_REPLY)]

        result = await orchestrator.recommend(sample_catalog, "magic again")

        assert [r.entry.id for r in result] == ["castle-walls"]
        assert client.circuit_breaker.snapshot().consecutive_failures == 0

    @pytest.mark.asyncio
    @pytest.mark.chaos
    async def test_open_circuit_ignores_cache(self, make_client, sample_catalog):
        """Test that an open circuit short-circuits even for cached queries."""
        handler = ScriptedHandler(ok(MAGIC_REPLY), status(500))
        client = make_client(handler, max_attempts=1, failure_threshold=1)
        orchestrator = RecommendationOrchestrator(client)

        first = await orchestrator.recommend(sample_catalog, "I want magic")
        assert [r.entry.id for r in first] == ["castle-walls"]

        await orchestrator.recommend(sample_catalog, "something else")
        assert client.circuit_breaker.status == CircuitStatus.OPEN

        again = await orchestrator.recommend(sample_catalog, "I want magic")

        assert [r.entry.id for r in again] == ["magic-realms-2"]
        assert handler.call_count == 2


class TestFlappingUpstream:
    """Test intermittent failures."""

    @pytest.mark.asyncio
    @pytest.mark.chaos
    @pytest.mark.parametrize("failure_rate", [0.3, 0.7, 1.0])
    async def test_results_always_well_formed(
        self, make_client, sample_catalog, failure_rate
    ):
        """Test that every call yields a usable ranking whatever the upstream does."""
        handler = FlappingHandler(failure_rate)
        client = make_client(handler, cache_enabled=False, failure_threshold=3)
        orchestrator = RecommendationOrchestrator(client)

        for _ in range(25):
            result = await orchestrator.recommend(sample_catalog, "I want magic")
            assert result
            assert [r.entry.id for r in result] in (["castle-walls"], ["magic-realms-2"])
            assert_well_formed(result)

    @pytest.mark.asyncio
    @pytest.mark.chaos
    async def test_garbage_responses(self, make_client, sample_catalog):
        """Test that corrupted bodies and nonsense output never escape."""
        handler = ScriptedHandler(
            status(200, text="<html>502 Bad Gateway</html>"),
            ok("[[[{"),
            ok('[{"modId": null}, {"modId": "magic-realms-2", "relevanceScore": "high"}]'),
            ok('{"recommendations": []}'),
        )
        client = make_client(handler, max_attempts=1, cache_enabled=False)
        orchestrator = RecommendationOrchestrator(client)

        for _ in range(4):
            result = await orchestrator.recommend(sample_catalog, "I want magic")
            assert [r.entry.id for r in result] == ["magic-realms-2"]
            assert result[0].reasoning == "Brings magical gameplay."


class TestConcurrentLoad:
    """Test concurrent use of one client."""

    @pytest.mark.asyncio
    @pytest.mark.chaos
    async def test_concurrent_failures_counted(self, make_client):
        """Test that concurrent failing calls lose no failure updates."""
        handler = ScriptedHandler(status(500))
        client = make_client(handler, max_attempts=1, failure_threshold=5)

        results = await asyncio.gather(
            *(client.complete("s", "u", cache_key=f"k{i}") for i in range(20))
        )

        assert results == [None] * 20
        assert 5 <= handler.call_count <= 20
        assert client.circuit_breaker.snapshot().consecutive_failures == handler.call_count
        assert client.circuit_breaker.status == CircuitStatus.OPEN

    @pytest.mark.asyncio
    @pytest.mark.chaos
    async def test_concurrent_recommendations(self, make_client, sample_catalog):
        """Test many concurrent recommendations against a flapping upstream."""
        handler = FlappingHandler(0.5, seed=11)
        client = make_client(handler, failure_threshold=4)
        orchestrator = RecommendationOrchestrator(client)

        results = await asyncio.gather(
            *(orchestrator.recommend(sample_catalog, "I want magic") for _ in range(30))
        )

        for result in results:
            assert result
            assert_well_formed(result)
