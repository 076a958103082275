"""Pytest configuration and shared fixtures for HaiTale tests."""

import random
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from haitale.ai.cache import ResponseCache
from haitale.ai.circuit_breaker import CircuitBreaker
from haitale.ai.client import ResilientAIClient
from haitale.ai.retry import RetryPolicy
from haitale.catalog.models import CatalogEntry

ResponseFactory = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested durations."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ScriptedHandler:
    """httpx.MockTransport handler replaying scripted steps.

    Each step is a response factory or an exception to raise. The last step
    repeats once the script is exhausted.
    """

    def __init__(self, *steps: Union[ResponseFactory, Exception]):
        self.steps = list(steps)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps[min(len(self.requests), len(self.steps)) - 1]
        if isinstance(step, Exception):
            raise step
        return step(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)


def completion_body(content: Optional[str]) -> Dict[str, Any]:
    """Chat-completion response body in the wire format."""
    return {
        "id": "gen-test-1",
        "choices": [
            {
                "message": {"role": "assistant", "content": content},
                "finishReason": "stop",
            }
        ],
        "usage": {"promptTokens": 120, "completionTokens": 40, "totalTokens": 160},
    }


def ok(content: Optional[str] = "[]") -> ResponseFactory:
    """Factory for a successful completion response."""
    return lambda request: httpx.Response(200, json=completion_body(content))


def status(code: int, headers: Optional[Dict[str, str]] = None, text: str = "") -> ResponseFactory:
    """Factory for a bare status response."""
    return lambda request: httpx.Response(code, headers=headers, text=text)


@pytest.fixture
def fake_clock() -> FakeClock:
    """Manually advanced clock shared by cache and circuit breaker."""
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Sleep replacement recording backoff waits."""
    return RecordingSleep()


@pytest.fixture
def make_client(fake_clock, recording_sleep):
    """Build a ResilientAIClient backed by a scripted transport."""

    def _make(
        handler: ScriptedHandler,
        api_key: Optional[str] = "test-key",
        max_attempts: int = 3,
        initial_backoff_ms: float = 1000,
        max_backoff_ms: float = 10000,
        jitter_fraction: float = 0.0,
        cache_enabled: bool = True,
        cache_ttl_seconds: float = 3600,
        failure_threshold: int = 5,
        reset_timeout_seconds: float = 60,
    ) -> ResilientAIClient:
        cache = (
            ResponseCache(
                ttl_seconds=cache_ttl_seconds, max_entries=100, clock=fake_clock
            )
            if cache_enabled
            else None
        )
        return ResilientAIClient(
            api_key=api_key,
            model="test/model",
            api_url="https://openrouter.test/api/v1/chat/completions",
            site_url="https://haitale.test",
            site_name="HaiTale Test",
            retry_policy=RetryPolicy(
                max_attempts=max_attempts,
                initial_backoff_ms=initial_backoff_ms,
                max_backoff_ms=max_backoff_ms,
                jitter_fraction=jitter_fraction,
            ),
            cache=cache,
            circuit_breaker=CircuitBreaker(
                failure_threshold=failure_threshold,
                reset_timeout_seconds=reset_timeout_seconds,
                clock=fake_clock,
            ),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=recording_sleep,
            rng=random.Random(1234),
        )

    return _make


@pytest.fixture
def make_entry():
    """Build catalog entries with sensible defaults."""

    def _make(
        mod_id: str,
        name: str = "Generic Mod",
        description: str = "A small content pack",
        license: Optional[str] = "MIT",
        **kwargs: Any,
    ) -> CatalogEntry:
        return CatalogEntry(
            id=mod_id,
            name=name,
            version=kwargs.pop("version", "1.0.0"),
            description=description,
            author=kwargs.pop("author", "Tester"),
            license=license,
            source=kwargs.pop("source", "modrinth"),
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_catalog(make_entry) -> List[CatalogEntry]:
    """A small catalog covering every category rule."""
    return [
        make_entry(
            "enhanced-building-1",
            "Enhanced Building Tools",
            "Adds advanced building tools, templates, and blueprints for complex structures",
        ),
        make_entry(
            "magic-realms-2",
            "Magic Realms",
            "Introduces magical spells, enchantments, and mystical creatures to your world",
            license="Apache-2.0",
        ),
        make_entry(
            "dungeon-delve",
            "Dungeon Delve",
            "Procedural dungeon generation with quest chains and boss fights",
        ),
        make_entry(
            "tech-works",
            "TechWorks",
            "Machines, conveyor belts and automation for industrial bases",
            license="GPL-3.0",
        ),
        make_entry(
            "castle-walls",
            "Castle Walls",
            "Medieval castle pieces: towers, gates and battlements",
        ),
    ]


@pytest.fixture
def filler_catalog(make_entry) -> List[CatalogEntry]:
    """100 entries that match no ordinary description."""
    return [
        make_entry(f"filler-{i}", f"Filler Pack {i}", f"Generic content bundle number {i}")
        for i in range(100)
    ]
