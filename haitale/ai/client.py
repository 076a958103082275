"""Resilient OpenRouter client.

This module provides an async chat-completion client with retries,
exponential backoff with jitter, a circuit breaker and a response cache.
Every failure is logged and turned into ``None`` at the ``complete()``
boundary so callers can fall back.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Sequence, Tuple

import httpx
import structlog

from .cache import ResponseCache
from .circuit_breaker import CircuitBreaker
from .models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    CircuitOpenError,
    ClientError,
    ConfigurationError,
    OpenRouterError,
    QuotaExceededError,
    RateLimitedError,
    ServerError,
    TransportError,
)
from .retry import (
    AttemptOutcome,
    BackoffState,
    RetryPolicy,
    classify_status,
    parse_retry_after_ms,
)

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"

AttemptResult = Tuple[AttemptOutcome, Optional[httpx.Response], Optional[str]]


class ResilientAIClient:
    """Async OpenRouter client with retry, circuit breaker and cache."""

    TEMPERATURE = 0.7
    MAX_TOKENS = 2000

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        api_url: str = DEFAULT_API_URL,
        site_url: str = "",
        site_name: str = "",
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[ResponseCache] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenRouter API key; without one every call returns None
            model: Model identifier sent with each request
            api_url: Chat-completion endpoint
            site_url: Sent as the HTTP-Referer header
            site_name: Sent as the X-Title header
            retry_policy: Attempt budget and backoff parameters
            cache: Shared response cache (None disables caching)
            circuit_breaker: Shared circuit breaker (a disabled one if omitted)
            http_client: HTTP client to use; created and owned here if omitted
            timeout_seconds: Per-request timeout for an owned HTTP client
            sleep: Coroutine used for backoff sleeps
            rng: Random source for jitter
        """
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.site_url = site_url
        self.site_name = site_name
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache = cache
        self.circuit_breaker = circuit_breaker or CircuitBreaker(enabled=False)

        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds)
        )
        self._sleep = sleep
        self._rng = rng or random.Random()

        self.logger = structlog.get_logger(self.__class__.__name__)

    async def __aenter__(self) -> "ResilientAIClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http_client.aclose()

    def build_cache_key(self, description: str, candidate_ids: Sequence[str]) -> str:
        """Cache key for a description and ordered candidate ids."""
        return ResponseCache.make_key(self.model, description, candidate_ids)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        cache_key: Optional[str] = None,
    ) -> Optional[str]:
        """Request a chat completion.

        Args:
            system_prompt: System message
            user_prompt: User message
            cache_key: Key for the response cache (see ``build_cache_key``)

        Returns:
            Completion text, or None if the call was not possible or failed
        """
        try:
            return await self._complete(system_prompt, user_prompt, cache_key)
        except OpenRouterError as e:
            self.logger.warning(
                "OpenRouter completion unavailable",
                error=e.message,
                error_code=e.error_code,
                details=e.details,
            )
            return None

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        cache_key: Optional[str],
    ) -> Optional[str]:
        if not self.api_key:
            raise ConfigurationError()

        if not self.circuit_breaker.allow_request():
            raise CircuitOpenError(
                "Circuit is open, short-circuiting OpenRouter call",
                consecutive_failures=self.circuit_breaker.snapshot().consecutive_failures,
            )

        if self.cache is not None and cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self.logger.info("Returning cached model response", key_length=len(cache_key))
                return cached

        request = ChatCompletionRequest(
            model=self.model,
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )

        self.logger.info("Calling OpenRouter API", model=self.model)

        try:
            response = await self._send_with_retries(request)
        except OpenRouterError as e:
            if e.counts_as_circuit_failure:
                self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()

        content = response.first_content()
        if not content:
            self.logger.warning("Empty response from OpenRouter API")
            return None

        self.logger.info(
            "Received AI response",
            total_tokens=response.usage.total_tokens if response.usage else None,
        )
        if self.cache is not None and cache_key is not None:
            self.cache.put(cache_key, content)
        return content

    async def _send_with_retries(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionResponse:
        """Run the attempt loop until success or a terminal outcome.

        Raises:
            QuotaExceededError: On HTTP 402
            ClientError: On any other non-retryable 4xx
            RateLimitedError: If the budget ran out on HTTP 429
            ServerError: If the budget ran out on 5xx
            TransportError: If the budget ran out on transport failures
        """
        state = BackoffState(self.retry_policy, self._rng)

        while True:
            attempt = state.begin_attempt()
            outcome, http_response, error = await self._attempt(request)

            if outcome is AttemptOutcome.SUCCESS and http_response is not None:
                try:
                    return ChatCompletionResponse.model_validate(http_response.json())
                except ValueError as e:
                    # Undecodable body is retried like a transport failure
                    outcome, error = AttemptOutcome.TRANSPORT_ERROR, str(e)

            retry_after_ms = None
            if outcome is AttemptOutcome.RATE_LIMITED and http_response is not None:
                retry_after_ms = parse_retry_after_ms(
                    http_response.headers.get("Retry-After"), state.delay_ms
                )

            wait_ms = state.next_wait_ms(outcome, retry_after_ms)

            self.logger.warning(
                "OpenRouter attempt failed",
                attempt=attempt,
                max_attempts=self.retry_policy.max_attempts,
                outcome=outcome.value,
                status_code=http_response.status_code if http_response is not None else None,
                error=error,
                wait_ms=round(wait_ms) if wait_ms is not None else None,
            )

            if wait_ms is None:
                raise self._terminal_error(outcome, http_response, error, attempt)

            await self._sleep(wait_ms / 1000.0)

    async def _attempt(self, request: ChatCompletionRequest) -> AttemptResult:
        """Send one request and classify the result."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.site_url,
            "X-Title": self.site_name,
            "Content-Type": "application/json",
        }
        try:
            response = await self._http_client.post(
                self.api_url, json=request.to_payload(), headers=headers
            )
        except httpx.TransportError as e:
            return AttemptOutcome.TRANSPORT_ERROR, None, f"{type(e).__name__}: {e}"

        return classify_status(response.status_code), response, None

    def _terminal_error(
        self,
        outcome: AttemptOutcome,
        http_response: Optional[httpx.Response],
        error: Optional[str],
        attempts: int,
    ) -> OpenRouterError:
        status_code = http_response.status_code if http_response is not None else 0
        body = http_response.text[:500] if http_response is not None else None

        if outcome is AttemptOutcome.QUOTA_EXCEEDED:
            return QuotaExceededError("OpenRouter quota exceeded", body=body)
        if outcome is AttemptOutcome.CLIENT_ERROR:
            return ClientError(
                f"OpenRouter returned non-retryable status {status_code}",
                status_code=status_code,
                body=body,
            )
        if outcome is AttemptOutcome.RATE_LIMITED:
            return RateLimitedError(
                f"OpenRouter rate limit persisted after {attempts} attempts",
                attempts=attempts,
            )
        if outcome is AttemptOutcome.SERVER_ERROR:
            return ServerError(
                f"OpenRouter server error {status_code} after {attempts} attempts",
                status_code=status_code,
                attempts=attempts,
            )
        return TransportError(
            f"Exhausted retries calling OpenRouter API: {error}", attempts=attempts
        )
