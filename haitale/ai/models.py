"""AI client models for HaiTale.

This module defines the OpenRouter wire format, the cache and circuit
breaker state, and the error hierarchy of the AI client.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """A single chat message."""

    role: str = Field(..., description="Message role (system, user, assistant)")
    content: Optional[str] = Field(None, description="Message text")


class ChatCompletionRequest(BaseModel):
    """Request body sent to the chat-completion endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    model: str = Field(..., description="Model identifier")
    messages: List[ChatMessage] = Field(..., description="Conversation messages")
    temperature: float = Field(0.7, description="Sampling temperature")
    max_tokens: int = Field(2000, alias="maxTokens", description="Completion limit")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the wire field names."""
        return self.model_dump(by_alias=True)


class Choice(BaseModel):
    """One completion choice."""

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[ChatMessage] = None
    finish_reason: Optional[str] = Field(None, alias="finishReason")


class Usage(BaseModel):
    """Token accounting for a completion."""

    model_config = ConfigDict(populate_by_name=True)

    prompt_tokens: int = Field(0, alias="promptTokens")
    completion_tokens: int = Field(0, alias="completionTokens")
    total_tokens: int = Field(0, alias="totalTokens")


class ChatCompletionResponse(BaseModel):
    """Response body of the chat-completion endpoint."""

    id: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    def first_content(self) -> Optional[str]:
        """Return the text of the first choice, if any."""
        if not self.choices or self.choices[0].message is None:
            return None
        return self.choices[0].message.content


class CacheEntry(BaseModel):
    """A cached model response."""

    key: str = Field(..., description="Cache key")
    response_text: str = Field(..., description="Cached completion text")
    created_at: float = Field(..., description="Clock reading at insertion")

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        """Check if the entry has outlived its TTL."""
        return now - self.created_at >= ttl_seconds


class CircuitStatus(str, Enum):
    """Derived circuit breaker status."""

    CLOSED = "closed"
    OPEN = "open"


class CircuitState(BaseModel):
    """Consecutive-failure state shared by every request of one client."""

    consecutive_failures: int = Field(0, ge=0, description="Failures since last success")
    opened_at: Optional[float] = Field(None, description="Clock reading when opened")


class OpenRouterError(Exception):
    """Base exception for OpenRouter client errors."""

    # Whether this failure is recorded by the circuit breaker
    counts_as_circuit_failure = False

    def __init__(
        self,
        message: str,
        error_code: str = "OPENROUTER_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(OpenRouterError):
    """Raised when no API key is configured."""

    def __init__(self, message: str = "OpenRouter API key not configured"):
        super().__init__(message, "CONFIGURATION_ERROR")


class CircuitOpenError(OpenRouterError):
    """Raised when the circuit is open and no request is attempted."""

    def __init__(self, message: str, consecutive_failures: int = 0):
        super().__init__(message, "CIRCUIT_OPEN")
        self.details = {"consecutive_failures": consecutive_failures}


class RateLimitedError(OpenRouterError):
    """Raised when every attempt was answered with HTTP 429."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message, "RATE_LIMITED")
        self.details = {"status_code": 429, "attempts": attempts}


class QuotaExceededError(OpenRouterError):
    """Raised on HTTP 402 (quota or billing)."""

    counts_as_circuit_failure = True

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message, "QUOTA_EXCEEDED")
        self.details = {"status_code": 402, "body": body}


class ClientError(OpenRouterError):
    """Raised on non-retryable 4xx responses."""

    counts_as_circuit_failure = True

    def __init__(self, message: str, status_code: int, body: Optional[str] = None):
        super().__init__(message, "CLIENT_ERROR")
        self.details = {"status_code": status_code, "body": body}


class ServerError(OpenRouterError):
    """Raised when every attempt ended in a 5xx response."""

    counts_as_circuit_failure = True

    def __init__(self, message: str, status_code: int, attempts: int):
        super().__init__(message, "SERVER_ERROR")
        self.details = {"status_code": status_code, "attempts": attempts}


class TransportError(OpenRouterError):
    """Raised when every attempt failed at the transport level."""

    counts_as_circuit_failure = True

    def __init__(self, message: str, attempts: int):
        super().__init__(message, "TRANSPORT_ERROR")
        self.details = {"attempts": attempts}
