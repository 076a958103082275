"""Configuration and logging setup for HaiTale.

Settings come from environment variables (a ``.env`` file is loaded first)
and can be overridden by a YAML file.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class HaitaleConfig(BaseModel):
    """Configuration for the recommendation pipeline."""

    # Environment-backed defaults go through the same constraints as explicit values
    model_config = ConfigDict(validate_default=True)

    # OpenRouter API
    api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENROUTER_API_KEY") or None,
        description="OpenRouter API key; AI recommendations are disabled without it",
    )
    api_url: str = Field(
        default_factory=lambda: os.getenv(
            "OPENROUTER_API_URL", "https://openrouter.ai/api/v1/chat/completions"
        ),
        description="Chat-completion endpoint",
    )
    model: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini"),
        description="Model used for recommendations",
    )
    site_url: str = Field(
        default_factory=lambda: os.getenv(
            "OPENROUTER_SITE_URL", "https://github.com/haitale/haitale"
        ),
        description="Sent as HTTP-Referer",
    )
    site_name: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_SITE_NAME", "HaiTale"),
        description="Sent as X-Title",
    )
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("OPENROUTER_TIMEOUT_SECONDS", "30")),
        gt=0,
        description="Per-request HTTP timeout",
    )

    # Retry
    retry_max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("OPENROUTER_RETRY_MAX_ATTEMPTS", "3")),
        ge=1,
        description="Attempts per completion request",
    )
    retry_initial_backoff_ms: float = Field(
        default_factory=lambda: float(
            os.getenv("OPENROUTER_RETRY_INITIAL_BACKOFF_MS", "1000")
        ),
        gt=0,
        description="First backoff delay",
    )
    retry_max_backoff_ms: float = Field(
        default_factory=lambda: float(os.getenv("OPENROUTER_RETRY_MAX_BACKOFF_MS", "10000")),
        gt=0,
        description="Backoff cap",
    )
    retry_jitter_fraction: float = Field(
        default_factory=lambda: float(os.getenv("OPENROUTER_RETRY_JITTER_FRACTION", "0.2")),
        ge=0.0,
        le=1.0,
        description="Maximum extra random delay as a fraction of the wait",
    )

    # Response cache
    cache_enabled: bool = Field(
        default_factory=lambda: _env_bool("OPENROUTER_CACHE_ENABLED", "true"),
        description="Cache model responses",
    )
    cache_ttl_seconds: float = Field(
        default_factory=lambda: float(os.getenv("OPENROUTER_CACHE_TTL_SECONDS", "3600")),
        ge=0,
        description="Lifetime of a cached response",
    )
    cache_max_entries: int = Field(
        default_factory=lambda: int(os.getenv("OPENROUTER_CACHE_MAX_ENTRIES", "100")),
        ge=1,
        description="Maximum cached responses",
    )

    # Circuit breaker
    circuit_enabled: bool = Field(
        default_factory=lambda: _env_bool("OPENROUTER_CIRCUIT_ENABLED", "true"),
        description="Enable the circuit breaker",
    )
    circuit_failure_threshold: int = Field(
        default_factory=lambda: int(
            os.getenv("OPENROUTER_CIRCUIT_FAILURE_THRESHOLD", "5")
        ),
        ge=1,
        description="Consecutive failures that open the circuit",
    )
    circuit_reset_timeout_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("OPENROUTER_CIRCUIT_RESET_TIMEOUT_SECONDS", "60")
        ),
        ge=0,
        description="Time the circuit stays open",
    )

    # Pre-filter
    prefilter_enabled: bool = Field(
        default_factory=lambda: _env_bool("HAITALE_PREFILTER_ENABLED", "true"),
        description="Narrow the catalog before calling the model",
    )
    prefilter_max_candidates: int = Field(
        default_factory=lambda: int(os.getenv("HAITALE_PREFILTER_MAX_CANDIDATES", "50")),
        ge=1,
        description="Maximum candidates sent to the model",
    )
    prefilter_threshold: float = Field(
        default_factory=lambda: float(os.getenv("HAITALE_PREFILTER_THRESHOLD", "0.15")),
        description="Minimum relevance score to survive pre-filtering",
    )
    description_max_length: int = Field(
        default_factory=lambda: int(os.getenv("HAITALE_DESCRIPTION_MAX_LENGTH", "100")),
        ge=1,
        description="Per-candidate description length in the prompt",
    )

    # Catalog
    catalog_path: str = Field(
        default_factory=lambda: os.getenv("HAITALE_CATALOG_PATH", "mods.json"),
        description="Catalog file (JSON or YAML)",
    )

    @model_validator(mode="after")
    def _raise_backoff_cap(self) -> "HaitaleConfig":
        if self.retry_max_backoff_ms < self.retry_initial_backoff_ms:
            self.retry_max_backoff_ms = self.retry_initial_backoff_ms
        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "HaitaleConfig":
        """Load configuration, overlaying a YAML mapping on environment defaults.

        Args:
            path: YAML file whose keys are field names

        Returns:
            Validated configuration
        """
        with open(Path(path).expanduser(), encoding="utf-8") as f:
            overrides: Optional[Dict[str, Any]] = yaml.safe_load(f)

        if overrides is None:
            overrides = {}
        if not isinstance(overrides, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        return cls(**overrides)


def configure_logging(verbose: bool = False) -> None:
    """Configure structured logging to stderr.

    Args:
        verbose: Log at DEBUG instead of WARNING
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
