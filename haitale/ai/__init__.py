"""AI module for HaiTale.

This module wraps the OpenRouter chat-completion API:
- Retry policy with exponential backoff, jitter and Retry-After support
- Circuit breaker for repeated upstream failures
- Bounded TTL response cache
- Typed error hierarchy for every failure class
"""
