"""HaiTale - describe a world, get mod recommendations.

Packages:
- catalog: catalog entry model and catalog providers
- recommender: relevance scoring, pre-filtering, response parsing and orchestration
- ai: resilient OpenRouter client with retries, circuit breaker and response cache
"""

__version__ = "0.1.0"
