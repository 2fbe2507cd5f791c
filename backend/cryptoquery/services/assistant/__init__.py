"""Request-coordination layer for the crypto query assistant.

Three in-memory stores and the orchestrator that composes them:

    Orchestrator
    ├── RateLimiter        fixed-window admission per client
    ├── ConversationStore  per-session topics, preferences, recent turns
    ├── TTLCache           expiring field cache with composite keys
    └── collaborators
        ├── IntentClassifier   (keyword rules, optional Gemini)
        ├── FetcherRegistry    (CoinGecko price / trending)
        └── ResponseGenerator  (templates, optional Gemini)

Main entry point:
    build_orchestrator() -> Orchestrator
"""

from typing import Optional

from ... import config
from .base import DataFetcher, FetcherRegistry, IntentClassifier, ResponseGenerator, TokenVerifier
from .cache import TTLCache
from .classifier import GeminiIntentClassifier, KeywordIntentClassifier
from .errors import (
    AuthError,
    QueryServiceError,
    QueryValidationError,
    RateLimitedError,
    SessionNotFoundError,
    UpstreamFetchError,
)
from .fetchers import CoinGeckoClient, CoinGeckoPriceFetcher, CoinGeckoTrendingFetcher
from .memory import ConversationStore
from .orchestrator import Orchestrator
from .rate_limit import RateLimiter
from .responder import GeminiResponseGenerator, TemplateResponseGenerator


def default_fetchers(client: Optional[CoinGeckoClient] = None) -> FetcherRegistry:
    client = client or CoinGeckoClient()
    registry = FetcherRegistry()
    registry.register(CoinGeckoPriceFetcher(client))
    registry.register(CoinGeckoTrendingFetcher(client))
    return registry


def build_orchestrator(use_llm: bool = config.USE_LLM) -> Orchestrator:
    """Wire the default stores and collaborators together."""
    if use_llm:
        classifier = GeminiIntentClassifier()
        responder = GeminiResponseGenerator()
    else:
        classifier = KeywordIntentClassifier()
        responder = TemplateResponseGenerator()

    return Orchestrator(
        cache=TTLCache(),
        rate_limiter=RateLimiter(),
        conversations=ConversationStore(),
        classifier=classifier,
        fetchers=default_fetchers(),
        responder=responder,
    )


__all__ = [
    "AuthError",
    "CoinGeckoClient",
    "ConversationStore",
    "DataFetcher",
    "FetcherRegistry",
    "IntentClassifier",
    "Orchestrator",
    "QueryServiceError",
    "QueryValidationError",
    "RateLimitedError",
    "RateLimiter",
    "ResponseGenerator",
    "SessionNotFoundError",
    "TTLCache",
    "TokenVerifier",
    "UpstreamFetchError",
    "build_orchestrator",
    "default_fetchers",
]
