"""Shared fakes for the query service tests."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import pytest

from cryptoquery import config
from cryptoquery.services.assistant import (
    ConversationStore,
    FetcherRegistry,
    Orchestrator,
    RateLimiter,
    TTLCache,
)
from cryptoquery.services.assistant.base import DataFetcher
from cryptoquery.services.assistant.classifier import KeywordIntentClassifier
from cryptoquery.services.assistant.responder import TemplateResponseGenerator


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingFetcher(DataFetcher):
    """Serves fixed values and records every call it receives."""

    def __init__(
        self,
        domains: List[str],
        values: Dict[str, Any],
        fail: bool = False,
        delay: float = 0.0,
    ):
        self._domains = domains
        self.values = values
        self.fail = fail
        self.delay = delay
        self.calls: List[Set[str]] = []

    @property
    def domains(self) -> List[str]:
        return self._domains

    @property
    def name(self) -> str:
        return "recording:" + ",".join(self._domains)

    async def fetch(self, fields: Set[str]) -> Dict[str, Any]:
        self.calls.append(set(fields))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("upstream exploded")
        return {f: self.values[f] for f in fields if f in self.values}


PRICES = {
    "price:bitcoin": 65000.0,
    "price:ethereum": 3200.0,
    "market_cap:bitcoin": 1.28e12,
    "market_cap:ethereum": 3.85e11,
    "change_24h:bitcoin": 1.5,
    "change_24h:ethereum": -0.8,
    "volume_24h:bitcoin": 3.1e10,
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def price_fetcher() -> RecordingFetcher:
    return RecordingFetcher(["price", "market_cap", "volume_24h", "change_24h"], PRICES)


def make_orchestrator(
    clock: FakeClock,
    *fetchers: DataFetcher,
    classifier: Optional[Any] = None,
    responder: Optional[Any] = None,
    max_requests: int = 20,
    fetch_timeout: float = 1.0,
) -> Orchestrator:
    registry = FetcherRegistry()
    for fetcher in fetchers:
        registry.register(fetcher)

    return Orchestrator(
        cache=TTLCache(ttl_seconds=60, clock=clock),
        rate_limiter=RateLimiter(max_requests=max_requests, window_seconds=60, clock=clock),
        conversations=ConversationStore(max_topics=5, max_messages=5, context_expiry_seconds=1800, clock=clock),
        classifier=classifier or KeywordIntentClassifier(),
        fetchers=registry,
        responder=responder or TemplateResponseGenerator(),
        fetch_timeout=fetch_timeout,
    )


def route_gemini_to(monkeypatch, handler: Callable[[httpx.Request], httpx.Response]) -> None:
    """Send Gemini calls to `handler` instead of the network, with a dummy key set."""
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
