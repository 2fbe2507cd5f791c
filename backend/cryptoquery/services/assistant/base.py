"""Collaborator protocols and the fetcher registry."""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set, Tuple, runtime_checkable

from ...schemas.conversation import ConversationContext, QueryAnalysis


def field_domain(field: str) -> str:
    """Domain part of a field key: "price:bitcoin" -> "price"."""
    return field.split(":", 1)[0]


def field_argument(field: str) -> Optional[str]:
    """Argument part of a field key: "price:bitcoin" -> "bitcoin"."""
    parts = field.split(":", 1)
    return parts[1] if len(parts) == 2 else None


@runtime_checkable
class IntentClassifier(Protocol):
    """Turns a raw query into intent and the data fields it needs."""

    async def classify(self, query: str, context: ConversationContext) -> QueryAnalysis:
        ...


@runtime_checkable
class ResponseGenerator(Protocol):
    """Writes the reply text from the query, its analysis and the gathered data."""

    async def generate(self, query: str, analysis: QueryAnalysis, data: Dict[str, Any]) -> str:
        ...


@runtime_checkable
class TokenVerifier(Protocol):
    """Checks a bearer token; returns the token's claims or None if invalid."""

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        ...


class DataFetcher(ABC):
    """Base class for fetchers serving one data domain."""

    @property
    @abstractmethod
    def domains(self) -> List[str]:
        """Field domains this fetcher serves (e.g. ["price", "market_cap"])."""
        pass

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def fetch(self, fields: Set[str]) -> Dict[str, Any]:
        """Fetch values for `fields`.

        Returns a mapping from field key to value. Fields the upstream has no
        data for are left out rather than set to None.
        """
        pass


class FetcherRegistry:
    """Registry mapping field domains to fetchers."""

    def __init__(self):
        self._fetchers: Dict[str, DataFetcher] = {}
        self._domain_map: Dict[str, str] = {}

    def register(self, fetcher: DataFetcher) -> None:
        self._fetchers[fetcher.name] = fetcher
        for domain in fetcher.domains:
            self._domain_map[domain] = fetcher.name

    def get_fetcher_for_field(self, field: str) -> Optional[DataFetcher]:
        fetcher_name = self._domain_map.get(field_domain(field))
        if fetcher_name:
            return self._fetchers.get(fetcher_name)
        return None

    def group_fields(self, fields: Iterable[str]) -> Tuple[Dict[str, Set[str]], Set[str]]:
        """Split fields by the fetcher that serves them.

        Returns:
            (fields keyed by fetcher name, fields no fetcher serves)
        """
        grouped: Dict[str, Set[str]] = defaultdict(set)
        unserved: Set[str] = set()

        for field in fields:
            fetcher = self.get_fetcher_for_field(field)
            if fetcher is None:
                unserved.add(field)
            else:
                grouped[fetcher.name].add(field)

        return dict(grouped), unserved

    def get_fetcher(self, name: str) -> Optional[DataFetcher]:
        return self._fetchers.get(name)

    def list_fetchers(self) -> List[str]:
        return list(self._fetchers.keys())
