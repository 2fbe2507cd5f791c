"""Market data fetchers backed by the CoinGecko API."""

import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from ... import config
from .base import DataFetcher, field_argument, field_domain

logger = logging.getLogger(__name__)

# Field domain -> key suffix in CoinGecko's /simple/price payload
PRICE_FIELDS: Dict[str, str] = {
    "price": "usd",
    "market_cap": "usd_market_cap",
    "volume_24h": "usd_24h_vol",
    "change_24h": "usd_24h_change",
}


class CoinGeckoClient:
    """Thin async wrapper around the CoinGecko REST API."""

    def __init__(
        self,
        base_url: str = config.COINGECKO_API_BASE,
        api_key: str = config.COINGECKO_API_KEY,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-pro-api-key"] = self.api_key
        return headers

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(endpoint, params=params)

        if response.status_code == 429:
            logger.warning("[Fetcher] CoinGecko rate limit exceeded")
        response.raise_for_status()
        return response.json()


class CoinGeckoPriceFetcher(DataFetcher):
    """Serves price, market cap, 24h volume and 24h change per token.

    Field keys look like "price:bitcoin"; all requested tokens are fetched in
    a single /simple/price call.
    """

    def __init__(self, client: Optional[CoinGeckoClient] = None):
        self.client = client or CoinGeckoClient()

    @property
    def domains(self) -> List[str]:
        return list(PRICE_FIELDS.keys())

    async def fetch(self, fields: Set[str]) -> Dict[str, Any]:
        coin_ids = sorted({field_argument(f) for f in fields if field_argument(f)})
        if not coin_ids:
            return {}

        payload = await self.client.get(
            "/simple/price",
            params={
                "ids": ",".join(coin_ids),
                "vs_currencies": "usd",
                "include_market_cap": "true",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
        )

        result: Dict[str, Any] = {}
        for field in fields:
            coin_id = field_argument(field)
            quote = payload.get(coin_id) if coin_id else None
            if not quote:
                continue
            value = quote.get(PRICE_FIELDS[field_domain(field)])
            if value is not None:
                result[field] = value

        logger.debug(f"[Fetcher] CoinGecko price: {len(result)}/{len(fields)} fields")
        return result


class CoinGeckoTrendingFetcher(DataFetcher):
    """Serves the "trending" field: coins currently trending on CoinGecko."""

    def __init__(self, client: Optional[CoinGeckoClient] = None, limit: int = 7):
        self.client = client or CoinGeckoClient()
        self.limit = limit

    @property
    def domains(self) -> List[str]:
        return ["trending"]

    async def fetch(self, fields: Set[str]) -> Dict[str, Any]:
        payload = await self.client.get("/search/trending")

        coins = []
        for entry in (payload.get("coins") or [])[: self.limit]:
            item = entry.get("item") or {}
            coins.append({
                "id": item.get("id"),
                "name": item.get("name"),
                "symbol": item.get("symbol"),
                "market_cap_rank": item.get("market_cap_rank"),
                "score": item.get("score"),
            })

        return {"trending": coins} if coins else {}
