"""CoinGecko USD price source.

Uses the public simple/price endpoint, which reports the time each price was
last refreshed so heartbeat checks work the same as for on-chain feeds.
Answers are cached briefly to stay inside the free-tier rate limit.
API Docs: https://docs.coingecko.com/reference/simple-price
"""

import asyncio
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

import httpx

from gaswise.errors import StalenessError
from gaswise.oracles.base import PriceAnswer, PriceSource

logger = logging.getLogger(__name__)

COINGECKO_API = "https://api.coingecko.com/api/v3"

# Native gas assets -> CoinGecko coin ids
COIN_IDS = {
    "ETH": "ethereum",
    "POL": "polygon-ecosystem-token",
    "MATIC": "matic-network",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "WBTC": "wrapped-bitcoin",
}


class CoinGeckoPriceSource(PriceSource):
    """USD price for one CoinGecko coin id."""

    timeout_s = 15.0

    def __init__(
        self,
        coin_id: str,
        base_url: str = COINGECKO_API,
        api_key: Optional[str] = None,
        heartbeat: int = 3600,
        client: Optional[httpx.AsyncClient] = None,
        cache_ttl: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the source.

        Args:
            coin_id: CoinGecko coin id (e.g. "ethereum")
            base_url: API base URL
            api_key: Optional demo/pro API key
            heartbeat: Max accepted age of an answer in seconds
            client: Shared HTTP client (a short-lived one is used if omitted)
            cache_ttl: Seconds an answer is reused (capped at the heartbeat)
            clock: Time source for the cache
        """
        self.coin_id = coin_id
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.heartbeat = heartbeat
        self.cache_ttl = min(cache_ttl, heartbeat)
        self._client = client
        self._clock = clock
        self._cached: Optional[PriceAnswer] = None
        self._cached_at: float = 0.0
        self._fetch_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return f"coingecko:{self.coin_id}"

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def latest(self) -> PriceAnswer:
        # Concurrent callers wait for the one request in flight.
        async with self._fetch_lock:
            if self._cached is not None and self._clock() - self._cached_at < self.cache_ttl:
                return self._cached

            answer = await self._fetch()
            self._cached = answer
            self._cached_at = self._clock()
            return answer

    async def _fetch(self) -> PriceAnswer:
        params = {
            "ids": self.coin_id,
            "vs_currencies": "usd",
            "include_last_updated_at": "true",
        }

        try:
            if self._client is not None:
                response = await self._client.get(
                    f"{self.base_url}/simple/price",
                    params=params,
                    headers=self._build_headers(),
                    timeout=self.timeout_s,
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.get(
                        f"{self.base_url}/simple/price",
                        params=params,
                        headers=self._build_headers(),
                    )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"CoinGecko request for {self.coin_id} failed: {e}")
            raise StalenessError(f"No USD price available for {self.coin_id}") from e

        return self._parse(data)

    def _parse(self, data) -> PriceAnswer:
        entry = data.get(self.coin_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict) or "usd" not in entry or "last_updated_at" not in entry:
            raise StalenessError(f"CoinGecko returned no USD price for {self.coin_id}")

        try:
            price = Decimal(str(entry["usd"]))
            updated_at = float(entry["last_updated_at"])
        except (InvalidOperation, TypeError, ValueError) as e:
            raise StalenessError(f"Malformed CoinGecko price for {self.coin_id}") from e
        if not price.is_finite():
            raise StalenessError(f"Malformed CoinGecko price for {self.coin_id}: {price}")

        return PriceAnswer(price=price, updated_at=updated_at)
