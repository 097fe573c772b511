"""Gas price keeper.

Polls each registered chain's RPC endpoint for eth_gasPrice and pushes the
results to the tracker as one batch, using the keeper credential.

Usage:
    GASWISE_KEEPER_ENABLED=true gaswise

Environment variables:
    GASWISE_KEEPER_INTERVAL: Seconds between polls (default: 60)
    GASWISE_RPC_<chain_id>: Override the RPC URL for a chain
"""

import asyncio
import logging
from typing import Callable, Optional

import httpx

from gaswise.auth import Credential
from gaswise.chains import ChainConfig
from gaswise.tracker import GasPriceTracker

logger = logging.getLogger(__name__)


class GasPriceKeeper:
    """Periodically refreshes tracker gas prices from chain RPCs."""

    timeout_s = 10.0

    def __init__(
        self,
        tracker: GasPriceTracker,
        credential: Credential,
        interval: int = 60,
        rpc_url_for: Optional[Callable[[int], Optional[str]]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the keeper.

        Args:
            tracker: Tracker to push prices into
            credential: Keeper credential presented on every batch
            interval: Seconds between polls
            rpc_url_for: RPC override lookup by chain id (falls back to the
                chain's configured rpc_url)
            client: Shared HTTP client (a short-lived one per poll if omitted)
        """
        self.tracker = tracker
        self.credential = credential
        self.interval = interval
        self._rpc_url_for = rpc_url_for or (lambda chain_id: None)
        self._client = client

    def rpc_url(self, chain: ChainConfig) -> str:
        return self._rpc_url_for(chain.chain_id) or chain.rpc_url

    async def fetch_gas_price(self, client: httpx.AsyncClient, chain: ChainConfig) -> Optional[int]:
        """Current gas price in wei, or None if the RPC did not answer."""
        try:
            response = await client.post(
                self.rpc_url(chain),
                json={
                    "jsonrpc": "2.0",
                    "method": "eth_gasPrice",
                    "params": [],
                    "id": 1,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"eth_gasPrice failed for {chain.name} ({chain.chain_id}): {e}")
            return None

        if "error" in data or "result" not in data:
            logger.warning(f"RPC error from {chain.name}: {data.get('error')}")
            return None

        try:
            return int(data["result"], 16)
        except (TypeError, ValueError):
            logger.warning(f"Malformed gas price from {chain.name}: {data['result']!r}")
            return None

    async def poll_once(self) -> dict[int, int]:
        """Run a single poll cycle.

        Returns:
            Gas prices written, by chain id
        """
        chains = list(self.tracker.registry)
        if self._client is not None:
            results = await asyncio.gather(*(self.fetch_gas_price(self._client, c) for c in chains))
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                results = await asyncio.gather(*(self.fetch_gas_price(client, c) for c in chains))

        prices: dict[int, int] = {}
        for chain, price in zip(chains, results):
            if price is None:
                continue
            # The tracker rejects the whole batch on one bad price.
            if price <= 0 or price >= self.tracker.max_gas_price:
                logger.warning(f"Dropping out-of-range gas price {price} for chain {chain.chain_id}")
                continue
            prices[chain.chain_id] = price

        if not prices:
            logger.warning("No gas prices fetched this cycle")
            return {}

        await self.tracker.update_prices(self.credential, list(prices), list(prices.values()))
        return prices

    async def run(self) -> None:
        """Run continuous polling loop."""
        logger.info(f"Starting gas price keeper (interval: {self.interval}s)")

        while True:
            try:
                prices = await self.poll_once()
                if prices:
                    logger.info(f"Keeper pushed gas prices for {len(prices)} chain(s)")
            except Exception as e:
                logger.error(f"Keeper error: {e}")

            await asyncio.sleep(self.interval)
