"""Registry of USD price feeds for native gas assets and swap tokens."""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from gaswise.errors import StalenessError, ValidationError
from gaswise.oracles.base import PriceSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenFeed:
    """Price feed for an ERC20 token plus its decimals."""

    source: PriceSource
    decimals: int


class PriceFeeds:
    """Looks up price sources and enforces their staleness bound."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._native: dict[str, PriceSource] = {}
        self._tokens: dict[str, TokenFeed] = {}

    def set_native_feed(self, asset: str, source: PriceSource) -> None:
        """Register the USD feed for a native gas asset (ETH, POL, ...)."""
        self._native[asset.upper()] = source

    def set_token_feed(self, token: str, source: PriceSource, decimals: int = 18) -> None:
        """Register the USD feed for a token address."""
        if decimals < 0:
            raise ValidationError(f"Invalid decimals {decimals} for {token}")
        self._tokens[token.lower()] = TokenFeed(source=source, decimals=decimals)

    def has_token(self, token: str) -> bool:
        return token.lower() in self._tokens

    async def read(self, source: PriceSource) -> Decimal:
        """Read a source, rejecting stale or non-positive answers."""
        answer = await source.latest()
        age = answer.age(self._clock())

        if age > source.heartbeat:
            logger.warning(
                f"Stale price from {source.name}: {age:.0f}s old (heartbeat {source.heartbeat}s)"
            )
            raise StalenessError(
                f"Price from {source.name} is {age:.0f}s old, heartbeat is {source.heartbeat}s"
            )
        if answer.price <= 0:
            raise StalenessError(f"Price from {source.name} is not positive: {answer.price}")

        return answer.price

    async def native_usd(self, asset: str) -> Decimal:
        """USD price of one whole unit of a native asset."""
        source = self._native.get(asset.upper())
        if source is None:
            raise ValidationError(f"No price feed for native asset {asset}")
        return await self.read(source)

    async def token_usd_value(self, token: str, amount: int) -> Decimal:
        """USD value of ``amount`` base units of ``token``."""
        feed = self._tokens.get(token.lower())
        if feed is None:
            raise ValidationError(f"No price feed for token {token}")
        price = await self.read(feed.source)
        return Decimal(amount) * price / (Decimal(10) ** feed.decimals)
