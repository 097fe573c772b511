"""Multi-chain gas price tracker.

Holds the authoritative current gas price per chain, a short FIFO history
used only for trend analytics, and converts gas prices to USD via the native
asset's price feed.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Sequence

from gaswise.auth import Credential, Role, require_admin
from gaswise.chains import ChainConfig, ChainRegistry
from gaswise.errors import AuthorizationError, StalenessError, ValidationError
from gaswise.events import EventBus, EventType
from gaswise.oracles.feeds import PriceFeeds

logger = logging.getLogger(__name__)

HISTORY_SIZE = 24
BPS = 10_000


@dataclass
class GasPriceRecord:
    """Latest gas price written for a chain."""

    chain_id: int
    price: int  # wei per gas unit
    last_update_time: float
    valid: bool = True


@dataclass(frozen=True)
class TrendStats:
    """Statistics over the most recent gas price samples."""

    average: int = 0
    min: int = 0
    max: int = 0
    volatility_bps: int = 0
    is_increasing: bool = False


class GasPriceTracker:
    """Tracks gas prices for every registered chain."""

    def __init__(
        self,
        registry: ChainRegistry,
        feeds: PriceFeeds,
        events: EventBus,
        keeper: str,
        staleness_threshold: int = 300,
        max_gas_price: int = 10_000 * 10**9,
        history_size: int = HISTORY_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        if not keeper:
            raise ValidationError("Keeper identity must not be empty")
        if staleness_threshold <= 0:
            raise ValidationError("Staleness threshold must be positive")

        self.registry = registry
        self.feeds = feeds
        self.events = events
        self.keeper = keeper
        self.staleness_threshold = staleness_threshold
        self.max_gas_price = max_gas_price
        self.history_size = history_size
        self._clock = clock

        self._records: dict[int, GasPriceRecord] = {}
        self._history: dict[int, deque[int]] = {}

    # ======================
    # Writes
    # ======================

    def _check_updater(self, credential: Credential) -> None:
        if credential.is_admin:
            return
        if credential.role == Role.KEEPER and credential.subject == self.keeper:
            return
        logger.warning(f"Rejected gas price update from {credential.role.value}:{credential.subject}")
        raise AuthorizationError(f"'{credential.subject}' is not the gas price keeper")

    def _validate_batch(self, chain_ids: Sequence[int], prices: Sequence[int]) -> None:
        if len(chain_ids) != len(prices):
            raise ValidationError(
                f"Batch length mismatch: {len(chain_ids)} chains, {len(prices)} prices"
            )
        if not chain_ids:
            raise ValidationError("Empty gas price batch")

        for chain_id, price in zip(chain_ids, prices):
            if not self.registry.is_registered(chain_id):
                raise ValidationError(f"Chain {chain_id} is not registered")
            if price <= 0 or price >= self.max_gas_price:
                raise ValidationError(
                    f"Gas price {price} for chain {chain_id} outside (0, {self.max_gas_price})"
                )

    async def update_prices(
        self,
        credential: Credential,
        chain_ids: Sequence[int],
        prices: Sequence[int],
    ) -> None:
        """Write a batch of gas prices (all or nothing).

        Args:
            credential: Keeper or admin credential
            chain_ids: Chains being updated
            prices: Gas prices in wei, aligned with chain_ids
        """
        self._check_updater(credential)
        self._validate_batch(chain_ids, prices)

        now = self._clock()
        written: list[GasPriceRecord] = []

        for chain_id, price in zip(chain_ids, prices):
            previous = self._records.get(chain_id)
            # Timestamps never move backwards for a chain, even if the clock does.
            timestamp = max(now, previous.last_update_time) if previous else now

            record = GasPriceRecord(chain_id=chain_id, price=int(price), last_update_time=timestamp)
            self._records[chain_id] = record

            history = self._history.setdefault(chain_id, deque(maxlen=self.history_size))
            history.append(int(price))
            written.append(record)

        logger.info(f"Updated gas prices for {len(written)} chain(s)")

        for record in written:
            await self.events.publish(
                EventType.PRICE_UPDATED,
                record.chain_id,
                {"price": record.price},
                timestamp=record.last_update_time,
            )

    # ======================
    # Reads
    # ======================

    def get_price(self, chain_id: int) -> tuple[int, float]:
        """Current gas price (wei) and its update time."""
        self.registry.get(chain_id)
        record = self._records.get(chain_id)
        if record is None:
            raise StalenessError(f"No gas price recorded for chain {chain_id}")
        return record.price, record.last_update_time

    def get_record(self, chain_id: int) -> Optional[GasPriceRecord]:
        return self._records.get(chain_id)

    def get_all_prices(self) -> dict[int, GasPriceRecord]:
        """Snapshot of every recorded gas price."""
        return dict(self._records)

    async def get_usd_price(self, chain_id: int) -> Decimal:
        """Gas price in USD per unit of gas.

        Raises:
            StalenessError: No gas price yet, or the native asset feed is stale
        """
        chain = self.registry.get(chain_id)
        price_wei, _ = self.get_price(chain_id)
        native_usd = await self.feeds.native_usd(chain.native_asset)
        return Decimal(price_wei) * native_usd / (Decimal(10) ** chain.native_decimals)

    def get_history(self, chain_id: int) -> list[int]:
        self.registry.get(chain_id)
        return list(self._history.get(chain_id, ()))

    def get_trend(self, chain_id: int, window: int = HISTORY_SIZE) -> TrendStats:
        """Trend statistics over the last ``window`` samples.

        The window is clamped to the history length; no history gives
        zeroed stats.
        """
        samples = self.get_history(chain_id)
        window = min(max(window, 0), len(samples))
        if window == 0:
            return TrendStats()

        recent = samples[-window:]
        average = sum(recent) // window
        low = min(recent)
        high = max(recent)
        volatility = (high - low) * BPS // average if average > 0 else 0
        increasing = len(recent) >= 2 and recent[-1] > recent[-2]

        return TrendStats(
            average=average,
            min=low,
            max=high,
            volatility_bps=volatility,
            is_increasing=increasing,
        )

    def is_stale(self, chain_id: int) -> bool:
        record = self._records.get(chain_id)
        if record is None:
            return True
        return self._clock() - record.last_update_time > self.staleness_threshold

    # ======================
    # Administration
    # ======================

    async def add_chain(self, credential: Credential, chain: ChainConfig) -> None:
        """Register a new chain."""
        require_admin(credential, "add chains")
        self.registry.add(chain)
        await self.events.publish(
            EventType.CONFIGURATION_CHANGED,
            chain.chain_id,
            {"setting": "chain_added", "name": chain.name},
        )

    async def update_keeper(self, credential: Credential, keeper: str) -> None:
        """Hand the keeper role to a new identity."""
        require_admin(credential, "change the keeper")
        if not keeper or not keeper.strip():
            raise ValidationError("Keeper identity must not be empty")

        previous, self.keeper = self.keeper, keeper
        logger.info(f"Gas price keeper changed from {previous} to {keeper}")
        await self.events.publish(
            EventType.CONFIGURATION_CHANGED,
            "tracker",
            {"setting": "keeper", "old": previous, "new": keeper},
        )

    async def update_staleness_threshold(self, credential: Credential, seconds: int) -> None:
        require_admin(credential, "change the staleness threshold")
        if seconds <= 0:
            raise ValidationError(f"Staleness threshold must be positive, got {seconds}")

        previous, self.staleness_threshold = self.staleness_threshold, seconds
        await self.events.publish(
            EventType.CONFIGURATION_CHANGED,
            "tracker",
            {"setting": "staleness_threshold", "old": previous, "new": seconds},
        )
