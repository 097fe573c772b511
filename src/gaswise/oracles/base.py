"""Abstract USD price source interface."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceAnswer:
    """A USD price reported by a source, with the time it was observed."""

    price: Decimal  # USD per whole unit of the asset
    updated_at: float  # Unix timestamp

    def age(self, now: float) -> float:
        return now - self.updated_at


class PriceSource(ABC):
    """A feed of USD prices for one asset.

    Consumers must reject answers older than ``heartbeat`` seconds.
    """

    heartbeat: int = 3600

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier."""
        pass

    @abstractmethod
    async def latest(self) -> PriceAnswer:
        """Fetch the most recent answer."""
        pass


class StaticPriceSource(PriceSource):
    """Price source with a fixed, settable answer.

    Used in dry-run mode and as a substitutable fake in tests.
    """

    def __init__(
        self,
        name: str,
        price: Decimal,
        heartbeat: int = 3600,
        updated_at: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._name = name
        self._price = Decimal(price)
        self._updated_at = updated_at
        self._clock = clock
        self.heartbeat = heartbeat

    @property
    def name(self) -> str:
        return self._name

    def set_price(self, price: Decimal, updated_at: Optional[float] = None) -> None:
        """Replace the answer; ``updated_at=None`` means always fresh."""
        self._price = Decimal(price)
        self._updated_at = updated_at

    async def latest(self) -> PriceAnswer:
        updated_at = self._clock() if self._updated_at is None else self._updated_at
        return PriceAnswer(price=self._price, updated_at=updated_at)
