"""Bridge transport interface.

The orchestrator hands transfers to a BridgeTransport and never waits for
confirmation: completion and failure are reported later through the
orchestrator's lifecycle calls by the bridge relayer.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from gaswise.errors import BridgeError

logger = logging.getLogger(__name__)


class BridgeLeg(str, Enum):
    OUTBOUND = "outbound"
    RETURN = "return"


@dataclass(frozen=True)
class BridgeTransfer:
    """A value transfer between two chains."""

    swap_id: str
    leg: BridgeLeg
    source_token: str
    destination_token: str
    amount: int
    source_chain: int
    destination_chain: int
    recipient: str
    deadline: float
    data: dict = field(default_factory=dict)


class BridgeTransport(ABC):
    """Abstract base class for bridge integrations."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Bridge identity; lifecycle callbacks must come from this identity."""
        pass

    @abstractmethod
    async def send(self, transfer: BridgeTransfer) -> str:
        """
        Dispatch a transfer.

        Args:
            transfer: Transfer to submit

        Returns:
            Bridge reference (message id / tx hash) for tracking

        Raises:
            BridgeError: If the transfer could not be submitted
        """
        pass


class SimulatedBridge(BridgeTransport):
    """In-memory bridge for dry-run mode and tests.

    Records every transfer; delivery is driven externally by calling the
    orchestrator's lifecycle methods with this bridge's credential.
    """

    def __init__(self, name: str = "simulated-bridge", fail_with: Optional[str] = None):
        self._name = name
        self.fail_with = fail_with
        self.transfers: list[BridgeTransfer] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, transfer: BridgeTransfer) -> str:
        if self.fail_with:
            logger.warning(f"Simulated bridge rejecting {transfer.swap_id}: {self.fail_with}")
            raise BridgeError(self.fail_with, transfer.swap_id)

        digest = hashlib.sha256(
            f"{transfer.swap_id}:{transfer.leg.value}:{len(self.transfers)}".encode()
        ).hexdigest()
        reference = f"sim-{digest[:16]}"
        self.transfers.append(transfer)

        logger.info(
            f"[SIMULATED] {transfer.leg.value} transfer {transfer.amount} "
            f"{transfer.source_chain}->{transfer.destination_chain} ref={reference}"
        )
        return reference

    def transfers_for(self, swap_id: str) -> list[BridgeTransfer]:
        return [t for t in self.transfers if t.swap_id == swap_id]
