"""Chain registry for every network the optimizer may route to.

Supports 6 EVM networks on mainnet and their public testnets:
- Ethereum (L1)
- Arbitrum, Optimism, Base, Unichain (rollups)
- Polygon PoS

Registry order matters: the optimal-chain search walks chains in the order
they were registered and the first candidate wins ties on cost.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from gaswise.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain."""

    chain_id: int
    name: str
    native_asset: str  # Symbol of the asset gas is paid in
    rpc_url: str
    explorer_url: str = ""
    native_decimals: int = 18
    is_testnet: bool = False

    def validate(self) -> None:
        """Reject malformed chain definitions."""
        if self.chain_id <= 0:
            raise ValidationError(f"Chain id must be positive, got {self.chain_id}")
        if not self.name.strip():
            raise ValidationError(f"Chain {self.chain_id} has no name")
        if not self.native_asset.strip():
            raise ValidationError(f"Chain {self.chain_id} has no native asset")
        if self.native_decimals <= 0:
            raise ValidationError(f"Chain {self.chain_id} has invalid decimals {self.native_decimals}")


# ======================
# Chain Configurations
# ======================

MAINNET_CHAINS: list[ChainConfig] = [
    ChainConfig(
        chain_id=1,
        name="Ethereum",
        native_asset="ETH",
        rpc_url="https://eth.llamarpc.com",
        explorer_url="https://etherscan.io",
    ),
    ChainConfig(
        chain_id=42161,
        name="Arbitrum One",
        native_asset="ETH",
        rpc_url="https://arb1.arbitrum.io/rpc",
        explorer_url="https://arbiscan.io",
    ),
    ChainConfig(
        chain_id=10,
        name="Optimism",
        native_asset="ETH",
        rpc_url="https://mainnet.optimism.io",
        explorer_url="https://optimistic.etherscan.io",
    ),
    ChainConfig(
        chain_id=137,
        name="Polygon",
        native_asset="POL",
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
    ),
    ChainConfig(
        chain_id=8453,
        name="Base",
        native_asset="ETH",
        rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
    ),
    ChainConfig(
        chain_id=130,
        name="Unichain",
        native_asset="ETH",
        rpc_url="https://mainnet.unichain.org",
        explorer_url="https://uniscan.xyz",
    ),
]

TESTNET_CHAINS: list[ChainConfig] = [
    ChainConfig(
        chain_id=11155111,
        name="Ethereum Sepolia",
        native_asset="ETH",
        rpc_url="https://rpc.sepolia.org",
        explorer_url="https://sepolia.etherscan.io",
        is_testnet=True,
    ),
    ChainConfig(
        chain_id=11155420,
        name="Optimism Sepolia",
        native_asset="ETH",
        rpc_url="https://sepolia.optimism.io",
        explorer_url="https://sepolia-optimism.etherscan.io",
        is_testnet=True,
    ),
    ChainConfig(
        chain_id=421614,
        name="Arbitrum Sepolia",
        native_asset="ETH",
        rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
        explorer_url="https://sepolia.arbiscan.io",
        is_testnet=True,
    ),
    ChainConfig(
        chain_id=84532,
        name="Base Sepolia",
        native_asset="ETH",
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        is_testnet=True,
    ),
    ChainConfig(
        chain_id=80002,
        name="Polygon Amoy",
        native_asset="POL",
        rpc_url="https://rpc-amoy.polygon.technology",
        explorer_url="https://www.oklink.com/amoy",
        is_testnet=True,
    ),
    ChainConfig(
        chain_id=1301,
        name="Unichain Sepolia",
        native_asset="ETH",
        rpc_url="https://sepolia.unichain.org",
        explorer_url="https://sepolia.uniscan.xyz",
        is_testnet=True,
    ),
]

# Typical bridge latency in seconds, keyed by (source, destination).
# Lookups fall back to the reverse direction, then to the registry default.
BRIDGE_TIMES: dict[tuple[int, int], int] = {
    (1, 42161): 600,
    (1, 10): 300,
    (1, 8453): 300,
    (1, 130): 300,
    (1, 137): 1_200,
    (42161, 10): 180,
    (42161, 8453): 180,
    (10, 8453): 120,
    (11155111, 421614): 600,
    (11155111, 11155420): 300,
    (11155111, 84532): 300,
    (11155111, 1301): 300,
    (11155111, 80002): 1_200,
}


class ChainRegistry:
    """Ordered registry of supported chains plus the bridge-time table."""

    def __init__(
        self,
        chains: Optional[Iterable[ChainConfig]] = None,
        bridge_times: Optional[dict[tuple[int, int], int]] = None,
        default_bridge_time: int = 600,
    ):
        self._chains: dict[int, ChainConfig] = {}
        self._bridge_times: dict[tuple[int, int], int] = dict(bridge_times or {})
        self.default_bridge_time = default_bridge_time

        for chain in chains or []:
            self.add(chain)

    def add(self, chain: ChainConfig) -> None:
        """Register a chain. Ids must be unique."""
        chain.validate()
        if chain.chain_id in self._chains:
            raise ValidationError(f"Chain {chain.chain_id} is already registered")
        self._chains[chain.chain_id] = chain
        logger.info(f"Registered chain {chain.chain_id} ({chain.name})")

    def get(self, chain_id: int) -> ChainConfig:
        """Get a registered chain or raise ValidationError."""
        chain = self._chains.get(chain_id)
        if chain is None:
            raise ValidationError(f"Chain {chain_id} is not registered")
        return chain

    def is_registered(self, chain_id: int) -> bool:
        return chain_id in self._chains

    @property
    def chain_ids(self) -> list[int]:
        """Registered chain ids in registration order."""
        return list(self._chains)

    def bridge_time(self, source: int, destination: int) -> int:
        """Expected bridge latency between two chains (0 for the same chain)."""
        if source == destination:
            return 0
        if (source, destination) in self._bridge_times:
            return self._bridge_times[(source, destination)]
        if (destination, source) in self._bridge_times:
            return self._bridge_times[(destination, source)]
        return self.default_bridge_time

    def set_bridge_time(self, source: int, destination: int, seconds: int) -> None:
        self.get(source)
        self.get(destination)
        if source == destination:
            raise ValidationError("Bridge time needs two different chains")
        if seconds <= 0:
            raise ValidationError(f"Bridge time must be positive, got {seconds}")
        self._bridge_times[(source, destination)] = seconds

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._chains

    def __iter__(self) -> Iterator[ChainConfig]:
        return iter(list(self._chains.values()))

    def __len__(self) -> int:
        return len(self._chains)


def create_registry(testnet: bool = False, default_bridge_time: int = 600) -> ChainRegistry:
    """Build the default registry for mainnet or testnet."""
    chains = TESTNET_CHAINS if testnet else MAINNET_CHAINS
    return ChainRegistry(chains, BRIDGE_TIMES, default_bridge_time=default_bridge_time)
