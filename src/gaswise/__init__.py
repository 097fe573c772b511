"""GasWise - cross-chain gas cost optimizer and swap orchestrator."""

__version__ = "0.1.0"
