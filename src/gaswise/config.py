"""Application configuration using pydantic-settings.

All tunables for the gas tracker, cost model and swap orchestrator live here,
including the bounds enforced on cost parameter updates.
"""

import os
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GASWISE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    network: str = Field(default="mainnet", description="Chain registry to load (mainnet or testnet)")
    current_chain_id: int = Field(default=1, description="Chain this node executes swaps on")

    # ======================
    # Credentials
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")
    keeper_token: str = Field(default="", description="Token accepted from the gas price keeper")
    keeper_id: str = Field(default="keeper", description="Identity of the authorized gas price keeper")
    bridge_token: str = Field(default="", description="Token accepted from the bridge relayer")

    # ======================
    # Gas price tracking
    # ======================
    staleness_threshold: int = Field(default=300, description="Seconds before a gas price is stale")
    history_size: int = Field(default=24, description="Gas price samples kept per chain")
    max_gas_price_wei: int = Field(
        default=10_000 * 10**9, description="Sanity upper bound for gas prices (10k gwei)"
    )
    keeper_interval: int = Field(default=60, description="Seconds between keeper polls")
    keeper_enabled: bool = Field(default=False, description="Poll chain RPCs for gas prices")

    # ======================
    # Price feeds
    # ======================
    price_api_url: str = Field(
        default="https://api.coingecko.com/api/v3", description="USD price API base URL"
    )
    price_api_key: str = Field(default="", description="Optional price API key")
    price_heartbeat: int = Field(default=3600, description="Max age in seconds of a USD price")
    price_cache_ttl: float = Field(default=60.0, description="Seconds a fetched USD price is reused")
    token_feeds: dict[str, str] = Field(
        default_factory=dict,
        description='Swap tokens as {"<address>": "<coingecko id>:<decimals>"} (JSON)',
    )

    # ======================
    # Safety
    # ======================
    dry_run: bool = Field(
        default=True, description="Use static prices and the simulated bridge (no real transfers)"
    )

    # ======================
    # Cost parameters (defaults)
    # ======================
    base_bridge_fee_usd: Decimal = Field(default=Decimal("2"), description="Flat bridge fee in USD")
    bridge_fee_percentage_bps: int = Field(default=10, description="Bridge fee on trade size (bps)")
    max_slippage_bps: int = Field(default=50, description="Worst-case slippage (bps)")
    mev_protection_fee_bps: int = Field(default=10, description="MEV protection haircut (bps)")
    gas_estimation_multiplier_bps: int = Field(
        default=12_000, description="Safety multiplier on gas estimates (bps, 10000 = 1.0x)"
    )

    # ======================
    # Cost parameter bounds
    # ======================
    max_base_bridge_fee_usd: Decimal = Field(default=Decimal("100"), description="Upper bound on flat bridge fee")
    max_bridge_fee_percentage_bps: int = Field(default=1_000, description="Bridge fee cap (10%)")
    max_slippage_bound_bps: int = Field(default=1_000, description="Slippage cap (10%)")
    max_mev_protection_fee_bps: int = Field(default=500, description="MEV fee cap (5%)")
    min_gas_multiplier_bps: int = Field(default=10_000, description="Gas multiplier floor (1.0x)")
    max_gas_multiplier_bps: int = Field(default=30_000, description="Gas multiplier cap (3.0x)")

    # ======================
    # Gas usage estimates
    # ======================
    same_chain_swap_gas: int = Field(default=150_000, description="Gas for a local swap")
    cross_chain_source_gas: int = Field(default=100_000, description="Gas on the source chain")
    cross_chain_bridge_gas: int = Field(default=200_000, description="Gas for the bridge message")
    cross_chain_destination_gas: int = Field(default=150_000, description="Gas for the remote swap")
    default_bridge_time: int = Field(default=600, description="Bridge time for unlisted pairs (s)")

    # ======================
    # User preference defaults
    # ======================
    default_min_savings_bps: int = Field(default=500, description="Default relative savings threshold")
    default_min_savings_usd: Decimal = Field(default=Decimal("10"), description="Default absolute savings")
    default_max_bridge_time: int = Field(default=1_800, description="Default bridge time limit (s)")

    # ======================
    # Orchestrator
    # ======================
    recovery_timeout: int = Field(default=3_600, description="Seconds before emergency recovery")
    swap_lock_timeout: float = Field(default=30.0, description="Max wait for a swap lock (s)")
    swap_deadline: int = Field(default=1_800, description="Default swap deadline offset (s)")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_testnet(self) -> bool:
        return self.network.lower() == "testnet"

    def get_rpc_url(self, chain_id: int) -> Optional[str]:
        """Get an RPC URL override for a chain (GASWISE_RPC_<chain_id>)."""
        return os.environ.get(f"GASWISE_RPC_{chain_id}")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "network": self.network,
            "dry_run": self.dry_run,
            "current_chain_id": self.current_chain_id,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "admin_token": "***" if self.admin_token else "(not set)",
            "keeper_token": "***" if self.keeper_token else "(not set)",
            "bridge_token": "***" if self.bridge_token else "(not set)",
            "tracker": {
                "staleness_threshold": self.staleness_threshold,
                "history_size": self.history_size,
                "keeper_enabled": self.keeper_enabled,
                "keeper_interval": self.keeper_interval,
            },
            "prices": {
                "api": self.price_api_url,
                "api_key": "***" if self.price_api_key else "(not set)",
                "heartbeat": self.price_heartbeat,
                "cache_ttl": self.price_cache_ttl,
            },
            "orchestrator": {
                "recovery_timeout": self.recovery_timeout,
                "swap_deadline": self.swap_deadline,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
