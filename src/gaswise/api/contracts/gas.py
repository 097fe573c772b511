"""Gas price request and response contracts."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class GasPriceUpdateRequest(BaseModel):
    """Batch of gas prices pushed by the keeper."""

    chain_ids: list[int] = Field(..., description="Chains being updated")
    prices: list[int] = Field(..., description="Gas prices in wei, aligned with chain_ids")


class GasPriceResponse(BaseModel):
    """Current gas price for one chain."""

    chain_id: int
    name: str
    price_wei: Optional[int] = Field(None, description="Latest gas price (None if never written)")
    last_update_time: Optional[float] = None
    is_stale: bool
    usd_per_gas: Optional[Decimal] = Field(None, description="Gas price in USD per gas unit")


class GasPriceListResponse(BaseModel):
    success: bool = True
    prices: list[GasPriceResponse] = Field(default_factory=list)


class TrendResponse(BaseModel):
    """Trend statistics over recent samples."""

    chain_id: int
    window: int
    samples: int
    average: int
    min: int
    max: int
    volatility_bps: int
    is_increasing: bool


class ChainInfo(BaseModel):
    """A registered chain."""

    chain_id: int
    name: str
    native_asset: str
    explorer_url: str
    is_testnet: bool
    enabled: bool = Field(..., description="Accepted as a swap destination")


class ChainListResponse(BaseModel):
    success: bool = True
    chains: list[ChainInfo] = Field(default_factory=list)
