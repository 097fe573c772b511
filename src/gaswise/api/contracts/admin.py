"""Administration contracts."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class ChainConfigurationRequest(BaseModel):
    enabled: bool = Field(..., description="Accept the chain as a swap destination")


class CostParametersRequest(BaseModel):
    """Partial update; omitted fields keep their current value."""

    base_bridge_fee_usd: Optional[Decimal] = None
    bridge_fee_percentage_bps: Optional[int] = None
    max_slippage_bps: Optional[int] = None
    mev_protection_fee_bps: Optional[int] = None
    gas_estimation_multiplier_bps: Optional[int] = None


class CostParametersResponse(BaseModel):
    base_bridge_fee_usd: Decimal
    bridge_fee_percentage_bps: int
    max_slippage_bps: int
    mev_protection_fee_bps: int
    gas_estimation_multiplier_bps: int


class BridgeTimeRequest(BaseModel):
    source_chain: int
    destination_chain: int
    seconds: int = Field(..., gt=0)


class StalenessRequest(BaseModel):
    seconds: int = Field(..., gt=0)


class KeeperRequest(BaseModel):
    keeper: str = Field(..., min_length=1)


class StatisticsResponse(BaseModel):
    """Swap totals plus system status."""

    total_swaps: int
    successful_swaps: int
    failed_swaps: int
    total_execution_time: float
    average_execution_time: float
    paused: bool
    disabled_chains: list[int] = Field(default_factory=list)


class EventInfo(BaseModel):
    type: str
    entity_id: str
    timestamp: float
    data: dict[str, Any] = Field(default_factory=dict)


class EventListResponse(BaseModel):
    events: list[EventInfo] = Field(default_factory=list)
