"""Quote, preference and savings contracts."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class QuoteRequest(BaseModel):
    """A swap attempt to be quoted."""

    user: str = Field(..., min_length=1, description="User wallet address")
    token_in: str = Field(..., min_length=1, description="Input token address")
    token_out: str = Field(..., min_length=1, description="Output token address")
    amount_in: int = Field(..., gt=0, description="Input amount in base units")
    current_chain: Optional[int] = Field(None, description="Local chain (node default if None)")


class ExecuteRequest(QuoteRequest):
    recipient: Optional[str] = Field(None, description="Receiver of the output (defaults to user)")


class QuoteResponse(BaseModel):
    """Optimization quote for a swap attempt."""

    original_chain_id: int
    optimized_chain_id: int
    original_cost_usd: Optional[Decimal] = Field(None, description="Hidden if the user disabled USD display")
    optimized_cost_usd: Optional[Decimal] = None
    savings_usd: Optional[Decimal] = None
    savings_percentage_bps: int
    estimated_bridge_time: int
    should_optimize: bool
    reliable: bool = Field(..., description="False when the quote is advisory (stale data)")


class ExecuteResponse(BaseModel):
    """Decision taken for a swap attempt."""

    quote: QuoteResponse
    swap_id: Optional[str] = None
    execute_locally: bool
    reason: str


class PreferencesRequest(BaseModel):
    min_savings_threshold_bps: int = Field(500, ge=0, le=10_000)
    min_absolute_savings_usd: Decimal = Field(Decimal("10"), ge=0)
    max_acceptable_bridge_time: int = Field(1_800, ge=0)
    enable_cross_chain_optimization: bool = True
    enable_usd_display: bool = True


class PreferencesResponse(PreferencesRequest):
    user: str


class SavingsResponse(BaseModel):
    """Savings realized by a user's completed cross-chain swaps."""

    user: str
    total_savings_usd: Decimal
    optimized_swaps: int
    swaps_by_chain: dict[int, int] = Field(default_factory=dict)
