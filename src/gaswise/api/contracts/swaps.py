"""Swap lifecycle contracts."""

from typing import Optional

from pydantic import BaseModel, Field


class SwapInitiateRequest(BaseModel):
    """Direct initiation of a cross-chain swap (user from X-User-Address)."""

    token_in: str = Field(..., min_length=1)
    token_out: str = Field(..., min_length=1)
    amount_in: int = Field(..., gt=0, description="Input amount in base units")
    source_chain: Optional[int] = Field(None, description="Source chain (node default if None)")
    destination_chain: int
    deadline: Optional[float] = Field(None, description="Unix deadline (default offset if None)")
    recipient: Optional[str] = None


class SwapInitiateResponse(BaseModel):
    success: bool = True
    swap_id: str


class DestinationCompletionRequest(BaseModel):
    """Destination swap result reported by the bridge relayer."""

    amount_out: Optional[int] = Field(None, ge=0, description="Output amount (estimated if None)")


class FailureReport(BaseModel):
    reason: str = Field(..., min_length=1)


class TransitionInfo(BaseModel):
    status: str
    at: float


class SwapStateResponse(BaseModel):
    """Current state of one swap."""

    swap_id: str
    user: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    source_chain: int
    destination_chain: int
    recipient: str
    status: str
    initiated_at: float
    deadline: float
    completed_at: Optional[float] = None
    bridge_reference: Optional[str] = None
    return_bridge_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    transitions: list[TransitionInfo] = Field(default_factory=list)


class ActiveSwapsResponse(BaseModel):
    user: str
    swap_ids: list[str] = Field(default_factory=list)
