"""Swap lifecycle endpoints.

Users initiate, recover and claim their swaps. The bridge relayer reports
destination results, completion and failures (X-Bridge-Token).
"""

from fastapi import APIRouter, Depends

from gaswise.api.contracts import (
    ActiveSwapsResponse,
    DestinationCompletionRequest,
    FailureReport,
    SwapInitiateRequest,
    SwapInitiateResponse,
    SwapStateResponse,
    TransitionInfo,
)
from gaswise.api.deps import get_credential, get_services, get_user_credential
from gaswise.auth import Credential
from gaswise.orchestrator import SwapRequest, SwapState
from gaswise.services import Services

router = APIRouter(prefix="/api/v1/swaps", tags=["Swaps"])


def _state_response(state: SwapState) -> SwapStateResponse:
    return SwapStateResponse(
        swap_id=state.swap_id,
        user=state.user,
        token_in=state.token_in,
        token_out=state.token_out,
        amount_in=state.amount_in,
        amount_out=state.amount_out,
        source_chain=state.source_chain,
        destination_chain=state.destination_chain,
        recipient=state.recipient,
        status=state.status.value,
        initiated_at=state.initiated_at,
        deadline=state.deadline,
        completed_at=state.completed_at,
        bridge_reference=state.bridge_reference,
        return_bridge_reference=state.return_bridge_reference,
        failure_reason=state.failure_reason,
        transitions=[TransitionInfo(status=s.value, at=at) for s, at in state.transitions],
    )


@router.post("", response_model=SwapInitiateResponse)
async def initiate_swap(
    request: SwapInitiateRequest,
    credential: Credential = Depends(get_user_credential),
    services: Services = Depends(get_services),
) -> SwapInitiateResponse:
    """Initiate a cross-chain swap for the calling user."""
    settings = services.settings
    now = services.orchestrator.now()
    swap_id = await services.orchestrator.initiate(
        SwapRequest(
            user=credential.subject,
            token_in=request.token_in,
            token_out=request.token_out,
            amount_in=request.amount_in,
            source_chain=request.source_chain or settings.current_chain_id,
            destination_chain=request.destination_chain,
            deadline=request.deadline if request.deadline is not None else now + settings.swap_deadline,
            recipient=request.recipient,
        )
    )
    return SwapInitiateResponse(swap_id=swap_id)


@router.get("/active/{user}", response_model=ActiveSwapsResponse)
async def get_active_swaps(user: str, services: Services = Depends(get_services)) -> ActiveSwapsResponse:
    return ActiveSwapsResponse(
        user=user.lower(), swap_ids=services.orchestrator.get_user_active_swaps(user)
    )


@router.get("/{swap_id}", response_model=SwapStateResponse)
async def get_swap(swap_id: str, services: Services = Depends(get_services)) -> SwapStateResponse:
    return _state_response(services.orchestrator.get_swap_state(swap_id))


@router.post("/{swap_id}/recover", response_model=SwapStateResponse)
async def recover_swap(
    swap_id: str,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> SwapStateResponse:
    """Emergency recovery once the recovery timeout has elapsed (owner or admin)."""
    return _state_response(await services.orchestrator.emergency_recovery(credential, swap_id))


@router.post("/{swap_id}/claim", response_model=SwapStateResponse)
async def claim_swap(
    swap_id: str,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> SwapStateResponse:
    """Reclaim a failed swap (owner only)."""
    return _state_response(await services.orchestrator.claim_failed_swap(credential, swap_id))


# ======================
# Bridge callbacks
# ======================


@router.post("/{swap_id}/destination", response_model=SwapStateResponse)
async def destination_completed(
    swap_id: str,
    request: DestinationCompletionRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> SwapStateResponse:
    state = await services.orchestrator.handle_destination_completion(
        credential, swap_id, request.amount_out
    )
    return _state_response(state)


@router.post("/{swap_id}/complete", response_model=SwapStateResponse)
async def complete_swap(
    swap_id: str,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> SwapStateResponse:
    return _state_response(await services.orchestrator.complete(credential, swap_id))


@router.post("/{swap_id}/failure", response_model=SwapStateResponse)
async def report_failure(
    swap_id: str,
    request: FailureReport,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> SwapStateResponse:
    return _state_response(
        await services.orchestrator.report_failure(credential, swap_id, request.reason)
    )
