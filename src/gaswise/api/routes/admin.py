"""Admin API endpoints (token-protected).

Mutations are authorized by the components themselves; read-only views
check the admin credential here.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from gaswise.api.contracts import (
    BridgeTimeRequest,
    ChainConfigurationRequest,
    CostParametersRequest,
    CostParametersResponse,
    EventInfo,
    EventListResponse,
    KeeperRequest,
    StalenessRequest,
    StatisticsResponse,
)
from gaswise.api.deps import get_credential, get_services
from gaswise.auth import Credential, require_admin
from gaswise.cost_model import CostParameters
from gaswise.errors import ValidationError
from gaswise.events import EventType
from gaswise.services import Services

router = APIRouter(prefix="/admin", tags=["Admin"])


def _parameters_response(params: CostParameters) -> CostParametersResponse:
    return CostParametersResponse(
        base_bridge_fee_usd=params.base_bridge_fee_usd,
        bridge_fee_percentage_bps=params.bridge_fee_percentage_bps,
        max_slippage_bps=params.max_slippage_bps,
        mev_protection_fee_bps=params.mev_protection_fee_bps,
        gas_estimation_multiplier_bps=params.gas_estimation_multiplier_bps,
    )


@router.post("/pause")
async def pause(
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> dict:
    """Halt new swap initiations. In-flight swaps keep progressing."""
    await services.orchestrator.pause(credential)
    return {"success": True, "paused": True}


@router.post("/unpause")
async def unpause(
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> dict:
    await services.orchestrator.unpause(credential)
    return {"success": True, "paused": False}


@router.put("/chains/{chain_id}")
async def configure_chain(
    chain_id: int,
    request: ChainConfigurationRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> dict:
    """Enable or disable a chain as a swap destination."""
    await services.orchestrator.update_chain_configuration(credential, chain_id, request.enabled)
    return {"success": True, "chain_id": chain_id, "enabled": request.enabled}


@router.get("/cost-parameters", response_model=CostParametersResponse)
async def get_cost_parameters(
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> CostParametersResponse:
    require_admin(credential, "view cost parameters")
    return _parameters_response(services.cost_model.parameters)


@router.put("/cost-parameters", response_model=CostParametersResponse)
async def update_cost_parameters(
    request: CostParametersRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> CostParametersResponse:
    """Update cost coefficients within their configured bounds."""
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("No cost parameters given")
    updated = await services.cost_model.update_cost_parameters(credential, **changes)
    return _parameters_response(updated)


@router.put("/bridge-times")
async def set_bridge_time(
    request: BridgeTimeRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> dict:
    await services.cost_model.set_bridge_time(
        credential, request.source_chain, request.destination_chain, request.seconds
    )
    return {"success": True, **request.model_dump()}


@router.put("/staleness-threshold")
async def set_staleness_threshold(
    request: StalenessRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> dict:
    await services.tracker.update_staleness_threshold(credential, request.seconds)
    return {"success": True, "staleness_threshold": request.seconds}


@router.put("/keeper")
async def set_keeper(
    request: KeeperRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> dict:
    """Hand the gas price keeper role to another identity."""
    await services.tracker.update_keeper(credential, request.keeper)
    return {"success": True, "keeper": request.keeper}


@router.get("/stats", response_model=StatisticsResponse)
async def get_stats(
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> StatisticsResponse:
    require_admin(credential, "view statistics")
    stats = services.orchestrator.get_statistics()
    return StatisticsResponse(
        total_swaps=stats.total_swaps,
        successful_swaps=stats.successful_swaps,
        failed_swaps=stats.failed_swaps,
        total_execution_time=stats.total_execution_time,
        average_execution_time=stats.average_execution_time,
        paused=services.orchestrator.paused,
        disabled_chains=services.orchestrator.disabled_chains,
    )


@router.get("/events", response_model=EventListResponse)
async def get_events(
    event_type: Optional[EventType] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> EventListResponse:
    """Most recent events, newest last."""
    require_admin(credential, "view events")
    events = services.events.recent(event_type, limit)
    return EventListResponse(events=[EventInfo(**event.to_dict()) for event in events])
