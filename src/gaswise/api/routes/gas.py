"""Gas price endpoints.

Reads are public. Writes need the keeper (or admin) credential.
"""

import logging

from fastapi import APIRouter, Depends, Query

from gaswise.api.contracts import (
    ChainInfo,
    ChainListResponse,
    GasPriceListResponse,
    GasPriceResponse,
    GasPriceUpdateRequest,
    TrendResponse,
)
from gaswise.api.deps import get_credential, get_services
from gaswise.auth import Credential
from gaswise.errors import StalenessError
from gaswise.services import Services
from gaswise.tracker import HISTORY_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Gas"])


async def _price_response(services: Services, chain_id: int) -> GasPriceResponse:
    chain = services.registry.get(chain_id)
    record = services.tracker.get_record(chain_id)

    usd_per_gas = None
    if record is not None:
        try:
            usd_per_gas = await services.tracker.get_usd_price(chain_id)
        except StalenessError as e:
            logger.debug(f"No USD gas price for chain {chain_id}: {e}")

    return GasPriceResponse(
        chain_id=chain_id,
        name=chain.name,
        price_wei=record.price if record else None,
        last_update_time=record.last_update_time if record else None,
        is_stale=services.tracker.is_stale(chain_id),
        usd_per_gas=usd_per_gas,
    )


@router.get("/chains", response_model=ChainListResponse)
async def list_chains(services: Services = Depends(get_services)) -> ChainListResponse:
    """Registered chains in registry order."""
    return ChainListResponse(
        chains=[
            ChainInfo(
                chain_id=chain.chain_id,
                name=chain.name,
                native_asset=chain.native_asset,
                explorer_url=chain.explorer_url,
                is_testnet=chain.is_testnet,
                enabled=services.orchestrator.is_chain_enabled(chain.chain_id),
            )
            for chain in services.registry
        ]
    )


@router.get("/gas", response_model=GasPriceListResponse)
async def list_gas_prices(services: Services = Depends(get_services)) -> GasPriceListResponse:
    """Current gas price for every registered chain."""
    prices = [await _price_response(services, chain_id) for chain_id in services.registry.chain_ids]
    return GasPriceListResponse(prices=prices)


@router.get("/gas/{chain_id}", response_model=GasPriceResponse)
async def get_gas_price(chain_id: int, services: Services = Depends(get_services)) -> GasPriceResponse:
    return await _price_response(services, chain_id)


@router.get("/gas/{chain_id}/trend", response_model=TrendResponse)
async def get_gas_trend(
    chain_id: int,
    window: int = Query(HISTORY_SIZE, ge=0),
    services: Services = Depends(get_services),
) -> TrendResponse:
    """Trend statistics over the most recent samples."""
    stats = services.tracker.get_trend(chain_id, window)
    samples = len(services.tracker.get_history(chain_id))
    return TrendResponse(
        chain_id=chain_id,
        window=min(window, samples),
        samples=samples,
        average=stats.average,
        min=stats.min,
        max=stats.max,
        volatility_bps=stats.volatility_bps,
        is_increasing=stats.is_increasing,
    )


@router.post("/gas", response_model=GasPriceListResponse)
async def update_gas_prices(
    request: GasPriceUpdateRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> GasPriceListResponse:
    """Push a batch of gas prices (all or nothing)."""
    await services.tracker.update_prices(credential, request.chain_ids, request.prices)
    prices = [await _price_response(services, chain_id) for chain_id in request.chain_ids]
    return GasPriceListResponse(prices=prices)
