"""Quote endpoints: the decision entry point over HTTP.

Quotes are READ-ONLY. /quotes/execute may initiate a cross-chain swap when
switching chains passes the user's thresholds.
"""

from fastapi import APIRouter, Depends

from gaswise.advisor import OptimizationQuote, UserPreferences
from gaswise.api.contracts import (
    ExecuteRequest,
    ExecuteResponse,
    PreferencesRequest,
    PreferencesResponse,
    QuoteRequest,
    QuoteResponse,
    SavingsResponse,
)
from gaswise.api.deps import get_credential, get_services, get_user_credential
from gaswise.auth import Credential
from gaswise.errors import AuthorizationError
from gaswise.services import Services

router = APIRouter(prefix="/api/v1", tags=["Quotes"])


def _quote_response(quote: OptimizationQuote, include_usd: bool) -> QuoteResponse:
    return QuoteResponse(
        original_chain_id=quote.original_chain_id,
        optimized_chain_id=quote.optimized_chain_id,
        original_cost_usd=quote.original_cost_usd if include_usd else None,
        optimized_cost_usd=quote.optimized_cost_usd if include_usd else None,
        savings_usd=quote.savings_usd if include_usd else None,
        savings_percentage_bps=quote.savings_percentage_bps,
        estimated_bridge_time=quote.estimated_bridge_time,
        should_optimize=quote.should_optimize,
        reliable=quote.reliable,
    )


@router.post("/quotes", response_model=QuoteResponse)
async def get_quote(request: QuoteRequest, services: Services = Depends(get_services)) -> QuoteResponse:
    """Quote a swap attempt against every registered chain."""
    current_chain = request.current_chain or services.settings.current_chain_id
    quote = await services.advisor.get_quote(
        request.user, request.token_in, request.token_out, request.amount_in, current_chain
    )
    prefs = services.preferences.get(request.user)
    return _quote_response(quote, prefs.enable_usd_display)


@router.post("/quotes/execute", response_model=ExecuteResponse)
async def execute_quote(
    request: ExecuteRequest,
    credential: Credential = Depends(get_user_credential),
    services: Services = Depends(get_services),
) -> ExecuteResponse:
    """Quote and, if favorable, hand the swap to the orchestrator."""
    if credential.subject != request.user.lower():
        raise AuthorizationError(f"'{credential.subject}' may not swap for {request.user}")

    current_chain = request.current_chain or services.settings.current_chain_id
    decision = await services.advisor.execute(
        request.user,
        request.token_in,
        request.token_out,
        request.amount_in,
        current_chain,
        recipient=request.recipient,
    )
    prefs = services.preferences.get(request.user)
    return ExecuteResponse(
        quote=_quote_response(decision.quote, prefs.enable_usd_display),
        swap_id=decision.swap_id,
        execute_locally=decision.execute_locally,
        reason=decision.reason,
    )


@router.get("/preferences/{user}", response_model=PreferencesResponse)
async def get_preferences(user: str, services: Services = Depends(get_services)) -> PreferencesResponse:
    prefs = services.preferences.get(user)
    return PreferencesResponse(user=user.lower(), **_preferences_dict(prefs))


@router.put("/preferences/{user}", response_model=PreferencesResponse)
async def set_preferences(
    user: str,
    request: PreferencesRequest,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> PreferencesResponse:
    prefs = UserPreferences(**request.model_dump())
    services.preferences.set(credential, user, prefs)
    return PreferencesResponse(user=user.lower(), **_preferences_dict(prefs))


@router.delete("/preferences/{user}", response_model=PreferencesResponse)
async def reset_preferences(
    user: str,
    credential: Credential = Depends(get_credential),
    services: Services = Depends(get_services),
) -> PreferencesResponse:
    """Drop custom preferences; the user falls back to the defaults."""
    services.preferences.reset(credential, user)
    return PreferencesResponse(user=user.lower(), **_preferences_dict(services.preferences.get(user)))


@router.get("/savings/{user}", response_model=SavingsResponse)
async def get_savings(user: str, services: Services = Depends(get_services)) -> SavingsResponse:
    savings = services.advisor.get_user_savings(user)
    return SavingsResponse(
        user=user.lower(),
        total_savings_usd=savings.total_savings_usd,
        optimized_swaps=savings.optimized_swaps,
        swaps_by_chain=savings.swaps_by_chain,
    )


def _preferences_dict(prefs: UserPreferences) -> dict:
    return {
        "min_savings_threshold_bps": prefs.min_savings_threshold_bps,
        "min_absolute_savings_usd": prefs.min_absolute_savings_usd,
        "max_acceptable_bridge_time": prefs.max_acceptable_bridge_time,
        "enable_cross_chain_optimization": prefs.enable_cross_chain_optimization,
        "enable_usd_display": prefs.enable_usd_display,
    }
