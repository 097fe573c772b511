"""Request and response contracts for the HTTP API."""

from gaswise.api.contracts.admin import (
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
from gaswise.api.contracts.gas import (
    ChainInfo,
    ChainListResponse,
    GasPriceListResponse,
    GasPriceResponse,
    GasPriceUpdateRequest,
    TrendResponse,
)
from gaswise.api.contracts.quotes import (
    ExecuteRequest,
    ExecuteResponse,
    PreferencesRequest,
    PreferencesResponse,
    QuoteRequest,
    QuoteResponse,
    SavingsResponse,
)
from gaswise.api.contracts.swaps import (
    ActiveSwapsResponse,
    DestinationCompletionRequest,
    FailureReport,
    SwapInitiateRequest,
    SwapInitiateResponse,
    SwapStateResponse,
    TransitionInfo,
)

__all__ = [
    # Gas contracts
    "GasPriceUpdateRequest",
    "GasPriceResponse",
    "GasPriceListResponse",
    "TrendResponse",
    "ChainInfo",
    "ChainListResponse",
    # Quote contracts
    "QuoteRequest",
    "QuoteResponse",
    "ExecuteRequest",
    "ExecuteResponse",
    "PreferencesRequest",
    "PreferencesResponse",
    "SavingsResponse",
    # Swap contracts
    "SwapInitiateRequest",
    "SwapInitiateResponse",
    "SwapStateResponse",
    "TransitionInfo",
    "DestinationCompletionRequest",
    "FailureReport",
    "ActiveSwapsResponse",
    # Admin contracts
    "ChainConfigurationRequest",
    "CostParametersRequest",
    "CostParametersResponse",
    "BridgeTimeRequest",
    "StalenessRequest",
    "KeeperRequest",
    "StatisticsResponse",
    "EventInfo",
    "EventListResponse",
]
