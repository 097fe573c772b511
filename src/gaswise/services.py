"""Service wiring.

Builds the object graph (registry, price feeds, tracker, cost model,
orchestrator, advisor, keeper) from Settings.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

import httpx

from gaswise.advisor import PreferenceStore, SwapAdvisor, UserPreferences
from gaswise.auth import Credential
from gaswise.bridge import BridgeTransport, SimulatedBridge
from gaswise.chains import ChainRegistry, create_registry
from gaswise.config import Settings
from gaswise.cost_model import CostModel, CostParameterBounds, CostParameters, GasEstimates
from gaswise.errors import ValidationError
from gaswise.events import EventBus
from gaswise.keeper import GasPriceKeeper
from gaswise.oracles import COIN_IDS, CoinGeckoPriceSource, PriceFeeds, PriceSource, StaticPriceSource
from gaswise.orchestrator import SwapOrchestrator
from gaswise.tracker import GasPriceTracker

logger = logging.getLogger(__name__)

# Fixed USD prices by CoinGecko id used in dry-run mode
DRY_RUN_PRICES: dict[str, Decimal] = {
    "ethereum": Decimal("3000"),
    "polygon-ecosystem-token": Decimal("0.50"),
    "matic-network": Decimal("0.50"),
    "usd-coin": Decimal("1"),
    "tether": Decimal("1"),
    "dai": Decimal("1"),
    "wrapped-bitcoin": Decimal("60000"),
}


@dataclass
class Services:
    """Everything the API and the keeper loop need."""

    settings: Settings
    registry: ChainRegistry
    events: EventBus
    feeds: PriceFeeds
    tracker: GasPriceTracker
    cost_model: CostModel
    orchestrator: SwapOrchestrator
    preferences: PreferenceStore
    advisor: SwapAdvisor
    keeper: GasPriceKeeper
    http_client: Optional[httpx.AsyncClient] = None

    async def close(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


def parse_token_feed(entry: str) -> tuple[str, int]:
    """Parse "<coin id>:<decimals>" (decimals default to 18)."""
    coin_id, _, decimals = entry.partition(":")
    if not coin_id:
        raise ValidationError(f"Malformed token feed {entry!r}")
    try:
        return coin_id, int(decimals) if decimals else 18
    except ValueError as e:
        raise ValidationError(f"Malformed token feed decimals in {entry!r}") from e


def _price_source(
    settings: Settings,
    coin_id: str,
    clock: Callable[[], float],
    client: Optional[httpx.AsyncClient],
) -> PriceSource:
    if settings.dry_run:
        return StaticPriceSource(
            f"static:{coin_id}",
            DRY_RUN_PRICES.get(coin_id, Decimal("1")),
            heartbeat=settings.price_heartbeat,
            clock=clock,
        )
    return CoinGeckoPriceSource(
        coin_id,
        base_url=settings.price_api_url,
        api_key=settings.price_api_key or None,
        heartbeat=settings.price_heartbeat,
        client=client,
        cache_ttl=settings.price_cache_ttl,
        clock=clock,
    )


def build_feeds(
    settings: Settings,
    registry: ChainRegistry,
    clock: Callable[[], float] = time.time,
    client: Optional[httpx.AsyncClient] = None,
) -> PriceFeeds:
    """Register a USD feed for every native asset and configured token.

    Assets and tokens priced by the same coin id share one source, and so
    one cached answer.
    """
    feeds = PriceFeeds(clock=clock)
    sources: dict[str, PriceSource] = {}

    def source_for(coin_id: str) -> PriceSource:
        if coin_id not in sources:
            sources[coin_id] = _price_source(settings, coin_id, clock, client)
        return sources[coin_id]

    for asset in sorted({chain.native_asset for chain in registry}):
        coin_id = COIN_IDS.get(asset.upper())
        if coin_id is None:
            logger.warning(f"No price feed known for native asset {asset}")
            continue
        feeds.set_native_feed(asset, source_for(coin_id))

    for token, entry in settings.token_feeds.items():
        coin_id, decimals = parse_token_feed(entry)
        feeds.set_token_feed(token, source_for(coin_id), decimals)

    return feeds


def build_services(
    settings: Settings,
    clock: Callable[[], float] = time.time,
    bridge: Optional[BridgeTransport] = None,
    feeds: Optional[PriceFeeds] = None,
) -> Services:
    """Wire all components from settings.

    Args:
        settings: Application settings
        clock: Time source shared by every component
        bridge: Bridge transport (simulated bridge if omitted)
        feeds: Price feeds (built from settings if omitted)
    """
    registry = create_registry(
        testnet=settings.is_testnet, default_bridge_time=settings.default_bridge_time
    )
    events = EventBus(clock=clock)

    http_client = None
    if feeds is None:
        if not settings.dry_run:
            http_client = httpx.AsyncClient(timeout=CoinGeckoPriceSource.timeout_s)
        feeds = build_feeds(settings, registry, clock, http_client)

    if bridge is None:
        if not settings.dry_run:
            logger.warning("No bridge integration configured - using the simulated bridge")
        bridge = SimulatedBridge()

    tracker = GasPriceTracker(
        registry,
        feeds,
        events,
        keeper=settings.keeper_id,
        staleness_threshold=settings.staleness_threshold,
        max_gas_price=settings.max_gas_price_wei,
        history_size=settings.history_size,
        clock=clock,
    )
    cost_model = CostModel(
        registry,
        tracker,
        feeds,
        events,
        current_chain=settings.current_chain_id,
        parameters=CostParameters.from_settings(settings),
        bounds=CostParameterBounds.from_settings(settings),
        gas_estimates=GasEstimates.from_settings(settings),
    )
    orchestrator = SwapOrchestrator(
        registry,
        bridge,
        events,
        recovery_timeout=settings.recovery_timeout,
        output_estimator=cost_model.estimate_output,
        lock_timeout=settings.swap_lock_timeout,
        clock=clock,
    )
    preferences = PreferenceStore(UserPreferences.from_settings(settings))
    advisor = SwapAdvisor(
        cost_model,
        orchestrator,
        preferences,
        swap_deadline=settings.swap_deadline,
        clock=clock,
    )
    keeper = GasPriceKeeper(
        tracker,
        Credential.keeper(settings.keeper_id),
        interval=settings.keeper_interval,
        rpc_url_for=settings.get_rpc_url,
    )

    logger.info(
        f"Services ready: {len(registry)} chains, current chain {settings.current_chain_id}, "
        f"bridge {bridge.name}, dry_run={settings.dry_run}"
    )
    return Services(
        settings=settings,
        registry=registry,
        events=events,
        feeds=feeds,
        tracker=tracker,
        cost_model=cost_model,
        orchestrator=orchestrator,
        preferences=preferences,
        advisor=advisor,
        keeper=keeper,
        http_client=http_client,
    )
