"""Pytest configuration and fixtures.

Reference market used across the tests (10,000 USDC trade, ETH $2000, POL $1):

    chain     gas price   cost (USD)
    1         100 gwei    86.00     (local: 36 gas + 50 slippage)
    42161     0.1 gwei    62.108    (0.108 gas + 12 bridge + 50 slippage)
    10        0.1 gwei    62.108
    137       30 gwei     62.0162   (0.0162 gas + 12 bridge + 50 slippage)
"""

import os
from decimal import Decimal

import pytest
import pytest_asyncio

# Set test environment
os.environ["GASWISE_ENVIRONMENT"] = "test"
os.environ["GASWISE_DEBUG"] = "true"

from gaswise.advisor import PreferenceStore, SwapAdvisor
from gaswise.auth import Credential
from gaswise.bridge import SimulatedBridge
from gaswise.chains import BRIDGE_TIMES, ChainConfig, ChainRegistry
from gaswise.cost_model import CostModel
from gaswise.events import EventBus
from gaswise.oracles import PriceFeeds, StaticPriceSource
from gaswise.orchestrator import SwapOrchestrator, SwapRequest
from gaswise.tracker import GasPriceTracker

GWEI = 10**9
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
USER = "0x1111111111111111111111111111111111111111"
AMOUNT = 10_000 * 10**6

GAS_PRICES = {
    1: 100 * GWEI,
    42161: GWEI // 10,
    10: GWEI // 10,
    137: 30 * GWEI,
}

TEST_CHAINS = [
    ChainConfig(chain_id=1, name="Ethereum", native_asset="ETH", rpc_url="https://rpc.test/1"),
    ChainConfig(chain_id=42161, name="Arbitrum One", native_asset="ETH", rpc_url="https://rpc.test/42161"),
    ChainConfig(chain_id=10, name="Optimism", native_asset="ETH", rpc_url="https://rpc.test/10"),
    ChainConfig(chain_id=137, name="Polygon", native_asset="POL", rpc_url="https://rpc.test/137"),
]


class FakeClock:
    """Settable time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> ChainRegistry:
    return ChainRegistry(TEST_CHAINS, BRIDGE_TIMES, default_bridge_time=600)


@pytest.fixture
def events(clock) -> EventBus:
    return EventBus(clock=clock)


@pytest.fixture
def recorded(events) -> list:
    """Every event published during the test."""
    seen = []
    events.subscribe(seen.append)
    return seen


@pytest.fixture
def eth_source(clock) -> StaticPriceSource:
    return StaticPriceSource("static:eth", Decimal("2000"), clock=clock)


@pytest.fixture
def pol_source(clock) -> StaticPriceSource:
    return StaticPriceSource("static:pol", Decimal("1"), clock=clock)


@pytest.fixture
def feeds(clock, eth_source, pol_source) -> PriceFeeds:
    feeds = PriceFeeds(clock=clock)
    feeds.set_native_feed("ETH", eth_source)
    feeds.set_native_feed("POL", pol_source)
    feeds.set_token_feed(USDC, StaticPriceSource("static:usdc", Decimal("1"), clock=clock), decimals=6)
    feeds.set_token_feed(WETH, StaticPriceSource("static:weth", Decimal("2000"), clock=clock), decimals=18)
    return feeds


@pytest.fixture
def admin() -> Credential:
    return Credential.admin()


@pytest.fixture
def keeper() -> Credential:
    return Credential.keeper("keeper")


@pytest.fixture
def user() -> Credential:
    return Credential.user(USER)


@pytest.fixture
def tracker(registry, feeds, events, clock) -> GasPriceTracker:
    return GasPriceTracker(registry, feeds, events, keeper="keeper", clock=clock)


@pytest_asyncio.fixture
async def seeded_tracker(tracker, keeper) -> GasPriceTracker:
    """Tracker holding the reference gas prices."""
    await tracker.update_prices(keeper, list(GAS_PRICES), list(GAS_PRICES.values()))
    return tracker


@pytest.fixture
def cost_model(registry, seeded_tracker, feeds, events) -> CostModel:
    return CostModel(registry, seeded_tracker, feeds, events, current_chain=1)


@pytest.fixture
def bridge() -> SimulatedBridge:
    return SimulatedBridge()


@pytest.fixture
def bridge_cred(bridge) -> Credential:
    return Credential.bridge(bridge.name)


@pytest.fixture
def orchestrator(registry, bridge, events, cost_model, clock) -> SwapOrchestrator:
    return SwapOrchestrator(
        registry,
        bridge,
        events,
        recovery_timeout=3600,
        output_estimator=cost_model.estimate_output,
        lock_timeout=5.0,
        clock=clock,
    )


@pytest.fixture
def advisor(cost_model, orchestrator, clock) -> SwapAdvisor:
    return SwapAdvisor(cost_model, orchestrator, PreferenceStore(), swap_deadline=1800, clock=clock)


@pytest.fixture
def make_request(clock):
    """Factory for swap requests from chain 1 to Arbitrum."""

    def _make(**overrides) -> SwapRequest:
        fields = dict(
            user=USER,
            token_in=USDC,
            token_out=WETH,
            amount_in=AMOUNT,
            source_chain=1,
            destination_chain=42161,
            deadline=clock() + 1800,
        )
        fields.update(overrides)
        return SwapRequest(**fields)

    return _make
