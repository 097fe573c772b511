"""Tests for the gas price tracker."""

from decimal import Decimal

import pytest

from conftest import GAS_PRICES, GWEI
from gaswise.auth import Credential
from gaswise.chains import ChainConfig
from gaswise.errors import AuthorizationError, StalenessError, ValidationError
from gaswise.events import EventType
from gaswise.tracker import GasPriceTracker, TrendStats


class TestUpdatePrices:
    """Tests for batch gas price writes."""

    @pytest.mark.asyncio
    async def test_update_then_get(self, tracker, keeper, clock):
        """Written price and update time are returned."""
        await tracker.update_prices(keeper, [1, 137], [25 * GWEI, 40 * GWEI])

        assert tracker.get_price(1) == (25 * GWEI, clock())
        assert tracker.get_price(137) == (40 * GWEI, clock())

    @pytest.mark.asyncio
    async def test_admin_may_update(self, tracker, admin):
        await tracker.update_prices(admin, [1], [GWEI])
        assert tracker.get_price(1)[0] == GWEI

    @pytest.mark.asyncio
    async def test_unauthorized_caller_rejected(self, tracker, user):
        with pytest.raises(AuthorizationError):
            await tracker.update_prices(user, [1], [GWEI])
        assert tracker.get_record(1) is None

    @pytest.mark.asyncio
    async def test_wrong_keeper_identity_rejected(self, tracker):
        with pytest.raises(AuthorizationError):
            await tracker.update_prices(Credential.keeper("someone-else"), [1], [GWEI])

    @pytest.mark.asyncio
    async def test_length_mismatch_rejected(self, tracker, keeper):
        with pytest.raises(ValidationError):
            await tracker.update_prices(keeper, [1, 10], [GWEI])

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, tracker, keeper):
        with pytest.raises(ValidationError):
            await tracker.update_prices(keeper, [], [])

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, tracker, keeper):
        """One bad entry rejects the whole batch."""
        with pytest.raises(ValidationError):
            await tracker.update_prices(keeper, [1, 999], [GWEI, GWEI])
        assert tracker.get_record(1) is None

        with pytest.raises(ValidationError):
            await tracker.update_prices(keeper, [1, 10], [GWEI, 0])
        assert tracker.get_record(1) is None

    @pytest.mark.asyncio
    async def test_price_sanity_bound(self, tracker, keeper):
        with pytest.raises(ValidationError):
            await tracker.update_prices(keeper, [1], [tracker.max_gas_price])

    @pytest.mark.asyncio
    async def test_publishes_event_per_chain(self, tracker, keeper, recorded):
        await tracker.update_prices(keeper, [1, 10], [GWEI, 2 * GWEI])

        updates = [e for e in recorded if e.type == EventType.PRICE_UPDATED]
        assert [e.entity_id for e in updates] == ["1", "10"]
        assert updates[1].data["price"] == 2 * GWEI

    @pytest.mark.asyncio
    async def test_timestamps_never_move_backwards(self, tracker, keeper, clock):
        await tracker.update_prices(keeper, [1], [GWEI])
        first = tracker.get_price(1)[1]

        clock.advance(-100)
        await tracker.update_prices(keeper, [1], [2 * GWEI])

        price, updated = tracker.get_price(1)
        assert price == 2 * GWEI
        assert updated == first


class TestReads:
    """Tests for price lookups and USD conversion."""

    def test_missing_record_is_stale(self, tracker):
        with pytest.raises(StalenessError):
            tracker.get_price(1)
        assert tracker.is_stale(1) is True

    def test_unregistered_chain(self, tracker):
        with pytest.raises(ValidationError):
            tracker.get_price(56)

    @pytest.mark.asyncio
    async def test_usd_price(self, seeded_tracker):
        """100 gwei at $2000/ETH is $0.0002 per gas unit."""
        assert await seeded_tracker.get_usd_price(1) == Decimal("0.0002")
        assert await seeded_tracker.get_usd_price(137) == Decimal("3E-8")

    @pytest.mark.asyncio
    async def test_usd_price_stale_oracle(self, seeded_tracker, eth_source, clock):
        eth_source.set_price(Decimal("2000"), updated_at=clock() - 3601)
        with pytest.raises(StalenessError):
            await seeded_tracker.get_usd_price(1)

    @pytest.mark.asyncio
    async def test_staleness_threshold(self, seeded_tracker, clock):
        assert seeded_tracker.is_stale(1) is False
        clock.advance(300)
        assert seeded_tracker.is_stale(1) is False
        clock.advance(1)
        assert seeded_tracker.is_stale(1) is True

    @pytest.mark.asyncio
    async def test_get_all_prices(self, seeded_tracker):
        prices = seeded_tracker.get_all_prices()
        assert {chain_id: r.price for chain_id, r in prices.items()} == GAS_PRICES


class TestTrend:
    """Tests for trend statistics."""

    @pytest.mark.asyncio
    async def test_trend_over_five_samples(self, tracker, keeper):
        for price in [10, 20, 30, 40, 50]:
            await tracker.update_prices(keeper, [1], [price])

        stats = tracker.get_trend(1, 24)

        assert stats.min == 10
        assert stats.max == 50
        assert stats.average == 30
        assert stats.volatility_bps == 40 * 10_000 // 30
        assert stats.is_increasing is True

    @pytest.mark.asyncio
    async def test_window_limits_samples(self, tracker, keeper):
        for price in [10, 20, 30, 40, 5]:
            await tracker.update_prices(keeper, [1], [price])

        stats = tracker.get_trend(1, 2)

        assert stats.min == 5
        assert stats.max == 40
        assert stats.is_increasing is False

    def test_no_history_gives_default_stats(self, tracker):
        assert tracker.get_trend(1) == TrendStats()

    @pytest.mark.asyncio
    async def test_single_sample_not_increasing(self, tracker, keeper):
        await tracker.update_prices(keeper, [1], [GWEI])
        stats = tracker.get_trend(1)
        assert stats.is_increasing is False
        assert stats.volatility_bps == 0

    @pytest.mark.asyncio
    async def test_history_evicts_oldest(self, tracker, keeper):
        for price in range(1, 26):
            await tracker.update_prices(keeper, [1], [price])

        history = tracker.get_history(1)
        assert len(history) == 24
        assert history[0] == 2
        assert history[-1] == 25


class TestAdministration:
    """Tests for tracker configuration."""

    @pytest.mark.asyncio
    async def test_add_chain(self, tracker, admin, keeper, recorded):
        chain = ChainConfig(chain_id=8453, name="Base", native_asset="ETH", rpc_url="https://rpc.test/8453")
        await tracker.add_chain(admin, chain)

        await tracker.update_prices(keeper, [8453], [GWEI])
        assert tracker.get_price(8453)[0] == GWEI
        assert recorded[0].type == EventType.CONFIGURATION_CHANGED

    @pytest.mark.asyncio
    async def test_add_duplicate_chain_rejected(self, tracker, admin, registry):
        with pytest.raises(ValidationError):
            await tracker.add_chain(admin, registry.get(1))

    @pytest.mark.asyncio
    async def test_add_chain_requires_admin(self, tracker, keeper):
        chain = ChainConfig(chain_id=8453, name="Base", native_asset="ETH", rpc_url="")
        with pytest.raises(AuthorizationError):
            await tracker.add_chain(keeper, chain)

    @pytest.mark.asyncio
    async def test_add_chain_validates_fields(self, tracker, admin):
        with pytest.raises(ValidationError):
            await tracker.add_chain(admin, ChainConfig(chain_id=8453, name=" ", native_asset="ETH", rpc_url=""))
        with pytest.raises(ValidationError):
            await tracker.add_chain(
                admin, ChainConfig(chain_id=8453, name="Base", native_asset="ETH", rpc_url="", native_decimals=0)
            )

    @pytest.mark.asyncio
    async def test_update_keeper(self, tracker, admin, keeper):
        await tracker.update_keeper(admin, "keeper-2")

        with pytest.raises(AuthorizationError):
            await tracker.update_prices(keeper, [1], [GWEI])
        await tracker.update_prices(Credential.keeper("keeper-2"), [1], [GWEI])

    @pytest.mark.asyncio
    async def test_update_keeper_rejects_empty(self, tracker, admin):
        with pytest.raises(ValidationError):
            await tracker.update_keeper(admin, "  ")

    @pytest.mark.asyncio
    async def test_update_staleness_threshold(self, seeded_tracker, admin, clock):
        await seeded_tracker.update_staleness_threshold(admin, 60)
        clock.advance(61)
        assert seeded_tracker.is_stale(1) is True

        with pytest.raises(ValidationError):
            await seeded_tracker.update_staleness_threshold(admin, 0)

    def test_constructor_rejects_bad_config(self, registry, feeds, events):
        with pytest.raises(ValidationError):
            GasPriceTracker(registry, feeds, events, keeper="")
        with pytest.raises(ValidationError):
            GasPriceTracker(registry, feeds, events, keeper="keeper", staleness_threshold=0)
