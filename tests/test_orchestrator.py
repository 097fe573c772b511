"""Tests for the cross-chain swap orchestrator."""

import asyncio
from decimal import Decimal

import pytest

from conftest import AMOUNT, USER
from gaswise.auth import Credential
from gaswise.bridge import BridgeLeg, SimulatedBridge
from gaswise.errors import (
    AuthorizationError,
    BridgeError,
    PausedSystemError,
    StateConflictError,
    TimeoutGateError,
    ValidationError,
)
from gaswise.events import EventType
from gaswise.orchestrator import SwapOrchestrator, SwapStatus


class TestInitiate:
    """Tests for swap initiation."""

    @pytest.mark.asyncio
    async def test_initiate(self, orchestrator, make_request, bridge, recorded):
        swap_id = await orchestrator.initiate(make_request())

        assert swap_id.startswith("0x") and len(swap_id) == 66
        state = orchestrator.get_swap_state(swap_id)
        assert state.status == SwapStatus.BRIDGING
        assert state.user == USER
        assert state.recipient == USER
        assert state.bridge_reference is not None
        assert orchestrator.get_user_active_swaps(USER) == [swap_id]
        assert orchestrator.get_statistics().total_swaps == 1

        [transfer] = bridge.transfers_for(swap_id)
        assert transfer.leg == BridgeLeg.OUTBOUND
        assert transfer.amount == AMOUNT
        assert (transfer.source_chain, transfer.destination_chain) == (1, 42161)
        assert recorded[-1].type == EventType.SWAP_INITIATED

    @pytest.mark.asyncio
    async def test_concurrent_identical_requests_get_distinct_ids(self, orchestrator, make_request):
        request = make_request()
        first, second = await asyncio.gather(
            orchestrator.initiate(request), orchestrator.initiate(request)
        )

        assert first != second
        assert sorted(orchestrator.get_user_active_swaps(USER)) == sorted([first, second])
        assert orchestrator.get_statistics().total_swaps == 2

    @pytest.mark.asyncio
    async def test_disabled_destination_rejected(self, orchestrator, make_request, admin, bridge):
        await orchestrator.update_chain_configuration(admin, 42161, False)

        with pytest.raises(ValidationError):
            await orchestrator.initiate(make_request())

        assert orchestrator.get_user_active_swaps(USER) == []
        assert orchestrator.get_statistics().total_swaps == 0
        assert bridge.transfers == []

    @pytest.mark.asyncio
    async def test_reenabled_destination_accepted(self, orchestrator, make_request, admin):
        await orchestrator.update_chain_configuration(admin, 42161, False)
        await orchestrator.update_chain_configuration(admin, 42161, True)

        assert await orchestrator.initiate(make_request())

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"destination_chain": 1},
            {"destination_chain": 56},
            {"user": ""},
            {"amount_in": 0},
            {"token_in": ""},
        ],
    )
    async def test_invalid_requests(self, orchestrator, make_request, overrides):
        with pytest.raises(ValidationError):
            await orchestrator.initiate(make_request(**overrides))
        assert orchestrator.get_statistics().total_swaps == 0

    @pytest.mark.asyncio
    async def test_past_deadline_rejected(self, orchestrator, make_request, clock):
        with pytest.raises(ValidationError):
            await orchestrator.initiate(make_request(deadline=clock()))

    @pytest.mark.asyncio
    async def test_paused(self, orchestrator, make_request, admin, recorded):
        await orchestrator.pause(admin)
        with pytest.raises(PausedSystemError):
            await orchestrator.initiate(make_request())

        await orchestrator.unpause(admin)
        assert await orchestrator.initiate(make_request())
        types = [e.type for e in recorded]
        assert EventType.PAUSED in types and EventType.UNPAUSED in types

    @pytest.mark.asyncio
    async def test_pause_requires_admin(self, orchestrator, user):
        with pytest.raises(AuthorizationError):
            await orchestrator.pause(user)
        assert orchestrator.paused is False

    @pytest.mark.asyncio
    async def test_bridge_failure_stores_nothing(self, registry, events, clock, make_request):
        orchestrator = SwapOrchestrator(
            registry, SimulatedBridge(fail_with="relayer down"), events, clock=clock
        )

        with pytest.raises(BridgeError):
            await orchestrator.initiate(make_request())

        assert orchestrator.get_user_active_swaps(USER) == []
        assert orchestrator.get_statistics().total_swaps == 0


class TestLifecycle:
    """Tests for bridge-driven progression."""

    @pytest.mark.asyncio
    async def test_happy_path(self, orchestrator, make_request, bridge, bridge_cred, clock, recorded):
        swap_id = await orchestrator.initiate(make_request(expected_savings_usd=Decimal("23.5")))

        clock.advance(400)
        state = await orchestrator.handle_destination_completion(bridge_cred, swap_id, 9_900 * 10**6)
        assert state.status == SwapStatus.BRIDGING_BACK
        assert state.amount_out == 9_900 * 10**6
        assert state.return_bridge_reference is not None

        ret = bridge.transfers_for(swap_id)[-1]
        assert ret.leg == BridgeLeg.RETURN
        assert (ret.source_chain, ret.destination_chain) == (42161, 1)

        clock.advance(200)
        state = await orchestrator.complete(bridge_cred, swap_id)

        assert state.status == SwapStatus.COMPLETED
        assert state.completed_at == clock()
        assert [s for s, _ in state.transitions] == [
            SwapStatus.BRIDGING,
            SwapStatus.SWAPPING,
            SwapStatus.BRIDGING_BACK,
            SwapStatus.COMPLETED,
        ]
        assert orchestrator.get_user_active_swaps(USER) == []

        stats = orchestrator.get_statistics()
        assert stats.successful_swaps == 1
        assert stats.total_execution_time == 600
        assert stats.average_execution_time == 600

        completed = recorded[-1]
        assert completed.type == EventType.SWAP_COMPLETED
        assert completed.data["savings"] == 100 * 10**6
        assert completed.data["expected_savings_usd"] == Decimal("23.5")

    @pytest.mark.asyncio
    async def test_estimated_output(self, orchestrator, make_request, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())
        state = await orchestrator.handle_destination_completion(bridge_cred, swap_id)

        assert state.amount_out == AMOUNT * 9_940 // 10_000

    @pytest.mark.asyncio
    async def test_savings_floored_at_zero(self, orchestrator, make_request, bridge_cred, recorded):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.handle_destination_completion(bridge_cred, swap_id, AMOUNT * 2)
        await orchestrator.complete(bridge_cred, swap_id)

        assert recorded[-1].data["savings"] == 0

    @pytest.mark.asyncio
    async def test_callbacks_require_bridge(self, orchestrator, make_request, admin, user):
        swap_id = await orchestrator.initiate(make_request())

        for credential in (admin, user, Credential.bridge("other-bridge")):
            with pytest.raises(AuthorizationError):
                await orchestrator.handle_destination_completion(credential, swap_id, 1)
        assert orchestrator.get_swap_state(swap_id).status == SwapStatus.BRIDGING

    @pytest.mark.asyncio
    async def test_complete_out_of_order(self, orchestrator, make_request, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())

        with pytest.raises(StateConflictError):
            await orchestrator.complete(bridge_cred, swap_id)
        assert orchestrator.get_swap_state(swap_id).status == SwapStatus.BRIDGING

    @pytest.mark.asyncio
    async def test_duplicate_deliveries_are_noops(self, orchestrator, make_request, bridge, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.handle_destination_completion(bridge_cred, swap_id, 5)
        again = await orchestrator.handle_destination_completion(bridge_cred, swap_id, 7)

        assert again.amount_out == 5
        assert len(bridge.transfers_for(swap_id)) == 2

        await orchestrator.complete(bridge_cred, swap_id)
        await orchestrator.complete(bridge_cred, swap_id)
        assert orchestrator.get_statistics().successful_swaps == 1

    @pytest.mark.asyncio
    async def test_unknown_swap(self, orchestrator, bridge_cred):
        with pytest.raises(ValidationError):
            await orchestrator.complete(bridge_cred, "0xmissing")
        with pytest.raises(ValidationError):
            orchestrator.get_swap_state("0xmissing")

    @pytest.mark.asyncio
    async def test_returned_state_is_a_copy(self, orchestrator, make_request):
        swap_id = await orchestrator.initiate(make_request())
        state = orchestrator.get_swap_state(swap_id)
        state.transitions.append((SwapStatus.COMPLETED, 0.0))

        assert len(orchestrator.get_swap_state(swap_id).transitions) == 1

    @pytest.mark.asyncio
    async def test_return_leg_failure_keeps_state(self, orchestrator, make_request, bridge, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())
        bridge.fail_with = "relayer down"

        with pytest.raises(BridgeError):
            await orchestrator.handle_destination_completion(bridge_cred, swap_id, 5)

        assert orchestrator.get_swap_state(swap_id).status == SwapStatus.BRIDGING

        bridge.fail_with = None
        state = await orchestrator.handle_destination_completion(bridge_cred, swap_id, 5)
        assert state.status == SwapStatus.BRIDGING_BACK


class TestFailureAndRecovery:
    """Tests for failure reports, claims and emergency recovery."""

    @pytest.mark.asyncio
    async def test_recovery_is_timeout_gated(self, orchestrator, make_request, user, clock):
        swap_id = await orchestrator.initiate(make_request())

        clock.advance(3599)
        with pytest.raises(TimeoutGateError) as exc_info:
            await orchestrator.emergency_recovery(user, swap_id)
        assert exc_info.value.retry_after == pytest.approx(1)
        assert orchestrator.get_swap_state(swap_id).status == SwapStatus.BRIDGING

        clock.advance(1)
        state = await orchestrator.emergency_recovery(user, swap_id)

        assert state.status == SwapStatus.RECOVERED
        assert orchestrator.get_user_active_swaps(USER) == []
        assert orchestrator.get_statistics().failed_swaps == 1

    @pytest.mark.asyncio
    async def test_admin_may_recover(self, orchestrator, make_request, admin, clock, recorded):
        swap_id = await orchestrator.initiate(make_request())
        clock.advance(3600)

        await orchestrator.emergency_recovery(admin, swap_id)
        assert recorded[-1].type == EventType.SWAP_RECOVERED

    @pytest.mark.asyncio
    async def test_stranger_may_not_recover(self, orchestrator, make_request, clock):
        swap_id = await orchestrator.initiate(make_request())
        clock.advance(3600)

        with pytest.raises(AuthorizationError):
            await orchestrator.emergency_recovery(Credential.user("0x2222"), swap_id)

    @pytest.mark.asyncio
    async def test_completed_swap_not_recoverable(self, orchestrator, make_request, bridge_cred, user, clock):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.handle_destination_completion(bridge_cred, swap_id, 1)
        await orchestrator.complete(bridge_cred, swap_id)
        clock.advance(3600)

        with pytest.raises(StateConflictError):
            await orchestrator.emergency_recovery(user, swap_id)

    @pytest.mark.asyncio
    async def test_report_failure_then_claim(self, orchestrator, make_request, bridge_cred, user, recorded):
        swap_id = await orchestrator.initiate(make_request())

        state = await orchestrator.report_failure(bridge_cred, swap_id, "destination reverted")
        assert state.status == SwapStatus.FAILED
        assert state.failure_reason == "destination reverted"
        assert orchestrator.get_user_active_swaps(USER) == []
        assert orchestrator.get_statistics().failed_swaps == 1
        assert recorded[-1].type == EventType.SWAP_FAILED

        state = await orchestrator.claim_failed_swap(user, swap_id)
        assert state.status == SwapStatus.RECOVERED
        assert orchestrator.get_statistics().failed_swaps == 1

    @pytest.mark.asyncio
    async def test_claim_requires_failed_status(self, orchestrator, make_request, user):
        swap_id = await orchestrator.initiate(make_request())
        with pytest.raises(StateConflictError):
            await orchestrator.claim_failed_swap(user, swap_id)

    @pytest.mark.asyncio
    async def test_claim_owner_only(self, orchestrator, make_request, bridge_cred, admin):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.report_failure(bridge_cred, swap_id, "timeout")

        with pytest.raises(AuthorizationError):
            await orchestrator.claim_failed_swap(admin, swap_id)

    @pytest.mark.asyncio
    async def test_recover_failed_swap_counts_once(self, orchestrator, make_request, bridge_cred, user, clock):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.report_failure(bridge_cred, swap_id, "timeout")
        clock.advance(3600)

        await orchestrator.emergency_recovery(user, swap_id)
        assert orchestrator.get_statistics().failed_swaps == 1

    @pytest.mark.asyncio
    async def test_cannot_fail_completed_swap(self, orchestrator, make_request, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.handle_destination_completion(bridge_cred, swap_id, 1)
        await orchestrator.complete(bridge_cred, swap_id)

        with pytest.raises(StateConflictError):
            await orchestrator.report_failure(bridge_cred, swap_id, "late")


class TestAdministration:
    """Tests for orchestrator configuration."""

    @pytest.mark.asyncio
    async def test_update_bridge_integration(self, orchestrator, make_request, admin, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())
        new_bridge = SimulatedBridge(name="bridge-v2")
        await orchestrator.update_bridge_integration(admin, new_bridge)

        with pytest.raises(AuthorizationError):
            await orchestrator.handle_destination_completion(bridge_cred, swap_id, 1)

        state = await orchestrator.handle_destination_completion(
            Credential.bridge("bridge-v2"), swap_id, 1
        )
        assert state.status == SwapStatus.BRIDGING_BACK
        assert new_bridge.transfers_for(swap_id)[0].leg == BridgeLeg.RETURN

    @pytest.mark.asyncio
    async def test_chain_configuration_requires_admin(self, orchestrator, user):
        with pytest.raises(AuthorizationError):
            await orchestrator.update_chain_configuration(user, 42161, False)
        assert orchestrator.is_chain_enabled(42161) is True

    @pytest.mark.asyncio
    async def test_chain_configuration_unknown_chain(self, orchestrator, admin):
        with pytest.raises(ValidationError):
            await orchestrator.update_chain_configuration(admin, 56, False)


class SlowBridge(SimulatedBridge):
    """Simulated bridge that yields to the event loop before recording a transfer."""

    async def send(self, transfer):
        await asyncio.sleep(0.01)
        return await super().send(transfer)


class TestConcurrentTransitions:
    """Tests for per-swap atomicity while the bridge call is in flight."""

    @pytest.fixture
    def slow_bridge(self) -> SlowBridge:
        return SlowBridge()

    @pytest.fixture
    def slow_orchestrator(self, registry, slow_bridge, events, cost_model, clock) -> SwapOrchestrator:
        return SwapOrchestrator(
            registry,
            slow_bridge,
            events,
            recovery_timeout=3600,
            output_estimator=cost_model.estimate_output,
            lock_timeout=5.0,
            clock=clock,
        )

    @staticmethod
    def return_legs(bridge, swap_id):
        return [t for t in bridge.transfers_for(swap_id) if t.leg == BridgeLeg.RETURN]

    @pytest.mark.asyncio
    async def test_racing_destination_completions_send_one_return_leg(
        self, slow_orchestrator, slow_bridge, make_request
    ):
        cred = Credential.bridge(slow_bridge.name)
        swap_id = await slow_orchestrator.initiate(make_request())

        first, second = await asyncio.gather(
            slow_orchestrator.handle_destination_completion(cred, swap_id, 5),
            slow_orchestrator.handle_destination_completion(cred, swap_id, 7),
        )

        assert len(self.return_legs(slow_bridge, swap_id)) == 1
        assert first.status == second.status == SwapStatus.BRIDGING_BACK
        assert first.amount_out == second.amount_out == 5
        assert slow_orchestrator.get_swap_state(swap_id).status == SwapStatus.BRIDGING_BACK

    @pytest.mark.asyncio
    async def test_destination_completion_racing_recovery(
        self, slow_orchestrator, slow_bridge, make_request, user, clock
    ):
        cred = Credential.bridge(slow_bridge.name)
        swap_id = await slow_orchestrator.initiate(make_request())
        clock.advance(3600)

        results = await asyncio.gather(
            slow_orchestrator.handle_destination_completion(cred, swap_id, 5),
            slow_orchestrator.emergency_recovery(user, swap_id),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, StateConflictError)]
        assert not [r for r in results if isinstance(r, Exception) and r not in conflicts]
        assert slow_orchestrator.get_swap_state(swap_id).status == SwapStatus.RECOVERED
        assert len(self.return_legs(slow_bridge, swap_id)) == (0 if conflicts else 1)
        assert slow_orchestrator.get_user_active_swaps(USER) == []
        assert slow_orchestrator.get_statistics().failed_swaps == 1

    @pytest.mark.asyncio
    async def test_racing_recoveries_recover_once(
        self, slow_orchestrator, make_request, user, admin, clock, recorded
    ):
        swap_id = await slow_orchestrator.initiate(make_request())
        clock.advance(3600)

        results = await asyncio.gather(
            slow_orchestrator.emergency_recovery(user, swap_id),
            slow_orchestrator.emergency_recovery(admin, swap_id),
            return_exceptions=True,
        )

        assert sum(isinstance(r, StateConflictError) for r in results) == 1
        assert slow_orchestrator.get_statistics().failed_swaps == 1
        assert [e.type for e in recorded].count(EventType.SWAP_RECOVERED) == 1


class TestLockRegistry:
    """Tests that per-swap locks do not outlive their callers."""

    @pytest.mark.asyncio
    async def test_unknown_swap_creates_no_lock(self, orchestrator, bridge_cred):
        for call in (
            orchestrator.handle_destination_completion(bridge_cred, "0xmissing", 1),
            orchestrator.complete(bridge_cred, "0xmissing"),
            orchestrator.report_failure(bridge_cred, "0xmissing", "timeout"),
        ):
            with pytest.raises(ValidationError):
                await call

        assert len(orchestrator._locks) == 0

    @pytest.mark.asyncio
    async def test_locks_released_after_lifecycle(self, orchestrator, make_request, bridge_cred):
        swap_id = await orchestrator.initiate(make_request())
        await orchestrator.handle_destination_completion(bridge_cred, swap_id, 5)
        await orchestrator.complete(bridge_cred, swap_id)

        assert len(orchestrator._locks) == 0
