"""Cross-chain swap orchestrator.

Lifecycle:
    initiated -> bridging -> swapping -> bridging_back -> completed
with alternate terminal states failed and recovered.

1. initiate() dispatches the outbound bridge leg and records the swap as bridging
2. The bridge relayer reports the destination swap result; the swap passes
   through swapping and the return leg is dispatched (bridging_back)
3. The bridge relayer confirms the return leg (completed)
4. If the bridge stalls, the owner or an admin may recover the swap once the
   recovery timeout has elapsed since initiation

Every mutation of a swap runs under that swap's lock and builds the new state
on a copy, committing only after all awaited calls have succeeded.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from gaswise.auth import Credential, Role, require_admin, require_role
from gaswise.bridge import BridgeLeg, BridgeTransfer, BridgeTransport
from gaswise.chains import ChainRegistry
from gaswise.errors import (
    AuthorizationError,
    PausedSystemError,
    StateConflictError,
    TimeoutGateError,
    ValidationError,
)
from gaswise.events import EventBus, EventType
from gaswise.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_TIMEOUT = 3600


class SwapStatus(str, Enum):
    """Swap state machine states."""

    INITIATED = "initiated"
    BRIDGING = "bridging"
    SWAPPING = "swapping"
    BRIDGING_BACK = "bridging_back"
    COMPLETED = "completed"
    FAILED = "failed"
    RECOVERED = "recovered"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SwapStatus.COMPLETED, SwapStatus.FAILED, SwapStatus.RECOVERED})


@dataclass(frozen=True)
class SwapRequest:
    """A request to execute a swap on another chain."""

    user: str
    token_in: str
    token_out: str
    amount_in: int
    source_chain: int
    destination_chain: int
    deadline: float
    recipient: Optional[str] = None
    expected_savings_usd: Optional[Decimal] = None


@dataclass
class SwapState:
    """Authoritative record of one cross-chain swap."""

    swap_id: str
    user: str
    token_in: str
    token_out: str
    amount_in: int
    source_chain: int
    destination_chain: int
    recipient: str
    initiated_at: float
    deadline: float
    status: SwapStatus
    amount_out: int = 0
    completed_at: Optional[float] = None
    bridge_reference: Optional[str] = None
    return_bridge_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    expected_savings_usd: Optional[Decimal] = None
    transitions: list[tuple[SwapStatus, float]] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def to_dict(self) -> dict:
        return {
            "swap_id": self.swap_id,
            "user": self.user,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "source_chain": self.source_chain,
            "destination_chain": self.destination_chain,
            "recipient": self.recipient,
            "initiated_at": self.initiated_at,
            "completed_at": self.completed_at,
            "deadline": self.deadline,
            "status": self.status.value,
            "bridge_reference": self.bridge_reference,
            "return_bridge_reference": self.return_bridge_reference,
            "failure_reason": self.failure_reason,
        }


@dataclass
class SwapStatistics:
    """Running totals across all swaps."""

    total_swaps: int = 0
    successful_swaps: int = 0
    failed_swaps: int = 0
    total_execution_time: float = 0.0

    @property
    def average_execution_time(self) -> float:
        if self.successful_swaps == 0:
            return 0.0
        return self.total_execution_time / self.successful_swaps


def _snapshot(state: SwapState) -> SwapState:
    """Copy handed to callers so they cannot mutate the stored record."""
    return replace(state, transitions=list(state.transitions))


class SwapOrchestrator:
    """Owns the lifecycle of every cross-chain swap."""

    def __init__(
        self,
        registry: ChainRegistry,
        bridge: BridgeTransport,
        events: EventBus,
        recovery_timeout: int = DEFAULT_RECOVERY_TIMEOUT,
        output_estimator: Optional[Callable[[int], int]] = None,
        lock_timeout: Optional[float] = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the orchestrator.

        Args:
            registry: Supported chains
            bridge: Transport that moves value between chains
            events: Event bus for monitoring
            recovery_timeout: Seconds after initiation before emergency recovery
            output_estimator: Estimates destination output when the bridge
                does not report one (defaults to amount_in)
            lock_timeout: Max wait for a swap's lock
            clock: Time source
        """
        self.registry = registry
        self.events = events
        self.recovery_timeout = recovery_timeout
        self._bridge = bridge
        self._estimate_output = output_estimator or (lambda amount_in: amount_in)
        self._clock = clock
        self._locks = KeyedLocks(timeout=lock_timeout)

        self._swaps: dict[str, SwapState] = {}
        self._active: dict[str, list[str]] = {}
        self._stats = SwapStatistics()
        self._disabled_chains: set[int] = set()
        self._paused = False
        self._nonce = 0

    @property
    def bridge(self) -> BridgeTransport:
        return self._bridge

    @property
    def paused(self) -> bool:
        return self._paused

    # ======================
    # Lifecycle
    # ======================

    async def initiate(self, request: SwapRequest) -> str:
        """Start a cross-chain swap and return its id.

        Raises:
            PausedSystemError: Initiation is paused
            ValidationError: Bad request or disabled destination
            BridgeError: Outbound leg could not be dispatched (nothing stored)
        """
        if self._paused:
            raise PausedSystemError("Swap initiation is paused")

        now = self._clock()
        self._validate_request(request, now)

        user = request.user.lower()
        swap_id = self._next_swap_id(request, now)
        recipient = (request.recipient or request.user).lower()

        async with self._locks.hold(swap_id, operation="initiate"):
            reference = await self._bridge.send(
                BridgeTransfer(
                    swap_id=swap_id,
                    leg=BridgeLeg.OUTBOUND,
                    source_token=request.token_in,
                    destination_token=request.token_in,
                    amount=request.amount_in,
                    source_chain=request.source_chain,
                    destination_chain=request.destination_chain,
                    recipient=recipient,
                    deadline=request.deadline,
                    data={"token_out": request.token_out},
                )
            )

            self._swaps[swap_id] = SwapState(
                swap_id=swap_id,
                user=user,
                token_in=request.token_in,
                token_out=request.token_out,
                amount_in=request.amount_in,
                source_chain=request.source_chain,
                destination_chain=request.destination_chain,
                recipient=recipient,
                initiated_at=now,
                deadline=request.deadline,
                status=SwapStatus.BRIDGING,
                bridge_reference=reference,
                expected_savings_usd=request.expected_savings_usd,
                transitions=[(SwapStatus.BRIDGING, now)],
            )
            self._active.setdefault(user, []).append(swap_id)
            self._stats.total_swaps += 1

        logger.info(
            f"Swap {swap_id[:10]} initiated: {request.amount_in} {request.token_in} "
            f"{request.source_chain}->{request.destination_chain} (ref {reference})"
        )
        await self.events.publish(
            EventType.SWAP_INITIATED,
            swap_id,
            {
                "user": user,
                "amount_in": request.amount_in,
                "source_chain": request.source_chain,
                "destination_chain": request.destination_chain,
            },
            timestamp=now,
        )
        return swap_id

    async def handle_destination_completion(
        self,
        credential: Credential,
        swap_id: str,
        amount_out: Optional[int] = None,
    ) -> SwapState:
        """Apply the destination swap result and start the return leg.

        Args:
            credential: Must be the configured bridge integration
            swap_id: Swap being advanced
            amount_out: Output reported by the bridge (estimated if omitted)
        """
        self._require_bridge(credential, "report destination completion")
        if amount_out is not None and amount_out < 0:
            raise ValidationError("amount_out must not be negative", swap_id)

        self._get(swap_id)
        async with self._locks.hold(swap_id, operation="destination_completion"):
            state = self._get(swap_id)

            if state.status in (SwapStatus.SWAPPING, SwapStatus.BRIDGING_BACK, SwapStatus.COMPLETED):
                logger.info(f"Swap {swap_id[:10]}: duplicate destination completion ignored")
                return _snapshot(state)
            self._expect(state, SwapStatus.BRIDGING, "handle destination completion")

            now = self._clock()
            output = self._estimate_output(state.amount_in) if amount_out is None else amount_out
            updated = replace(
                state,
                status=SwapStatus.SWAPPING,
                amount_out=output,
                transitions=[*state.transitions, (SwapStatus.SWAPPING, now)],
            )
            logger.info(f"Swap {swap_id[:10]}: destination swap produced {output} {state.token_out}")

            reference = await self._bridge.send(
                BridgeTransfer(
                    swap_id=swap_id,
                    leg=BridgeLeg.RETURN,
                    source_token=state.token_out,
                    destination_token=state.token_out,
                    amount=output,
                    source_chain=state.destination_chain,
                    destination_chain=state.source_chain,
                    recipient=state.recipient,
                    deadline=state.deadline,
                )
            )

            updated = replace(
                updated,
                status=SwapStatus.BRIDGING_BACK,
                return_bridge_reference=reference,
                transitions=[*updated.transitions, (SwapStatus.BRIDGING_BACK, now)],
            )
            self._swaps[swap_id] = updated

        return _snapshot(updated)

    async def complete(self, credential: Credential, swap_id: str) -> SwapState:
        """Mark a swap completed once the return leg has landed."""
        self._require_bridge(credential, "complete swaps")

        self._get(swap_id)
        async with self._locks.hold(swap_id, operation="complete"):
            state = self._get(swap_id)

            if state.status == SwapStatus.COMPLETED:
                logger.info(f"Swap {swap_id[:10]}: duplicate completion ignored")
                return _snapshot(state)
            self._expect(state, SwapStatus.BRIDGING_BACK, "complete")

            now = self._clock()
            updated = replace(
                state,
                status=SwapStatus.COMPLETED,
                completed_at=now,
                transitions=[*state.transitions, (SwapStatus.COMPLETED, now)],
            )
            self._swaps[swap_id] = updated
            self._deactivate(updated)
            self._stats.successful_swaps += 1
            self._stats.total_execution_time += now - state.initiated_at

        # Proxy for savings: input not returned as output, floored at zero.
        realized = max(updated.amount_in - updated.amount_out, 0)
        data = {"user": updated.user, "amount_out": updated.amount_out, "savings": realized}
        if updated.expected_savings_usd is not None:
            data["expected_savings_usd"] = updated.expected_savings_usd

        logger.info(f"Swap {swap_id[:10]} completed in {now - state.initiated_at:.0f}s")
        await self.events.publish(EventType.SWAP_COMPLETED, swap_id, data, timestamp=now)
        return _snapshot(updated)

    async def report_failure(self, credential: Credential, swap_id: str, reason: str) -> SwapState:
        """Mark an in-flight swap failed (reported by the bridge relayer)."""
        self._require_bridge(credential, "report failures")

        self._get(swap_id)
        async with self._locks.hold(swap_id, operation="report_failure"):
            state = self._get(swap_id)

            if state.status == SwapStatus.FAILED:
                logger.info(f"Swap {swap_id[:10]}: duplicate failure report ignored")
                return _snapshot(state)
            if state.status.is_terminal:
                raise StateConflictError(
                    f"Cannot fail swap in status {state.status.value}", swap_id, state.status.value
                )

            now = self._clock()
            updated = replace(
                state,
                status=SwapStatus.FAILED,
                failure_reason=reason or "unspecified",
                transitions=[*state.transitions, (SwapStatus.FAILED, now)],
            )
            self._swaps[swap_id] = updated
            self._deactivate(updated)
            self._stats.failed_swaps += 1

        logger.warning(f"Swap {swap_id[:10]} failed: {updated.failure_reason}")
        await self.events.publish(
            EventType.SWAP_FAILED,
            swap_id,
            {"user": updated.user, "reason": updated.failure_reason},
            timestamp=now,
        )
        return _snapshot(updated)

    async def emergency_recovery(self, credential: Credential, swap_id: str) -> SwapState:
        """Recover a stuck swap after the recovery timeout.

        Raises:
            AuthorizationError: Caller is neither the owner nor an admin
            StateConflictError: Swap already completed or recovered
            TimeoutGateError: Recovery timeout has not elapsed yet
        """
        state = self._get(swap_id)
        if not (credential.is_admin or self._is_owner(credential, state)):
            raise AuthorizationError("Only the swap owner or an admin may recover it", swap_id)

        async with self._locks.hold(swap_id, operation="emergency_recovery"):
            state = self._get(swap_id)

            if state.status in (SwapStatus.COMPLETED, SwapStatus.RECOVERED):
                raise StateConflictError(
                    f"Swap already {state.status.value}", swap_id, state.status.value
                )

            now = self._clock()
            elapsed = now - state.initiated_at
            if elapsed < self.recovery_timeout:
                raise TimeoutGateError(
                    f"Recovery available in {self.recovery_timeout - elapsed:.0f}s",
                    swap_id,
                    retry_after=self.recovery_timeout - elapsed,
                )

            was_failed = state.status == SwapStatus.FAILED
            updated = replace(
                state,
                status=SwapStatus.RECOVERED,
                transitions=[*state.transitions, (SwapStatus.RECOVERED, now)],
            )
            self._swaps[swap_id] = updated
            self._deactivate(updated)
            # A failed swap was already counted when it failed.
            if not was_failed:
                self._stats.failed_swaps += 1

        logger.warning(
            f"Swap {swap_id[:10]} recovered by {credential.role.value}:{credential.subject}"
        )
        await self.events.publish(
            EventType.SWAP_RECOVERED,
            swap_id,
            {"user": updated.user, "by": credential.subject, "emergency": True},
            timestamp=now,
        )
        return _snapshot(updated)

    async def claim_failed_swap(self, credential: Credential, swap_id: str) -> SwapState:
        """Let the owner of a failed swap reclaim it."""
        state = self._get(swap_id)
        if not self._is_owner(credential, state):
            raise AuthorizationError("Only the swap owner may claim it", swap_id)

        async with self._locks.hold(swap_id, operation="claim_failed"):
            state = self._get(swap_id)
            self._expect(state, SwapStatus.FAILED, "claim")

            now = self._clock()
            updated = replace(
                state,
                status=SwapStatus.RECOVERED,
                transitions=[*state.transitions, (SwapStatus.RECOVERED, now)],
            )
            self._swaps[swap_id] = updated

        await self.events.publish(
            EventType.SWAP_RECOVERED,
            swap_id,
            {"user": updated.user, "by": credential.subject, "emergency": False},
            timestamp=now,
        )
        return _snapshot(updated)

    # ======================
    # Queries
    # ======================

    def now(self) -> float:
        """Current time on the orchestrator's clock."""
        return self._clock()

    def get_swap_state(self, swap_id: str) -> SwapState:
        return _snapshot(self._get(swap_id))

    def get_user_active_swaps(self, user: str) -> list[str]:
        return list(self._active.get(user.lower(), []))

    def get_statistics(self) -> SwapStatistics:
        return replace(self._stats)

    def is_chain_enabled(self, chain_id: int) -> bool:
        return self.registry.is_registered(chain_id) and chain_id not in self._disabled_chains

    @property
    def disabled_chains(self) -> list[int]:
        return sorted(self._disabled_chains)

    # ======================
    # Administration
    # ======================

    async def pause(self, credential: Credential) -> None:
        require_admin(credential, "pause swaps")
        if self._paused:
            return
        self._paused = True
        logger.warning(f"Swap initiation paused by {credential.subject}")
        await self.events.publish(EventType.PAUSED, "orchestrator", {"by": credential.subject})

    async def unpause(self, credential: Credential) -> None:
        require_admin(credential, "unpause swaps")
        if not self._paused:
            return
        self._paused = False
        logger.info(f"Swap initiation resumed by {credential.subject}")
        await self.events.publish(EventType.UNPAUSED, "orchestrator", {"by": credential.subject})

    async def update_chain_configuration(
        self, credential: Credential, chain_id: int, enabled: bool
    ) -> None:
        """Enable or disable a chain as a swap destination."""
        require_admin(credential, "configure chains")
        self.registry.get(chain_id)

        if enabled:
            self._disabled_chains.discard(chain_id)
        else:
            self._disabled_chains.add(chain_id)

        logger.info(f"Chain {chain_id} {'enabled' if enabled else 'disabled'} as destination")
        await self.events.publish(EventType.CHAIN_CONFIG_CHANGED, chain_id, {"enabled": enabled})

    async def update_bridge_integration(self, credential: Credential, bridge: BridgeTransport) -> None:
        """Swap the bridge transport; callbacks are then accepted only from it."""
        require_admin(credential, "change the bridge integration")
        if bridge is None:
            raise ValidationError("Bridge integration must not be empty")

        previous, self._bridge = self._bridge.name, bridge
        logger.warning(f"Bridge integration changed from {previous} to {bridge.name}")
        await self.events.publish(
            EventType.CONFIGURATION_CHANGED,
            "bridge",
            {"old": previous, "new": bridge.name},
        )

    # ======================
    # Internals
    # ======================

    def _validate_request(self, request: SwapRequest, now: float) -> None:
        if not request.user or not request.user.strip():
            raise ValidationError("Swap user is not set")
        if not request.token_in or not request.token_out:
            raise ValidationError("Swap tokens are not set")
        if request.amount_in <= 0:
            raise ValidationError("Swap amount must be positive")
        if request.deadline <= now:
            raise ValidationError(f"Swap deadline {request.deadline} has already passed")
        self.registry.get(request.source_chain)
        self.registry.get(request.destination_chain)
        if request.source_chain == request.destination_chain:
            raise ValidationError("Destination chain must differ from the source chain")
        if not self.is_chain_enabled(request.destination_chain):
            raise ValidationError(f"Chain {request.destination_chain} is disabled as a destination")

    def _next_swap_id(self, request: SwapRequest, now: float) -> str:
        self._nonce += 1
        material = "|".join(
            [
                request.user.lower(),
                request.token_in.lower(),
                request.token_out.lower(),
                str(request.amount_in),
                str(request.destination_chain),
                repr(now),
                str(self._nonce),
            ]
        )
        return "0x" + hashlib.sha256(material.encode()).hexdigest()

    def _get(self, swap_id: str) -> SwapState:
        state = self._swaps.get(swap_id)
        if state is None:
            raise ValidationError(f"Unknown swap {swap_id}", swap_id)
        return state

    def _expect(self, state: SwapState, status: SwapStatus, operation: str) -> None:
        if state.status != status:
            raise StateConflictError(
                f"Cannot {operation} swap in status {state.status.value} "
                f"(requires {status.value})",
                state.swap_id,
                state.status.value,
            )

    def _deactivate(self, state: SwapState) -> None:
        active = self._active.get(state.user)
        if active and state.swap_id in active:
            active.remove(state.swap_id)
            if not active:
                del self._active[state.user]

    def _require_bridge(self, credential: Credential, operation: str) -> None:
        require_role(credential, Role.BRIDGE, self._bridge.name, operation)

    @staticmethod
    def _is_owner(credential: Credential, state: SwapState) -> bool:
        return credential.role == Role.USER and credential.subject == state.user
