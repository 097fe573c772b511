"""Swap advisor: the decision entry point contract.

Called on each swap attempt. Produces an OptimizationQuote from the user's
preferences and, when switching chains pays off, hands the swap to the
orchestrator. Otherwise the caller executes locally.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, Optional

from gaswise.auth import Credential, Role
from gaswise.config import Settings
from gaswise.cost_model import CostModel
from gaswise.errors import AuthorizationError, StalenessError, ValidationError
from gaswise.events import Event, EventType
from gaswise.orchestrator import SwapOrchestrator, SwapRequest

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class UserPreferences:
    """Per-user optimization settings."""

    min_savings_threshold_bps: int = 500
    min_absolute_savings_usd: Decimal = Decimal("10")
    max_acceptable_bridge_time: int = 1_800
    enable_cross_chain_optimization: bool = True
    enable_usd_display: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "UserPreferences":
        return cls(
            min_savings_threshold_bps=settings.default_min_savings_bps,
            min_absolute_savings_usd=settings.default_min_savings_usd,
            max_acceptable_bridge_time=settings.default_max_bridge_time,
        )

    def validate(self) -> None:
        if not 0 <= self.min_savings_threshold_bps <= 10_000:
            raise ValidationError("min_savings_threshold_bps must be within [0, 10000]")
        if self.min_absolute_savings_usd < 0:
            raise ValidationError("min_absolute_savings_usd must not be negative")
        if self.max_acceptable_bridge_time < 0:
            raise ValidationError("max_acceptable_bridge_time must not be negative")


class PreferenceStore:
    """User preferences with system defaults for users who set none."""

    def __init__(self, defaults: Optional[UserPreferences] = None):
        self.defaults = defaults or UserPreferences()
        self._prefs: dict[str, UserPreferences] = {}

    def get(self, user: str) -> UserPreferences:
        return self._prefs.get(user.lower(), self.defaults)

    def set(self, credential: Credential, user: str, preferences: UserPreferences) -> None:
        """Store preferences; users may only change their own."""
        _require_self_or_admin(credential, user)
        preferences.validate()
        self._prefs[user.lower()] = preferences

    def reset(self, credential: Credential, user: str) -> None:
        _require_self_or_admin(credential, user)
        self._prefs.pop(user.lower(), None)


def _require_self_or_admin(credential: Credential, user: str) -> None:
    if credential.is_admin:
        return
    if credential.role == Role.USER and credential.subject == user.lower():
        return
    raise AuthorizationError(f"'{credential.subject}' may not change preferences of {user}")


@dataclass(frozen=True)
class OptimizationQuote:
    """Answer returned to the swap entry point."""

    original_chain_id: int
    optimized_chain_id: int
    original_cost_usd: Decimal
    optimized_cost_usd: Decimal
    savings_usd: Decimal
    savings_percentage_bps: int
    estimated_bridge_time: int
    should_optimize: bool
    reliable: bool = True

    def to_dict(self, include_usd: bool = True) -> dict:
        data = {
            "original_chain_id": self.original_chain_id,
            "optimized_chain_id": self.optimized_chain_id,
            "savings_percentage_bps": self.savings_percentage_bps,
            "estimated_bridge_time": self.estimated_bridge_time,
            "should_optimize": self.should_optimize,
            "reliable": self.reliable,
        }
        if include_usd:
            data.update(
                original_cost_usd=str(self.original_cost_usd),
                optimized_cost_usd=str(self.optimized_cost_usd),
                savings_usd=str(self.savings_usd),
            )
        return data


@dataclass
class AdvisorDecision:
    """What the entry point should do with a swap attempt."""

    quote: OptimizationQuote
    swap_id: Optional[str] = None
    reason: str = ""

    @property
    def execute_locally(self) -> bool:
        return self.swap_id is None


@dataclass
class UserSavings:
    """Savings realized by a user's completed cross-chain swaps."""

    total_savings_usd: Decimal = ZERO
    optimized_swaps: int = 0
    swaps_by_chain: dict[int, int] = field(default_factory=dict)


class SwapAdvisor:
    """Quotes swaps and routes favorable ones to the orchestrator."""

    def __init__(
        self,
        cost_model: CostModel,
        orchestrator: SwapOrchestrator,
        preferences: PreferenceStore,
        swap_deadline: int = 1_800,
        clock: Callable[[], float] = time.time,
    ):
        self.cost_model = cost_model
        self.orchestrator = orchestrator
        self.preferences = preferences
        self.swap_deadline = swap_deadline
        self._clock = clock
        self._savings: dict[str, UserSavings] = {}
        self._destinations: dict[str, int] = {}

        orchestrator.events.subscribe(self._on_event)

    async def get_quote(
        self,
        user: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        current_chain: int,
        preferences: Optional[UserPreferences] = None,
    ) -> OptimizationQuote:
        """Quote a swap attempt.

        Stale data never raises here: it yields ``reliable=False`` and
        ``should_optimize=False`` so the caller simply executes locally.
        """
        if not user:
            raise ValidationError("User is not set")
        if amount_in <= 0:
            raise ValidationError("Swap amount must be positive")
        prefs = preferences or self.preferences.get(user)

        if not self.cost_model.is_cost_calculation_reliable(current_chain):
            logger.info(f"Gas price for chain {current_chain} is stale; quoting local execution")
            return await self._local_quote(token_in, token_out, amount_in, current_chain, reliable=False)

        if not prefs.enable_cross_chain_optimization:
            return await self._local_quote(token_in, token_out, amount_in, current_chain)

        excluded = [
            chain_id
            for chain_id in self.cost_model.registry.chain_ids
            if not self.orchestrator.is_chain_enabled(chain_id)
        ]

        try:
            result = await self.cost_model.find_optimal_chain(
                token_in,
                token_out,
                amount_in,
                prefs.min_savings_threshold_bps,
                prefs.min_absolute_savings_usd,
                prefs.max_acceptable_bridge_time,
                excluded,
                current_chain=current_chain,
            )
        except StalenessError as e:
            logger.warning(f"Quote for {user} is advisory only: {e}")
            return _empty_quote(current_chain)

        return OptimizationQuote(
            original_chain_id=result.original_chain_id,
            optimized_chain_id=result.optimal_chain_id,
            original_cost_usd=result.original_cost_usd,
            optimized_cost_usd=result.optimal_cost_usd,
            savings_usd=result.savings_usd,
            savings_percentage_bps=result.savings_bps,
            estimated_bridge_time=result.estimated_bridge_time,
            should_optimize=result.should_optimize,
        )

    async def execute(
        self,
        user: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        current_chain: int,
        recipient: Optional[str] = None,
    ) -> AdvisorDecision:
        """Quote and, if favorable, initiate the cross-chain swap."""
        quote = await self.get_quote(user, token_in, token_out, amount_in, current_chain)

        if not quote.should_optimize:
            return AdvisorDecision(quote=quote, reason="local execution is cheapest")
        if self.orchestrator.paused:
            return AdvisorDecision(
                quote=replace(quote, should_optimize=False), reason="cross-chain swaps are paused"
            )

        swap_id = await self.orchestrator.initiate(
            SwapRequest(
                user=user,
                token_in=token_in,
                token_out=token_out,
                amount_in=amount_in,
                source_chain=current_chain,
                destination_chain=quote.optimized_chain_id,
                deadline=self._clock() + self.swap_deadline,
                recipient=recipient,
                expected_savings_usd=quote.savings_usd,
            )
        )
        self._destinations[swap_id] = quote.optimized_chain_id
        return AdvisorDecision(quote=quote, swap_id=swap_id, reason="routed cross-chain")

    def get_user_savings(self, user: str) -> UserSavings:
        savings = self._savings.get(user.lower(), UserSavings())
        return replace(savings, swaps_by_chain=dict(savings.swaps_by_chain))

    async def _local_quote(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        current_chain: int,
        reliable: bool = True,
    ) -> OptimizationQuote:
        try:
            cost = await self.cost_model.calculate_total_cost(
                current_chain,
                token_in,
                token_out,
                amount_in,
                self.cost_model.gas_estimates.same_chain,
                current_chain=current_chain,
            )
        except StalenessError as e:
            logger.warning(f"Local cost for chain {current_chain} unavailable: {e}")
            return _empty_quote(current_chain)

        return OptimizationQuote(
            original_chain_id=current_chain,
            optimized_chain_id=current_chain,
            original_cost_usd=cost.total_cost_usd,
            optimized_cost_usd=cost.total_cost_usd,
            savings_usd=ZERO,
            savings_percentage_bps=0,
            estimated_bridge_time=0,
            should_optimize=False,
            reliable=reliable,
        )

    def _on_event(self, event: Event) -> None:
        if event.type in (EventType.SWAP_FAILED, EventType.SWAP_RECOVERED):
            self._destinations.pop(event.entity_id, None)
            return
        if event.type != EventType.SWAP_COMPLETED:
            return

        chain_id = self._destinations.pop(event.entity_id, None)
        expected = event.data.get("expected_savings_usd")
        user = event.data.get("user")
        if expected is None or not user:
            return

        savings = self._savings.setdefault(user, UserSavings())
        savings.total_savings_usd += Decimal(expected)
        savings.optimized_swaps += 1
        if chain_id is not None:
            savings.swaps_by_chain[chain_id] = savings.swaps_by_chain.get(chain_id, 0) + 1


def _empty_quote(chain_id: int) -> OptimizationQuote:
    return OptimizationQuote(
        original_chain_id=chain_id,
        optimized_chain_id=chain_id,
        original_cost_usd=ZERO,
        optimized_cost_usd=ZERO,
        savings_usd=ZERO,
        savings_percentage_bps=0,
        estimated_bridge_time=0,
        should_optimize=False,
        reliable=False,
    )
