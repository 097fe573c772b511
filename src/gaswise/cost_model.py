"""USD cost model for executing a swap on each supported chain.

Flow:
1. Price the swap on the current chain with a same-chain gas estimate
2. Price every other eligible chain with a cross-chain gas estimate
   (source execution + bridge message + destination execution) plus bridge fee
3. Pick the cheapest candidate in registry order (first wins ties)
4. Recommend switching only if savings pass BOTH the relative (bps) and the
   absolute (USD) threshold

All USD amounts are Decimal; rates are integer basis points.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, Optional

from gaswise.auth import Credential, require_admin
from gaswise.chains import ChainRegistry
from gaswise.config import Settings
from gaswise.errors import GasWiseError, ValidationError
from gaswise.events import EventBus, EventType
from gaswise.oracles.feeds import PriceFeeds
from gaswise.tracker import GasPriceTracker

logger = logging.getLogger(__name__)

BPS = 10_000
ZERO = Decimal("0")


@dataclass(frozen=True)
class CostBreakdown:
    """Estimated USD cost of executing a swap on one chain."""

    gas_cost_usd: Decimal
    bridge_fee_usd: Decimal
    slippage_cost_usd: Decimal
    total_cost_usd: Decimal
    estimated_execution_time: int  # seconds of bridging, 0 for local execution


@dataclass(frozen=True)
class CostParameters:
    """Tunable cost coefficients."""

    base_bridge_fee_usd: Decimal = Decimal("2")
    bridge_fee_percentage_bps: int = 10
    max_slippage_bps: int = 50
    mev_protection_fee_bps: int = 10
    gas_estimation_multiplier_bps: int = 12_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "CostParameters":
        return cls(
            base_bridge_fee_usd=settings.base_bridge_fee_usd,
            bridge_fee_percentage_bps=settings.bridge_fee_percentage_bps,
            max_slippage_bps=settings.max_slippage_bps,
            mev_protection_fee_bps=settings.mev_protection_fee_bps,
            gas_estimation_multiplier_bps=settings.gas_estimation_multiplier_bps,
        )

    def to_dict(self) -> dict:
        return {
            "base_bridge_fee_usd": str(self.base_bridge_fee_usd),
            "bridge_fee_percentage_bps": self.bridge_fee_percentage_bps,
            "max_slippage_bps": self.max_slippage_bps,
            "mev_protection_fee_bps": self.mev_protection_fee_bps,
            "gas_estimation_multiplier_bps": self.gas_estimation_multiplier_bps,
        }


@dataclass(frozen=True)
class CostParameterBounds:
    """Accepted ranges for CostParameters, tunable per deployment."""

    max_base_bridge_fee_usd: Decimal = Decimal("100")
    max_bridge_fee_percentage_bps: int = 1_000
    max_slippage_bps: int = 1_000
    max_mev_protection_fee_bps: int = 500
    min_gas_multiplier_bps: int = 10_000
    max_gas_multiplier_bps: int = 30_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "CostParameterBounds":
        return cls(
            max_base_bridge_fee_usd=settings.max_base_bridge_fee_usd,
            max_bridge_fee_percentage_bps=settings.max_bridge_fee_percentage_bps,
            max_slippage_bps=settings.max_slippage_bound_bps,
            max_mev_protection_fee_bps=settings.max_mev_protection_fee_bps,
            min_gas_multiplier_bps=settings.min_gas_multiplier_bps,
            max_gas_multiplier_bps=settings.max_gas_multiplier_bps,
        )

    def check(self, params: CostParameters) -> None:
        """Raise ValidationError if any parameter is out of bounds."""
        if not ZERO <= params.base_bridge_fee_usd <= self.max_base_bridge_fee_usd:
            raise ValidationError(
                f"base_bridge_fee_usd must be within [0, {self.max_base_bridge_fee_usd}]"
            )
        if not 0 <= params.bridge_fee_percentage_bps <= self.max_bridge_fee_percentage_bps:
            raise ValidationError(
                f"bridge_fee_percentage_bps must be within [0, {self.max_bridge_fee_percentage_bps}]"
            )
        if not 0 <= params.max_slippage_bps <= self.max_slippage_bps:
            raise ValidationError(f"max_slippage_bps must be within [0, {self.max_slippage_bps}]")
        if not 0 <= params.mev_protection_fee_bps <= self.max_mev_protection_fee_bps:
            raise ValidationError(
                f"mev_protection_fee_bps must be within [0, {self.max_mev_protection_fee_bps}]"
            )
        if not self.min_gas_multiplier_bps <= params.gas_estimation_multiplier_bps <= self.max_gas_multiplier_bps:
            raise ValidationError(
                "gas_estimation_multiplier_bps must be within "
                f"[{self.min_gas_multiplier_bps}, {self.max_gas_multiplier_bps}]"
            )


@dataclass(frozen=True)
class GasEstimates:
    """Gas units consumed by local and cross-chain execution."""

    same_chain: int = 150_000
    cross_chain_source: int = 100_000
    cross_chain_bridge: int = 200_000
    cross_chain_destination: int = 150_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "GasEstimates":
        return cls(
            same_chain=settings.same_chain_swap_gas,
            cross_chain_source=settings.cross_chain_source_gas,
            cross_chain_bridge=settings.cross_chain_bridge_gas,
            cross_chain_destination=settings.cross_chain_destination_gas,
        )

    @property
    def cross_chain(self) -> int:
        return self.cross_chain_source + self.cross_chain_bridge + self.cross_chain_destination


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of the optimal-chain search."""

    original_chain_id: int
    optimal_chain_id: int
    original_cost_usd: Decimal
    optimal_cost_usd: Decimal
    savings_usd: Decimal
    savings_bps: int
    estimated_bridge_time: int
    should_optimize: bool
    breakdowns: dict[int, CostBreakdown] = field(default_factory=dict)


def calculate_savings_percent(original: Decimal, optimized: Decimal) -> int:
    """Savings of ``optimized`` over ``original`` in basis points (floored)."""
    if optimized >= original or original <= 0:
        return 0
    return int((Decimal(original) - Decimal(optimized)) * BPS // Decimal(original))


def meets_threshold(
    original: Decimal,
    optimized: Decimal,
    min_savings_bps: int,
    min_absolute_savings: Decimal,
) -> bool:
    """True only if savings pass both the relative and the absolute test."""
    savings = Decimal(original) - Decimal(optimized)
    if savings <= 0:
        return False
    relative_ok = calculate_savings_percent(original, optimized) >= min_savings_bps
    absolute_ok = savings >= Decimal(min_absolute_savings)
    return relative_ok and absolute_ok


class CostModel:
    """Compares USD execution cost across chains."""

    def __init__(
        self,
        registry: ChainRegistry,
        tracker: GasPriceTracker,
        feeds: PriceFeeds,
        events: EventBus,
        current_chain: int,
        parameters: Optional[CostParameters] = None,
        bounds: Optional[CostParameterBounds] = None,
        gas_estimates: Optional[GasEstimates] = None,
    ):
        self.registry = registry
        self.tracker = tracker
        self.feeds = feeds
        self.events = events
        self.bounds = bounds or CostParameterBounds()
        self.gas_estimates = gas_estimates or GasEstimates()

        parameters = parameters or CostParameters()
        self.bounds.check(parameters)
        self._parameters = parameters

        registry.get(current_chain)
        self.current_chain = current_chain

    @property
    def parameters(self) -> CostParameters:
        return self._parameters

    async def calculate_total_cost(
        self,
        chain_id: int,
        token_in: str,
        token_out: str,
        amount_in: int,
        gas_usage_estimate: int,
        current_chain: Optional[int] = None,
    ) -> CostBreakdown:
        """USD cost of executing the swap on ``chain_id``.

        Read-only: depends only on its inputs, the tracker and the price feeds.

        Raises:
            ValidationError: Unregistered chain or unknown token
            StalenessError: Missing gas price or stale oracle answer
        """
        self.registry.get(chain_id)
        origin = self.current_chain if current_chain is None else current_chain
        if gas_usage_estimate < 0:
            raise ValidationError(f"Negative gas estimate {gas_usage_estimate}")

        params = self._parameters
        usd_per_gas = await self.tracker.get_usd_price(chain_id)
        trade_usd = await self.feeds.token_usd_value(token_in, amount_in)

        gas_units = Decimal(gas_usage_estimate) * params.gas_estimation_multiplier_bps / BPS
        gas_cost = gas_units * usd_per_gas

        if chain_id != origin:
            bridge_fee = params.base_bridge_fee_usd + trade_usd * params.bridge_fee_percentage_bps / BPS
            execution_time = self.registry.bridge_time(origin, chain_id)
        else:
            bridge_fee = ZERO
            execution_time = 0

        # Worst case, not a fill simulation.
        slippage = trade_usd * params.max_slippage_bps / BPS

        return CostBreakdown(
            gas_cost_usd=gas_cost,
            bridge_fee_usd=bridge_fee,
            slippage_cost_usd=slippage,
            total_cost_usd=gas_cost + bridge_fee + slippage,
            estimated_execution_time=execution_time,
        )

    async def _candidate_cost(
        self,
        chain_id: int,
        token_in: str,
        token_out: str,
        amount_in: int,
        origin: int,
    ) -> Optional[CostBreakdown]:
        """Price one candidate chain, or None if its quote is unusable."""
        try:
            return await self.calculate_total_cost(
                chain_id, token_in, token_out, amount_in, self.gas_estimates.cross_chain, origin
            )
        except GasWiseError as e:
            logger.warning(f"Skipping chain {chain_id}: {type(e).__name__}: {e}")
            return None

    async def find_optimal_chain(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_savings_threshold_bps: int,
        min_absolute_savings_usd: Decimal,
        max_bridge_time: int = 0,
        exclude_chains: Iterable[int] = (),
        current_chain: Optional[int] = None,
    ) -> OptimizationResult:
        """Find the cheapest chain to execute on.

        Args:
            token_in: Input token address
            token_out: Output token address
            amount_in: Input amount in base units
            min_savings_threshold_bps: Relative savings required
            min_absolute_savings_usd: Absolute savings required
            max_bridge_time: Skip chains slower than this (0 = no limit)
            exclude_chains: Chains never to recommend
            current_chain: Chain the swap would run on locally

        Returns:
            OptimizationResult; ``should_optimize`` is False unless both
            thresholds pass.
        """
        if amount_in <= 0:
            raise ValidationError("Swap amount must be positive")
        if min_savings_threshold_bps < 0 or min_absolute_savings_usd < 0:
            raise ValidationError("Savings thresholds must not be negative")

        origin = self.current_chain if current_chain is None else current_chain
        excluded = set(exclude_chains)

        current = await self.calculate_total_cost(
            origin, token_in, token_out, amount_in, self.gas_estimates.same_chain, origin
        )
        breakdowns: dict[int, CostBreakdown] = {origin: current}

        candidates = []
        for chain_id in self.registry.chain_ids:
            if chain_id == origin or chain_id in excluded:
                continue
            if max_bridge_time > 0 and self.registry.bridge_time(origin, chain_id) > max_bridge_time:
                logger.debug(f"Skipping chain {chain_id}: bridge slower than {max_bridge_time}s")
                continue
            if not self.is_cost_calculation_reliable(chain_id):
                logger.debug(f"Skipping chain {chain_id}: gas price is stale")
                continue
            candidates.append(chain_id)

        costs = await asyncio.gather(
            *(self._candidate_cost(c, token_in, token_out, amount_in, origin) for c in candidates)
        )

        best_chain: Optional[int] = None
        best: Optional[CostBreakdown] = None
        for chain_id, cost in zip(candidates, costs):
            if cost is None:
                continue
            if max_bridge_time > 0 and cost.estimated_execution_time > max_bridge_time:
                continue
            breakdowns[chain_id] = cost
            # Strict comparison keeps the earliest registered chain on ties.
            if best is None or cost.total_cost_usd < best.total_cost_usd:
                best_chain, best = chain_id, cost

        if best is not None and meets_threshold(
            current.total_cost_usd,
            best.total_cost_usd,
            min_savings_threshold_bps,
            min_absolute_savings_usd,
        ):
            savings = max(current.total_cost_usd - best.total_cost_usd, ZERO)
            result = OptimizationResult(
                original_chain_id=origin,
                optimal_chain_id=best_chain,
                original_cost_usd=current.total_cost_usd,
                optimal_cost_usd=best.total_cost_usd,
                savings_usd=savings,
                savings_bps=calculate_savings_percent(current.total_cost_usd, best.total_cost_usd),
                estimated_bridge_time=best.estimated_execution_time,
                should_optimize=True,
                breakdowns=breakdowns,
            )
            logger.info(
                f"Recommend chain {best_chain} over {origin}: saves ${savings:.2f} "
                f"({result.savings_bps} bps)"
            )
            return result

        return OptimizationResult(
            original_chain_id=origin,
            optimal_chain_id=origin,
            original_cost_usd=current.total_cost_usd,
            optimal_cost_usd=current.total_cost_usd,
            savings_usd=ZERO,
            savings_bps=0,
            estimated_bridge_time=0,
            should_optimize=False,
            breakdowns=breakdowns,
        )

    def estimate_output(self, amount_in: int) -> int:
        """Worst-case output of a remote swap: input less slippage and MEV haircut."""
        params = self._parameters
        haircut = params.max_slippage_bps + params.mev_protection_fee_bps
        return amount_in * max(BPS - haircut, 0) // BPS

    def is_cost_calculation_reliable(self, chain_id: int) -> bool:
        """False when a quote for this chain should be treated as advisory only."""
        return self.registry.is_registered(chain_id) and not self.tracker.is_stale(chain_id)

    # ======================
    # Administration
    # ======================

    async def update_cost_parameters(self, credential: Credential, **changes) -> CostParameters:
        """Replace cost coefficients; unspecified fields keep their value."""
        require_admin(credential, "update cost parameters")

        try:
            updated = replace(self._parameters, **changes)
        except TypeError as e:
            raise ValidationError(f"Unknown cost parameter: {e}") from e
        if "base_bridge_fee_usd" in changes:
            updated = replace(updated, base_bridge_fee_usd=Decimal(str(changes["base_bridge_fee_usd"])))

        self.bounds.check(updated)
        self._parameters = updated
        logger.info(f"Cost parameters updated: {updated.to_dict()}")

        await self.events.publish(
            EventType.CONFIGURATION_CHANGED, "cost_parameters", updated.to_dict()
        )
        return updated

    async def set_bridge_time(
        self, credential: Credential, source: int, destination: int, seconds: int
    ) -> None:
        require_admin(credential, "update bridge times")
        self.registry.set_bridge_time(source, destination, seconds)
        await self.events.publish(
            EventType.CONFIGURATION_CHANGED,
            f"{source}->{destination}",
            {"setting": "bridge_time", "seconds": seconds},
        )

    async def set_gas_estimates(self, credential: Credential, estimates: GasEstimates) -> None:
        require_admin(credential, "update gas estimates")
        for name in ("same_chain", "cross_chain_source", "cross_chain_bridge", "cross_chain_destination"):
            if getattr(estimates, name) <= 0:
                raise ValidationError(f"Gas estimate {name} must be positive")

        self.gas_estimates = estimates
        await self.events.publish(
            EventType.CONFIGURATION_CHANGED,
            "gas_estimates",
            {"same_chain": estimates.same_chain, "cross_chain": estimates.cross_chain},
        )
