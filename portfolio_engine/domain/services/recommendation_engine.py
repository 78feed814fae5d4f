"""
RECOMMENDATION ENGINE
Convert ranked assets + investable capital → per-asset buy amounts

RESPONSIBILITIES:
- Priority = allocation gap × score / 100
- Distribute capital proportionally to positive priority
- Enforce class minimum allocation values and asset-count limits
- Round to the currency's minor unit without losing a cent

RULES:
❌ Over-allocated assets never receive capital (zero-buy signal)
❌ No negative amounts
✅ Σ amounts + unallocated == total investable, exactly
✅ Equal weights when no eligible asset has a positive priority
✅ Bounded redistribution (at most one pass per eligible asset)
✅ Deterministic ordering: priority desc, then symbol
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from portfolio_engine.domain.exceptions import InvariantViolationError
from portfolio_engine.domain.models import (
    AssetWithContext,
    RecommendationBreakdown,
    RecommendationItemResult,
    RecommendationOutcome,
)
from portfolio_engine.utils.decimal_utils import (
    HUNDRED,
    PERCENT_SCALE,
    ZERO,
    DecimalInput,
    add,
    divide,
    equals,
    is_negative,
    is_positive,
    less_than,
    minor_unit_scale,
    multiply,
    parse_decimal,
    round_half_up,
    subtract,
    to_fixed_string,
)

logger = logging.getLogger(__name__)

EXCLUDED_OVER_ALLOCATED = "over_allocated"
EXCLUDED_CLASS_ASSET_LIMIT = "class_asset_limit"
EXCLUDED_BELOW_MINIMUM = "below_min_allocation"
EXCLUDED_NON_POSITIVE_PRIORITY = "non_positive_priority"


class RecommendationEngine:
    """
    Recommendation Engine
    Splits a single investable amount across eligible assets
    """

    def __init__(self, currency_scale: Optional[int] = None):
        """
        Args:
            currency_scale: Fixed rounding scale; defaults to the currency's minor unit
        """
        self.currency_scale = currency_scale

    @staticmethod
    def calculate_priority(allocation_gap: DecimalInput, score: DecimalInput) -> Decimal:
        """Priority = gap × (score / 100); negative values are kept."""
        weighted = divide(multiply(allocation_gap, score), HUNDRED)
        return round_half_up(weighted, PERCENT_SCALE)

    def generate(
        self,
        assets: Sequence[AssetWithContext],
        total_investable: DecimalInput,
        currency: str,
    ) -> RecommendationOutcome:
        """
        Distribute capital across assets

        Args:
            assets: Scored assets with class context
            total_investable: Amount to distribute
            currency: Currency of the amount (drives rounding scale)

        Returns:
            RecommendationOutcome; empty when nothing can be invested
        """
        scale = self.currency_scale if self.currency_scale is not None else minor_unit_scale(currency)
        zero = round_half_up(ZERO, scale)
        total = round_half_up(total_investable, scale)

        if not is_positive(total):
            return RecommendationOutcome(
                items=(), total_investable=total, allocated_total=zero,
                unallocated=zero, currency=currency,
            )

        priorities = {
            asset.asset_id: self.calculate_priority(asset.allocation_status.allocation_gap, asset.score)
            for asset in assets
        }
        ordered = sorted(assets, key=lambda asset: (-priorities[asset.asset_id], asset.symbol))

        excluded = self._exclusions(ordered)
        eligible = [asset for asset in ordered if asset.asset_id not in excluded]

        if not eligible:
            logger.info("No eligible assets, %s %s left unallocated", total, currency)
            return RecommendationOutcome(
                items=(), total_investable=total, allocated_total=zero,
                unallocated=total, currency=currency,
            )

        weights = self._weights(eligible, priorities)
        for asset in eligible:
            if not is_positive(weights[asset.asset_id]):
                excluded[asset.asset_id] = EXCLUDED_NON_POSITIVE_PRIORITY

        active = [asset for asset in eligible if is_positive(weights[asset.asset_id])]
        raw, active, passes = self._apply_minimums(total, active, weights, excluded)

        amounts = self._round_with_remainder(total if active else ZERO, raw, active, scale)

        active_ids = {asset.asset_id for asset in active}
        weight_sum = add(*(weights[asset.asset_id] for asset in active))
        items: List[RecommendationItemResult] = []
        for index, asset in enumerate(ordered):
            status = asset.allocation_status
            funded = asset.asset_id in active_ids
            share = multiply(divide(weights[asset.asset_id], weight_sum), HUNDRED) if funded else ZERO
            reason = excluded.get(asset.asset_id)
            item = RecommendationItemResult(
                asset_id=asset.asset_id,
                symbol=asset.symbol,
                score=asset.score,
                class_id=asset.class_id,
                current_allocation=status.current_allocation_pct,
                target_allocation=status.target_midpoint_pct,
                allocation_gap=status.allocation_gap,
                priority=priorities[asset.asset_id],
                recommended_amount=amounts.get(asset.asset_id, zero),
                is_over_allocated=status.is_over_allocated,
                breakdown=RecommendationBreakdown(
                    class_name=asset.class_name,
                    current_value=asset.current_value,
                    target_midpoint=status.target_midpoint_pct,
                    raw_share=round_half_up(share, PERCENT_SCALE),
                    redistributed=passes > 0 and funded,
                    excluded_reason=reason,
                    explanation=self.explain_over_allocation(asset) if status.is_over_allocated else None,
                ),
                sort_order=index,
            )
            items.append(item)

        allocated = round_half_up(add(*amounts.values()), scale)
        outcome = RecommendationOutcome(
            items=tuple(items),
            total_investable=total,
            allocated_total=allocated,
            unallocated=round_half_up(subtract(total, allocated), scale),
            currency=currency,
            redistribution_passes=passes,
        )
        self.validate_outcome(outcome)
        return outcome

    @staticmethod
    def _exclusions(ordered: Sequence[AssetWithContext]) -> Dict[str, str]:
        """Over-allocated assets, then assets beyond their class's asset-count limit."""
        excluded: Dict[str, str] = {}
        funded_per_class: Dict[str, int] = {}
        for asset in ordered:
            if asset.is_over_allocated:
                excluded[asset.asset_id] = EXCLUDED_OVER_ALLOCATED
                continue
            count = funded_per_class.get(asset.class_id, 0) + 1
            funded_per_class[asset.class_id] = count
            if asset.max_asset_count is not None and count > asset.max_asset_count:
                excluded[asset.asset_id] = EXCLUDED_CLASS_ASSET_LIMIT
        return excluded

    @staticmethod
    def _weights(eligible: Sequence[AssetWithContext], priorities: Dict[str, Decimal]) -> Dict[str, Decimal]:
        positive = {
            asset.asset_id: priorities[asset.asset_id]
            for asset in eligible
            if is_positive(priorities[asset.asset_id])
        }
        if positive:
            return {asset.asset_id: positive.get(asset.asset_id, ZERO) for asset in eligible}

        logger.info("No positive priority among %d eligible assets, using equal weights", len(eligible))
        return {asset.asset_id: Decimal("1") for asset in eligible}

    @staticmethod
    def _apply_minimums(
        total: Decimal,
        active: List[AssetWithContext],
        weights: Dict[str, Decimal],
        excluded: Dict[str, str],
    ):
        """
        Drop the lowest-priority asset below its class floor and re-normalise,
        one asset per pass, until every remaining amount meets its floor.

        Returns:
            (raw amounts, remaining recipients, passes used)
        """
        max_passes = len(active)
        passes = 0
        raw: Dict[str, Decimal] = {}

        while active:
            weight_sum = add(*(weights[asset.asset_id] for asset in active))
            raw = {
                asset.asset_id: multiply(total, divide(weights[asset.asset_id], weight_sum))
                for asset in active
            }
            below = [
                asset for asset in active
                if asset.min_allocation_value is not None
                and less_than(raw[asset.asset_id], asset.min_allocation_value)
            ]
            if not below:
                return raw, active, passes

            if passes >= max_passes:
                break

            dropped = below[-1]
            excluded[dropped.asset_id] = EXCLUDED_BELOW_MINIMUM
            active = [asset for asset in active if asset.asset_id != dropped.asset_id]
            passes += 1
            logger.debug(
                "%s below minimum allocation %s, redistributing (pass %d)",
                dropped.symbol, dropped.min_allocation_value, passes,
            )

        logger.warning("Minimum allocation constraints unsatisfiable, %s left unallocated", total)
        for asset in active:
            excluded[asset.asset_id] = EXCLUDED_BELOW_MINIMUM
        return {}, [], passes

    @staticmethod
    def _round_with_remainder(
        distributable: Decimal,
        raw: Dict[str, Decimal],
        active: Sequence[AssetWithContext],
        scale: int,
    ) -> Dict[str, Decimal]:
        """Round each amount; the rounding remainder goes to the highest-priority recipient."""
        amounts = {asset.asset_id: round_half_up(raw[asset.asset_id], scale) for asset in active}
        if not amounts:
            return amounts

        remainder = subtract(distributable, add(*amounts.values()))
        if remainder.is_zero():
            return amounts

        for asset in active:
            adjusted = add(amounts[asset.asset_id], remainder)
            if not is_negative(adjusted):
                amounts[asset.asset_id] = round_half_up(adjusted, scale)
                break
        return amounts

    @staticmethod
    def validate_outcome(outcome: RecommendationOutcome) -> None:
        """
        Raises:
            InvariantViolationError: amounts do not reconcile, a zero-buy
                asset was funded, or an amount is negative
        """
        allocated = add(*(item.recommended_amount for item in outcome.items))
        if outcome.items and not equals(add(allocated, outcome.unallocated), outcome.total_investable):
            raise InvariantViolationError(
                f"Allocated {allocated} + unallocated {outcome.unallocated} "
                f"!= total {outcome.total_investable}"
            )
        for item in outcome.items:
            if item.is_over_allocated and not item.recommended_amount.is_zero():
                raise InvariantViolationError(f"Over-allocated asset {item.symbol} received {item.recommended_amount}")
            if is_negative(item.recommended_amount):
                raise InvariantViolationError(f"Negative amount for {item.symbol}")

    @staticmethod
    def explain_over_allocation(asset: AssetWithContext) -> str:
        status = asset.allocation_status
        return (
            f"{asset.class_name} is at {to_fixed_string(status.current_allocation_pct, 2)}% "
            f"of the portfolio, above its {to_fixed_string(status.target_max, 2)}% maximum. "
            f"No new capital is recommended for {asset.symbol} until the class is back within target."
        )
