"""
ALLOCATION ENGINE
Convert holdings + prices + targets → per-class allocation status

RESPONSIBILITIES:
- Value holdings in the user's base currency
- Compute current %, target midpoint, gap and over-allocation per class
- Enrich scored holdings into AssetWithContext for the recommendation step

RULES:
❌ No capital distribution (see RecommendationEngine)
❌ No persistence
✅ Holdings without a price are left out of every total
✅ Holdings without a class are always over-allocated
✅ Exact decimal arithmetic, explicit rounding
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from portfolio_engine.domain.exceptions import MissingExchangeRateError
from portfolio_engine.domain.models import (
    UNCLASSIFIED_CLASS_ID,
    AllocationStatus,
    AllocationTarget,
    AssetScoreResult,
    AssetWithContext,
    PortfolioHolding,
    PriceQuote,
)
from portfolio_engine.utils.decimal_utils import (
    HUNDRED,
    MONETARY_SCALE,
    PERCENT_SCALE,
    ZERO,
    add,
    divide,
    greater_than,
    is_zero,
    multiply,
    round_half_up,
    subtract,
)

logger = logging.getLogger(__name__)

UNCLASSIFIED_NAME = "Unclassified"


def rate_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency.upper()}_{to_currency.upper()}"


class AllocationEngine:
    """
    Allocation Engine
    Values a portfolio and measures it against class targets
    """

    def __init__(self, base_currency: str, exchange_rates: Mapping[str, Decimal]):
        """
        Initialize allocation engine

        Args:
            base_currency: Currency every value is expressed in
            exchange_rates: "FROM_TO" -> rate snapshot for the batch
        """
        self.base_currency = base_currency.upper()
        self.exchange_rates = exchange_rates

    def convert(self, amount: Decimal, currency: str) -> Decimal:
        """
        Convert an amount into the base currency

        Raises:
            MissingExchangeRateError: Neither FROM_TO nor TO_FROM is known
        """
        currency = currency.upper()
        if currency == self.base_currency:
            return amount

        direct = self.exchange_rates.get(rate_key(currency, self.base_currency))
        if direct is not None:
            return multiply(amount, direct)

        inverse = self.exchange_rates.get(rate_key(self.base_currency, currency))
        if inverse is not None and not is_zero(inverse):
            return divide(amount, inverse)

        raise MissingExchangeRateError(currency, self.base_currency)

    def asset_value(self, holding: PortfolioHolding, price: Decimal) -> Decimal:
        """Market value of a holding in base currency"""
        local_value = multiply(holding.quantity, price)
        return round_half_up(self.convert(local_value, holding.currency), MONETARY_SCALE)

    def value_holdings(
        self,
        holdings: Iterable[PortfolioHolding],
        prices: Mapping[str, PriceQuote],
    ) -> Dict[str, Decimal]:
        """asset_id -> base-currency value, priced holdings only"""
        values: Dict[str, Decimal] = {}
        for holding in holdings:
            quote = prices.get(holding.symbol)
            if quote is None:
                logger.debug("No price for %s, excluded from allocation", holding.symbol)
                continue
            values[holding.asset_id] = self.asset_value(holding, quote.price)
        return values

    def compute_allocation_status(
        self,
        holdings: Iterable[PortfolioHolding],
        prices: Mapping[str, PriceQuote],
        targets: Mapping[str, AllocationTarget],
    ) -> List[AllocationStatus]:
        """
        Compute allocation status for every configured class plus any class
        that holds assets

        Args:
            holdings: Non-ignored holdings
            prices: symbol -> latest quote
            targets: class_id -> target band

        Returns:
            List of AllocationStatus (configured classes first, then
            unconfigured ones, unclassified last)
        """
        holdings = list(holdings)
        values = self.value_holdings(holdings, prices)

        class_values: Dict[str, Decimal] = {class_id: ZERO for class_id in targets}
        for holding in holdings:
            value = values.get(holding.asset_id)
            if value is None:
                continue
            class_id = holding.class_id or UNCLASSIFIED_CLASS_ID
            class_values[class_id] = add(class_values.get(class_id, ZERO), value)

        total = add(*values.values())

        statuses: List[AllocationStatus] = []
        for class_id, class_value in class_values.items():
            if class_id == UNCLASSIFIED_CLASS_ID:
                continue
            target = targets.get(class_id) or AllocationTarget(class_id=class_id, class_name=class_id)
            statuses.append(self._status_for(target, class_value, total))

        unclassified_value = class_values.get(UNCLASSIFIED_CLASS_ID)
        if unclassified_value is not None and greater_than(unclassified_value, ZERO):
            statuses.append(self._unclassified_status(unclassified_value, total))

        return statuses

    @staticmethod
    def _current_pct(class_value: Decimal, total: Decimal) -> Decimal:
        if is_zero(total):
            return ZERO
        return multiply(divide(class_value, total), HUNDRED)

    def _status_for(self, target: AllocationTarget, class_value: Decimal, total: Decimal) -> AllocationStatus:
        current_pct = self._current_pct(class_value, total)
        midpoint = target.midpoint
        return AllocationStatus(
            class_id=target.class_id,
            class_name=target.class_name,
            current_value=round_half_up(class_value, MONETARY_SCALE),
            current_allocation_pct=round_half_up(current_pct, PERCENT_SCALE),
            target_min=target.target_min,
            target_max=target.target_max,
            target_midpoint_pct=round_half_up(midpoint, PERCENT_SCALE),
            allocation_gap=round_half_up(subtract(midpoint, current_pct), PERCENT_SCALE),
            is_over_allocated=greater_than(current_pct, target.target_max),
        )

    def _unclassified_status(self, class_value: Decimal, total: Decimal) -> AllocationStatus:
        current_pct = round_half_up(self._current_pct(class_value, total), PERCENT_SCALE)
        return AllocationStatus(
            class_id=UNCLASSIFIED_CLASS_ID,
            class_name=UNCLASSIFIED_NAME,
            current_value=round_half_up(class_value, MONETARY_SCALE),
            current_allocation_pct=current_pct,
            target_min=ZERO,
            target_max=ZERO,
            target_midpoint_pct=round_half_up(ZERO, PERCENT_SCALE),
            allocation_gap=round_half_up(subtract(ZERO, current_pct), PERCENT_SCALE),
            is_over_allocated=True,
        )

    def build_assets_with_context(
        self,
        holdings: Iterable[PortfolioHolding],
        statuses: Iterable[AllocationStatus],
        scores: Iterable[AssetScoreResult],
        prices: Mapping[str, PriceQuote],
        targets: Optional[Mapping[str, AllocationTarget]] = None,
    ) -> List[AssetWithContext]:
        """
        Join holdings with their class status and score

        Only holdings with both a price and a score are returned.
        """
        targets = targets or {}
        status_by_class = {status.class_id: status for status in statuses}
        score_by_asset = {score.asset_id: score for score in scores}

        assets: List[AssetWithContext] = []
        for holding in holdings:
            quote = prices.get(holding.symbol)
            score = score_by_asset.get(holding.asset_id)
            if quote is None or score is None:
                continue

            class_id = holding.class_id or UNCLASSIFIED_CLASS_ID
            status = status_by_class.get(class_id)
            if status is None:
                continue
            target = targets.get(class_id)

            assets.append(
                AssetWithContext(
                    asset_id=holding.asset_id,
                    symbol=holding.symbol,
                    class_id=class_id,
                    class_name=status.class_name,
                    score=score.score,
                    current_value=self.asset_value(holding, quote.price),
                    allocation_status=status,
                    min_allocation_value=target.min_allocation_value if target else None,
                    max_asset_count=target.max_asset_count if target else None,
                )
            )
        return assets
