"""
Unit Tests for RecommendationEngine
Covers capital distribution, zero-buy signals, minimum floors and rounding
"""

import random
from decimal import Decimal

import pytest

from portfolio_engine.domain.exceptions import InvariantViolationError
from portfolio_engine.domain.models import (
    AllocationStatus,
    AssetWithContext,
    RecommendationBreakdown,
    RecommendationItemResult,
    RecommendationOutcome,
)
from portfolio_engine.domain.services.recommendation_engine import (
    EXCLUDED_BELOW_MINIMUM,
    EXCLUDED_CLASS_ASSET_LIMIT,
    EXCLUDED_NON_POSITIVE_PRIORITY,
    EXCLUDED_OVER_ALLOCATED,
    RecommendationEngine,
)


def make_asset(symbol, gap, score, over=False, class_id=None, min_value=None, max_count=None):
    class_id = class_id or f"class-{symbol.lower()}"
    status = AllocationStatus(
        class_id=class_id,
        class_name=class_id.title(),
        current_value=Decimal("1000"),
        current_allocation_pct=Decimal("70") if over else Decimal("20"),
        target_min=Decimal("0"),
        target_max=Decimal("60"),
        target_midpoint_pct=Decimal("30"),
        allocation_gap=Decimal(gap),
        is_over_allocated=over,
    )
    return AssetWithContext(
        asset_id=f"id-{symbol}",
        symbol=symbol,
        class_id=class_id,
        class_name=status.class_name,
        score=Decimal(score),
        current_value=Decimal("100"),
        allocation_status=status,
        min_allocation_value=Decimal(min_value) if min_value is not None else None,
        max_asset_count=max_count,
    )


def by_symbol(outcome):
    return {item.symbol: item for item in outcome.items}


@pytest.fixture
def engine():
    return RecommendationEngine()


class TestPriority:

    def test_priority_formula(self):
        assert RecommendationEngine.calculate_priority(Decimal("12.5"), Decimal("80")) == Decimal("10.0000")

    def test_negative_gap_gives_negative_priority(self):
        assert RecommendationEngine.calculate_priority("-5", "50") == Decimal("-2.5000")


class TestGenerate:

    def test_proportional_split_with_zero_buy(self, engine):
        assets = [
            make_asset("A", "3", "100"),
            make_asset("B", "1", "100"),
            make_asset("C", "10", "100", over=True),
        ]

        outcome = engine.generate(assets, Decimal("1000.00"), "USD")
        items = by_symbol(outcome)

        assert str(items["A"].recommended_amount) == "750.00"
        assert str(items["B"].recommended_amount) == "250.00"
        assert str(items["C"].recommended_amount) == "0.00"
        assert items["C"].is_over_allocated is True
        assert items["C"].breakdown.excluded_reason == EXCLUDED_OVER_ALLOCATED
        assert "above its 60.00% maximum" in items["C"].breakdown.explanation
        assert outcome.allocated_total == Decimal("1000.00")
        assert outcome.unallocated == Decimal("0.00")

    def test_items_sorted_by_priority_then_symbol(self, engine):
        assets = [
            make_asset("ZZZ", "2", "50"),
            make_asset("AAA", "2", "50"),
            make_asset("MMM", "4", "50"),
        ]

        outcome = engine.generate(assets, "100", "USD")

        assert [item.symbol for item in outcome.items] == ["MMM", "AAA", "ZZZ"]
        assert [item.sort_order for item in outcome.items] == [0, 1, 2]

    def test_zero_total_gives_empty_outcome(self, engine):
        outcome = engine.generate([make_asset("A", "3", "100")], Decimal("0.00"), "USD")

        assert outcome.is_empty
        assert str(outcome.total_investable) == "0.00"

    def test_negative_total_gives_empty_outcome(self, engine):
        outcome = engine.generate([make_asset("A", "3", "100")], "-10", "USD")

        assert outcome.is_empty

    def test_no_assets(self, engine):
        outcome = engine.generate([], "100", "USD")

        assert outcome.is_empty
        assert outcome.unallocated == Decimal("100.00")

    def test_all_over_allocated_leaves_total_unallocated(self, engine):
        assets = [make_asset("A", "3", "100", over=True), make_asset("B", "1", "100", over=True)]

        outcome = engine.generate(assets, "1000", "USD")

        assert outcome.is_empty
        assert outcome.unallocated == Decimal("1000.00")

    def test_equal_weights_when_no_positive_priority(self, engine):
        assets = [make_asset("A", "-5", "50"), make_asset("B", "-1", "50")]

        outcome = engine.generate(assets, "100.00", "USD")
        items = by_symbol(outcome)

        assert items["A"].recommended_amount == Decimal("50.00")
        assert items["B"].recommended_amount == Decimal("50.00")

    def test_zero_scores_use_equal_weights(self, engine):
        assets = [make_asset("A", "10", "0"), make_asset("B", "20", "0")]

        outcome = engine.generate(assets, "10", "USD")

        assert [item.recommended_amount for item in outcome.items] == [Decimal("5.00"), Decimal("5.00")]

    def test_non_positive_priority_gets_nothing_when_others_positive(self, engine):
        assets = [make_asset("A", "5", "100"), make_asset("B", "-5", "100")]

        outcome = engine.generate(assets, "200", "USD")
        items = by_symbol(outcome)

        assert items["A"].recommended_amount == Decimal("200.00")
        assert items["B"].recommended_amount == Decimal("0.00")
        assert items["B"].breakdown.excluded_reason == EXCLUDED_NON_POSITIVE_PRIORITY

    def test_rounding_remainder_goes_to_highest_priority(self, engine):
        assets = [make_asset("C", "1", "100"), make_asset("B", "1", "100"), make_asset("A", "1", "100")]

        outcome = engine.generate(assets, "100.00", "USD")
        items = by_symbol(outcome)

        assert items["A"].recommended_amount == Decimal("33.34")
        assert items["B"].recommended_amount == Decimal("33.33")
        assert items["C"].recommended_amount == Decimal("33.33")
        assert outcome.allocated_total == Decimal("100.00")

    def test_zero_decimal_currency(self, engine):
        assets = [make_asset("A", "2", "100"), make_asset("B", "1", "100")]

        outcome = engine.generate(assets, "1000", "JPY")
        items = by_symbol(outcome)

        assert items["A"].recommended_amount == Decimal("667")
        assert items["B"].recommended_amount == Decimal("333")

    def test_fixed_currency_scale_override(self):
        engine = RecommendationEngine(currency_scale=0)

        outcome = engine.generate([make_asset("A", "2", "100")], "10.40", "USD")

        assert outcome.total_investable == Decimal("10")
        assert outcome.items[0].recommended_amount == Decimal("10")

    def test_raw_share_reported(self, engine):
        assets = [make_asset("A", "3", "100"), make_asset("B", "1", "100")]

        outcome = engine.generate(assets, "1000", "USD")
        items = by_symbol(outcome)

        assert items["A"].breakdown.raw_share == Decimal("75.0000")
        assert items["B"].breakdown.raw_share == Decimal("25.0000")


class TestClassConstraints:

    def test_minimum_floor_redistributes(self, engine):
        assets = [
            make_asset("A", "9", "100"),
            make_asset("B", "1", "100", min_value="200"),
        ]

        outcome = engine.generate(assets, "1000", "USD")
        items = by_symbol(outcome)

        assert items["A"].recommended_amount == Decimal("1000.00")
        assert items["A"].breakdown.redistributed is True
        assert items["B"].recommended_amount == Decimal("0.00")
        assert items["B"].breakdown.excluded_reason == EXCLUDED_BELOW_MINIMUM
        assert outcome.redistribution_passes == 1

    def test_floor_met_needs_no_redistribution(self, engine):
        assets = [
            make_asset("A", "3", "100", min_value="100"),
            make_asset("B", "1", "100", min_value="100"),
        ]

        outcome = engine.generate(assets, "1000", "USD")

        assert outcome.redistribution_passes == 0
        assert by_symbol(outcome)["B"].recommended_amount == Decimal("250.00")

    def test_unsatisfiable_floors_leave_capital_unallocated(self, engine):
        assets = [
            make_asset("A", "3", "100", min_value="2000"),
            make_asset("B", "1", "100", min_value="2000"),
        ]

        outcome = engine.generate(assets, "1000", "USD")

        assert all(item.recommended_amount == Decimal("0.00") for item in outcome.items)
        assert outcome.allocated_total == Decimal("0.00")
        assert outcome.unallocated == Decimal("1000.00")
        assert outcome.redistribution_passes <= len(assets)

    def test_class_asset_limit(self, engine):
        assets = [
            make_asset("A", "3", "100", class_id="eq", max_count=1),
            make_asset("B", "3", "50", class_id="eq", max_count=1),
            make_asset("C", "1", "100", class_id="bd"),
        ]

        outcome = engine.generate(assets, "400", "USD")
        items = by_symbol(outcome)

        assert items["B"].recommended_amount == Decimal("0.00")
        assert items["B"].breakdown.excluded_reason == EXCLUDED_CLASS_ASSET_LIMIT
        assert items["A"].recommended_amount == Decimal("300.00")
        assert items["C"].recommended_amount == Decimal("100.00")


class TestInvariants:

    @pytest.mark.parametrize("seed", range(25))
    def test_random_portfolios_reconcile(self, engine, seed):
        rng = random.Random(seed)
        assets = [
            make_asset(
                f"S{index:02d}",
                Decimal(rng.randint(-2000, 4000)).scaleb(-2),
                rng.randint(0, 100),
                over=rng.random() < 0.25,
            )
            for index in range(rng.randint(1, 8))
        ]
        total = Decimal(rng.randint(1, 10_000_000)).scaleb(-2)

        outcome = engine.generate(assets, total, "USD")

        if all(asset.is_over_allocated for asset in assets):
            assert outcome.is_empty
            return

        amounts = [item.recommended_amount for item in outcome.items]
        assert sum(amounts, Decimal("0")) == total
        assert outcome.unallocated == Decimal("0.00")
        for item in outcome.items:
            assert item.recommended_amount >= Decimal("0")
            assert item.recommended_amount.as_tuple().exponent == -2
            if item.is_over_allocated:
                assert item.recommended_amount == Decimal("0")

    def test_validate_outcome_rejects_funded_over_allocated(self):
        item = RecommendationItemResult(
            asset_id="id-A",
            symbol="A",
            score=Decimal("10"),
            class_id="eq",
            current_allocation=Decimal("70"),
            target_allocation=Decimal("30"),
            allocation_gap=Decimal("-40"),
            priority=Decimal("-4"),
            recommended_amount=Decimal("10.00"),
            is_over_allocated=True,
            breakdown=RecommendationBreakdown("Eq", Decimal("100"), Decimal("30"), Decimal("100")),
        )
        outcome = RecommendationOutcome(
            items=(item,),
            total_investable=Decimal("10.00"),
            allocated_total=Decimal("10.00"),
            unallocated=Decimal("0.00"),
            currency="USD",
        )

        with pytest.raises(InvariantViolationError):
            RecommendationEngine.validate_outcome(outcome)

    def test_validate_outcome_rejects_unbalanced_totals(self):
        item = RecommendationItemResult(
            asset_id="id-A",
            symbol="A",
            score=Decimal("10"),
            class_id="eq",
            current_allocation=Decimal("20"),
            target_allocation=Decimal("30"),
            allocation_gap=Decimal("10"),
            priority=Decimal("1"),
            recommended_amount=Decimal("9.99"),
            is_over_allocated=False,
            breakdown=RecommendationBreakdown("Eq", Decimal("100"), Decimal("30"), Decimal("100")),
        )
        outcome = RecommendationOutcome(
            items=(item,),
            total_investable=Decimal("10.00"),
            allocated_total=Decimal("9.99"),
            unallocated=Decimal("0.00"),
            currency="USD",
        )

        with pytest.raises(InvariantViolationError):
            RecommendationEngine.validate_outcome(outcome)

    def test_negative_item_amount_rejected_at_construction(self):
        with pytest.raises(ValueError):
            RecommendationItemResult(
                asset_id="id-A", symbol="A", score=Decimal("1"), class_id="eq",
                current_allocation=Decimal("0"), target_allocation=Decimal("0"),
                allocation_gap=Decimal("0"), priority=Decimal("0"),
                recommended_amount=Decimal("-0.01"), is_over_allocated=False,
                breakdown=RecommendationBreakdown("Eq", Decimal("0"), Decimal("0"), Decimal("0")),
            )
