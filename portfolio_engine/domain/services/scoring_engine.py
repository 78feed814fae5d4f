"""
SCORING ENGINE
Convert asset fundamentals → score + per-criterion breakdown

RESPONSIBILITIES:
- Evaluate a criteria version's rules in sort order
- Skip rules whose required metrics are missing
- Sum awarded points into an unclamped score

RULES:
❌ No persistence, no events
❌ No clamping of the score
✅ Breakdown covers every rule (matched, unmatched or skipped)
✅ Deterministic output (only calculated_at depends on the clock)
✅ Unknown operator is fatal (InvalidRuleError)
✅ Score is the exact sum of integer points ("35", not "35.0000")
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from portfolio_engine.domain.exceptions import DecimalParseError, InvalidRuleError
from portfolio_engine.domain.models import (
    AssetFundamentals,
    AssetScoreResult,
    CriterionResult,
    CriterionRule,
    CriterionSkipReason,
    Operator,
)
from portfolio_engine.utils.decimal_utils import (
    add,
    equals,
    greater_than,
    less_than,
    parse_decimal,
)
from portfolio_engine.utils.time import now_utc_naive

MetricMap = Mapping[str, Optional[object]]


def _resolve_operator(rule: CriterionRule) -> Operator:
    try:
        return Operator(rule.operator)
    except ValueError:
        raise InvalidRuleError(rule.id, f"unknown operator '{rule.operator}'") from None


def _threshold(rule: CriterionRule, raw: Optional[str], label: str) -> Decimal:
    if raw is None:
        raise InvalidRuleError(rule.id, f"operator '{rule.operator}' requires {label}")
    try:
        return parse_decimal(raw)
    except DecimalParseError as exc:
        raise InvalidRuleError(rule.id, f"{label} is not numeric ({exc.reason})") from None


def _metric_value(metrics: MetricMap, name: str) -> Optional[Decimal]:
    raw = metrics.get(name)
    if raw is None:
        return None
    return parse_decimal(raw)


class ScoringEngine:
    """
    Scoring Engine
    Applies criterion rules to asset fundamentals
    """

    def evaluate_rule(self, rule: CriterionRule, metrics: MetricMap) -> CriterionResult:
        """
        Evaluate a single rule against an asset's metrics

        Args:
            rule: Criterion rule
            metrics: Metric name -> value (None or absent means missing)

        Returns:
            CriterionResult (skipped when a required metric is missing)

        Raises:
            InvalidRuleError: Unknown operator or unusable threshold
        """
        operator = _resolve_operator(rule)

        lower = upper = None
        if operator != Operator.EXISTS:
            lower = _threshold(rule, rule.value, "a threshold value")
        if operator == Operator.BETWEEN:
            upper = _threshold(rule, rule.value2, "an upper bound (value2)")
            if greater_than(lower, upper):
                raise InvalidRuleError(rule.id, "between lower bound exceeds upper bound")

        actual = _metric_value(metrics, rule.metric)
        actual_text = str(actual) if actual is not None else None

        for required in rule.effective_required_metrics:
            if _metric_value(metrics, required) is None:
                return CriterionResult(
                    criterion_id=rule.id,
                    criterion_name=rule.name,
                    matched=False,
                    points_awarded=0,
                    actual_value=actual_text,
                    skipped_reason=CriterionSkipReason.MISSING_FUNDAMENTAL.value,
                )

        matched = self._compare(operator, actual, lower, upper)
        return CriterionResult(
            criterion_id=rule.id,
            criterion_name=rule.name,
            matched=matched,
            points_awarded=rule.points if matched else 0,
            actual_value=actual_text,
        )

    @staticmethod
    def _compare(
        operator: Operator,
        actual: Optional[Decimal],
        lower: Optional[Decimal],
        upper: Optional[Decimal],
    ) -> bool:
        if operator == Operator.EXISTS:
            return actual is not None
        if actual is None:
            # metric not listed as required and absent
            return False
        if operator == Operator.GT:
            return greater_than(actual, lower)
        if operator == Operator.LT:
            return less_than(actual, lower)
        if operator == Operator.GTE:
            return not less_than(actual, lower)
        if operator == Operator.LTE:
            return not greater_than(actual, lower)
        if operator == Operator.EQUALS:
            return equals(actual, lower)
        # BETWEEN, inclusive on both ends
        return not less_than(actual, lower) and not greater_than(actual, upper)

    def score_asset(
        self,
        rules: Sequence[CriterionRule],
        fundamentals: AssetFundamentals,
        criteria_version_id: str,
        calculated_at: Optional[datetime] = None,
    ) -> AssetScoreResult:
        """
        Score one asset

        Args:
            rules: Rules of the criteria version
            fundamentals: Asset metrics
            criteria_version_id: Version the rules belong to
            calculated_at: Timestamp to stamp (defaults to now)

        Returns:
            AssetScoreResult with one breakdown entry per rule
        """
        ordered = self.order_rules(rules)
        breakdown: List[CriterionResult] = [
            self.evaluate_rule(rule, fundamentals.metrics) for rule in ordered
        ]
        total = add(*(Decimal(result.points_awarded) for result in breakdown))

        return AssetScoreResult(
            asset_id=fundamentals.asset_id,
            symbol=fundamentals.symbol,
            score=total,
            max_possible_score=self.max_possible_score(rules),
            breakdown=tuple(breakdown),
            criteria_version_id=criteria_version_id,
            calculated_at=calculated_at or now_utc_naive(),
        )

    def score_assets(
        self,
        rules: Sequence[CriterionRule],
        assets: Iterable[AssetFundamentals],
        criteria_version_id: str,
        calculated_at: Optional[datetime] = None,
    ) -> List[AssetScoreResult]:
        """Score many assets with one shared timestamp."""
        stamp = calculated_at or now_utc_naive()
        return [
            self.score_asset(rules, asset, criteria_version_id, calculated_at=stamp)
            for asset in assets
        ]

    @staticmethod
    def order_rules(rules: Sequence[CriterionRule]) -> Tuple[CriterionRule, ...]:
        return tuple(sorted(rules, key=lambda rule: rule.sort_order))

    @staticmethod
    def max_possible_score(rules: Sequence[CriterionRule]) -> Decimal:
        positive = [Decimal(rule.points) for rule in rules if rule.points > 0]
        return add(*positive)
