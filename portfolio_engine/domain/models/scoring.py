"""
Scoring domain objects
Criterion rules, criteria versions and per-asset score results
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional, Tuple

MIN_RULE_POINTS = -100
MAX_RULE_POINTS = 100


@dataclass(frozen=True)
class CriterionRule:
    """
    Single scoring rule - Immutable

    `operator` stays a plain string so that a corrupt stored value is
    reported by the scoring engine instead of failing at load time.
    `required_metrics=None` means only `metric` is required.
    """
    id: str
    name: str
    metric: str
    operator: str
    value: Optional[str]
    points: int
    value2: Optional[str] = None
    required_metrics: Optional[Tuple[str, ...]] = None
    sort_order: int = 0

    def __post_init__(self):
        if not self.name:
            raise ValueError("Criterion name cannot be empty")
        if not self.metric:
            raise ValueError("Criterion metric cannot be empty")
        if not MIN_RULE_POINTS <= self.points <= MAX_RULE_POINTS:
            raise ValueError(
                f"Criterion points must be between {MIN_RULE_POINTS} and {MAX_RULE_POINTS}"
            )
        if self.required_metrics is not None and not isinstance(self.required_metrics, tuple):
            object.__setattr__(self, "required_metrics", tuple(self.required_metrics))

    @property
    def effective_required_metrics(self) -> Tuple[str, ...]:
        if self.required_metrics is None:
            return (self.metric,)
        return self.required_metrics


@dataclass(frozen=True)
class CriteriaVersion:
    """Published, immutable rule set"""
    id: str
    user_id: str
    version: int
    name: str
    rules: Tuple[CriterionRule, ...]
    asset_type: str = "stock"
    target_market: str = "global"
    is_active: bool = True
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.version < 1:
            raise ValueError("Criteria version must start at 1")
        if not isinstance(self.rules, tuple):
            object.__setattr__(self, "rules", tuple(self.rules))


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of one rule against one asset"""
    criterion_id: str
    criterion_name: str
    matched: bool
    points_awarded: int
    actual_value: Optional[str]
    skipped_reason: Optional[str] = None


@dataclass(frozen=True)
class AssetFundamentals:
    """Fundamental metrics of an asset; None marks a known-missing value"""
    asset_id: str
    symbol: str
    metrics: Mapping[str, Optional[Decimal]] = field(default_factory=dict)


@dataclass(frozen=True)
class AssetScoreResult:
    """Score of one asset under one criteria version"""
    asset_id: str
    symbol: str
    score: Decimal
    max_possible_score: Decimal
    breakdown: Tuple[CriterionResult, ...]
    criteria_version_id: str
    calculated_at: datetime

    @property
    def matched_count(self) -> int:
        return sum(1 for result in self.breakdown if result.matched)

    @property
    def skipped_count(self) -> int:
        return sum(1 for result in self.breakdown if result.skipped_reason is not None)
