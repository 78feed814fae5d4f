"""
Recommendation domain objects
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from .allocation import AllocationStatus
from .entities import RecommendationStatus


@dataclass(frozen=True)
class RecommendationBreakdown:
    """How an item's amount was reached"""
    class_name: str
    current_value: Decimal
    target_midpoint: Decimal
    raw_share: Decimal
    redistributed: bool = False
    excluded_reason: Optional[str] = None
    explanation: Optional[str] = None


@dataclass(frozen=True)
class RecommendationItemResult:
    """Per-asset buy recommendation"""
    asset_id: str
    symbol: str
    score: Decimal
    class_id: str
    current_allocation: Decimal
    target_allocation: Decimal
    allocation_gap: Decimal
    priority: Decimal
    recommended_amount: Decimal
    is_over_allocated: bool
    breakdown: RecommendationBreakdown
    sort_order: int = 0

    def __post_init__(self):
        if self.recommended_amount < Decimal("0"):
            raise ValueError("Recommended amount cannot be negative")


@dataclass(frozen=True)
class RecommendationOutcome:
    """Result of one capital distribution"""
    items: Tuple[RecommendationItemResult, ...]
    total_investable: Decimal
    allocated_total: Decimal
    unallocated: Decimal
    currency: str
    redistribution_passes: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.items


@dataclass(frozen=True)
class RecommendationSession:
    """Stored recommendation set with bounded validity"""
    user_id: str
    portfolio_id: str
    correlation_id: str
    criteria_version_id: str
    total_investable: Decimal
    allocated_total: Decimal
    unallocated: Decimal
    base_currency: str
    generated_at: datetime
    expires_at: datetime
    items: Tuple[RecommendationItemResult, ...]
    allocation_statuses: Tuple[AllocationStatus, ...] = ()
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    audit: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def with_status(self, status: RecommendationStatus) -> "RecommendationSession":
        return replace(self, status=status)
