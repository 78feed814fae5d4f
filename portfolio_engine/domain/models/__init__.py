"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    CalculationStatus,
    CriterionSkipReason,
    EventType,
    JobRunStatus,
    JobType,
    Operator,
    RecommendationStatus,
    UserRunState,
    UserSkipReason,
)
from .scoring import (
    AssetFundamentals,
    AssetScoreResult,
    CriteriaVersion,
    CriterionResult,
    CriterionRule,
)
from .allocation import (
    UNCLASSIFIED_CLASS_ID,
    AllocationStatus,
    AllocationTarget,
    AssetWithContext,
    PortfolioHolding,
    PriceQuote,
)
from .recommendation import (
    RecommendationBreakdown,
    RecommendationItemResult,
    RecommendationOutcome,
    RecommendationSession,
)
from .events import (
    CalculationEvent,
    ReplayResult,
    ScoreDiscrepancy,
    StoredEvent,
)
from .batch import (
    BatchResult,
    SharedContext,
    UserContext,
    UserRunResult,
)

__all__ = [
    # Enums
    "CalculationStatus",
    "CriterionSkipReason",
    "EventType",
    "JobRunStatus",
    "JobType",
    "Operator",
    "RecommendationStatus",
    "UserRunState",
    "UserSkipReason",

    # Scoring
    "AssetFundamentals",
    "AssetScoreResult",
    "CriteriaVersion",
    "CriterionResult",
    "CriterionRule",

    # Allocation
    "UNCLASSIFIED_CLASS_ID",
    "AllocationStatus",
    "AllocationTarget",
    "AssetWithContext",
    "PortfolioHolding",
    "PriceQuote",

    # Recommendation
    "RecommendationBreakdown",
    "RecommendationItemResult",
    "RecommendationOutcome",
    "RecommendationSession",

    # Events
    "CalculationEvent",
    "ReplayResult",
    "ScoreDiscrepancy",
    "StoredEvent",

    # Batch
    "BatchResult",
    "SharedContext",
    "UserContext",
    "UserRunResult",
]
