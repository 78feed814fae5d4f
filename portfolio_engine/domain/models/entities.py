"""
Domain Models - Enumerations
Shared vocabulary for scoring, recommendations, audit events and batch runs
"""

from enum import Enum


class Operator(str, Enum):
    """Comparison operator of a criterion rule"""
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    BETWEEN = "between"
    EQUALS = "equals"
    EXISTS = "exists"


class CriterionSkipReason(str, Enum):
    """Why a rule was not evaluated for an asset"""
    MISSING_FUNDAMENTAL = "missing_fundamental"


class EventType(str, Enum):
    """Calculation lifecycle event, in emission order"""
    CALC_STARTED = "CALC_STARTED"
    INPUTS_CAPTURED = "INPUTS_CAPTURED"
    SCORES_COMPUTED = "SCORES_COMPUTED"
    CALC_COMPLETED = "CALC_COMPLETED"


class CalculationStatus(str, Enum):
    """Terminal status of a calculation run"""
    SUCCESS = "success"
    FAILED = "failed"


class UserRunState(str, Enum):
    """Per-user state inside a batch"""
    PENDING = "PENDING"
    SCORING = "SCORING"
    SCORED = "SCORED"
    RECOMMENDING = "RECOMMENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class UserSkipReason(str, Enum):
    """Why a user (or a user's recommendation step) was skipped"""
    USER_NOT_FOUND = "user_not_found"
    NO_PORTFOLIO = "no_portfolio"
    EMPTY_PORTFOLIO = "empty_portfolio"
    NO_ACTIVE_CRITERIA = "no_active_criteria"
    NON_POSITIVE_INVESTABLE = "non_positive_investable"


class RecommendationStatus(str, Enum):
    """Lifecycle of a stored recommendation session"""
    PENDING = "pending"
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


class JobRunStatus(str, Enum):
    """Overnight job run status"""
    STARTED = "started"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class JobType(str, Enum):
    """Kinds of tracked jobs"""
    SCORING = "scoring"
    OVERNIGHT_BATCH = "overnight_batch"
