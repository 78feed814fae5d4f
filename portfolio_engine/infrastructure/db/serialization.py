"""
JSON column helpers.
Decimals are stored as strings so no value passes through a float.
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from portfolio_engine.domain.exceptions import DecimalParseError
from portfolio_engine.domain.models import AllocationStatus, CriterionResult, RecommendationBreakdown
from portfolio_engine.utils.decimal_utils import parse_decimal


def to_json_safe(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return to_json_safe(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    return value


def metric_decimal(value: Any) -> Optional[Decimal]:
    """
    Decode one stored fundamental metric

    JSON numbers go through str() so 5.2 becomes Decimal("5.2").
    Anything non-numeric counts as missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    try:
        return parse_decimal(value)
    except DecimalParseError:
        return None


def breakdown_from_json(items: list) -> tuple:
    return tuple(CriterionResult(**item) for item in items)


def recommendation_breakdown_from_json(data: dict) -> RecommendationBreakdown:
    return RecommendationBreakdown(
        class_name=data["class_name"],
        current_value=parse_decimal(data["current_value"]),
        target_midpoint=parse_decimal(data["target_midpoint"]),
        raw_share=parse_decimal(data["raw_share"]),
        redistributed=data.get("redistributed", False),
        excluded_reason=data.get("excluded_reason"),
        explanation=data.get("explanation"),
    )


def allocation_status_from_json(data: dict) -> AllocationStatus:
    return AllocationStatus(
        class_id=data["class_id"],
        class_name=data["class_name"],
        current_value=parse_decimal(data["current_value"]),
        current_allocation_pct=parse_decimal(data["current_allocation_pct"]),
        target_min=parse_decimal(data["target_min"]),
        target_max=parse_decimal(data["target_max"]),
        target_midpoint_pct=parse_decimal(data["target_midpoint_pct"]),
        allocation_gap=parse_decimal(data["allocation_gap"]),
        is_over_allocated=data["is_over_allocated"],
    )
