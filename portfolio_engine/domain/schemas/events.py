"""
Calculation event payload schemas.
Payloads are stored as JSON; decimals serialise as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from portfolio_engine.domain.models import CalculationStatus, EventType


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class CalcStartedPayload(_Payload):
    correlation_id: str
    user_id: str
    timestamp: datetime
    market: Optional[str] = None


class RuleSnapshot(_Payload):
    id: str
    name: str
    metric: str
    operator: str
    value: Optional[str] = None
    value2: Optional[str] = None
    points: int
    required_metrics: Optional[List[str]] = None
    sort_order: int = 0


class PriceSnapshot(_Payload):
    asset_id: str
    symbol: str
    price: Decimal
    currency: str
    fetched_at: datetime
    source: str


class RateSnapshot(_Payload):
    from_currency: str
    to_currency: str
    rate: Decimal


class InputsCapturedPayload(_Payload):
    correlation_id: str
    criteria_version_id: str
    criteria_version: int
    rules: List[RuleSnapshot]
    prices: List[PriceSnapshot]
    rates: List[RateSnapshot]
    asset_ids: List[str]
    symbols: Dict[str, str]
    fundamentals: Dict[str, Dict[str, Optional[Decimal]]]


class CriterionResultSnapshot(_Payload):
    criterion_id: str
    criterion_name: str
    matched: bool
    points_awarded: int
    actual_value: Optional[str] = None
    skipped_reason: Optional[str] = None


class AssetScoreSnapshot(_Payload):
    asset_id: str
    symbol: str
    score: Decimal
    max_possible_score: Decimal
    breakdown: List[CriterionResultSnapshot]


class ScoresComputedPayload(_Payload):
    correlation_id: str
    criteria_version_id: str
    results: List[AssetScoreSnapshot]


class CalcCompletedPayload(_Payload):
    correlation_id: str
    duration_ms: int
    asset_count: int
    status: CalculationStatus
    error_message: Optional[str] = None


PAYLOAD_SCHEMAS = {
    EventType.CALC_STARTED: CalcStartedPayload,
    EventType.INPUTS_CAPTURED: InputsCapturedPayload,
    EventType.SCORES_COMPUTED: ScoresComputedPayload,
    EventType.CALC_COMPLETED: CalcCompletedPayload,
}
