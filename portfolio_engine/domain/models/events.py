"""
Audit trail domain objects
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .entities import EventType


@dataclass(frozen=True)
class CalculationEvent:
    """Immutable calculation fact, not yet stored"""
    correlation_id: str
    user_id: str
    event_type: EventType
    payload: Dict[str, Any]
    timestamp: datetime


@dataclass(frozen=True)
class StoredEvent:
    """Calculation fact as read back from the audit log"""
    id: str
    correlation_id: str
    user_id: str
    event_type: EventType
    sequence: int
    payload: Dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class ScoreDiscrepancy:
    """Difference between a recorded and a replayed asset score"""
    asset_id: str
    original_score: Optional[str]
    replayed_score: Optional[str]
    reason: str


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of re-running a recorded calculation"""
    correlation_id: str
    success: bool
    matches: bool
    original_scores: Dict[str, str]
    replayed_scores: Dict[str, str]
    discrepancies: tuple = ()
    error: Optional[str] = None
