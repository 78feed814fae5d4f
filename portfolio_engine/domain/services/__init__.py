"""
Domain services
Pure calculation engines and the audit trail
"""

from .allocation_engine import AllocationEngine
from .calculation_pipeline import CalculationPipeline
from .event_store import EventStore
from .recommendation_engine import RecommendationEngine
from .replay_service import ReplayService
from .scoring_engine import ScoringEngine

__all__ = [
    "AllocationEngine",
    "CalculationPipeline",
    "EventStore",
    "RecommendationEngine",
    "ReplayService",
    "ScoringEngine",
]
