"""
Batch run domain objects
Shared per-batch context, per-user context and run results
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .allocation import AllocationTarget, PortfolioHolding, PriceQuote
from .entities import UserRunState
from .scoring import AssetFundamentals, CriteriaVersion


@dataclass(frozen=True)
class SharedContext:
    """
    Read-only market snapshot shared by every user of a batch.

    exchange_rates: "FROM_TO" -> rate
    prices: symbol -> PriceQuote
    """
    exchange_rates: Mapping[str, Decimal]
    prices: Mapping[str, PriceQuote]
    fetched_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "exchange_rates", MappingProxyType(dict(self.exchange_rates)))
        object.__setattr__(self, "prices", MappingProxyType(dict(self.prices)))


@dataclass(frozen=True)
class UserContext:
    """Everything the pipeline needs for one user, loaded once per run"""
    user_id: str
    base_currency: str
    default_contribution: Optional[Decimal]
    portfolio_id: Optional[str]
    holdings: Tuple[PortfolioHolding, ...]
    criteria_version: Optional[CriteriaVersion]
    fundamentals: Mapping[str, AssetFundamentals] = field(default_factory=dict)
    allocation_targets: Mapping[str, AllocationTarget] = field(default_factory=dict)
    stored_prices: Mapping[str, PriceQuote] = field(default_factory=dict)

    def price_for(self, symbol: str, shared: SharedContext) -> Optional[PriceQuote]:
        """Batch snapshot first, then the user's last stored price."""
        quote = shared.prices.get(symbol)
        if quote is None:
            quote = self.stored_prices.get(symbol)
        return quote


@dataclass
class UserRunResult:
    """Mutable record of one user's run, finalised by the orchestrator"""
    user_id: str
    correlation_id: Optional[str] = None
    state: UserRunState = UserRunState.PENDING
    failed_stage: Optional[UserRunState] = None
    skip_reason: Optional[str] = None
    error_message: Optional[str] = None
    assets_scored: int = 0
    recommendations_generated: int = 0
    recommendation_id: Optional[str] = None
    duration_ms: int = 0
    transitions: List[UserRunState] = field(default_factory=list)

    def transition(self, state: UserRunState) -> None:
        self.transitions.append(state)
        self.state = state


@dataclass(frozen=True)
class BatchResult:
    """Aggregated outcome of a batch"""
    users_processed: int
    users_success: int
    users_failed: int
    users_skipped: int
    total_scored: int
    total_generated: int
    duration_ms: int
    per_user_results: Tuple[UserRunResult, ...]

    @property
    def status(self) -> str:
        if self.users_failed == 0:
            return "completed"
        if self.users_failed < self.users_processed:
            return "partial"
        return "failed"

    def errors(self) -> Dict[str, str]:
        return {
            result.user_id: result.error_message or "unknown error"
            for result in self.per_user_results
            if result.state == UserRunState.FAILED
        }
