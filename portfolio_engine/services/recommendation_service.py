"""
Recommendation Service
Builds recommendation sessions for a user and guards their confirmation
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Sequence

from portfolio_engine.domain.exceptions import RecommendationExpiredError, RecommendationStateError
from portfolio_engine.domain.models import (
    AssetScoreResult,
    PriceQuote,
    RecommendationSession,
    RecommendationStatus,
    SharedContext,
    UserContext,
)
from portfolio_engine.domain.services.allocation_engine import AllocationEngine
from portfolio_engine.domain.services.recommendation_engine import RecommendationEngine
from portfolio_engine.utils.decimal_utils import MONETARY_SCALE, SCORE_SCALE, is_positive, to_fixed_string
from portfolio_engine.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24


class RecommendationService:
    """
    Recommendation Service
    Glue between allocation status, the recommendation engine and session lifecycle
    """

    def __init__(
        self,
        recommendation_engine: Optional[RecommendationEngine] = None,
        ttl_hours: int = DEFAULT_TTL_HOURS,
        clock: Callable[[], datetime] = now_utc_naive,
    ):
        self.recommendation_engine = recommendation_engine or RecommendationEngine()
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock

    def build_session(
        self,
        context: UserContext,
        scores: Sequence[AssetScoreResult],
        shared: SharedContext,
        correlation_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[RecommendationSession]:
        """
        Build a recommendation session from fresh scores

        Args:
            context: User's portfolio, targets and contribution
            scores: Scores computed in this run
            shared: Batch price/rate snapshot
            correlation_id: Run id linking the session to its audit events
            now: Generation time (defaults to clock)

        Returns:
            RecommendationSession, or None when the contribution is not positive
        """
        total = context.default_contribution
        if total is None or not is_positive(total):
            logger.info("User %s has no positive contribution, no recommendation", context.user_id)
            return None

        generated_at = now or self.clock()
        allocation = AllocationEngine(context.base_currency, shared.exchange_rates)

        prices: Dict[str, PriceQuote] = {}
        for holding in context.holdings:
            quote = context.price_for(holding.symbol, shared)
            if quote is not None:
                prices[holding.symbol] = quote

        statuses = allocation.compute_allocation_status(context.holdings, prices, context.allocation_targets)
        assets = allocation.build_assets_with_context(
            context.holdings, statuses, scores, prices, context.allocation_targets
        )
        outcome = self.recommendation_engine.generate(assets, total, context.base_currency)

        criteria = context.criteria_version
        return RecommendationSession(
            user_id=context.user_id,
            portfolio_id=context.portfolio_id,
            correlation_id=correlation_id,
            criteria_version_id=criteria.id if criteria else "",
            total_investable=outcome.total_investable,
            allocated_total=outcome.allocated_total,
            unallocated=outcome.unallocated,
            base_currency=context.base_currency,
            generated_at=generated_at,
            expires_at=generated_at + self.ttl,
            items=outcome.items,
            allocation_statuses=tuple(statuses),
            status=RecommendationStatus.ACTIVE,
            audit={
                "correlation_id": correlation_id,
                "criteria_version_id": criteria.id if criteria else None,
                "criteria_version": criteria.version if criteria else None,
                "prices": {
                    symbol: {
                        "price": to_fixed_string(quote.price, MONETARY_SCALE),
                        "currency": quote.currency,
                        "fetched_at": quote.fetched_at.isoformat(),
                        "source": quote.source,
                    }
                    for symbol, quote in sorted(prices.items())
                },
                "exchange_rates": {key: str(rate) for key, rate in sorted(shared.exchange_rates.items())},
                "rates_fetched_at": shared.fetched_at.isoformat(),
                "scores": {score.asset_id: to_fixed_string(score.score, SCORE_SCALE) for score in scores},
                "redistribution_passes": outcome.redistribution_passes,
            },
        )

    def is_expired(self, session: RecommendationSession, now: Optional[datetime] = None) -> bool:
        return session.status == RecommendationStatus.EXPIRED or session.is_expired(now or self.clock())

    def confirm(self, session: RecommendationSession, now: Optional[datetime] = None) -> RecommendationSession:
        """
        Confirm a session

        Raises:
            RecommendationExpiredError: Past the validity window
            RecommendationStateError: Session is not active
        """
        if self.is_expired(session, now):
            raise RecommendationExpiredError(session.id, session.expires_at)
        if session.status != RecommendationStatus.ACTIVE:
            raise RecommendationStateError(
                f"Recommendation {session.id} is {session.status.value}, only active sessions can be confirmed"
            )
        return session.with_status(RecommendationStatus.CONFIRMED)
