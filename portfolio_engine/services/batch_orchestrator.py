"""
BATCH ORCHESTRATOR
Run scoring + recommendations for many users with per-user fault isolation

STATE MACHINE (per user):
PENDING → SCORING → SCORED → RECOMMENDING → COMPLETED
        ↘ SKIPPED (no portfolio / empty portfolio / no active criteria)
any stage → FAILED

RULES:
❌ One user's exception never aborts the batch
❌ No cross-user mutable state (shared context is read-only)
✅ SCORES_COMPUTED is emitted before scores are persisted
✅ Every run that emitted CALC_STARTED ends with CALC_COMPLETED
✅ A context that cannot be loaded still gets CALC_STARTED + failed CALC_COMPLETED
✅ A stored session is withdrawn when its run fails afterwards
✅ Bounded concurrency (asyncio.Semaphore)
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from portfolio_engine.domain.models import (
    AssetFundamentals,
    AssetScoreResult,
    BatchResult,
    CalculationStatus,
    PriceQuote,
    RecommendationSession,
    SharedContext,
    UserContext,
    UserRunResult,
    UserRunState,
    UserSkipReason,
)
from portfolio_engine.domain.services.calculation_pipeline import CalculationPipeline
from portfolio_engine.domain.services.event_store import EventStore
from portfolio_engine.domain.services.scoring_engine import ScoringEngine
from portfolio_engine.services.recommendation_service import RecommendationService
from portfolio_engine.utils.time import elapsed_ms, now_utc_naive

logger = logging.getLogger(__name__)


class PersistenceGateway(Protocol):
    """Typed read/write surface of the persistence collaborator"""

    async def load_user_context(self, user_id: str) -> Optional[UserContext]:
        ...

    async def save_scores(self, user_id: str, scores: Sequence[AssetScoreResult]) -> None:
        ...

    async def save_recommendation(self, session: RecommendationSession) -> str:
        ...

    async def withdraw_recommendation(self, recommendation_id: str) -> None:
        ...


class BatchOrchestrator:
    """
    Batch Orchestrator
    Drives the calculation pipeline for a list of users
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        event_store: EventStore,
        scoring_engine: Optional[ScoringEngine] = None,
        recommendation_service: Optional[RecommendationService] = None,
        max_workers: int = 1,
        clock: Callable[[], datetime] = now_utc_naive,
    ):
        """
        Args:
            persistence: Reads user context, writes scores and sessions
            event_store: Audit log
            scoring_engine: Defaults to a new ScoringEngine
            recommendation_service: Defaults to a 24h-TTL service
            max_workers: Users processed concurrently
            clock: Time source
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.persistence = persistence
        self.pipeline = CalculationPipeline(event_store, clock=clock)
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.recommendation_service = recommendation_service or RecommendationService(clock=clock)
        self.max_workers = max_workers
        self.clock = clock

    async def process_batch(self, user_ids: Sequence[str], shared_context: SharedContext) -> BatchResult:
        """
        Process every user

        Args:
            user_ids: Users to process
            shared_context: Rates and prices fetched once for the whole batch

        Returns:
            BatchResult with per-user results in input order
        """
        started_at = self.clock()
        semaphore = asyncio.Semaphore(self.max_workers)
        logger.info("Batch started: %d users, %d workers", len(user_ids), self.max_workers)

        async def _run(user_id: str) -> UserRunResult:
            async with semaphore:
                return await self.process_user(user_id, shared_context)

        outcomes = await asyncio.gather(*(_run(user_id) for user_id in user_ids), return_exceptions=True)

        results: List[UserRunResult] = []
        for user_id, outcome in zip(user_ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Unhandled error for user %s", user_id, exc_info=outcome)
                outcome = UserRunResult(user_id=user_id, error_message=str(outcome))
                outcome.failed_stage = UserRunState.PENDING
                outcome.transition(UserRunState.FAILED)
            results.append(outcome)

        batch = BatchResult(
            users_processed=len(results),
            users_success=sum(1 for result in results if result.state == UserRunState.COMPLETED),
            users_failed=sum(1 for result in results if result.state == UserRunState.FAILED),
            users_skipped=sum(1 for result in results if result.state == UserRunState.SKIPPED),
            total_scored=sum(result.assets_scored for result in results),
            total_generated=sum(result.recommendations_generated for result in results),
            duration_ms=elapsed_ms(started_at, self.clock()),
            per_user_results=tuple(results),
        )
        logger.info(
            "Batch finished (%s): processed=%d success=%d failed=%d skipped=%d scored=%d generated=%d",
            batch.status, batch.users_processed, batch.users_success, batch.users_failed,
            batch.users_skipped, batch.total_scored, batch.total_generated,
        )
        return batch

    async def process_user(self, user_id: str, shared_context: SharedContext) -> UserRunResult:
        """Run one user through the state machine; never raises for ordinary errors."""
        result = UserRunResult(user_id=user_id)
        result.transition(UserRunState.PENDING)
        started_at = self.clock()

        try:
            context = await self.persistence.load_user_context(user_id)
        except Exception as exc:
            logger.error("Loading context for user %s failed: %s", user_id, exc)
            await self._record_load_failure(result, started_at, exc)
            self._fail(result, exc)
            result.duration_ms = elapsed_ms(started_at, self.clock())
            return result

        skip_reason = self._skip_reason(context)
        if skip_reason is not None:
            logger.info("Skipping user %s: %s", user_id, skip_reason.value)
            result.skip_reason = skip_reason.value
            result.transition(UserRunState.SKIPPED)
            return result

        result.correlation_id = str(uuid.uuid4())
        calc_started = False
        asset_count = 0

        try:
            result.transition(UserRunState.SCORING)
            await self.pipeline.start(user_id, correlation_id=result.correlation_id)
            calc_started = True

            scores = await self._score(context, shared_context, result.correlation_id)
            asset_count = len(scores)
            result.assets_scored = asset_count
            result.transition(UserRunState.SCORED)

            result.transition(UserRunState.RECOMMENDING)
            session = self.recommendation_service.build_session(
                context, scores, shared_context, result.correlation_id, now=self.clock()
            )
            if session is None:
                result.skip_reason = UserSkipReason.NON_POSITIVE_INVESTABLE.value
            else:
                result.recommendation_id = await self.persistence.save_recommendation(session)
                result.recommendations_generated = len(session.items)

            await self.pipeline.complete(
                result.correlation_id,
                user_id,
                duration_ms=elapsed_ms(started_at, self.clock()),
                asset_count=asset_count,
                status=CalculationStatus.SUCCESS,
            )
            result.transition(UserRunState.COMPLETED)
        except Exception as exc:
            logger.error(
                "User %s failed during %s (correlation %s): %s",
                user_id, result.state.value, result.correlation_id, exc,
            )
            if result.recommendation_id is not None:
                await self._withdraw(result)
            if calc_started:
                await self._complete_failed(result, started_at, asset_count, exc)
            self._fail(result, exc)

        result.duration_ms = elapsed_ms(started_at, self.clock())
        return result

    async def _score(
        self,
        context: UserContext,
        shared_context: SharedContext,
        correlation_id: str,
    ) -> List[AssetScoreResult]:
        criteria = context.criteria_version
        assets = [
            context.fundamentals.get(holding.asset_id)
            or AssetFundamentals(asset_id=holding.asset_id, symbol=holding.symbol, metrics={})
            for holding in context.holdings
        ]

        quotes: Dict[str, PriceQuote] = {}
        for holding in context.holdings:
            quote = context.price_for(holding.symbol, shared_context)
            if quote is not None:
                quotes[holding.asset_id] = quote

        await self.pipeline.capture_inputs(
            correlation_id,
            context.user_id,
            criteria,
            assets,
            quotes,
            shared_context.exchange_rates,
        )

        scores = self.scoring_engine.score_assets(
            criteria.rules, assets, criteria.id, calculated_at=self.clock()
        )

        await self.pipeline.record_scores(correlation_id, context.user_id, criteria.id, scores)
        await self.persistence.save_scores(context.user_id, scores)
        return scores

    async def _record_load_failure(self, result: UserRunResult, started_at: datetime, exc: Exception) -> None:
        correlation_id = str(uuid.uuid4())
        try:
            await self.pipeline.start(result.user_id, correlation_id=correlation_id)
        except Exception as emit_exc:
            logger.error("Could not open audit trail for user %s: %s", result.user_id, emit_exc)
            return
        result.correlation_id = correlation_id
        await self._complete_failed(result, started_at, 0, exc)

    async def _withdraw(self, result: UserRunResult) -> None:
        try:
            await self.persistence.withdraw_recommendation(result.recommendation_id)
        except Exception as withdraw_exc:
            logger.error(
                "Could not withdraw recommendation %s of failed run %s: %s",
                result.recommendation_id, result.correlation_id, withdraw_exc,
            )
            return
        logger.warning(
            "Withdrew recommendation %s of failed run %s", result.recommendation_id, result.correlation_id
        )
        result.recommendation_id = None
        result.recommendations_generated = 0

    async def _complete_failed(
        self,
        result: UserRunResult,
        started_at: datetime,
        asset_count: int,
        exc: Exception,
    ) -> None:
        try:
            await self.pipeline.complete(
                result.correlation_id,
                result.user_id,
                duration_ms=elapsed_ms(started_at, self.clock()),
                asset_count=asset_count,
                status=CalculationStatus.FAILED,
                error_message=str(exc) or type(exc).__name__,
            )
        except Exception as emit_exc:
            logger.error(
                "Could not record failure of %s, audit trail left open: %s",
                result.correlation_id, emit_exc,
            )

    @staticmethod
    def _fail(result: UserRunResult, exc: Exception) -> None:
        result.failed_stage = result.state
        result.error_message = str(exc) or type(exc).__name__
        result.transition(UserRunState.FAILED)

    @staticmethod
    def _skip_reason(context: Optional[UserContext]) -> Optional[UserSkipReason]:
        if context is None:
            return UserSkipReason.USER_NOT_FOUND
        if context.portfolio_id is None:
            return UserSkipReason.NO_PORTFOLIO
        if not context.holdings:
            return UserSkipReason.EMPTY_PORTFOLIO
        if context.criteria_version is None:
            return UserSkipReason.NO_ACTIVE_CRITERIA
        return None
