"""
SCHEDULER JOB DEFINITIONS

Jobs are thin wrappers that:
- Log execution
- Obtain DB sessions
- Call the batch orchestrator / repositories
- Record the job run

NO business logic is allowed here.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from portfolio_engine.config import settings
from portfolio_engine.domain.models import BatchResult, JobType
from portfolio_engine.domain.services.event_store import EventStore
from portfolio_engine.infrastructure.db.database import get_session_factory
from portfolio_engine.infrastructure.db.persistence import SqlAlchemyPersistence, unit_of_work
from portfolio_engine.infrastructure.db.repositories.job_run_repository import JobRunRepository
from portfolio_engine.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from portfolio_engine.services.batch_orchestrator import BatchOrchestrator
from portfolio_engine.services.job_run_service import JobRunService
from portfolio_engine.services.recommendation_service import RecommendationService
from portfolio_engine.utils.time import now_utc_naive

_logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# OVERNIGHT BATCH
# -------------------------------------------------------------------

async def run_overnight_batch(
    session_factory: Optional[async_sessionmaker] = None,
    max_workers: Optional[int] = None,
) -> BatchResult:
    """
    Score and recommend for every active user, tracked as one job run.

    Raises whatever aborts the batch as a whole (e.g. shared context load);
    per-user failures are reported inside the BatchResult.
    """
    session_factory = session_factory or get_session_factory()
    persistence = SqlAlchemyPersistence(session_factory)

    async with unit_of_work(session_factory) as session:
        job_run_id = await JobRunService(JobRunRepository(session)).start(JobType.OVERNIGHT_BATCH)

    try:
        shared_context = await persistence.load_shared_context()
        user_ids = await persistence.list_active_user_ids()
        _logger.info(
            "Overnight batch: %d users, %d rates, %d prices",
            len(user_ids), len(shared_context.exchange_rates), len(shared_context.prices),
        )

        orchestrator = BatchOrchestrator(
            persistence=persistence,
            event_store=EventStore(persistence.events, query_limit=settings.EVENT_QUERY_LIMIT),
            recommendation_service=RecommendationService(ttl_hours=settings.RECOMMENDATION_TTL_HOURS),
            max_workers=max_workers or settings.BATCH_MAX_WORKERS,
        )
        result = await orchestrator.process_batch(user_ids, shared_context)
    except Exception as exc:
        async with unit_of_work(session_factory) as session:
            await JobRunService(JobRunRepository(session)).fail(job_run_id, exc)
        raise

    async with unit_of_work(session_factory) as session:
        await JobRunService(JobRunRepository(session)).complete(job_run_id, result)
    return result


async def run_overnight_batch_job():
    """Scheduled entry point; failures are logged, never raised into the scheduler."""
    _logger.info("🌙 Running overnight recommendation batch")
    try:
        result = await run_overnight_batch()
        _logger.info(
            "🌙 Overnight batch %s: %d/%d users succeeded",
            result.status, result.users_success, result.users_processed,
        )
    except Exception as exc:
        _logger.error(f"Overnight batch aborted: {exc}", exc_info=True)


# -------------------------------------------------------------------
# RECOMMENDATION EXPIRY SWEEP
# -------------------------------------------------------------------

async def expire_recommendations_job(session_factory: Optional[async_sessionmaker] = None) -> int:
    """Mark sessions past their validity window as expired"""
    session_factory = session_factory or get_session_factory()
    try:
        async with unit_of_work(session_factory) as session:
            return await RecommendationRepository(session).expire_stale(now_utc_naive())
    except Exception as exc:
        _logger.warning(f"Recommendation expiry sweep skipped safely: {exc}")
        return 0
