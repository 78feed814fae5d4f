"""
Job Run Service
Tracks overnight job runs: started → completed | partial | failed
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from portfolio_engine.domain.models import BatchResult, JobRunStatus, JobType
from portfolio_engine.utils.time import now_utc_naive

logger = logging.getLogger(__name__)


class JobRunRepository(Protocol):
    """Job run storage"""

    async def create(self, job_type: JobType, started_at: datetime, metrics: Dict[str, Any]) -> str:
        ...

    async def finish(
        self,
        job_run_id: str,
        status: JobRunStatus,
        completed_at: datetime,
        metrics: Dict[str, Any],
        users_processed: int,
        users_failed: int,
        error_message: Optional[str] = None,
    ) -> None:
        ...


def batch_metrics(result: BatchResult) -> Dict[str, Any]:
    """JSON-safe metrics for a finished batch"""
    return {
        "users_processed": result.users_processed,
        "users_success": result.users_success,
        "users_failed": result.users_failed,
        "users_skipped": result.users_skipped,
        "assets_scored": result.total_scored,
        "recommendations_generated": result.total_generated,
        "duration_ms": result.duration_ms,
        "errors": result.errors(),
    }


class JobRunService:
    """Records the lifecycle of tracked jobs"""

    def __init__(self, repository: JobRunRepository, clock: Callable[[], datetime] = now_utc_naive):
        self.repository = repository
        self.clock = clock

    async def start(self, job_type: JobType = JobType.OVERNIGHT_BATCH, **metrics: Any) -> str:
        job_run_id = await self.repository.create(job_type, self.clock(), dict(metrics))
        logger.info("Job run %s (%s) started", job_run_id, job_type.value)
        return job_run_id

    async def complete(self, job_run_id: str, result: BatchResult) -> JobRunStatus:
        """
        Close a job run from its batch result

        Returns:
            COMPLETED without failures, PARTIAL when some users failed,
            FAILED when every processed user failed
        """
        status = JobRunStatus(result.status)
        await self.repository.finish(
            job_run_id,
            status,
            self.clock(),
            batch_metrics(result),
            users_processed=result.users_processed,
            users_failed=result.users_failed,
        )
        logger.info("Job run %s finished: %s", job_run_id, status.value)
        return status

    async def fail(self, job_run_id: str, error: Exception) -> None:
        await self.repository.finish(
            job_run_id,
            JobRunStatus.FAILED,
            self.clock(),
            {},
            users_processed=0,
            users_failed=0,
            error_message=str(error) or type(error).__name__,
        )
        logger.error("Job run %s failed: %s", job_run_id, error)
