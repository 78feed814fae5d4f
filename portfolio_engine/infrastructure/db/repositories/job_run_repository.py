"""
Overnight Job Run Repository
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_engine.domain.models import JobRunStatus, JobType
from portfolio_engine.infrastructure.db.models import OvernightJobRunModel


class JobRunRepository:
    """Repository for overnight job runs"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, job_type: JobType, started_at: datetime, metrics: Dict[str, Any]) -> str:
        model = OvernightJobRunModel(
            job_type=job_type.value,
            status=JobRunStatus.STARTED.value,
            started_at=started_at,
            metrics=metrics,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

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
        model = await self.session.get(OvernightJobRunModel, job_run_id)
        if model is None:
            raise ValueError(f"Unknown job run {job_run_id}")
        model.status = status.value
        model.completed_at = completed_at
        model.metrics = {**(model.metrics or {}), **metrics}
        model.users_processed = users_processed
        model.users_failed = users_failed
        model.error_message = error_message
        await self.session.flush()
