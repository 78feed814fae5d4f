"""
Calculation Event Repository
Insert-only storage for the audit trail
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_engine.domain.models import CalculationEvent, EventType, StoredEvent
from portfolio_engine.infrastructure.db.models import CalculationEventModel


class CalculationEventRepository:
    """Repository for calculation events (insert and read only)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, event: CalculationEvent, sequence: int) -> str:
        model = CalculationEventModel(
            correlation_id=event.correlation_id,
            user_id=event.user_id,
            event_type=event.event_type.value,
            sequence=sequence,
            payload=event.payload,
            created_at=event.timestamp,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def list_for_correlation(self, correlation_id: str) -> List[StoredEvent]:
        result = await self.session.execute(
            select(CalculationEventModel)
            .where(CalculationEventModel.correlation_id == correlation_id)
            .order_by(CalculationEventModel.sequence)
        )
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_for_user(self, user_id: str, limit: int) -> List[StoredEvent]:
        result = await self.session.execute(
            select(CalculationEventModel)
            .where(CalculationEventModel.user_id == user_id)
            .order_by(CalculationEventModel.created_at.desc(), CalculationEventModel.sequence.desc())
            .limit(limit)
        )
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_by_type(self, user_id: str, event_type: EventType, limit: int) -> List[StoredEvent]:
        result = await self.session.execute(
            select(CalculationEventModel)
            .where(
                CalculationEventModel.user_id == user_id,
                CalculationEventModel.event_type == event_type.value,
            )
            .order_by(CalculationEventModel.created_at.desc())
            .limit(limit)
        )
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: CalculationEventModel) -> StoredEvent:
        return StoredEvent(
            id=model.id,
            correlation_id=model.correlation_id,
            user_id=model.user_id,
            event_type=EventType(model.event_type),
            sequence=model.sequence,
            payload=model.payload,
            created_at=model.created_at,
        )
