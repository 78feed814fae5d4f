"""
Recommendation Repository
Sessions and their items; items are immutable, only the header status moves
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from portfolio_engine.domain.models import (
    RecommendationItemResult,
    RecommendationSession,
    RecommendationStatus,
)
from portfolio_engine.infrastructure.db.models import RecommendationItemModel, RecommendationModel
from portfolio_engine.infrastructure.db.serialization import (
    allocation_status_from_json,
    recommendation_breakdown_from_json,
    to_json_safe,
)

logger = logging.getLogger(__name__)


class RecommendationRepository:
    """Repository for recommendation sessions"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, recommendation: RecommendationSession) -> str:
        """Insert a session with all its items; returns the session id"""
        model = RecommendationModel(
            user_id=recommendation.user_id,
            portfolio_id=recommendation.portfolio_id,
            correlation_id=recommendation.correlation_id,
            criteria_version_id=recommendation.criteria_version_id,
            total_investable=recommendation.total_investable,
            allocated_total=recommendation.allocated_total,
            unallocated=recommendation.unallocated,
            base_currency=recommendation.base_currency,
            status=recommendation.status.value,
            audit=to_json_safe(recommendation.audit),
            allocation_statuses=to_json_safe(list(recommendation.allocation_statuses)),
            generated_at=recommendation.generated_at,
            expires_at=recommendation.expires_at,
        )
        self.session.add(model)
        await self.session.flush()

        for item in recommendation.items:
            self.session.add(
                RecommendationItemModel(
                    recommendation_id=model.id,
                    asset_id=item.asset_id,
                    symbol=item.symbol,
                    class_id=item.class_id,
                    score=item.score,
                    current_allocation=item.current_allocation,
                    target_allocation=item.target_allocation,
                    allocation_gap=item.allocation_gap,
                    priority=item.priority,
                    recommended_amount=item.recommended_amount,
                    is_over_allocated=item.is_over_allocated,
                    breakdown=to_json_safe(item.breakdown),
                    sort_order=item.sort_order,
                )
            )
        await self.session.flush()
        return model.id

    async def get(self, recommendation_id: str) -> Optional[RecommendationSession]:
        result = await self.session.execute(
            select(RecommendationModel)
            .options(selectinload(RecommendationModel.items))
            .where(RecommendationModel.id == recommendation_id)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_latest_for_user(self, user_id: str) -> Optional[RecommendationSession]:
        result = await self.session.execute(
            select(RecommendationModel)
            .options(selectinload(RecommendationModel.items))
            .where(RecommendationModel.user_id == user_id)
            .order_by(RecommendationModel.generated_at.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def expire_stale(self, now: datetime) -> int:
        """Mark active/pending sessions past expires_at as expired"""
        result = await self.session.execute(
            update(RecommendationModel)
            .where(
                RecommendationModel.expires_at <= now,
                RecommendationModel.status.in_(
                    [RecommendationStatus.ACTIVE.value, RecommendationStatus.PENDING.value]
                ),
            )
            .values(status=RecommendationStatus.EXPIRED.value)
        )
        if result.rowcount:
            logger.info("Expired %d stale recommendations", result.rowcount)
        return result.rowcount or 0

    async def confirm(self, recommendation_id: str, confirmed_at: datetime) -> bool:
        """
        Active session within its validity window -> confirmed

        Returns:
            False when the session is missing, expired or no longer active
        """
        result = await self.session.execute(
            update(RecommendationModel)
            .where(
                RecommendationModel.id == recommendation_id,
                RecommendationModel.status == RecommendationStatus.ACTIVE.value,
                RecommendationModel.expires_at > confirmed_at,
            )
            .values(status=RecommendationStatus.CONFIRMED.value, confirmed_at=confirmed_at)
        )
        return bool(result.rowcount)

    async def withdraw(self, recommendation_id: str) -> None:
        """Expire a session whose calculation ended in failure"""
        await self.session.execute(
            update(RecommendationModel)
            .where(RecommendationModel.id == recommendation_id)
            .values(status=RecommendationStatus.EXPIRED.value)
        )
        logger.info("Withdrew recommendation %s", recommendation_id)

    @staticmethod
    def _to_domain(model: RecommendationModel) -> RecommendationSession:
        items = tuple(
            RecommendationItemResult(
                asset_id=item.asset_id,
                symbol=item.symbol,
                score=Decimal(item.score),
                class_id=item.class_id,
                current_allocation=Decimal(item.current_allocation),
                target_allocation=Decimal(item.target_allocation),
                allocation_gap=Decimal(item.allocation_gap),
                priority=Decimal(item.priority),
                recommended_amount=Decimal(item.recommended_amount),
                is_over_allocated=item.is_over_allocated,
                breakdown=recommendation_breakdown_from_json(item.breakdown),
                sort_order=item.sort_order,
            )
            for item in model.items
        )
        return RecommendationSession(
            id=model.id,
            user_id=model.user_id,
            portfolio_id=model.portfolio_id,
            correlation_id=model.correlation_id,
            criteria_version_id=model.criteria_version_id,
            total_investable=Decimal(model.total_investable),
            allocated_total=Decimal(model.allocated_total),
            unallocated=Decimal(model.unallocated),
            base_currency=model.base_currency,
            generated_at=model.generated_at,
            expires_at=model.expires_at,
            items=items,
            allocation_statuses=tuple(
                allocation_status_from_json(data) for data in model.allocation_statuses
            ),
            status=RecommendationStatus(model.status),
            audit=model.audit,
        )
