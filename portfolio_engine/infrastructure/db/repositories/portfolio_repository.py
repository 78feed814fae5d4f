"""
Portfolio Repository
Read access to users, portfolios, holdings and class targets
"""

from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_engine.domain.models import AllocationTarget, PortfolioHolding
from portfolio_engine.infrastructure.db.models import (
    AssetClassModel,
    PortfolioAssetModel,
    PortfolioModel,
    UserModel,
)


class PortfolioRepository:
    """Repository for the user's portfolio configuration"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id, UserModel.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def list_active_user_ids(self) -> List[str]:
        """Users eligible for the overnight batch, oldest first"""
        result = await self.session.execute(
            select(UserModel.id)
            .where(UserModel.is_active.is_(True), UserModel.deleted_at.is_(None))
            .order_by(UserModel.created_at, UserModel.id)
        )
        return list(result.scalars().all())

    async def get_portfolio_id(self, user_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(PortfolioModel.id)
            .where(PortfolioModel.user_id == user_id)
            .order_by(PortfolioModel.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_holdings(self, portfolio_id: str) -> List[PortfolioHolding]:
        """Non-ignored holdings with a positive quantity"""
        result = await self.session.execute(
            select(PortfolioAssetModel)
            .where(
                PortfolioAssetModel.portfolio_id == portfolio_id,
                PortfolioAssetModel.is_ignored.is_(False),
            )
            .order_by(PortfolioAssetModel.symbol)
        )
        return [
            self._to_domain(model)
            for model in result.scalars().all()
            if Decimal(model.quantity) > Decimal("0")
        ]

    async def get_allocation_targets(self, user_id: str) -> Dict[str, AllocationTarget]:
        """
        Args:
            user_id: Owner of the classes

        Returns:
            class_id -> AllocationTarget (missing bounds default to 0..100)
        """
        result = await self.session.execute(
            select(AssetClassModel)
            .where(AssetClassModel.user_id == user_id)
            .order_by(AssetClassModel.sort_order, AssetClassModel.name)
        )
        targets: Dict[str, AllocationTarget] = {}
        for model in result.scalars().all():
            targets[model.id] = AllocationTarget(
                class_id=model.id,
                class_name=model.name,
                target_min=Decimal(model.target_min) if model.target_min is not None else Decimal("0"),
                target_max=Decimal(model.target_max) if model.target_max is not None else Decimal("100"),
                min_allocation_value=(
                    Decimal(model.min_allocation_value) if model.min_allocation_value is not None else None
                ),
                max_asset_count=model.max_assets,
            )
        return targets

    @staticmethod
    def _to_domain(model: PortfolioAssetModel) -> PortfolioHolding:
        return PortfolioHolding(
            asset_id=model.id,
            symbol=model.symbol,
            quantity=Decimal(model.quantity),
            currency=model.currency,
            class_id=model.class_id,
            subclass_id=model.subclass_id,
            name=model.name,
        )
