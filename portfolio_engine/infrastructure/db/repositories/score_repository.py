"""
Score Repository
Current scores (upsert) plus append-only score history
"""

from decimal import Decimal
from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_engine.domain.models import AssetScoreResult
from portfolio_engine.infrastructure.db.models import AssetScoreModel, ScoreHistoryModel
from portfolio_engine.infrastructure.db.serialization import breakdown_from_json, to_json_safe


class ScoreRepository:
    """Repository for asset scores"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_scores(self, user_id: str, scores: Sequence[AssetScoreResult]) -> int:
        """
        Upsert the current score of each asset and append a history row

        Returns:
            Number of scores written
        """
        if not scores:
            return 0

        asset_ids = [score.asset_id for score in scores]
        result = await self.session.execute(
            select(AssetScoreModel).where(
                AssetScoreModel.user_id == user_id,
                AssetScoreModel.asset_id.in_(asset_ids),
            )
        )
        current = {model.asset_id: model for model in result.scalars().all()}

        for score in scores:
            breakdown = to_json_safe(list(score.breakdown))
            model = current.get(score.asset_id)
            if model is None:
                self.session.add(
                    AssetScoreModel(
                        user_id=user_id,
                        asset_id=score.asset_id,
                        symbol=score.symbol,
                        criteria_version_id=score.criteria_version_id,
                        score=score.score,
                        max_possible_score=score.max_possible_score,
                        breakdown=breakdown,
                        calculated_at=score.calculated_at,
                    )
                )
            else:
                model.symbol = score.symbol
                model.criteria_version_id = score.criteria_version_id
                model.score = score.score
                model.max_possible_score = score.max_possible_score
                model.breakdown = breakdown
                model.calculated_at = score.calculated_at

            self.session.add(
                ScoreHistoryModel(
                    user_id=user_id,
                    asset_id=score.asset_id,
                    symbol=score.symbol,
                    criteria_version_id=score.criteria_version_id,
                    score=score.score,
                    max_possible_score=score.max_possible_score,
                    breakdown=breakdown,
                    calculated_at=score.calculated_at,
                )
            )

        await self.session.flush()
        return len(scores)

    async def get_current(self, user_id: str) -> List[AssetScoreResult]:
        result = await self.session.execute(
            select(AssetScoreModel)
            .where(AssetScoreModel.user_id == user_id)
            .order_by(AssetScoreModel.symbol)
        )
        return [self._to_domain(model) for model in result.scalars().all()]

    async def get_history(self, user_id: str, asset_id: str, limit: int = 100) -> List[AssetScoreResult]:
        """Newest first"""
        result = await self.session.execute(
            select(ScoreHistoryModel)
            .where(ScoreHistoryModel.user_id == user_id, ScoreHistoryModel.asset_id == asset_id)
            .order_by(ScoreHistoryModel.calculated_at.desc())
            .limit(limit)
        )
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model) -> AssetScoreResult:
        return AssetScoreResult(
            asset_id=model.asset_id,
            symbol=model.symbol,
            score=Decimal(model.score),
            max_possible_score=Decimal(model.max_possible_score),
            breakdown=breakdown_from_json(model.breakdown),
            criteria_version_id=model.criteria_version_id,
            calculated_at=model.calculated_at,
        )
