"""
Criteria Version Repository
Versioned, append-only rule sets
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_engine.domain.exceptions import MalformedCriteriaError
from portfolio_engine.domain.models import CriteriaVersion, CriterionRule
from portfolio_engine.infrastructure.db.models import CriteriaVersionModel

logger = logging.getLogger(__name__)


def rule_to_json(rule: CriterionRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "metric": rule.metric,
        "operator": rule.operator,
        "value": rule.value,
        "value2": rule.value2,
        "points": rule.points,
        "required_metrics": list(rule.required_metrics) if rule.required_metrics is not None else None,
        "sort_order": rule.sort_order,
    }


def rules_from_json(criteria_version_id: str, data: Any) -> tuple:
    """
    Decode stored rules

    Raises:
        MalformedCriteriaError: Not a list of rule objects, or a rule fails validation
    """
    if not isinstance(data, list):
        raise MalformedCriteriaError(criteria_version_id, "criteria must be a list of rules")

    rules = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise MalformedCriteriaError(criteria_version_id, f"rule #{index} is not an object")
        try:
            required = item.get("required_metrics")
            rules.append(
                CriterionRule(
                    id=str(item["id"]),
                    name=item["name"],
                    metric=item["metric"],
                    operator=item["operator"],
                    value=item.get("value"),
                    value2=item.get("value2"),
                    points=int(item["points"]),
                    required_metrics=tuple(required) if required is not None else None,
                    sort_order=int(item.get("sort_order", index)),
                )
            )
        except KeyError as exc:
            raise MalformedCriteriaError(criteria_version_id, f"rule #{index} missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise MalformedCriteriaError(criteria_version_id, f"rule #{index}: {exc}") from exc
    return tuple(rules)


class CriteriaVersionRepository:
    """Repository for criteria versions"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active(self, user_id: str) -> Optional[CriteriaVersion]:
        """Latest active version of a user, or None"""
        result = await self.session.execute(
            select(CriteriaVersionModel)
            .where(CriteriaVersionModel.user_id == user_id, CriteriaVersionModel.is_active.is_(True))
            .order_by(CriteriaVersionModel.created_at.desc(), CriteriaVersionModel.version.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_versions(
        self,
        user_id: str,
        asset_type: str = "stock",
        target_market: str = "global",
    ) -> List[CriteriaVersion]:
        result = await self.session.execute(
            select(CriteriaVersionModel)
            .where(
                CriteriaVersionModel.user_id == user_id,
                CriteriaVersionModel.asset_type == asset_type,
                CriteriaVersionModel.target_market == target_market,
            )
            .order_by(CriteriaVersionModel.version)
        )
        return [self._to_domain(model) for model in result.scalars().all()]

    async def publish(
        self,
        user_id: str,
        name: str,
        rules: Sequence[CriterionRule],
        asset_type: str = "stock",
        target_market: str = "global",
    ) -> CriteriaVersion:
        """
        Publish a new version; earlier versions stay untouched except for is_active

        Returns:
            The new active CriteriaVersion
        """
        result = await self.session.execute(
            select(func.max(CriteriaVersionModel.version)).where(
                CriteriaVersionModel.user_id == user_id,
                CriteriaVersionModel.asset_type == asset_type,
                CriteriaVersionModel.target_market == target_market,
            )
        )
        next_version = (result.scalar() or 0) + 1

        await self.session.execute(
            update(CriteriaVersionModel)
            .where(
                CriteriaVersionModel.user_id == user_id,
                CriteriaVersionModel.asset_type == asset_type,
                CriteriaVersionModel.target_market == target_market,
                CriteriaVersionModel.is_active.is_(True),
            )
            .values(is_active=False)
        )

        model = CriteriaVersionModel(
            user_id=user_id,
            name=name,
            asset_type=asset_type,
            target_market=target_market,
            criteria=[rule_to_json(rule) for rule in rules],
            version=next_version,
            is_active=True,
        )
        self.session.add(model)
        await self.session.flush()
        logger.info("Published criteria v%d for user %s", next_version, user_id)
        return self._to_domain(model)

    @staticmethod
    def _to_domain(model: CriteriaVersionModel) -> CriteriaVersion:
        return CriteriaVersion(
            id=model.id,
            user_id=model.user_id,
            version=model.version,
            name=model.name,
            rules=rules_from_json(model.id, model.criteria),
            asset_type=model.asset_type,
            target_market=model.target_market,
            is_active=model.is_active,
            created_at=model.created_at,
        )
