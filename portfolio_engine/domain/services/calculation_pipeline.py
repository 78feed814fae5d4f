"""
Calculation pipeline
Emits the four audit events of one scoring run under a shared correlation id
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Mapping, Optional, Sequence

from portfolio_engine.domain.models import (
    AssetFundamentals,
    AssetScoreResult,
    CalculationEvent,
    CalculationStatus,
    CriteriaVersion,
    CriterionRule,
    EventType,
    PriceQuote,
)
from portfolio_engine.domain.schemas.events import (
    AssetScoreSnapshot,
    CalcCompletedPayload,
    CalcStartedPayload,
    CriterionResultSnapshot,
    InputsCapturedPayload,
    PriceSnapshot,
    RateSnapshot,
    RuleSnapshot,
    ScoresComputedPayload,
)
from portfolio_engine.domain.services.event_store import EventStore
from portfolio_engine.utils.time import now_utc_naive


def rule_snapshot(rule: CriterionRule) -> RuleSnapshot:
    return RuleSnapshot(
        id=rule.id,
        name=rule.name,
        metric=rule.metric,
        operator=rule.operator,
        value=rule.value,
        value2=rule.value2,
        points=rule.points,
        required_metrics=list(rule.required_metrics) if rule.required_metrics is not None else None,
        sort_order=rule.sort_order,
    )


def rule_from_snapshot(snapshot: RuleSnapshot) -> CriterionRule:
    return CriterionRule(
        id=snapshot.id,
        name=snapshot.name,
        metric=snapshot.metric,
        operator=snapshot.operator,
        value=snapshot.value,
        value2=snapshot.value2,
        points=snapshot.points,
        required_metrics=tuple(snapshot.required_metrics) if snapshot.required_metrics is not None else None,
        sort_order=snapshot.sort_order,
    )


def score_snapshot(result: AssetScoreResult) -> AssetScoreSnapshot:
    return AssetScoreSnapshot(
        asset_id=result.asset_id,
        symbol=result.symbol,
        score=result.score,
        max_possible_score=result.max_possible_score,
        breakdown=[
            CriterionResultSnapshot(
                criterion_id=item.criterion_id,
                criterion_name=item.criterion_name,
                matched=item.matched,
                points_awarded=item.points_awarded,
                actual_value=item.actual_value,
                skipped_reason=item.skipped_reason,
            )
            for item in result.breakdown
        ],
    )


def rate_snapshots(rates: Mapping[str, Decimal]) -> List[RateSnapshot]:
    snapshots = []
    for key in sorted(rates):
        from_currency, _, to_currency = key.partition("_")
        snapshots.append(RateSnapshot(from_currency=from_currency, to_currency=to_currency, rate=rates[key]))
    return snapshots


class CalculationPipeline:
    """
    Calculation Pipeline
    CALC_STARTED → INPUTS_CAPTURED → SCORES_COMPUTED → CALC_COMPLETED
    """

    def __init__(self, event_store: EventStore, clock: Callable[[], datetime] = now_utc_naive):
        self.event_store = event_store
        self.clock = clock
        self._logger = logging.getLogger(__name__)

    def _event(self, correlation_id: str, user_id: str, event_type: EventType, payload) -> CalculationEvent:
        return CalculationEvent(
            correlation_id=correlation_id,
            user_id=user_id,
            event_type=event_type,
            payload=payload.model_dump(mode="json"),
            timestamp=self.clock(),
        )

    async def start(self, user_id: str, correlation_id: Optional[str] = None, market: Optional[str] = None) -> str:
        """Emit CALC_STARTED and return the run's correlation id"""
        correlation_id = correlation_id or str(uuid.uuid4())
        payload = CalcStartedPayload(
            correlation_id=correlation_id,
            user_id=user_id,
            timestamp=self.clock(),
            market=market,
        )
        await self.event_store.append(user_id, self._event(correlation_id, user_id, EventType.CALC_STARTED, payload))
        self._logger.info("Calculation %s started for user %s", correlation_id, user_id)
        return correlation_id

    async def capture_inputs(
        self,
        correlation_id: str,
        user_id: str,
        criteria_version: CriteriaVersion,
        assets: Sequence[AssetFundamentals],
        quotes: Mapping[str, PriceQuote],
        rates: Mapping[str, Decimal],
    ) -> str:
        """
        Emit INPUTS_CAPTURED

        Args:
            correlation_id: Run id
            user_id: Owner
            criteria_version: Rules used for scoring
            assets: Fundamentals of every scored asset
            quotes: asset_id -> price used for valuation
            rates: "FROM_TO" -> rate snapshot
        """
        payload = InputsCapturedPayload(
            correlation_id=correlation_id,
            criteria_version_id=criteria_version.id,
            criteria_version=criteria_version.version,
            rules=[rule_snapshot(rule) for rule in criteria_version.rules],
            prices=[
                PriceSnapshot(
                    asset_id=asset_id,
                    symbol=quote.symbol,
                    price=quote.price,
                    currency=quote.currency,
                    fetched_at=quote.fetched_at,
                    source=quote.source,
                )
                for asset_id, quote in sorted(quotes.items())
            ],
            rates=rate_snapshots(rates),
            asset_ids=[asset.asset_id for asset in assets],
            symbols={asset.asset_id: asset.symbol for asset in assets},
            fundamentals={asset.asset_id: dict(asset.metrics) for asset in assets},
        )
        return await self.event_store.append(
            user_id, self._event(correlation_id, user_id, EventType.INPUTS_CAPTURED, payload)
        )

    async def record_scores(
        self,
        correlation_id: str,
        user_id: str,
        criteria_version_id: str,
        results: Sequence[AssetScoreResult],
    ) -> str:
        """Emit SCORES_COMPUTED"""
        payload = ScoresComputedPayload(
            correlation_id=correlation_id,
            criteria_version_id=criteria_version_id,
            results=[score_snapshot(result) for result in results],
        )
        return await self.event_store.append(
            user_id, self._event(correlation_id, user_id, EventType.SCORES_COMPUTED, payload)
        )

    async def complete(
        self,
        correlation_id: str,
        user_id: str,
        duration_ms: int,
        asset_count: int,
        status: CalculationStatus,
        error_message: Optional[str] = None,
    ) -> str:
        """Emit the terminal CALC_COMPLETED event"""
        payload = CalcCompletedPayload(
            correlation_id=correlation_id,
            duration_ms=duration_ms,
            asset_count=asset_count,
            status=status,
            error_message=error_message,
        )
        event_id = await self.event_store.append(
            user_id, self._event(correlation_id, user_id, EventType.CALC_COMPLETED, payload)
        )
        self._logger.info(
            "Calculation %s completed: status=%s assets=%d duration=%dms",
            correlation_id, status.value, asset_count, duration_ms,
        )
        return event_id
