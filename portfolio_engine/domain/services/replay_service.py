"""
Replay service
Re-runs a recorded calculation from its INPUTS_CAPTURED event and compares
the result with the recorded SCORES_COMPUTED event.
"""

import logging
from typing import Dict, List

from portfolio_engine.domain.exceptions import EngineError
from portfolio_engine.domain.models import (
    AssetFundamentals,
    EventType,
    ReplayResult,
    ScoreDiscrepancy,
)
from portfolio_engine.domain.schemas.events import InputsCapturedPayload, ScoresComputedPayload
from portfolio_engine.domain.services.calculation_pipeline import rule_from_snapshot, score_snapshot
from portfolio_engine.domain.services.event_store import EventStore, parse_payload
from portfolio_engine.domain.services.scoring_engine import ScoringEngine
from portfolio_engine.utils.decimal_utils import SCORE_SCALE, to_fixed_string

logger = logging.getLogger(__name__)


class ReplayService:
    """Verifies that a stored calculation is reproducible"""

    def __init__(self, event_store: EventStore, scoring_engine: ScoringEngine = None):
        self.event_store = event_store
        self.scoring_engine = scoring_engine or ScoringEngine()

    async def replay(self, correlation_id: str) -> ReplayResult:
        """
        Replay one calculation

        Returns:
            ReplayResult; `success` is False when the needed events are
            missing or unreadable, `matches` tells whether every score and
            breakdown was reproduced exactly
        """
        events = await self.event_store.get_by_correlation_id(correlation_id)
        by_type = {stored.event_type: stored for stored in events}

        inputs_event = by_type.get(EventType.INPUTS_CAPTURED)
        scores_event = by_type.get(EventType.SCORES_COMPUTED)
        if inputs_event is None or scores_event is None:
            missing = EventType.INPUTS_CAPTURED if inputs_event is None else EventType.SCORES_COMPUTED
            return self._failure(correlation_id, f"No {missing.value} event for {correlation_id}")

        try:
            inputs: InputsCapturedPayload = parse_payload(EventType.INPUTS_CAPTURED, inputs_event.payload)
            recorded: ScoresComputedPayload = parse_payload(EventType.SCORES_COMPUTED, scores_event.payload)

            rules = [rule_from_snapshot(snapshot) for snapshot in inputs.rules]
            assets = [
                AssetFundamentals(
                    asset_id=asset_id,
                    symbol=inputs.symbols.get(asset_id, asset_id),
                    metrics=inputs.fundamentals.get(asset_id, {}),
                )
                for asset_id in inputs.asset_ids
            ]
            replayed = self.scoring_engine.score_assets(
                rules, assets, inputs.criteria_version_id, calculated_at=scores_event.created_at
            )
        except EngineError as exc:
            logger.warning("Replay of %s failed: %s", correlation_id, exc)
            return self._failure(correlation_id, str(exc))

        original_snapshots = {snapshot.asset_id: snapshot for snapshot in recorded.results}
        replayed_snapshots = {result.asset_id: score_snapshot(result) for result in replayed}

        discrepancies: List[ScoreDiscrepancy] = []
        for asset_id in sorted(set(original_snapshots) | set(replayed_snapshots)):
            original = original_snapshots.get(asset_id)
            again = replayed_snapshots.get(asset_id)
            if original is None or again is None:
                discrepancies.append(
                    ScoreDiscrepancy(
                        asset_id=asset_id,
                        original_score=self._score_text(original),
                        replayed_score=self._score_text(again),
                        reason="asset missing from " + ("original" if original is None else "replay"),
                    )
                )
            elif original.score != again.score:
                discrepancies.append(
                    ScoreDiscrepancy(asset_id, self._score_text(original), self._score_text(again), "score differs")
                )
            elif original.breakdown != again.breakdown:
                discrepancies.append(
                    ScoreDiscrepancy(asset_id, self._score_text(original), self._score_text(again), "breakdown differs")
                )

        return ReplayResult(
            correlation_id=correlation_id,
            success=True,
            matches=not discrepancies,
            original_scores=self._scores(original_snapshots),
            replayed_scores=self._scores(replayed_snapshots),
            discrepancies=tuple(discrepancies),
        )

    @staticmethod
    def _score_text(snapshot):
        return to_fixed_string(snapshot.score, SCORE_SCALE) if snapshot is not None else None

    @classmethod
    def _scores(cls, snapshots) -> Dict[str, str]:
        return {asset_id: cls._score_text(snapshot) for asset_id, snapshot in snapshots.items()}

    @staticmethod
    def _failure(correlation_id: str, error: str) -> ReplayResult:
        return ReplayResult(
            correlation_id=correlation_id,
            success=False,
            matches=False,
            original_scores={},
            replayed_scores={},
            error=error,
        )
