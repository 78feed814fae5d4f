"""
Unit Tests for BatchOrchestrator
Per-user state machine, fault isolation and audit completeness
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType

import pytest

from portfolio_engine.domain.exceptions import MalformedCriteriaError
from portfolio_engine.domain.models import (
    AllocationTarget,
    AssetFundamentals,
    CriteriaVersion,
    CriterionRule,
    EventType,
    PortfolioHolding,
    PriceQuote,
    SharedContext,
    UserContext,
    UserRunState,
)
from portfolio_engine.domain.services.event_store import EventStore
from portfolio_engine.services.batch_orchestrator import BatchOrchestrator

FETCHED = datetime(2026, 3, 1, 21, 0, 0)


class MockPersistence:
    """In-memory persistence gateway"""

    def __init__(self, event_repository):
        self.event_repository = event_repository
        self.contexts = {}
        self.saved_scores = {}
        self.sessions = []
        self.fail_on_load = {}
        self.fail_on_save_recommendation = set()
        self.events_seen_at_save = {}
        self.withdrawn = []
        self.fail_on_withdraw = False
        self.active_loads = 0
        self.max_active_loads = 0

    async def load_user_context(self, user_id):
        self.active_loads += 1
        self.max_active_loads = max(self.max_active_loads, self.active_loads)
        try:
            await asyncio.sleep(0.01)
            if user_id in self.fail_on_load:
                raise self.fail_on_load[user_id]
            return self.contexts.get(user_id)
        finally:
            self.active_loads -= 1

    async def save_scores(self, user_id, scores):
        correlation_ids = {event.correlation_id for event in self.event_repository.events
                           if event.user_id == user_id}
        self.events_seen_at_save[user_id] = [
            event_type
            for correlation_id in correlation_ids
            for event_type in self.event_repository.types_for(correlation_id)
        ]
        self.saved_scores[user_id] = list(scores)

    async def save_recommendation(self, session):
        if session.user_id in self.fail_on_save_recommendation:
            raise RuntimeError("write failed")
        self.sessions.append(session)
        return f"rec-{len(self.sessions)}"

    async def withdraw_recommendation(self, recommendation_id):
        if self.fail_on_withdraw:
            raise RuntimeError("write failed")
        self.withdrawn.append(recommendation_id)


class RejectingSuccessRepository:
    """Event repository whose success CALC_COMPLETED append fails"""

    def __init__(self, inner):
        self.inner = inner

    async def append(self, event, sequence):
        if event.event_type == EventType.CALC_COMPLETED and event.payload["status"] == "success":
            raise RuntimeError("event store unavailable")
        return await self.inner.append(event, sequence)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class UnavailableEventRepository:
    """Event repository that cannot be reached"""

    async def append(self, event, sequence):
        raise RuntimeError("event store unavailable")

    async def list_for_correlation(self, correlation_id):
        raise RuntimeError("event store unavailable")


def make_context(user_id, contribution="1000", operator="gte", criteria=True, holdings=True):
    rules = (
        CriterionRule("r1", "Yield", "dividend_yield", operator, "4", 20),
        CriterionRule("r2", "Value", "pe_ratio", "lte", "15", 15, sort_order=1),
    )
    return UserContext(
        user_id=user_id,
        base_currency="USD",
        default_contribution=Decimal(contribution),
        portfolio_id=f"pf-{user_id}",
        holdings=(
            PortfolioHolding("a1", "AAPL", Decimal("10"), "USD", class_id="eq"),
            PortfolioHolding("a2", "BND", Decimal("20"), "USD", class_id="bd"),
        ) if holdings else (),
        criteria_version=CriteriaVersion("cv-1", user_id, 1, "Core", rules) if criteria else None,
        fundamentals={
            "a1": AssetFundamentals("a1", "AAPL", {"dividend_yield": Decimal("1"), "pe_ratio": Decimal("12")}),
        },
        allocation_targets={
            "eq": AllocationTarget("eq", "Equities", Decimal("50"), Decimal("70")),
            "bd": AllocationTarget("bd", "Bonds", Decimal("20"), Decimal("40")),
        },
    )


@pytest.fixture
def shared_context():
    return SharedContext(
        exchange_rates={},
        prices={
            "AAPL": PriceQuote("AAPL", Decimal("100"), "USD", FETCHED),
            "BND": PriceQuote("BND", Decimal("50"), "USD", FETCHED),
        },
        fetched_at=FETCHED,
    )


@pytest.fixture
def persistence(event_repository):
    return MockPersistence(event_repository)


@pytest.fixture
def orchestrator(persistence, event_store, clock):
    return BatchOrchestrator(persistence, event_store, max_workers=2, clock=clock)


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_user_completes(self, orchestrator, persistence, event_repository, shared_context):
        persistence.contexts["u1"] = make_context("u1")

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.COMPLETED
        assert result.transitions == [
            UserRunState.PENDING,
            UserRunState.SCORING,
            UserRunState.SCORED,
            UserRunState.RECOMMENDING,
            UserRunState.COMPLETED,
        ]
        assert result.assets_scored == 2
        assert result.recommendations_generated == 2
        assert result.recommendation_id == "rec-1"
        assert batch.status == "completed"
        assert batch.users_success == 1

        assert event_repository.types_for(result.correlation_id) == [
            EventType.CALC_STARTED,
            EventType.INPUTS_CAPTURED,
            EventType.SCORES_COMPUTED,
            EventType.CALC_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_session_contents(self, orchestrator, persistence, shared_context):
        persistence.contexts["u1"] = make_context("u1")

        await orchestrator.process_batch(["u1"], shared_context)

        session = persistence.sessions[0]
        amounts = {item.symbol: item.recommended_amount for item in session.items}
        assert amounts == {"AAPL": Decimal("1000.00"), "BND": Decimal("0.00")}
        assert session.allocated_total + session.unallocated == session.total_investable
        assert session.audit["scores"] == {"a1": "15.0000", "a2": "0.0000"}

    @pytest.mark.asyncio
    async def test_scores_event_precedes_persistence(self, orchestrator, persistence, shared_context):
        persistence.contexts["u1"] = make_context("u1")

        await orchestrator.process_batch(["u1"], shared_context)

        assert EventType.SCORES_COMPUTED in persistence.events_seen_at_save["u1"]
        assert EventType.CALC_COMPLETED not in persistence.events_seen_at_save["u1"]

    @pytest.mark.asyncio
    async def test_holding_without_fundamentals_scores_zero(self, orchestrator, persistence, shared_context):
        persistence.contexts["u1"] = make_context("u1")

        await orchestrator.process_batch(["u1"], shared_context)

        bond = [score for score in persistence.saved_scores["u1"] if score.asset_id == "a2"][0]
        assert bond.score == Decimal("0")
        assert bond.skipped_count == 2

    @pytest.mark.asyncio
    async def test_non_positive_contribution(self, orchestrator, persistence, event_repository, shared_context):
        persistence.contexts["u1"] = make_context("u1", contribution="0")

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.COMPLETED
        assert result.skip_reason == "non_positive_investable"
        assert result.recommendation_id is None
        assert persistence.sessions == []
        assert "u1" in persistence.saved_scores
        assert event_repository.types_for(result.correlation_id)[-1] == EventType.CALC_COMPLETED


class TestSkips:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("context_kwargs, reason", [
        ({"criteria": False}, "no_active_criteria"),
        ({"holdings": False}, "empty_portfolio"),
    ])
    async def test_skip_reasons(self, orchestrator, persistence, event_repository, shared_context,
                                context_kwargs, reason):
        persistence.contexts["u1"] = make_context("u1", **context_kwargs)

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.SKIPPED
        assert result.skip_reason == reason
        assert result.correlation_id is None
        assert batch.users_skipped == 1
        assert batch.users_failed == 0
        assert event_repository.events == []

    @pytest.mark.asyncio
    async def test_unknown_user_skipped(self, orchestrator, shared_context):
        batch = await orchestrator.process_batch(["ghost"], shared_context)

        assert batch.per_user_results[0].skip_reason == "user_not_found"
        assert batch.status == "completed"


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_invalid_rule_fails_only_that_user(self, orchestrator, persistence, event_repository,
                                                     shared_context):
        persistence.contexts["u1"] = make_context("u1")
        persistence.contexts["u2"] = make_context("u2", operator="approx")
        persistence.contexts["u3"] = make_context("u3")

        batch = await orchestrator.process_batch(["u1", "u2", "u3"], shared_context)

        states = [result.state for result in batch.per_user_results]
        assert states == [UserRunState.COMPLETED, UserRunState.FAILED, UserRunState.COMPLETED]
        assert batch.status == "partial"
        assert batch.users_failed == 1

        failed = batch.per_user_results[1]
        assert failed.failed_stage == UserRunState.SCORING
        assert "approx" in failed.error_message
        assert "approx" in batch.errors()["u2"]
        assert event_repository.types_for(failed.correlation_id) == [
            EventType.CALC_STARTED,
            EventType.INPUTS_CAPTURED,
            EventType.CALC_COMPLETED,
        ]
        completion = [e for e in event_repository.events
                      if e.correlation_id == failed.correlation_id and e.event_type == EventType.CALC_COMPLETED][0]
        assert completion.payload["status"] == "failed"
        assert "u2" not in persistence.saved_scores

    @pytest.mark.asyncio
    async def test_load_failure_closes_audit_trail(self, orchestrator, persistence, event_repository,
                                                   shared_context):
        persistence.fail_on_load["u1"] = RuntimeError("database unavailable")

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.FAILED
        assert result.failed_stage == UserRunState.PENDING
        assert result.error_message == "database unavailable"
        assert event_repository.types_for(result.correlation_id) == [
            EventType.CALC_STARTED,
            EventType.CALC_COMPLETED,
        ]
        completion = event_repository.events[-1]
        assert completion.payload["status"] == "failed"
        assert completion.payload["error_message"] == "database unavailable"
        assert batch.status == "failed"

    @pytest.mark.asyncio
    async def test_malformed_criteria_reported_in_completion(self, orchestrator, persistence,
                                                             event_repository, shared_context):
        persistence.fail_on_load["u1"] = MalformedCriteriaError("cv-1", "rule #0 missing 'metric'")
        persistence.contexts["u2"] = make_context("u2")

        batch = await orchestrator.process_batch(["u1", "u2"], shared_context)

        failed, ok = batch.per_user_results
        assert failed.state == UserRunState.FAILED
        assert ok.state == UserRunState.COMPLETED
        completion = [e for e in event_repository.events
                      if e.correlation_id == failed.correlation_id and e.event_type == EventType.CALC_COMPLETED]
        assert len(completion) == 1
        assert completion[0].payload["status"] == "failed"
        assert completion[0].payload["error_message"] == "Malformed criteria version cv-1: rule #0 missing 'metric'"

    @pytest.mark.asyncio
    async def test_load_failure_with_audit_log_down(self, persistence, clock, shared_context):
        orchestrator = BatchOrchestrator(persistence, EventStore(UnavailableEventRepository()), clock=clock)
        persistence.fail_on_load["u1"] = RuntimeError("database unavailable")

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.FAILED
        assert result.error_message == "database unavailable"
        assert result.correlation_id is None

    @pytest.mark.asyncio
    async def test_completion_failure_withdraws_session(self, persistence, event_repository, clock,
                                                        shared_context):
        store = EventStore(RejectingSuccessRepository(event_repository))
        orchestrator = BatchOrchestrator(persistence, store, clock=clock)
        persistence.contexts["u1"] = make_context("u1")

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.FAILED
        assert result.failed_stage == UserRunState.RECOMMENDING
        assert persistence.withdrawn == ["rec-1"]
        assert result.recommendation_id is None
        assert batch.total_generated == 0
        assert event_repository.events[-1].event_type == EventType.CALC_COMPLETED
        assert event_repository.events[-1].payload["status"] == "failed"

    @pytest.mark.asyncio
    async def test_withdraw_failure_still_fails_run(self, persistence, event_repository, clock,
                                                    shared_context):
        store = EventStore(RejectingSuccessRepository(event_repository))
        orchestrator = BatchOrchestrator(persistence, store, clock=clock)
        persistence.contexts["u1"] = make_context("u1")
        persistence.fail_on_withdraw = True

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.state == UserRunState.FAILED
        assert result.recommendation_id == "rec-1"
        assert event_repository.events[-1].payload["status"] == "failed"

    @pytest.mark.asyncio
    async def test_recommendation_write_failure(self, orchestrator, persistence, event_repository,
                                                shared_context):
        persistence.contexts["u1"] = make_context("u1")
        persistence.fail_on_save_recommendation.add("u1")

        batch = await orchestrator.process_batch(["u1"], shared_context)

        result = batch.per_user_results[0]
        assert result.failed_stage == UserRunState.RECOMMENDING
        assert event_repository.types_for(result.correlation_id)[-1] == EventType.CALC_COMPLETED

    @pytest.mark.asyncio
    async def test_every_started_run_is_completed(self, orchestrator, persistence, event_repository,
                                                  shared_context):
        persistence.contexts["u1"] = make_context("u1")
        persistence.contexts["u2"] = make_context("u2", operator="approx")
        persistence.contexts["u3"] = make_context("u3")
        persistence.fail_on_save_recommendation.add("u3")

        batch = await orchestrator.process_batch(["u1", "u2", "u3"], shared_context)

        for result in batch.per_user_results:
            types = event_repository.types_for(result.correlation_id)
            assert types[0] == EventType.CALC_STARTED
            assert types.count(EventType.CALC_COMPLETED) == 1


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_worker_bound_and_order(self, persistence, event_store, clock, shared_context):
        orchestrator = BatchOrchestrator(persistence, event_store, max_workers=3, clock=clock)
        user_ids = [f"u{index}" for index in range(7)]
        for user_id in user_ids:
            persistence.contexts[user_id] = make_context(user_id)

        batch = await orchestrator.process_batch(user_ids, shared_context)

        assert [result.user_id for result in batch.per_user_results] == user_ids
        assert persistence.max_active_loads <= 3
        assert batch.users_success == 7
        assert batch.total_scored == 14

    def test_invalid_worker_count(self, persistence, event_store):
        with pytest.raises(ValueError):
            BatchOrchestrator(persistence, event_store, max_workers=0)

    def test_shared_context_is_read_only(self, shared_context):
        assert isinstance(shared_context.prices, MappingProxyType)
        with pytest.raises(TypeError):
            shared_context.prices["MSFT"] = shared_context.prices["AAPL"]
