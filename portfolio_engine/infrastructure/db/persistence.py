"""
SQLAlchemy persistence gateway for the batch orchestrator.
Every call is its own unit of work: open a session, commit, close.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portfolio_engine.domain.models import (
    AssetFundamentals,
    AssetScoreResult,
    CalculationEvent,
    EventType,
    RecommendationSession,
    SharedContext,
    StoredEvent,
    UserContext,
)
from portfolio_engine.infrastructure.db.repositories.calculation_event_repository import (
    CalculationEventRepository,
)
from portfolio_engine.infrastructure.db.repositories.criteria_repository import CriteriaVersionRepository
from portfolio_engine.infrastructure.db.repositories.market_data_repository import MarketDataRepository
from portfolio_engine.infrastructure.db.repositories.portfolio_repository import PortfolioRepository
from portfolio_engine.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from portfolio_engine.infrastructure.db.repositories.score_repository import ScoreRepository
from portfolio_engine.utils.time import now_utc_naive


@asynccontextmanager
async def unit_of_work(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class SessionScopedEventRepository:
    """Event repository that commits each append on its own session"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def append(self, event: CalculationEvent, sequence: int) -> str:
        async with unit_of_work(self.session_factory) as session:
            return await CalculationEventRepository(session).append(event, sequence)

    async def list_for_correlation(self, correlation_id: str) -> List[StoredEvent]:
        async with unit_of_work(self.session_factory) as session:
            return await CalculationEventRepository(session).list_for_correlation(correlation_id)

    async def list_for_user(self, user_id: str, limit: int) -> List[StoredEvent]:
        async with unit_of_work(self.session_factory) as session:
            return await CalculationEventRepository(session).list_for_user(user_id, limit)

    async def list_by_type(self, user_id: str, event_type: EventType, limit: int) -> List[StoredEvent]:
        async with unit_of_work(self.session_factory) as session:
            return await CalculationEventRepository(session).list_by_type(user_id, event_type, limit)


class SqlAlchemyPersistence:
    """
    Persistence collaborator

    Reads:  user context, active users, shared market snapshot
    Writes: scores (current + history), recommendation sessions (create, withdraw)
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.events = SessionScopedEventRepository(session_factory)

    async def list_active_user_ids(self) -> List[str]:
        async with unit_of_work(self.session_factory) as session:
            return await PortfolioRepository(session).list_active_user_ids()

    async def load_shared_context(self) -> SharedContext:
        """Latest rates and prices, read once per batch"""
        async with unit_of_work(self.session_factory) as session:
            market = MarketDataRepository(session)
            rates = await market.latest_exchange_rates()
            prices = await market.latest_prices()
        return SharedContext(exchange_rates=rates, prices=prices, fetched_at=now_utc_naive())

    async def load_user_context(self, user_id: str) -> Optional[UserContext]:
        async with unit_of_work(self.session_factory) as session:
            portfolios = PortfolioRepository(session)
            user = await portfolios.get_user(user_id)
            if user is None:
                return None

            portfolio_id = await portfolios.get_portfolio_id(user_id)
            holdings = await portfolios.list_holdings(portfolio_id) if portfolio_id else []
            criteria = await CriteriaVersionRepository(session).get_active(user_id)
            targets = await portfolios.get_allocation_targets(user_id)

            symbols = [holding.symbol for holding in holdings]
            market = MarketDataRepository(session)
            metrics_by_symbol = await market.latest_fundamentals(symbols)
            stored_prices = await market.latest_prices(symbols) if symbols else {}

        fundamentals = {
            holding.asset_id: AssetFundamentals(
                asset_id=holding.asset_id,
                symbol=holding.symbol,
                metrics=metrics_by_symbol.get(holding.symbol, {}),
            )
            for holding in holdings
        }
        return UserContext(
            user_id=user_id,
            base_currency=user.base_currency,
            default_contribution=user.default_contribution,
            portfolio_id=portfolio_id,
            holdings=tuple(holdings),
            criteria_version=criteria,
            fundamentals=fundamentals,
            allocation_targets=targets,
            stored_prices=stored_prices,
        )

    async def save_scores(self, user_id: str, scores: Sequence[AssetScoreResult]) -> None:
        async with unit_of_work(self.session_factory) as session:
            await ScoreRepository(session).save_scores(user_id, scores)

    async def save_recommendation(self, recommendation: RecommendationSession) -> str:
        async with unit_of_work(self.session_factory) as session:
            return await RecommendationRepository(session).create(recommendation)

    async def withdraw_recommendation(self, recommendation_id: str) -> None:
        async with unit_of_work(self.session_factory) as session:
            await RecommendationRepository(session).withdraw(recommendation_id)
