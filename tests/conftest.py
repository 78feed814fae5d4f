from datetime import datetime, timedelta
from typing import AsyncGenerator, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portfolio_engine.domain.models import CalculationEvent, EventType, StoredEvent
from portfolio_engine.domain.services.event_store import EventStore
from portfolio_engine.infrastructure.db import models  # noqa: F401
from portfolio_engine.infrastructure.db.database import Base


class FakeClock:
    """Deterministic clock: every call advances one second"""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 2, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


class InMemoryEventRepository:
    """Insert-only event repository for unit tests"""

    def __init__(self):
        self.events: List[StoredEvent] = []

    async def append(self, event: CalculationEvent, sequence: int) -> str:
        event_id = f"evt-{len(self.events) + 1}"
        self.events.append(
            StoredEvent(
                id=event_id,
                correlation_id=event.correlation_id,
                user_id=event.user_id,
                event_type=event.event_type,
                sequence=sequence,
                payload=event.payload,
                created_at=event.timestamp,
            )
        )
        return event_id

    async def list_for_correlation(self, correlation_id: str) -> List[StoredEvent]:
        return sorted(
            (event for event in self.events if event.correlation_id == correlation_id),
            key=lambda event: event.sequence,
        )

    async def list_for_user(self, user_id: str, limit: int) -> List[StoredEvent]:
        events = [event for event in self.events if event.user_id == user_id]
        return sorted(events, key=lambda event: event.created_at, reverse=True)[:limit]

    async def list_by_type(self, user_id: str, event_type: EventType, limit: int) -> List[StoredEvent]:
        events = [
            event for event in self.events
            if event.user_id == user_id and event.event_type == event_type
        ]
        return sorted(events, key=lambda event: event.created_at, reverse=True)[:limit]

    def types_for(self, correlation_id: str) -> List[EventType]:
        return [
            event.event_type
            for event in sorted(self.events, key=lambda event: event.sequence)
            if event.correlation_id == correlation_id
        ]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def event_repository() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture()
def event_store(event_repository) -> EventStore:
    return EventStore(event_repository)


@pytest.fixture()
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        future=True,
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def seeded_user(session_factory):
    """
    One investor with a three-asset portfolio, two asset classes, market
    data on two dates and an active criteria version. Also seeds an
    inactive user and an active user without a portfolio.
    """
    from datetime import date
    from decimal import Decimal

    from portfolio_engine.domain.models import CriterionRule
    from portfolio_engine.infrastructure.db.models import (
        AssetClassModel,
        AssetFundamentalsModel,
        AssetPriceModel,
        ExchangeRateModel,
        PortfolioAssetModel,
        PortfolioModel,
        UserModel,
    )
    from portfolio_engine.infrastructure.db.repositories.criteria_repository import CriteriaVersionRepository

    old, new = date(2026, 2, 27), date(2026, 3, 1)
    async with session_factory() as session:
        session.add_all([
            UserModel(id="u-1", email="ana@example.com", base_currency="USD",
                      default_contribution=Decimal("1000")),
            UserModel(id="u-2", email="inactive@example.com", is_active=False,
                      default_contribution=Decimal("500")),
            UserModel(id="u-3", email="new@example.com", default_contribution=Decimal("100")),
            PortfolioModel(id="pf-1", user_id="u-1", name="Main"),
            AssetClassModel(id="cls-eq", user_id="u-1", name="Equities",
                            target_min=Decimal("50"), target_max=Decimal("70"), sort_order=0),
            AssetClassModel(id="cls-bd", user_id="u-1", name="Bonds",
                            target_min=Decimal("20"), target_max=Decimal("40"), sort_order=1),
            PortfolioAssetModel(id="pa-aapl", portfolio_id="pf-1", symbol="AAPL",
                                quantity=Decimal("10"), currency="USD", class_id="cls-eq"),
            PortfolioAssetModel(id="pa-sap", portfolio_id="pf-1", symbol="SAP",
                                quantity=Decimal("1"), currency="EUR", class_id="cls-eq"),
            PortfolioAssetModel(id="pa-bnd", portfolio_id="pf-1", symbol="BND",
                                quantity=Decimal("20"), currency="USD", class_id="cls-bd"),
            PortfolioAssetModel(id="pa-old", portfolio_id="pf-1", symbol="OLD",
                                quantity=Decimal("5"), currency="USD", class_id="cls-eq", is_ignored=True),
            PortfolioAssetModel(id="pa-zero", portfolio_id="pf-1", symbol="ZERO",
                                quantity=Decimal("0"), currency="USD", class_id="cls-eq"),
            AssetFundamentalsModel(symbol="AAPL", data_date=old, source="seed",
                                   metrics={"dividend_yield": "5", "pe_ratio": "30"}),
            AssetFundamentalsModel(symbol="AAPL", data_date=new, source="seed",
                                   metrics={"dividend_yield": "1.0", "pe_ratio": "12.0"}),
            AssetPriceModel(symbol="AAPL", price_date=old, close=Decimal("90"), currency="USD", source="seed"),
            AssetPriceModel(symbol="AAPL", price_date=new, close=Decimal("100"), currency="USD", source="seed"),
            AssetPriceModel(symbol="BND", price_date=new, close=Decimal("50"), currency="USD", source="seed"),
            AssetPriceModel(symbol="SAP", price_date=new, close=Decimal("100"), currency="EUR", source="seed"),
            ExchangeRateModel(base_currency="EUR", target_currency="USD", rate=Decimal("1.05"),
                              rate_date=old, source="seed"),
            ExchangeRateModel(base_currency="EUR", target_currency="USD", rate=Decimal("1.1"),
                              rate_date=new, source="seed"),
        ])
        await session.flush()
        criteria = await CriteriaVersionRepository(session).publish(
            "u-1",
            "Quality income",
            [
                CriterionRule("r1", "Yield", "dividend_yield", "gte", "4", 20),
                CriterionRule("r2", "Value", "pe_ratio", "lte", "15", 15, sort_order=1),
            ],
        )
        await session.commit()

    return {"user_id": "u-1", "portfolio_id": "pf-1", "criteria_version_id": criteria.id}
