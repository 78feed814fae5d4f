"""
Market Data Repository
Latest fundamentals, prices and exchange rates already fetched upstream
"""

from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_engine.domain.models import PriceQuote
from portfolio_engine.infrastructure.db.models import (
    AssetFundamentalsModel,
    AssetPriceModel,
    ExchangeRateModel,
)
from portfolio_engine.infrastructure.db.serialization import metric_decimal


class MarketDataRepository:
    """Read-only market data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def latest_fundamentals(self, symbols: Iterable[str]) -> Dict[str, Dict[str, Optional[Decimal]]]:
        """
        Args:
            symbols: Symbols to look up

        Returns:
            symbol -> metric -> value, from the most recent data date
        """
        symbols = sorted(set(symbols))
        if not symbols:
            return {}

        result = await self.session.execute(
            select(AssetFundamentalsModel)
            .where(AssetFundamentalsModel.symbol.in_(symbols))
            .order_by(AssetFundamentalsModel.symbol, AssetFundamentalsModel.data_date.desc())
        )
        latest: Dict[str, Dict[str, Optional[Decimal]]] = {}
        for model in result.scalars().all():
            if model.symbol in latest:
                continue
            latest[model.symbol] = {
                metric: metric_decimal(value) for metric, value in (model.metrics or {}).items()
            }
        return latest

    async def latest_prices(self, symbols: Optional[Iterable[str]] = None) -> Dict[str, PriceQuote]:
        """symbol -> most recent close (all symbols when none given)"""
        query = select(AssetPriceModel).order_by(AssetPriceModel.symbol, AssetPriceModel.price_date.desc())
        if symbols is not None:
            query = query.where(AssetPriceModel.symbol.in_(sorted(set(symbols))))

        result = await self.session.execute(query)
        latest: Dict[str, PriceQuote] = {}
        for model in result.scalars().all():
            if model.symbol in latest:
                continue
            latest[model.symbol] = PriceQuote(
                symbol=model.symbol,
                price=Decimal(model.close),
                currency=model.currency,
                fetched_at=model.fetched_at,
                source=model.source,
            )
        return latest

    async def latest_exchange_rates(self) -> Dict[str, Decimal]:
        """"FROM_TO" -> most recent rate per pair"""
        result = await self.session.execute(
            select(ExchangeRateModel).order_by(
                ExchangeRateModel.base_currency,
                ExchangeRateModel.target_currency,
                ExchangeRateModel.rate_date.desc(),
            )
        )
        rates: Dict[str, Decimal] = {}
        for model in result.scalars().all():
            key = f"{model.base_currency}_{model.target_currency}"
            if key not in rates:
                rates[key] = Decimal(model.rate)
        return rates
