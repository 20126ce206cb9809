"""
Exchange-rate collaborator.

Rates are maintained on the coin rows by an external market-data job;
the relay only reads them to evaluate the close-on-limit condition.
"""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay.repositories.coin_repository import CoinRepository
from relay.utils.db_decorators import store_operation
from relay.utils.exceptions import UnknownCoin


class RateLookup(Protocol):
    """Read-only fiat rate per coin unit."""

    async def get_rate(self, coin: str) -> Decimal:
        ...


class StoredRateLookup:
    """Reads the rate column of the coin table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @store_operation
    async def get_rate(self, coin: str) -> Decimal:
        async with self._session_factory() as session:
            entity = await CoinRepository(session).get_by_symbol(coin)
            if entity is None:
                raise UnknownCoin(coin)
            return Decimal(entity.rate)


class FixedRateLookup:
    """Static rates, e.g. for a fiat-pegged deployment."""

    def __init__(self, rates: dict[str, Decimal]) -> None:
        self._rates = {coin.lower(): Decimal(rate) for coin, rate in rates.items()}

    async def get_rate(self, coin: str) -> Decimal:
        try:
            return self._rates[coin.lower()]
        except KeyError:
            raise UnknownCoin(coin) from None
