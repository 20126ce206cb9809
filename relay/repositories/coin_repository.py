"""
Coin repository.

Data access layer for coins and their fiat rates.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.coin import Coin
from relay.repositories.base import BaseRepository


class CoinRepository(BaseRepository[Coin]):
    """Repository for coins."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Coin, session)

    async def get_by_symbol(
        self, symbol: str, for_update: bool = False
    ) -> Coin | None:
        """
        Get coin by symbol.

        Args:
            symbol: Coin symbol (case-insensitive)
            for_update: Lock the coin row; serializes index allocation

        Returns:
            Coin or None
        """
        stmt = select(Coin).where(Coin.symbol == symbol.lower())
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def ensure(self, symbol: str, label: str = "") -> Coin:
        """Get coin by symbol, creating it when missing."""
        coin = await self.get_by_symbol(symbol)
        if coin is None:
            coin = await self.create(symbol=symbol.lower(), label=label or symbol.upper())
        return coin

    async def set_rate(self, symbol: str, rate: Decimal) -> Coin | None:
        """
        Store the current fiat rate of a coin.

        Args:
            symbol: Coin symbol
            rate: Fiat price per coin unit

        Returns:
            Updated coin or None if unknown
        """
        coin = await self.get_by_symbol(symbol)
        if coin is None:
            return None
        coin.rate = rate
        coin.rate_updated_at = datetime.now(UTC)
        await self.session.flush()
        return coin
