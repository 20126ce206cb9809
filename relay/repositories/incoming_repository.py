"""
Incoming funds repository.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.incoming import Incoming
from relay.repositories.base import BaseRepository


class IncomingRepository(BaseRepository[Incoming]):
    """Repository for recorded funding events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Incoming, session)

    async def record(self, address_id: int, seen: int, amount: Decimal) -> Incoming:
        """Append a funding event."""
        return await self.create(address_id=address_id, seen=seen, amount=amount)

    async def find_by_address(self, address_id: int) -> list[Incoming]:
        """Funding events of an address in observation order."""
        stmt = (
            select(Incoming)
            .where(Incoming.address_id == address_id)
            .order_by(Incoming.seen, Incoming.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def known_keys(self, address_id: int) -> set[tuple[int, Decimal]]:
        """(seen, amount) pairs already stored for an address."""
        stmt = select(Incoming.seen, Incoming.amount).where(
            Incoming.address_id == address_id
        )
        result = await self.session.execute(stmt)
        return {(seen, Decimal(amount)) for seen, amount in result.all()}
