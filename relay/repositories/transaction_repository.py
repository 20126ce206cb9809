"""
Transaction repository.

Data access layer for payment sessions.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.enums import TransactionStatus
from relay.models.transaction import Transaction
from relay.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for payment sessions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Transaction, session)

    async def expired(self, now: int) -> dict[str, int]:
        """
        Pending sessions whose validity has ended.

        Args:
            now: Unix seconds

        Returns:
            Mapping of transaction ID to address ID
        """
        stmt = (
            select(Transaction.id, Transaction.address_id)
            .where(
                Transaction.status == TransactionStatus.PENDING.value,
                Transaction.valid_to <= now,
            )
            .order_by(Transaction.valid_to)
        )
        result = await self.session.execute(stmt)
        return {tx_id: address_id for tx_id, address_id in result.all()}

    async def mark_expired(self, tx_id: str) -> bool:
        """
        Mark a pending session expired.

        Returns:
            True if a pending row was updated
        """
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == tx_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(status=TransactionStatus.EXPIRED.value)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def find_by_address(self, address_id: int) -> list[Transaction]:
        """Sessions issued for an address, oldest first."""
        stmt = (
            select(Transaction)
            .where(Transaction.address_id == address_id)
            .order_by(Transaction.valid_from, Transaction.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
