"""
Address repository.

Data access layer for receiving addresses and their poll schedule.
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.address import Address
from relay.models.enums import AddressStatus
from relay.repositories.base import BaseRepository


class AddressRepository(BaseRepository[Address]):
    """Repository for receiving addresses."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Address, session)

    async def find_open(self, coin_id: int, account_id: int) -> Address | None:
        """
        Find the open address of a (coin, account) pair.

        Args:
            coin_id: Coin ID
            account_id: Account ID

        Returns:
            Oldest open address or None
        """
        stmt = (
            select(Address)
            .where(
                Address.coin_id == coin_id,
                Address.account_id == account_id,
                Address.status == AddressStatus.OPEN.value,
            )
            .order_by(Address.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def max_index(self, coin_id: int) -> int | None:
        """Highest derivation index used for a coin, None if none yet."""
        stmt = select(func.max(Address.idx)).where(Address.coin_id == coin_id)
        result = await self.session.execute(stmt)
        return result.scalar()

    async def pending_ids(self, now: int) -> list[int]:
        """
        IDs of addresses due for a balance check.

        Args:
            now: Unix seconds

        Returns:
            Non-locked address IDs with next_check <= now, most overdue first
        """
        stmt = (
            select(Address.id)
            .where(
                Address.status != AddressStatus.LOCKED.value,
                Address.next_check <= now,
            )
            .order_by(Address.next_check, Address.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def increment_usage(self, address_id: int, now: int) -> None:
        """Bump reference count and last-transaction time."""
        stmt = (
            update(Address)
            .where(Address.id == address_id)
            .values(ref_count=Address.ref_count + 1, last_tx=now)
        )
        await self.session.execute(stmt)

    async def find_filtered(
        self,
        coin_id: int | None = None,
        account_id: int | None = None,
        include_locked: bool = False,
    ) -> list[Address]:
        """
        List addresses with optional filters.

        Args:
            coin_id: Restrict to coin
            account_id: Restrict to account
            include_locked: Also return locked addresses

        Returns:
            Addresses ordered by ID
        """
        stmt = select(Address)
        if coin_id is not None:
            stmt = stmt.where(Address.coin_id == coin_id)
        if account_id is not None:
            stmt = stmt.where(Address.account_id == account_id)
        if not include_locked:
            stmt = stmt.where(Address.status != AddressStatus.LOCKED.value)
        result = await self.session.execute(stmt.order_by(Address.id))
        return list(result.scalars().all())
