"""
Account repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.account import Account
from relay.repositories.base import BaseRepository


class AccountRepository(BaseRepository[Account]):
    """Repository for merchant accounts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Account, session)

    async def get_by_label(self, label: str) -> Account | None:
        """Get account by its unique label."""
        return await self.get_by(label=label)

    async def ensure(self, label: str, name: str = "") -> Account:
        """Get account by label, creating it when missing."""
        account = await self.get_by_label(label)
        if account is None:
            account = await self.create(label=label, name=name or label)
        return account
