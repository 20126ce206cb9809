"""
Base repository.

Row access shared by all relay repositories. Repositories only flush;
commit and rollback belong to the ledger operation that opened the
session.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Primary-key and filter lookups plus insert/update for one model.

    Example:
        class CoinRepository(BaseRepository[Coin]):
            def __init__(self, session: AsyncSession):
                super().__init__(Coin, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        self.model = model
        self.session = session

    async def get_by_id(
        self, id: int | str, for_update: bool = False
    ) -> ModelType | None:
        """
        Load a row by primary key.

        Args:
            id: Primary key
            for_update: Lock the row until the transaction ends
                (no-op on SQLite)

        Returns:
            Row or None
        """
        if not for_update:
            return await self.session.get(self.model, id)
        stmt = select(self.model).where(self.model.id == id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by(self, **filters: Any) -> ModelType | None:
        """Single row matching equality filters, None if absent."""
        result = await self.session.execute(select(self.model).filter_by(**filters))
        return result.scalar_one_or_none()

    async def find_all(self, **filters: Any) -> list[ModelType]:
        """Rows matching equality filters in primary-key order."""
        stmt = select(self.model).filter_by(**filters).order_by(self.model.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **data: Any) -> ModelType:
        """
        Insert a row and flush it.

        Server-side defaults are loaded back before returning.

        Raises:
            IntegrityError: a constraint rejected the row
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(
        self, id: int | str, for_update: bool = False, **data: Any
    ) -> ModelType | None:
        """
        Assign attributes on a row and flush.

        Returns:
            Updated row or None if the key does not exist
        """
        entity = await self.get_by_id(id, for_update=for_update)
        if entity is None:
            return None
        for key, value in data.items():
            setattr(entity, key, value)
        await self.session.flush()
        return entity
