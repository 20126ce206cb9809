"""
Database engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from relay.config.settings import settings
from relay.models.base import Base


def create_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create the async engine.

    In-memory SQLite shares one connection across sessions.

    Args:
        url: Database URL (defaults to DATABASE_URL)
        echo: Log SQL statements

    Returns:
        AsyncEngine
    """
    url = url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **kwargs)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_maker(
    bind: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to an engine."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(bind: AsyncEngine) -> None:
    """Create missing tables."""
    import relay.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = create_engine()
async_session_maker = create_session_maker(engine)
