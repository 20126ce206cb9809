"""
Database decorators for store error handling.

Wraps ledger operations so that connectivity failures of the persistent
store surface as StoreUnavailable.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from relay.utils.exceptions import StoreUnavailable


T = TypeVar("T")


def store_operation(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """
    Decorator translating store connectivity errors.

    Usage:
        @store_operation
        async def pending_addresses(self, now=None):
            async with self._session_factory() as session:
                ...

    The session context managers inside the wrapped function roll back
    on their own; this decorator only maps the exception and logs it:
    1. OperationalError / InterfaceError -> StoreUnavailable
    2. DBAPIError with connection_invalidated -> StoreUnavailable
    3. Everything else is re-raised unchanged

    Args:
        func: Async function performing store operations

    Returns:
        Wrapped function
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.error(
                f"Store unavailable in {func.__qualname__}: {type(e).__name__}: {e}"
            )
            raise StoreUnavailable(str(e)) from e
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.error(
                    f"Store connection invalidated in {func.__qualname__}: {e}"
                )
                raise StoreUnavailable(str(e)) from e
            raise

    return wrapper
