"""Unit-of-work runner.

Every engine operation executes inside one database transaction: commit on
success, rollback on any exception. Contention and connectivity failures are
retried with exponential backoff; business errors propagate immediately.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipevault.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_retryable(exc: BaseException) -> bool:
    """Check whether a database error is worth retrying in a fresh transaction."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        return sqlstate in RETRYABLE_SQLSTATES
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int | None = None,
    base_delay: float | None = None,
    **kwargs: Any,
) -> T:
    """Run ``operation(session, *args, **kwargs)`` as one transaction.

    Args:
        session_factory: Factory producing AsyncSession instances
        operation: Async callable taking the session as first argument
        *args: Positional arguments for the operation
        max_retries: Retries on contention (defaults to settings.transaction_max_retries)
        base_delay: First backoff delay in seconds, doubled on every retry
            (defaults to settings.transaction_retry_base_delay)
        **kwargs: Keyword arguments for the operation

    Returns:
        Whatever the operation returns, after a successful commit

    Raises:
        PipeVaultError: Business errors, never retried
        DBAPIError: When contention persists past the retry budget
    """
    max_retries = settings.transaction_max_retries if max_retries is None else max_retries
    base_delay = settings.transaction_retry_base_delay if base_delay is None else base_delay

    attempt = 0
    while True:
        async with session_factory() as session:
            try:
                result = await operation(session, *args, **kwargs)
                await session.commit()
                return result
            except Exception as exc:
                await session.rollback()
                if not is_retryable(exc) or attempt >= max_retries:
                    raise
                wait_time = base_delay * (2**attempt)
                attempt += 1
                logger.warning(
                    "Transaction for %s hit contention, retrying in %.3f seconds "
                    "(attempt %d/%d): %s",
                    getattr(operation, "__name__", repr(operation)),
                    wait_time,
                    attempt,
                    max_retries,
                    exc,
                )
        await asyncio.sleep(wait_time)
