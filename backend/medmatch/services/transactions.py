"""
Transaction runner for lifecycle transitions.

Every transition runs in its own session and a single transaction: either all
of its writes commit or none do. Storage timeouts and lock conflicts are
retried once, then surfaced as TransientError.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medmatch.config import settings
from medmatch.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_DELAY_SECONDS = 0.05


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.TimeoutError):
        return True
    if isinstance(exc, OperationalError):
        # e.g. "database is locked", serialization failure, dropped connection
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


async def _run_once(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    async with session_factory() as session:
        async with session.begin():
            return await operation(session)


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    description: str = "transaction",
    timeout: Optional[float] = None,
    retries: Optional[int] = None,
) -> T:
    """
    Run ``operation(session)`` inside one transaction.

    Args:
        session_factory: Factory producing a fresh AsyncSession per attempt
        operation: Coroutine function doing the reads and writes
        description: Label used in logs
        timeout: Per-attempt bound in seconds (default from settings)
        retries: Extra attempts on transient failures (default from settings)

    Returns:
        Whatever ``operation`` returns, after commit

    Raises:
        TransientError: every attempt timed out or hit a storage conflict
        MatchingError: domain errors from ``operation`` (never retried)
    """
    timeout = settings.db_operation_timeout_seconds if timeout is None else timeout
    retries = settings.transient_retry_attempts if retries is None else retries

    last_error: Any = None
    for attempt in range(retries + 1):
        try:
            return await asyncio.wait_for(_run_once(session_factory, operation), timeout=timeout)
        except Exception as e:
            if not _is_transient(e):
                raise
            last_error = e
            logger.warning(
                f"{description} failed transiently (attempt {attempt + 1}/{retries + 1}): "
                f"{type(e).__name__}: {str(e)[:200]}"
            )
            if attempt < retries:
                await asyncio.sleep(RETRY_DELAY_SECONDS)

    raise TransientError(
        f"{description} could not be completed, please retry",
        {"cause": type(last_error).__name__},
    ) from last_error
