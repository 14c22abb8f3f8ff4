"""Timeout and error wrapper for remote database calls."""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from pymongo.errors import PyMongoError

from finvisor.core.config import settings
from finvisor.core.errors import QueryError, QueryTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FAILURE_MESSAGE = "Unable to load data."


async def safe_query(
    operation: Awaitable[T],
    timeout_seconds: Optional[float] = None,
    context: str = "query",
    fallback_message: str = DEFAULT_FAILURE_MESSAGE,
) -> T:
    """
    Await a remote operation with a client-side timeout.

    Driver failures become ``QueryError`` carrying the driver message, and an
    exceeded wait becomes ``QueryTimeoutError``. Only the local wait is
    abandoned on timeout; the request may still complete server-side.
    """
    timeout = settings.QUERY_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds

    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except QueryError:
        raise
    except asyncio.TimeoutError:
        logger.error("[%s] timed out after %.1fs", context, timeout)
        raise QueryTimeoutError(timeout)
    except PyMongoError as e:
        message = str(e) or fallback_message
        logger.error("[%s] failed: %s", context, message)
        raise QueryError(message) from e
