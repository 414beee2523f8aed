# katelyatv/retry.py
"""
Retry wrapper for single backend operations.

Only connectivity failures are retried, with linear backoff
(1s after the first failure, 2s after the second, ...).
"""
import asyncio
import errno
import logging
import socket
from typing import Awaitable, Callable, TypeVar

from redis.exceptions import AuthenticationError
from redis.exceptions import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds, multiplied by the attempt number

_TRANSIENT_MARKERS = ("Connection", "ECONNREFUSED", "ENOTFOUND")
_TRANSIENT_ERRNOS = {errno.ECONNRESET, errno.EPIPE, errno.ECONNREFUSED}


def is_connection_error(exc: BaseException) -> bool:
    # redis-py raises a bad token as a ConnectionError subclass
    if isinstance(exc, AuthenticationError):
        return False
    if isinstance(exc, (RedisConnectionError, ConnectionError, socket.gaierror)):
        return True
    if getattr(exc, "errno", None) in _TRANSIENT_ERRNOS:
        return True
    message = str(exc)
    return any(marker in message for marker in _TRANSIENT_MARKERS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    *,
    label: str = "Redis",
) -> T:
    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except Exception as exc:
            if not is_connection_error(exc) or attempt == max_retries:
                raise
            logger.warning(
                "%s operation failed, retrying... (%d/%d): %s",
                label, attempt, max_retries, exc,
            )
            await asyncio.sleep(RETRY_BASE_DELAY * attempt)

    raise RuntimeError("Max retries exceeded")
