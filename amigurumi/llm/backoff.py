from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Any, Awaitable, Callable, TypeVar

from google.api_core import exceptions as core_exceptions

from ..config import DEFAULT_INITIAL_DELAY, DEFAULT_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = "RESOURCE_EXHAUSTED"


def _status_name(value: Any) -> str:
    name = getattr(value, "name", None)
    return str(name if name is not None else value or "").upper()


def is_rate_limited(error: BaseException) -> bool:
    """True for "too many requests" failures (HTTP 429 or RESOURCE_EXHAUSTED)."""
    if isinstance(error, core_exceptions.ResourceExhausted):
        return True
    code = getattr(error, "code", None)
    if code == HTTPStatus.TOO_MANY_REQUESTS:
        return True
    if _status_name(getattr(error, "status", None)) == RATE_LIMIT_STATUS:
        return True
    if _status_name(getattr(error, "grpc_status_code", None)) == RATE_LIMIT_STATUS:
        return True
    # REST payloads sometimes arrive as {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}}
    body = getattr(error, "error", None)
    if isinstance(body, dict):
        return body.get("code") == HTTPStatus.TOO_MANY_REQUESTS or body.get("status") == RATE_LIMIT_STATUS
    return False


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    retries: int = DEFAULT_RETRIES,
    delay: float = DEFAULT_INITIAL_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``fn`` and retry rate-limited failures with exponential backoff.

    ``delay`` is in seconds and doubles after every retry. Any other error, or a
    rate-limit error once ``retries`` is spent, propagates unchanged.
    """
    while True:
        try:
            return await fn()
        except Exception as e:
            if retries <= 0 or not is_rate_limited(e):
                raise
            logger.warning("Rate limit hit, retrying in %.1fs (retries left: %d): %s", delay, retries, e)
            await sleep(delay)
            retries -= 1
            delay *= 2
