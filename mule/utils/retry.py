from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Mapping, Optional, TypeVar

import httpx

from ..constants import MAX_503_RETRIES, MAX_RETRY_AFTER_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_retry_after_seconds(headers: Optional[Mapping[str, str]]) -> Optional[float]:
    """Parse a Retry-After header (delay-seconds or HTTP-date).

    Returns the wait in seconds capped at 24h, or ``None`` when the header is
    missing, invalid or already in the past.
    """
    if headers is None:
        return None
    value = None
    for key, header_value in headers.items():
        if key.lower() == "retry-after":
            value = header_value
            break
    if value is None or value.strip() == "":
        return None

    trimmed = value.strip()
    if trimmed.isdigit():
        return float(min(int(trimmed), MAX_RETRY_AFTER_SECONDS))

    try:
        retry_at = parsedate_to_datetime(trimmed)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    wait = (retry_at - datetime.now(timezone.utc)).total_seconds()
    if wait <= 0:
        return None
    return min(wait, float(MAX_RETRY_AFTER_SECONDS))


def retry_after_from_error(error: BaseException) -> Optional[float]:
    """Wait time for a 503 response carrying Retry-After, else ``None``."""
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code != 503:
            return None
        return get_retry_after_seconds(error.response.headers)
    if getattr(error, "status_code", None) != 503:
        return None
    return get_retry_after_seconds(getattr(error, "headers", None))


async def with_retry_after(
    fn: Callable[[], Awaitable[T]],
    extract_wait: Callable[[BaseException], Optional[float]] = retry_after_from_error,
    max_retries: int = MAX_503_RETRIES,
) -> T:
    """Call ``fn``, waiting and retrying while it fails with 503 + Retry-After."""
    attempts = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            wait = extract_wait(e)
            if wait is None or attempts >= max_retries:
                raise
            attempts += 1
            logger.warning(
                f"Remote call unavailable, retrying in {wait:.1f}s "
                f"(attempt {attempts}/{max_retries}): {e}"
            )
            await asyncio.sleep(wait)
