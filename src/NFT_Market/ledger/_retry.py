"""Retry-with-backoff for ledger reads.

Only read calls go through here. Transaction submission is never retried
by the client; a second submission must come from a new user action.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, Final, TypeVar

from NFT_Market.services.rate_limiter import RateLimiter
from NFT_Market.utils.exceptions import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES: Final[int] = 3
BACKOFF_DELAYS: Final[list[float]] = [0.5, 1.0, 2.0]


async def read_with_retry(
    fetch_fn: Callable[[], Coroutine[Any, Any, T]],
    *,
    rate_limiter: RateLimiter,
    label: str,
    max_retries: int = MAX_RETRIES,
    backoff_delays: list[float] | None = None,
) -> T:
    """Run a read coroutine with rate limiting and exponential backoff.

    ``NetworkError`` is treated as transient and retried; every other
    exception (``LedgerRequestError``, ``DecodeError``) is re-raised at once.

    Args:
        fetch_fn: Zero-argument callable returning a coroutine.
        rate_limiter: RateLimiter gating each attempt.
        label: Human-readable label for log messages.
        max_retries: Maximum number of attempts.
        backoff_delays: Delay schedule in seconds.

    Raises:
        NetworkError: The last transient failure, after exhausting all attempts.
    """
    delays = backoff_delays if backoff_delays is not None else BACKOFF_DELAYS
    last_exc: NetworkError | None = None

    for attempt in range(max_retries):
        async with rate_limiter:
            try:
                return await fetch_fn()
            except NetworkError as exc:
                last_exc = exc
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    label,
                    attempt + 1,
                    max_retries,
                    exc,
                )

        # Backoff before next retry (not after the last attempt)
        if attempt < max_retries - 1:
            delay = delays[attempt] if attempt < len(delays) else delays[-1]
            await asyncio.sleep(delay)

    assert last_exc is not None  # noqa: S101
    raise last_exc
