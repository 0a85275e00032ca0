"""Async rate limiter for ledger node reads.

Combines a concurrency cap (asyncio.Semaphore) with a token bucket so that
the per-id detail fan-out of the owned-NFT repository cannot flood a public
fullnode with dozens of simultaneous view calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from types import TracebackType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_REQUESTS_PER_SECOND: float = 10.0
DEFAULT_MAX_CONCURRENT: int = 5


class RateLimiter:
    """Async rate limiter combining concurrency control and a token bucket.

    Usage::

        limiter = RateLimiter(max_concurrent=5, requests_per_second=10.0)

        async with limiter:
            response = await client.post("/view", json=payload)
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
    ) -> None:
        if max_concurrent < 1:
            msg = f"max_concurrent must be >= 1, got {max_concurrent}"
            raise ValueError(msg)
        if requests_per_second <= 0:
            msg = f"requests_per_second must be > 0, got {requests_per_second}"
            raise ValueError(msg)

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._requests_per_second = requests_per_second

        # Token bucket state
        self._token_interval = 1.0 / requests_per_second
        self._tokens = float(max_concurrent)
        self._max_tokens = float(max_concurrent)
        self._last_refill_time = time.monotonic()
        self._bucket_lock = asyncio.Lock()

        logger.debug(
            "RateLimiter initialized: max_concurrent=%d, rate=%.1f req/s",
            max_concurrent,
            requests_per_second,
        )

    async def acquire(self) -> None:
        """Block until both the concurrency and rate limits allow a request."""
        await self._semaphore.acquire()
        try:
            await self._wait_for_token()
        except BaseException:
            self._semaphore.release()
            raise

    def release(self) -> None:
        """Release a concurrency slot back to the semaphore."""
        self._semaphore.release()

    async def __aenter__(self) -> RateLimiter:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Token bucket internals
    # ------------------------------------------------------------------

    async def _wait_for_token(self) -> None:
        """Wait until a token is available in the bucket."""
        while True:
            async with self._bucket_lock:
                self._refill_tokens()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return

            await asyncio.sleep(self._token_interval)

    def _refill_tokens(self) -> None:
        """Add tokens based on elapsed time since the last refill."""
        now = time.monotonic()
        elapsed = now - self._last_refill_time
        new_tokens = elapsed * self._requests_per_second
        self._tokens = min(self._max_tokens, self._tokens + new_tokens)
        self._last_refill_time = now
