"""Polling scheduler: periodic repository refreshes for active views.

One scheduler runs one fixed-interval loop for every subscription. Each tick
refreshes all subscribed scopes through their repository, so a tick that
overlaps a manual refresh of the same scope joins it instead of issuing a
second read. The loop starts with the first subscription and stops when the
last one is closed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable
from types import TracebackType
from typing import TYPE_CHECKING, Any, Final

from NFT_Market.utils.exceptions import NetworkError

if TYPE_CHECKING:
    from NFT_Market.repositories.base import Snapshot, SnapshotRepository

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL: Final[float] = 30.0

RefreshCallback = Callable[["Snapshot[Any, Any]"], None]
ErrorCallback = Callable[[Exception], None]


class PollSubscription:
    """Handle for one polled scope. Closing it stops polling and discards the scope."""

    def __init__(
        self,
        scheduler: PollingScheduler,
        repository: SnapshotRepository[Any, Any],
        scope: Hashable,
        on_refresh: RefreshCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        self._scheduler = scheduler
        self.repository = repository
        self.scope = scope
        self.on_refresh = on_refresh
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        """Stop polling this scope. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._scheduler._unsubscribe(self)  # noqa: SLF001

    def __enter__(self) -> PollSubscription:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    async def __aenter__(self) -> PollSubscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"PollSubscription({self.repository.kind}, {self.scope!r}, {state})"


class PollingScheduler:
    """Refresh subscribed repository scopes every *interval* seconds.

    Usage::

        scheduler = PollingScheduler(interval=30.0)
        async with scheduler.subscribe(auctions, AuctionsScope(marketplace)):
            ...  # the auction snapshot stays fresh while the view is open
        await scheduler.shutdown()
    """

    def __init__(self, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        if interval <= 0:
            msg = f"interval must be > 0, got {interval}"
            raise ValueError(msg)
        self._interval = interval
        self._subscriptions: list[PollSubscription] = []
        self._task: asyncio.Task[None] | None = None
        self._ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        """Number of completed ticks since construction."""
        return self._ticks

    @property
    def subscriptions(self) -> tuple[PollSubscription, ...]:
        return tuple(self._subscriptions)

    def subscribe(
        self,
        repository: SnapshotRepository[Any, Any],
        scope: Hashable,
        on_refresh: RefreshCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> PollSubscription:
        """Start polling *scope* of *repository*; must be called inside a running loop."""
        subscription = PollSubscription(self, repository, scope, on_refresh, on_error)
        self._subscriptions.append(subscription)
        logger.debug("Subscribed %s", subscription)

        if not self.is_running:
            self._task = asyncio.create_task(self._run(), name="nft-market-polling")
            logger.info("Polling started: interval=%.1fs", self._interval)
        return subscription

    async def tick(self) -> None:
        """Refresh every active subscription once."""
        subscriptions = [sub for sub in self._subscriptions if sub.active]
        if not subscriptions:
            return

        results = await asyncio.gather(
            *(sub.repository.refresh(sub.scope) for sub in subscriptions),
            return_exceptions=True,
        )
        for subscription, result in zip(subscriptions, results, strict=True):
            if not subscription.active:
                continue
            if isinstance(result, Exception):
                self._report_error(subscription, result)
            elif isinstance(result, BaseException):
                raise result
            elif subscription.on_refresh is not None:
                try:
                    subscription.on_refresh(result)
                except Exception:
                    logger.exception("on_refresh callback failed for %s", subscription)
        self._ticks += 1

    async def shutdown(self) -> None:
        """Close every subscription and wait for the loop to stop."""
        task = self._task
        for subscription in list(self._subscriptions):
            subscription.close()
        self._task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Polling stopped after %d ticks", self._ticks)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while self._subscriptions:
            await self.tick()
            if not self._subscriptions:
                break
            await asyncio.sleep(self._interval)
        logger.debug("Polling loop exited: no subscriptions left")

    def _unsubscribe(self, subscription: PollSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        logger.debug("Unsubscribed %s", subscription)

        still_polled = any(
            sub.repository is subscription.repository and sub.scope == subscription.scope
            for sub in self._subscriptions
        )
        if not still_polled:
            subscription.repository.discard(subscription.scope)

        if not self._subscriptions and self._task is not None:
            if not self._task.done() and self._task is not asyncio.current_task():
                self._task.cancel()
            self._task = None

    @staticmethod
    def _report_error(subscription: PollSubscription, exc: Exception) -> None:
        if isinstance(exc, NetworkError):
            logger.warning("Transient poll failure for %s: %s", subscription, exc)
        else:
            logger.error("Poll refresh failed for %s: %s", subscription, exc)
        if subscription.on_error is not None:
            try:
                subscription.on_error(exc)
            except Exception:
                logger.exception("on_error callback failed for %s", subscription)
