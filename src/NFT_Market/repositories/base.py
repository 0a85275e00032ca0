"""Snapshot repository: single-flight refresh and atomic snapshot replacement.

Each concrete repository fetches one kind of entity for a *scope* (the query
that identifies which subset to load). The base class owns the invariants
shared by all of them:

- a refresh replaces the scope's snapshot in one assignment, only after the
  whole fetch and decode succeeded; a failed refresh leaves the old snapshot
  in place and re-raises,
- at most one refresh per scope is in flight; concurrent callers await the
  same task,
- a scope that was discarded while a read was in flight does not get the
  late result stored.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from abc import ABC, abstractmethod
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

ScopeT = TypeVar("ScopeT", bound=Hashable)
EntityT = TypeVar("EntityT")


@dataclass(frozen=True)
class Snapshot(Generic[ScopeT, EntityT]):
    """Immutable result of one successful refresh."""

    scope: ScopeT
    items: tuple[EntityT, ...] = ()
    fetched_at: datetime.datetime | None = None

    @property
    def is_loaded(self) -> bool:
        return self.fetched_at is not None

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class _ScopeState(Generic[ScopeT, EntityT]):
    snapshot: Snapshot[ScopeT, EntityT]
    generation: int = 0
    in_flight: asyncio.Task[Snapshot[ScopeT, EntityT]] | None = field(default=None, repr=False)


class SnapshotRepository(ABC, Generic[ScopeT, EntityT]):
    """Base class for per-entity-kind repositories.

    Subclasses implement ``_fetch(scope)`` returning the decoded entities in
    ledger order; they never touch the stored snapshots directly.
    """

    #: Short name used in log messages.
    kind: str = "entity"

    def __init__(self) -> None:
        self._scopes: dict[ScopeT, _ScopeState[ScopeT, EntityT]] = {}
        self._read_batches = 0

    @property
    def read_batches(self) -> int:
        """Number of underlying fetches started since construction."""
        return self._read_batches

    def current_snapshot(self, scope: ScopeT) -> Snapshot[ScopeT, EntityT]:
        """Return the last successful snapshot for *scope* without blocking.

        A scope that was never refreshed yields an empty, unloaded snapshot.
        """
        state = self._scopes.get(scope)
        if state is None:
            return Snapshot(scope=scope)
        return state.snapshot

    def known_scopes(self) -> tuple[ScopeT, ...]:
        """Scopes that were refreshed at least once and not discarded since."""
        return tuple(self._scopes)

    def is_refreshing(self, scope: ScopeT) -> bool:
        state = self._scopes.get(scope)
        return state is not None and state.in_flight is not None

    async def refresh(self, scope: ScopeT) -> Snapshot[ScopeT, EntityT]:
        """Fetch *scope* from the ledger and replace its snapshot.

        Joins the outstanding refresh for *scope* if there is one.

        Raises:
            NetworkError: If the ledger could not be read. The previous
                snapshot is kept.
            LedgerRequestError: If the node rejected the read.
            DecodeError: If the response as a whole could not be decoded.
        """
        state = self._scopes.get(scope)
        if state is None:
            state = _ScopeState(snapshot=Snapshot(scope=scope))
            self._scopes[scope] = state

        if state.in_flight is None:
            self._read_batches += 1
            task = asyncio.create_task(self._run_refresh(scope, state, state.generation))
            state.in_flight = task
            task.add_done_callback(lambda done: self._clear_in_flight(state, done))
        else:
            logger.debug("Joining in-flight %s refresh for %s", self.kind, scope)

        return await asyncio.shield(state.in_flight)

    def discard(self, scope: ScopeT) -> None:
        """Forget *scope*; a read still in flight for it will not be stored."""
        state = self._scopes.pop(scope, None)
        if state is not None:
            state.generation += 1
            logger.debug("Discarded %s scope %s", self.kind, scope)

    async def _run_refresh(
        self,
        scope: ScopeT,
        state: _ScopeState[ScopeT, EntityT],
        generation: int,
    ) -> Snapshot[ScopeT, EntityT]:
        try:
            items = await self._fetch(scope)
        except Exception as exc:
            logger.warning("Refresh of %s for %s failed, keeping stale snapshot: %s", self.kind, scope, exc)
            raise

        snapshot = Snapshot(
            scope=scope,
            items=tuple(items),
            fetched_at=datetime.datetime.now(datetime.UTC),
        )
        if state.generation != generation or self._scopes.get(scope) is not state:
            logger.debug("Dropping %s result for discarded scope %s", self.kind, scope)
            return snapshot

        state.snapshot = snapshot
        logger.info("Refreshed %s for %s: %d items", self.kind, scope, len(snapshot))
        return snapshot

    @staticmethod
    def _clear_in_flight(
        state: _ScopeState[ScopeT, EntityT],
        task: asyncio.Task[Snapshot[ScopeT, EntityT]],
    ) -> None:
        if state.in_flight is task:
            state.in_flight = None
        # Retrieve the exception so an unobserved failure is not reported at GC time
        if not task.cancelled():
            task.exception()

    @abstractmethod
    async def _fetch(self, scope: ScopeT) -> list[EntityT]:
        """Read and decode every entity in *scope*."""
