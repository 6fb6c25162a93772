"""Live list/filter view over the ties table.

A ``LiveTieView`` owns at most one subscription to the change feed. Every
time the feed reports a change, the view re-runs its query and hands a fresh
``TieListSnapshot`` to its callback. Changing the filters replaces the
subscription:

1. the generation counter is bumped, so anything the old subscription is
   still delivering gets dropped;
2. the old subscription task is cancelled and awaited;
3. a new subscription is started for the new filters.

The category restriction runs in SQL. The name search runs in Python on the
rows the query returned.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tietrack.core.logging import get_logger
from tietrack.schemas.tie import TieRecord, is_all_categories
from tietrack.services.events import (
    ChangeBroadcaster,
    Event,
    EventType,
    get_change_broadcaster,
)
from tietrack.services.tie import TieService

logger = get_logger(__name__)


class ListState(str, Enum):
    """What the list is currently showing."""

    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class EmptyReason(str, Enum):
    """Why a ready list has no items."""

    FILTERED = "filtered"
    NO_DATA = "no_data"


EMPTY_MESSAGES = {
    EmptyReason.FILTERED: "No ties to show for the current selection. Try a different category or search term.",
    EmptyReason.NO_DATA: "Your inventory is empty. Add a tie to get started.",
}
LOAD_ERROR_MESSAGE = "Failed to load ties."


class TieQuery(BaseModel):
    """Filter inputs of a list view."""

    model_config = ConfigDict(frozen=True)

    category: Optional[str] = None
    search: str = ""

    @property
    def is_filtered(self) -> bool:
        """True when a category or a search term narrows the list."""
        return not is_all_categories(self.category) or bool(self.search.strip())


class TieListSnapshot(BaseModel):
    """One rendering of a list view."""

    generation: int = 0
    state: ListState
    category: Optional[str] = None
    search: str = ""
    items: list[TieRecord] = Field(default_factory=list)
    total: int = 0
    empty_reason: Optional[EmptyReason] = None
    message: Optional[str] = None

    @classmethod
    def loading(cls, query: TieQuery, generation: int = 0) -> "TieListSnapshot":
        return cls(
            generation=generation,
            state=ListState.LOADING,
            category=query.category,
            search=query.search,
        )

    @classmethod
    def failed(cls, query: TieQuery, generation: int = 0) -> "TieListSnapshot":
        return cls(
            generation=generation,
            state=ListState.ERROR,
            category=query.category,
            search=query.search,
            message=LOAD_ERROR_MESSAGE,
        )

    def to_event(self) -> Event:
        """Wrap the snapshot for the SSE stream."""
        return Event(type=EventType.SNAPSHOT, payload=self.model_dump(mode="json"))


def matches_search(record: TieRecord, term: str) -> bool:
    """Case-insensitive substring match on the tie name."""
    needle = term.strip().casefold()
    return not needle or needle in record.name.casefold()


def apply_search(records: Iterable[TieRecord], term: str) -> list[TieRecord]:
    """Keep the records whose name contains ``term``."""
    return [record for record in records if matches_search(record, term)]


async def run_query(
    db: AsyncSession,
    query: TieQuery,
    generation: int = 0,
) -> TieListSnapshot:
    """Run a list query once and build a ready snapshot.

    Args:
        db: The database session.
        query: Category and search filters.
        generation: Generation stamped on the snapshot.

    Returns:
        A snapshot in the ``ready`` state.
    """
    service = TieService(db)
    records = await service.list_ties(query.category)
    items = apply_search(records, query.search)

    empty_reason: EmptyReason | None = None
    if not items:
        if records:
            empty_reason = EmptyReason.FILTERED
        elif is_all_categories(query.category):
            empty_reason = EmptyReason.NO_DATA
        elif await service.count_ties() > 0:
            empty_reason = EmptyReason.FILTERED
        else:
            empty_reason = EmptyReason.NO_DATA

    return TieListSnapshot(
        generation=generation,
        state=ListState.READY,
        category=query.category,
        search=query.search,
        items=items,
        total=len(items),
        empty_reason=empty_reason,
        message=EMPTY_MESSAGES[empty_reason] if empty_reason else None,
    )


SnapshotCallback = Callable[[TieListSnapshot], Awaitable[None]]


class LiveTieView:
    """Cancellable live subscription backing one list view.

    Usage:
        async with LiveTieView(session_factory, on_snapshot) as view:
            await view.set_filters(category="Solid", search="navy")
            ...
            await view.set_filters(category="All")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        on_snapshot: SnapshotCallback,
        broadcaster: ChangeBroadcaster | None = None,
    ):
        """Initialize the view.

        Args:
            session_factory: Creates one short-lived session per query run.
            on_snapshot: Awaited with every snapshot of the current generation.
            broadcaster: Change feed to follow, defaults to the global one.
        """
        self._session_factory = session_factory
        self._on_snapshot = on_snapshot
        self._broadcaster = broadcaster or get_change_broadcaster()
        self._generation = 0
        self._query: TieQuery | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def generation(self) -> int:
        """Generation of the current filter set."""
        return self._generation

    @property
    def query(self) -> TieQuery | None:
        """Current filters, ``None`` before the first ``set_filters``."""
        return self._query

    @property
    def active(self) -> bool:
        """Whether a subscription is currently running."""
        return self._task is not None and not self._task.done()

    async def set_filters(self, category: str | None = None, search: str = "") -> int:
        """Replace the subscription with one for new filters.

        Returns once the new subscription is registered with the feed, so no
        change committed after this call can be missed.

        Returns:
            The new generation.
        """
        self._generation += 1
        generation = self._generation

        previous, self._task = self._task, None
        await self._cancel(previous)

        query = TieQuery(category=category, search=search or "")
        self._query = query

        subscribed = asyncio.Event()
        self._task = asyncio.create_task(self._run(query, generation, subscribed))
        await subscribed.wait()

        logger.debug(
            "live_view_filters_set",
            generation=generation,
            category=category,
            search=search,
        )
        return generation

    async def refresh(self) -> None:
        """Re-run the current query outside of a change event."""
        if self._query is not None:
            await self._refresh(self._query, self._generation)

    async def close(self) -> None:
        """Release the subscription. Pending snapshots are discarded."""
        self._generation += 1
        previous, self._task = self._task, None
        await self._cancel(previous)

    async def __aenter__(self) -> "LiveTieView":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _run(self, query: TieQuery, generation: int, subscribed: asyncio.Event) -> None:
        try:
            async with self._broadcaster.subscribe() as queue:
                subscribed.set()
                await self._deliver(TieListSnapshot.loading(query, generation))
                await self._refresh(query, generation)

                while True:
                    await queue.get()
                    # Collapse a burst of changes into one query
                    while not queue.empty():
                        queue.get_nowait()
                    await self._refresh(query, generation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("live_view_failed", generation=generation, error=str(e))
        finally:
            subscribed.set()

    async def _refresh(self, query: TieQuery, generation: int) -> None:
        try:
            async with self._session_factory() as session:
                snapshot = await run_query(session, query, generation)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "live_query_failed",
                generation=generation,
                category=query.category,
                error=str(e),
            )
            snapshot = TieListSnapshot.failed(query, generation)
        await self._deliver(snapshot)

    async def _deliver(self, snapshot: TieListSnapshot) -> None:
        if snapshot.generation != self._generation:
            logger.debug(
                "stale_snapshot_dropped",
                snapshot_generation=snapshot.generation,
                current_generation=self._generation,
            )
            return
        await self._on_snapshot(snapshot)

    @staticmethod
    async def _cancel(task: asyncio.Task[None] | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
