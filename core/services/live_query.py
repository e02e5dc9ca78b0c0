# =============================================================================
# core/services/live_query.py - Live Query Subscriptions
# =============================================================================
# A LiveQuery re-runs a fetch function every time its change-feed topic fires
# and delivers the *full* result (a snapshot, never a delta).
#
# Consume it as:
#   - a blocking iterator:   for todos in live: ...
#   - an async iterator:     async for todos in live: ...
#   - a callback:            LiveQuery(..., on_snapshot=render)
#
# and stop it with live.cancel() (or by leaving a `with` block).
#
# Snapshots are conflated: a slow consumer only sees the newest one.
# Async consumers wait on their own asyncio.Queue, fed from whichever thread
# ran the refresh, so they never hold an executor thread while idle.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import AsyncIterator, Callable, Generic, Iterator, TypeVar

from core.services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class SubscriptionClosedError(Exception):
    """Raised by LiveQuery.get() once the subscription is cancelled."""


class LiveQuery(Generic[T]):
    """
    Full-snapshot stream over one change-feed topic.

    The initial snapshot is delivered as soon as the query starts. If a
    re-fetch fails, the error is logged and `fallback` is delivered instead
    so consumers keep rendering.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        topic: str,
        fetch: Callable[[], T],
        fallback: Callable[[], T],
        on_snapshot: Callable[[T], None] | None = None,
    ):
        self.topic = topic
        self._feed = feed
        self._fetch = fetch
        self._fallback = fallback
        self._on_snapshot = on_snapshot
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._async_queues: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []
        self._lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None
        self._cancelled = False
        self.latest: T | None = None

    def start(self) -> "LiveQuery[T]":
        """Register with the feed and deliver the initial snapshot."""
        self._unsubscribe = self._feed.listen(self.topic, self.refresh, on_close=self.cancel)
        self.refresh()
        logger.debug(f"Live query started on {self.topic}")
        return self

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def refresh(self) -> None:
        """Re-run the query and deliver the result."""
        if self._cancelled:
            return

        try:
            snapshot = self._fetch()
        except Exception as e:
            logger.error(f"Live query on {self.topic} failed to refresh: {e}")
            snapshot = self._fallback()

        self.latest = snapshot
        self._deliver(snapshot)

        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)

    def cancel(self) -> None:
        """Stop listening. Pending and future get() calls raise SubscriptionClosedError."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._deliver(_CLOSED)
        logger.debug(f"Live query cancelled on {self.topic}")

    def _deliver(self, item) -> None:
        """Hand an item to the async consumers if any are attached, else to the blocking queue."""
        with self._lock:
            if not self._async_queues or item is _CLOSED:
                self._queue.put(item)
            for loop, async_queue in self._async_queues:
                try:
                    loop.call_soon_threadsafe(async_queue.put_nowait, item)
                except RuntimeError as e:
                    # event loop already closed
                    logger.debug(f"Live query on {self.topic} dropped a snapshot: {e}")

    # -------------------------------------------------------------------------
    # Consumption
    # -------------------------------------------------------------------------

    def get(self, timeout: float | None = None) -> T:
        """
        Block until a snapshot is available and return the newest one.

        Raises:
            TimeoutError: If nothing arrives within `timeout` seconds
            SubscriptionClosedError: If the query has been cancelled
        """
        try:
            items = [self._queue.get(timeout=timeout)]
        except queue.Empty:
            raise TimeoutError(f"No snapshot on {self.topic} within {timeout}s")

        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                break

        if any(item is _CLOSED for item in items):
            # keep the marker for any other waiting consumer
            self._queue.put(_CLOSED)
            raise SubscriptionClosedError(self.topic)

        return items[-1]

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except SubscriptionClosedError:
                return

    async def __aiter__(self) -> AsyncIterator[T]:
        loop = asyncio.get_running_loop()
        async_queue: asyncio.Queue = asyncio.Queue()
        entry = (loop, async_queue)

        with self._lock:
            # take over whatever was delivered before the consumer attached
            while True:
                try:
                    async_queue.put_nowait(self._queue.get_nowait())
                except queue.Empty:
                    break
            self._async_queues.append(entry)

        try:
            while True:
                items = [await async_queue.get()]
                while not async_queue.empty():
                    items.append(async_queue.get_nowait())

                if any(item is _CLOSED for item in items):
                    return
                yield items[-1]
        finally:
            with self._lock:
                self._async_queues.remove(entry)

    def __enter__(self) -> "LiveQuery[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()
