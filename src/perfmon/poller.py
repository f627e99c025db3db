"""Fixed-interval polling of a data source with last-known-good results."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from perfmon.errors import ConfigError, QueryFailure
from perfmon.log import get_logger

T = TypeVar("T")

logger = get_logger("poller")


@dataclass(frozen=True)
class PollerConfig(Generic[T]):
    """
    What to poll and how often.

    Args:
        query: Zero-argument callable, plain or ``async``. Plain callables run
            in a worker thread so they never block the event loop.
        interval_ms: Delay between the starts of two consecutive queries.
        decode: Optional normalizer applied to the raw response. It should
            raise QueryFailure for malformed data.
        name: Label used in log messages.
    """

    query: Callable[[], T | Awaitable[T]]
    interval_ms: int
    decode: Callable[[Any], T] | None = None
    name: str = "poller"

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ConfigError(f"interval_ms must be positive, got {self.interval_ms}")


class SnapshotPoller(Generic[T]):
    """
    Polls a query on a fixed interval and holds the latest successful result.

    The first query is issued as soon as ``start()`` is called. Ticks are not
    coalesced with in-flight queries: a slow query may complete after a newer
    one, and whichever completes last wins. A failed query is logged and the
    held result is left as it was.

    All state lives on the event loop thread; subscribers are called
    synchronously from it.
    """

    def __init__(self, config: PollerConfig[T]) -> None:
        self._config = config
        self._result: T | None = None
        self._has_result = False
        self._subscribers: list[Callable[[T], None]] = []
        self._timer: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._generation = 0
        self._disposed = False

    @property
    def name(self) -> str:
        """Label used in log messages."""
        return self._config.name

    @property
    def interval(self) -> float:
        """Polling interval in seconds."""
        return self._config.interval_ms / 1000

    @property
    def result(self) -> T | None:
        """Latest successful result, or None before the first success."""
        return self._result

    @property
    def has_result(self) -> bool:
        """Whether any query has succeeded yet."""
        return self._has_result

    @property
    def is_running(self) -> bool:
        """Check if the polling timer is active."""
        return self._timer is not None and not self._timer.done()

    def on_update(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register ``callback`` to receive each new result.

        Returns a function that removes the registration.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        """Start polling. Must be called with a running event loop."""
        if self.is_running:
            return

        self._disposed = False
        loop = asyncio.get_running_loop()
        self._timer = loop.create_task(self._tick_loop(), name=f"{self.name}-timer")

    def stop(self) -> None:
        """
        Cancel future ticks.

        Queries already in flight are left to finish; their results are dropped.
        """
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def dispose(self) -> None:
        """Stop polling and drop all subscribers."""
        self.stop()
        self._disposed = True
        self._subscribers.clear()

    async def refresh(self) -> None:
        """Run one query and apply its result. Never raises QueryFailure."""
        await self._refresh(self._generation)

    async def _refresh(self, generation: int) -> None:
        try:
            value = await self._query()
        except QueryFailure as e:
            logger.warning("%s: query failed, keeping last result: %s", self.name, e)
            return

        if generation != self._generation or self._disposed:
            logger.debug("%s: discarding result that arrived after stop", self.name)
            return

        self._apply(value)

    async def _query(self) -> T:
        query = self._config.query
        try:
            if inspect.iscoroutinefunction(query):
                raw = await query()
            else:
                raw = await asyncio.to_thread(query)
                if inspect.isawaitable(raw):
                    raw = await raw
            decode = self._config.decode
            return decode(raw) if decode is not None else raw
        except QueryFailure:
            raise
        except Exception as e:
            raise QueryFailure(f"{type(e).__name__}: {e}", name=self.name) from e

    def _apply(self, value: T) -> None:
        self._result = value
        self._has_result = True
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception("%s: subscriber %r failed", self.name, callback)

    def _spawn_refresh(self) -> None:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._refresh(self._generation), name=f"{self.name}-query")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick_loop(self) -> None:
        while True:
            self._spawn_refresh()
            await asyncio.sleep(self.interval)
