"""Display-agnostic dashboard state fed by the pollers."""

from collections.abc import Callable, Sequence

from perfmon.log import get_logger
from perfmon.models import BufferStatus, DisplayRow, ProcessSample, SystemSnapshot
from perfmon.poller import SnapshotPoller
from perfmon.transform import transform

logger = get_logger("dashboard")


class DashboardState:
    """
    Latest data handed to the presentation layer.

    Every update re-derives the display rows from scratch. Rows from the
    buffer status and rows from the live process list are kept apart;
    ``rows`` shows the live list once one has arrived, since buffered
    snapshots can be older. ``is_loading`` starts true and flips to false
    once real data arrives; it never flips back.
    """

    def __init__(self) -> None:
        self._status: BufferStatus | None = None
        self._processes: tuple[ProcessSample, ...] | None = None
        self._snapshot: SystemSnapshot | None = None
        self._status_rows: list[DisplayRow] = []
        self._process_rows: list[DisplayRow] = []
        self._loaded = False
        self._observers: list[Callable[["DashboardState"], None]] = []

    @property
    def status(self) -> BufferStatus | None:
        return self._status

    @property
    def processes(self) -> tuple[ProcessSample, ...] | None:
        return self._processes

    @property
    def snapshot(self) -> SystemSnapshot | None:
        """Most recent snapshot reported by a buffer status, if any."""
        return self._snapshot

    @property
    def rows(self) -> list[DisplayRow]:
        """Rows to display: the live process list if any, else the buffered snapshot."""
        if self._processes is not None:
            return list(self._process_rows)
        return list(self._status_rows)

    @property
    def status_rows(self) -> list[DisplayRow]:
        return list(self._status_rows)

    @property
    def process_rows(self) -> list[DisplayRow]:
        return list(self._process_rows)

    @property
    def is_loading(self) -> bool:
        return not self._loaded

    def on_change(self, callback: Callable[["DashboardState"], None]) -> None:
        self._observers.append(callback)

    def apply_status(self, status: BufferStatus) -> None:
        self._status = status
        if status.last_item is not None:
            self._snapshot = status.last_item
            self._loaded = True
            self._status_rows = transform(status.last_item.processes)
        self._notify()

    def apply_processes(self, processes: Sequence[ProcessSample]) -> None:
        self._processes = tuple(processes)
        self._loaded = True
        self._process_rows = transform(self._processes)
        self._notify()

    def bind(
        self,
        status_poller: SnapshotPoller[BufferStatus] | None = None,
        process_poller: SnapshotPoller[Sequence[ProcessSample]] | None = None,
    ) -> Callable[[], None]:
        """Subscribe to the given pollers. Returns a function undoing the subscriptions."""
        unsubscribers = []
        if status_poller is not None:
            unsubscribers.append(status_poller.on_update(self.apply_status))
        if process_poller is not None:
            unsubscribers.append(process_poller.on_update(self.apply_processes))

        def unbind() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return unbind

    def _notify(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception:
                logger.exception("dashboard observer %r failed", callback)
