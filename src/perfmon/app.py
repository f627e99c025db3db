"""perfmon - Main Textual application."""

import argparse
from collections.abc import Sequence

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from perfmon.collector import Collector
from perfmon.config import Settings
from perfmon.dashboard import DashboardState
from perfmon.errors import ConfigError
from perfmon.log import get_logger, setup_logging
from perfmon.models import (
    BufferStatus,
    DisplayRow,
    ProcessSample,
    SystemSnapshot,
    decode_processes,
    decode_status,
)
from perfmon.poller import PollerConfig, SnapshotPoller
from perfmon.transform import memory_summary

logger = get_logger("app")

BAR_WIDTH = 20


def usage_bar(percent: float, color: str) -> str:
    """Render a fixed-width usage bar as Rich markup."""
    filled = min(max(int(percent / 5), 0), BAR_WIDTH)
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (BAR_WIDTH - filled)


class HeaderStats(Static):
    """Header widget showing host, CPU, memory and buffer statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._snapshot: SystemSnapshot | None = None
        self._status: BufferStatus | None = None

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, snapshot: SystemSnapshot | None, status: BufferStatus | None) -> None:
        """Update the statistics from the latest snapshot and buffer status."""
        self._snapshot = snapshot
        self._status = status
        self.query_one("#cpu-info", Static).update(self._get_cpu_info())
        self.query_one("#mem-info", Static).update(self._get_mem_info())

    def _get_cpu_info(self) -> str:
        if self._snapshot is None:
            return "Loading CPU info..."
        lines = [f"[b]{self._snapshot.system_name}[/b] @ {self._snapshot.hostname}"]
        for i, usage in enumerate(self._snapshot.per_core_cpu):
            # Escaped brackets around the bar
            lines.append(f"CPU{i:<2} \\[{usage_bar(usage, 'green')}] {usage:5.1f}%")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        if self._snapshot is None:
            return "Loading memory info..."
        mem = memory_summary(self._snapshot.memory)
        lines = [
            f"Mem\\[{usage_bar(mem.used_percent, 'cyan')}] {mem.used_gb:.1f}G/{mem.total_gb:.1f}G",
            f"Swp\\[{usage_bar(mem.swap_percent, 'yellow')}] {mem.swap_used_gb:.1f}G/{mem.swap_total_gb:.1f}G",
            f"Captured: {self._snapshot.captured_at.astimezone():%H:%M:%S}",
        ]
        if self._status is not None:
            lines.append(f"Buffer: {self._status.buffer_size} snapshots, {self._status.total_sent} total")
        return "\n".join(lines)


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("Loading process info...", id="process-loading")
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=32)
        table.add_column("CPU Usage (%)", key="cpu", width=14)
        table.add_column("Memory (MB)", key="mem", width=12)
        self.set_loading(True)

    def set_loading(self, loading: bool) -> None:
        self.query_one("#process-loading", Static).display = loading
        self.query_one("#process-table", DataTable).display = not loading

    def update_rows(self, rows: Sequence[DisplayRow]) -> None:
        """Replace the table contents with ``rows``, in order."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for row in rows:
            table.add_row(
                str(row.pid),
                row.name,
                f"{row.cpu_usage:.2f}",
                f"{row.memory_mb:.2f}",
            )


class PerfmonApp(App):
    """Main perfmon application."""

    TITLE = "perfmon"
    SUB_TITLE = "Process Performance Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, settings: Settings | None = None, backend=None) -> None:
        """
        Initialize the PerfmonApp.

        Args:
            settings: Runtime settings. Defaults to ``Settings.from_env()``.
            backend: Object providing ``get_current_process_info``,
                ``get_status``, ``start`` and ``stop``. Defaults to a Collector.
        """
        super().__init__()
        self.settings = settings or Settings.from_env()
        self._backend = backend if backend is not None else Collector(
            sample_interval=self.settings.sample_interval_sec,
            buffer_capacity=self.settings.buffer_capacity,
        )
        self.dashboard = DashboardState()
        self.process_poller: SnapshotPoller[Sequence[ProcessSample]] = SnapshotPoller(
            PollerConfig(
                query=self._backend.get_current_process_info,
                interval_ms=self.settings.process_interval_ms,
                decode=decode_processes,
                name="processes",
            )
        )
        self.status_poller: SnapshotPoller[BufferStatus] = SnapshotPoller(
            PollerConfig(
                query=self._backend.get_status,
                interval_ms=self.settings.status_interval_ms,
                decode=decode_status,
                name="status",
            )
        )
        self._unbind = self.dashboard.bind(
            status_poller=self.status_poller,
            process_poller=self.process_poller,
        )
        self.dashboard.on_change(self._render_state)
        self._stopped = False

    def compose(self) -> ComposeResult:
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the backend and both pollers."""
        self._backend.start()
        self.status_poller.start()
        self.process_poller.start()

    def on_unmount(self) -> None:
        self._stop_polling()

    def _stop_polling(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._unbind()
        self.process_poller.dispose()
        self.status_poller.dispose()
        self._backend.stop()

    def _render_state(self, state: DashboardState) -> None:
        """Re-render from the dashboard state; called after every successful poll."""
        header = self.query_one("#header-stats", HeaderStats)
        header.update_stats(state.snapshot, state.status)

        process_table = self.query_one(ProcessTable)
        process_table.set_loading(state.is_loading)
        process_table.update_rows(state.rows)

    def action_refresh(self) -> None:
        """Query both data sources now, outside the regular schedule."""
        self.run_worker(self.status_poller.refresh(), group="refresh")
        self.run_worker(self.process_poller.refresh(), group="refresh")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._stop_polling()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="perfmon", description="Live process performance dashboard.")
    parser.add_argument("--process-interval", type=int, metavar="MS", help="process list polling interval")
    parser.add_argument("--status-interval", type=int, metavar="MS", help="buffer status polling interval")
    parser.add_argument("--sample-interval", type=float, metavar="SEC", help="backend sampling interval")
    parser.add_argument("--buffer-capacity", type=int, metavar="N", help="snapshots kept by the backend")
    parser.add_argument("--logging", action="store_true", default=None, help="write a log file")
    parser.add_argument("--log-file", metavar="PATH", help="log file location")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the perfmon application."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = Settings.from_env().replace(
            process_interval_ms=args.process_interval,
            status_interval_ms=args.status_interval,
            sample_interval_sec=args.sample_interval,
            buffer_capacity=args.buffer_capacity,
            enable_logging=args.logging,
            log_file=args.log_file,
        )
    except ConfigError as e:
        parser.error(str(e))
    setup_logging(settings)
    logger.info("starting with %s", settings)
    app = PerfmonApp(settings)
    app.run()


if __name__ == "__main__":
    main()
