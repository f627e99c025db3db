"""Sampling backend for perfmon."""

import platform
import socket
import threading
import time
from collections import deque
from datetime import datetime, timezone

import psutil

from perfmon.log import get_logger
from perfmon.models import BufferStatus, MemoryInfo, ProcessSample, SystemSnapshot

logger = get_logger("collector")

# psutil reports per-process CPU as a delta since the previous read; a read
# sooner than this after priming is mostly zeros.
CPU_BASELINE_SEC = 0.5


class Collector:
    """
    Samples system and process data with psutil.

    Runs in a separate daemon thread and appends a SystemSnapshot to a ring
    buffer on every tick. Exposes the two queries the dashboard polls:
    ``get_current_process_info`` and ``get_status``. Both may be called from
    any thread.
    """

    def __init__(self, sample_interval: float = 60.0, buffer_capacity: int = 30) -> None:
        """
        Initialize the Collector.

        Args:
            sample_interval: Seconds between two buffered snapshots.
            buffer_capacity: Number of snapshots kept; older ones are dropped.
        """
        self._sample_interval = sample_interval
        self._buffer: deque[SystemSnapshot] = deque(maxlen=buffer_capacity)
        self._total_sent = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)
        self._cpu_baseline_at = self._prime_process_cpu()

    @property
    def sample_interval(self) -> float:
        return self._sample_interval

    @property
    def buffer_capacity(self) -> int:
        return self._buffer.maxlen or 0

    @property
    def is_running(self) -> bool:
        """Check if the sampling thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sampling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sample_loop,
            daemon=True,
            name="Collector",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the sampling thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def get_current_process_info(self) -> list[ProcessSample]:
        """Sample the process table now."""
        return self._collect_processes()

    def get_status(self) -> BufferStatus:
        """Report the ring buffer's newest snapshot, occupancy and lifetime count."""
        with self._lock:
            return BufferStatus(
                last_item=self._buffer[-1] if self._buffer else None,
                buffer_size=len(self._buffer),
                total_sent=self._total_sent,
            )

    def sample(self) -> SystemSnapshot:
        """Capture one snapshot and push it into the buffer."""
        snapshot = self._collect_snapshot()
        with self._lock:
            self._buffer.append(snapshot)
            self._total_sent += 1
        logger.info(
            "collected %d processes, %d cpu cores",
            len(snapshot.processes),
            len(snapshot.per_core_cpu),
        )
        return snapshot

    def _sample_loop(self) -> None:
        """Main sampling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self.sample()
            except Exception:
                logger.exception("sampling failed")

            # Wait for sample_interval seconds or until stop is requested
            self._stop_event.wait(timeout=self._sample_interval)

    def _prime_process_cpu(self) -> float:
        """Take the first per-process CPU reading, which psutil always reports as 0.0."""
        for _ in psutil.process_iter(attrs=["cpu_percent"]):
            pass
        return time.monotonic()

    def _wait_for_cpu_baseline(self) -> None:
        """Block until CPU_BASELINE_SEC has passed since priming."""
        remaining = self._cpu_baseline_at + CPU_BASELINE_SEC - time.monotonic()
        if remaining > 0:
            time.sleep(remaining)

    def _collect_snapshot(self) -> SystemSnapshot:
        """Collect a snapshot of the current system state."""
        self._wait_for_cpu_baseline()
        # Non-blocking, uses previous call's data
        cpu_percents = psutil.cpu_percent(percpu=True)

        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()

        return SystemSnapshot(
            captured_at=datetime.now(timezone.utc),
            system_name=platform.system(),
            hostname=socket.gethostname(),
            per_core_cpu=tuple(float(usage) for usage in cpu_percents),
            memory=MemoryInfo(
                total_bytes=mem.total,
                used_bytes=mem.used,
                total_swap_bytes=swap.total,
                used_swap_bytes=swap.used,
            ),
            processes=tuple(self._collect_processes()),
        )

    def _collect_processes(self) -> list[ProcessSample]:
        """
        Collect samples of all running processes.

        Processes that die mid-poll, deny access or are zombies are skipped.
        """
        self._wait_for_cpu_baseline()
        processes: list[ProcessSample] = []

        for proc in psutil.process_iter(attrs=["pid", "name", "cpu_percent", "memory_info"]):
            try:
                info = proc.info
                mem_info = info.get("memory_info")
                processes.append(
                    ProcessSample(
                        pid=info.get("pid", 0),
                        name=info.get("name") or "",
                        cpu_usage=float(info.get("cpu_percent") or 0.0),
                        memory_bytes=mem_info.rss if mem_info else 0,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return processes
