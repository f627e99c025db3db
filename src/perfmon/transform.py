"""Conversion of raw samples into render-ready rows."""

from collections.abc import Sequence
from dataclasses import dataclass

from perfmon.models import DisplayRow, MemoryInfo, ProcessSample

BYTES_PER_MB = 1024 * 1024
BYTES_PER_GB = 1024**3


def bytes_to_mb(size: int) -> float:
    """Convert bytes to megabytes (1024 * 1024)."""
    return size / BYTES_PER_MB


def bytes_to_gb(size: int) -> float:
    """Convert bytes to gigabytes (1024 ** 3)."""
    return size / BYTES_PER_GB


def percent(used: int, total: int) -> float:
    """Return used/total as a percentage, 0.0 when total is zero."""
    if total <= 0:
        return 0.0
    return used / total * 100.0


def transform(processes: Sequence[ProcessSample]) -> list[DisplayRow]:
    """
    Build display rows from a process list.

    Drops processes whose CPU usage is exactly zero, converts memory to
    megabytes and orders by CPU usage, highest first. ``sorted`` is stable,
    so processes with equal usage keep their input order. The input is
    never modified.
    """
    rows = [
        DisplayRow(
            pid=proc.pid,
            name=proc.name,
            cpu_usage=proc.cpu_usage,
            memory_mb=bytes_to_mb(proc.memory_bytes),
        )
        for proc in processes
        if proc.cpu_usage != 0
    ]
    return sorted(rows, key=lambda row: row.cpu_usage, reverse=True)


@dataclass(slots=True, frozen=True)
class MemorySummary:
    """RAM and swap usage in gigabytes, for the header panel."""

    used_gb: float
    total_gb: float
    used_percent: float
    swap_used_gb: float
    swap_total_gb: float
    swap_percent: float


def memory_summary(memory: MemoryInfo) -> MemorySummary:
    return MemorySummary(
        used_gb=bytes_to_gb(memory.used_bytes),
        total_gb=bytes_to_gb(memory.total_bytes),
        used_percent=percent(memory.used_bytes, memory.total_bytes),
        swap_used_gb=bytes_to_gb(memory.used_swap_bytes),
        swap_total_gb=bytes_to_gb(memory.total_swap_bytes),
        swap_percent=percent(memory.used_swap_bytes, memory.total_swap_bytes),
    )
