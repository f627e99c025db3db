"""Shared fixtures for perfmon tests."""

from datetime import datetime, timezone

import pytest

from perfmon.models import BufferStatus, MemoryInfo, ProcessSample, SystemSnapshot


def make_snapshot(processes=(), hostname: str = "testhost") -> SystemSnapshot:
    return SystemSnapshot(
        captured_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        system_name="Linux",
        hostname=hostname,
        per_core_cpu=(10.0, 20.0),
        memory=MemoryInfo(
            total_bytes=16 * 1024**3,
            used_bytes=8 * 1024**3,
            total_swap_bytes=4 * 1024**3,
            used_swap_bytes=0,
        ),
        processes=tuple(processes),
    )


@pytest.fixture
def scenario_processes() -> list[ProcessSample]:
    return [
        ProcessSample(pid=1, name="a", cpu_usage=0, memory_bytes=2097152),
        ProcessSample(pid=2, name="b", cpu_usage=12.5, memory_bytes=1048576),
    ]


@pytest.fixture
def snapshot(scenario_processes) -> SystemSnapshot:
    return make_snapshot(scenario_processes)


@pytest.fixture
def empty_status() -> BufferStatus:
    return BufferStatus(last_item=None, buffer_size=0, total_sent=0)


@pytest.fixture
def snapshot_factory():
    return make_snapshot
