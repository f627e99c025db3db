"""Data models for perfmon."""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from perfmon.errors import QueryFailure


def _require(data: Mapping[str, Any], key: str) -> Any:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected a mapping, got {type(data).__name__}")
    if key not in data:
        raise KeyError(key)
    return data[key]


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field} must be an integer, got {value!r}")
    return value


def _as_count(value: Any, field: str) -> int:
    value = _as_int(value, field)
    if value < 0:
        raise ValueError(f"{field} must be non-negative, got {value}")
    return value


def _as_float(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{field} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"{field} must be finite, got {value!r}")
    return value


def _as_str(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field} must be a string, got {value!r}")
    return value


def _as_timestamp(value: Any) -> datetime:
    """Parse ISO-8601 text, epoch seconds or a ``{secs,nanos}_since_epoch`` mapping."""
    if isinstance(value, Mapping):
        seconds = _as_int(_require(value, "secs_since_epoch"), "secs_since_epoch")
        nanos = _as_int(value.get("nanos_since_epoch", 0), "nanos_since_epoch")
        return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(_as_float(value, "time"), tz=timezone.utc)


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """Immutable sample of a single process."""

    pid: int
    name: str
    cpu_usage: float  # 0.0 - 100.0 * core_count
    memory_bytes: int

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "ProcessSample":
        return cls(
            pid=_as_int(_require(data, "pid"), "pid"),
            name=_as_str(_require(data, "name"), "name"),
            cpu_usage=_as_float(_require(data, "cpu_usage"), "cpu_usage"),
            memory_bytes=_as_count(_require(data, "memory"), "memory"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "name": self.name,
            "cpu_usage": self.cpu_usage,
            "memory": self.memory_bytes,
        }


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """RAM and swap usage in bytes."""

    total_bytes: int
    used_bytes: int
    total_swap_bytes: int
    used_swap_bytes: int

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "MemoryInfo":
        return cls(
            total_bytes=_as_count(_require(data, "total"), "total"),
            used_bytes=_as_count(_require(data, "used"), "used"),
            total_swap_bytes=_as_count(_require(data, "total_swap"), "total_swap"),
            used_swap_bytes=_as_count(_require(data, "used_swap"), "used_swap"),
        )

    def to_wire(self) -> dict[str, int]:
        return {
            "total": self.total_bytes,
            "used": self.used_bytes,
            "total_swap": self.total_swap_bytes,
            "used_swap": self.used_swap_bytes,
        }


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Point-in-time capture of system and process metrics."""

    captured_at: datetime
    system_name: str
    hostname: str
    per_core_cpu: tuple[float, ...]
    memory: MemoryInfo
    processes: tuple[ProcessSample, ...]

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "SystemSnapshot":
        system = _require(data, "system")
        cpu = _require(data, "cpu")
        processes = _require(data, "processes")
        if not isinstance(cpu, (list, tuple)):
            raise TypeError(f"cpu must be a list, got {cpu!r}")
        if not isinstance(processes, (list, tuple)):
            raise TypeError(f"processes must be a list, got {processes!r}")
        return cls(
            captured_at=_as_timestamp(_require(data, "time")),
            system_name=_as_str(_require(system, "name"), "system.name"),
            hostname=_as_str(_require(system, "hostname"), "system.hostname"),
            per_core_cpu=tuple(_as_float(usage, "cpu") for usage in cpu),
            memory=MemoryInfo.from_wire(_require(data, "memory")),
            processes=tuple(ProcessSample.from_wire(proc) for proc in processes),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "time": self.captured_at.isoformat(),
            "system": {"name": self.system_name, "hostname": self.hostname},
            "cpu": list(self.per_core_cpu),
            "memory": self.memory.to_wire(),
            "processes": [proc.to_wire() for proc in self.processes],
        }


@dataclass(slots=True, frozen=True)
class BufferStatus:
    """
    State of the backend's snapshot ring buffer as observed at query time.

    ``last_item`` is None until the backend has captured its first snapshot.
    """

    last_item: SystemSnapshot | None
    buffer_size: int
    total_sent: int

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "BufferStatus":
        last_item = _require(data, "last_item")
        return cls(
            last_item=None if last_item is None else SystemSnapshot.from_wire(last_item),
            buffer_size=_as_count(_require(data, "buffer_size"), "buffer_size"),
            total_sent=_as_count(_require(data, "total_sent"), "total_sent"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "last_item": None if self.last_item is None else self.last_item.to_wire(),
            "buffer_size": self.buffer_size,
            "total_sent": self.total_sent,
        }


@dataclass(slots=True, frozen=True)
class DisplayRow:
    """Render-ready view of a ProcessSample, memory in megabytes."""

    pid: int
    name: str
    cpu_usage: float
    memory_mb: float


def decode_processes(raw: Any) -> tuple[ProcessSample, ...]:
    """
    Normalize a ``get_current_process_info`` response.

    Accepts ProcessSample objects or wire mappings. Raises QueryFailure for
    anything else.
    """
    if isinstance(raw, (str, bytes, Mapping)) or not hasattr(raw, "__iter__"):
        raise QueryFailure(f"malformed response: expected a process list, got {type(raw).__name__}")
    try:
        processes = tuple(
            item if isinstance(item, ProcessSample) else ProcessSample.from_wire(item)
            for item in raw
        )
    except (KeyError, TypeError, ValueError) as e:
        raise QueryFailure(f"malformed process entry: {e!r}") from e
    for proc in processes:
        if not math.isfinite(proc.cpu_usage):
            raise QueryFailure(f"malformed process entry: pid {proc.pid} cpu_usage is {proc.cpu_usage!r}")
    return processes


def decode_status(raw: Any) -> BufferStatus:
    """Normalize a ``get_status`` response. Raises QueryFailure when malformed."""
    if isinstance(raw, BufferStatus):
        return raw
    try:
        return BufferStatus.from_wire(raw)
    except (KeyError, TypeError, ValueError) as e:
        raise QueryFailure(f"malformed buffer status: {e!r}") from e
