"""
perfmon settings.

Defaults mirror the cadence of the original dashboard: the process list is
re-queried every 65 s, the buffer status every 10 s, and the backend samples
the system once a minute into a 30-entry ring buffer.
"""

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass

from perfmon.errors import ConfigError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def _parse_number(name: str, value: str, kind: type) -> int | float:
    try:
        return kind(value)
    except ValueError as e:
        raise ConfigError(f"{name}: expected {kind.__name__}, got {value!r}") from e


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings.

    Notes:
    - ``process_interval_ms`` / ``status_interval_ms`` drive the two pollers.
    - ``sample_interval_sec`` / ``buffer_capacity`` drive the sampling backend.
    - ``enable_logging`` turns on the log file (``LOGGING=true``).
    """

    process_interval_ms: int = 65000
    status_interval_ms: int = 10000
    sample_interval_sec: float = 60.0
    buffer_capacity: int = 30
    enable_logging: bool = False
    log_file: str = "perf_monitor.log"

    def __post_init__(self) -> None:
        for field in ("process_interval_ms", "status_interval_ms", "sample_interval_sec", "buffer_capacity"):
            value = getattr(self, field)
            if value <= 0:
                raise ConfigError(f"{field} must be positive, got {value}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        numeric = {
            "PERFMON_PROCESS_INTERVAL_MS": ("process_interval_ms", int),
            "PERFMON_STATUS_INTERVAL_MS": ("status_interval_ms", int),
            "PERFMON_SAMPLE_INTERVAL_SEC": ("sample_interval_sec", float),
            "PERFMON_BUFFER_CAPACITY": ("buffer_capacity", int),
        }
        for var, (field, kind) in numeric.items():
            if var in env:
                values[field] = _parse_number(var, env[var], kind)

        if "LOGGING" in env:
            values["enable_logging"] = _parse_bool("LOGGING", env["LOGGING"])
        if env.get("PERFMON_LOG_FILE"):
            values["log_file"] = env["PERFMON_LOG_FILE"]

        return cls(**values)

    def replace(self, **changes: object) -> "Settings":
        """Return a validated copy with ``changes`` applied; None values are ignored."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})
