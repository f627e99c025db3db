"""Exception types for perfmon."""


class PerfmonError(Exception):
    """Base class for perfmon errors."""


class QueryFailure(PerfmonError):
    """
    A query to the data source did not complete successfully.

    Covers transport errors, exceptions raised by the backend and responses
    that could not be decoded. The original exception is kept as ``__cause__``.
    """

    def __init__(self, message: str, name: str = "") -> None:
        super().__init__(message)
        self.name = name

    def __str__(self) -> str:
        message = super().__str__()
        return f"[{self.name}] {message}" if self.name else message


class ConfigError(PerfmonError, ValueError):
    """Invalid configuration value."""
