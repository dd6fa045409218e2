"""Telemetry kinds and log severities."""

from enum import Enum

GLOBAL_TENANT = "ALL"


class TelemetryKind(str, Enum):
    TRACE = "TRACE"
    LOG = "LOG"
    METRIC = "METRIC"

    @classmethod
    def parse(cls, value: "str | TelemetryKind") -> "TelemetryKind":
        """Case-insensitive lookup; raises ValueError for unknown kinds."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class LogLevel(str, Enum):
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    @classmethod
    def parse(cls, value: "str | LogLevel") -> "LogLevel":
        """Case-insensitive lookup; raises ValueError for unknown levels."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


_PRIORITY = {
    LogLevel.TRACE: 1,
    LogLevel.DEBUG: 2,
    LogLevel.INFO: 3,
    LogLevel.WARN: 4,
    LogLevel.ERROR: 5,
    LogLevel.FATAL: 6,
}
