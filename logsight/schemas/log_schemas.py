"""Pydantic schemas for parsed log data."""

from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, Field

from logsight.core.error_handling import InvalidInputError

SUMMARY_LEVEL = "SUMMARY"


class LogLevel(IntEnum):
    """Severity levels, ordered TRACE < DEBUG < INFO < WARN < ERROR < FATAL."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    FATAL = 5

    @classmethod
    def parse(cls, value: str) -> "LogLevel":
        """
        Parse a level name, accepting common aliases.

        Raises:
            InvalidInputError: If the name is not a known level
        """
        level = _LEVEL_ALIASES.get(value.strip().upper())
        if level is None:
            raise InvalidInputError(
                f"Invalid log level '{value}'. Expected one of TRACE, DEBUG, INFO, WARN, ERROR, FATAL"
            )
        return level

    @classmethod
    def from_number(cls, number: int) -> Optional["LogLevel"]:
        """Map numeric levels 0..5 onto TRACE..FATAL."""
        try:
            return cls(number)
        except ValueError:
            return None


_LEVEL_ALIASES = {
    "TRACE": LogLevel.TRACE,
    "TRC": LogLevel.TRACE,
    "DEBUG": LogLevel.DEBUG,
    "DBG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "INFORMATION": LogLevel.INFO,
    "WARN": LogLevel.WARN,
    "WARNING": LogLevel.WARN,
    "ERROR": LogLevel.ERROR,
    "ERR": LogLevel.ERROR,
    "FATAL": LogLevel.FATAL,
    "CRIT": LogLevel.FATAL,
    "CRITICAL": LogLevel.FATAL,
}


class SlimmingMode(str, Enum):
    """How hard the slimmer compresses entries."""

    LIGHT = "light"
    AGGRESSIVE = "aggressive"
    ULTRA = "ultra"


class LogEntry(BaseModel):
    """
    One parsed log line.

    ``level`` holds a canonical level name (TRACE..FATAL), ``SUMMARY`` for
    synthetic slimmer entries, or None for a continuation line that belongs
    to the nearest preceding leveled entry.
    """

    timestamp: Optional[str] = None
    level: Optional[str] = None
    message: str = ""
    line_number: Optional[int] = Field(default=None, ge=1)

    @property
    def is_continuation(self) -> bool:
        """True for stack frames and other lines without a level."""
        return self.level is None

    @property
    def log_level(self) -> Optional[LogLevel]:
        """Level as an ordered enum, None for continuations and summaries."""
        if self.level is None:
            return None
        return _LEVEL_ALIASES.get(self.level.upper())
