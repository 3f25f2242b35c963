"""Severity filtering that keeps stack-trace context attached to kept entries."""

from typing import List, Union

from logsight.core.logging import get_logger
from logsight.schemas.log_schemas import LogEntry, LogLevel

logger = get_logger(__name__)

MAX_CONTINUATION_LINES = 10


class LevelFilter:
    """
    Drops entries below a minimum level.

    Continuation lines (level None) follow the fate of the nearest preceding
    leveled entry: after a kept entry up to ``MAX_CONTINUATION_LINES`` of them
    are kept, after a dropped entry all of them are dropped. Continuation lines
    before the first leveled entry have no owner and are dropped.
    """

    def __init__(self, min_level: Union[LogLevel, str]) -> None:
        """
        Initialize filter.

        Args:
            min_level: Minimum level to keep, as an enum or level name

        Raises:
            InvalidInputError: If a level name is not recognized
        """
        self.min_level = min_level if isinstance(min_level, LogLevel) else LogLevel.parse(min_level)

    def filter(self, entries: List[LogEntry]) -> List[LogEntry]:
        """
        Filter entries, preserving relative order.

        Args:
            entries: Parsed entries in source order

        Returns:
            Kept entries
        """
        kept: List[LogEntry] = []
        # None means "no kept owner": orphans and children of dropped entries
        continuation_budget = None

        for entry in entries:
            if entry.is_continuation:
                if continuation_budget:
                    kept.append(entry)
                    continuation_budget -= 1
                continue

            level = entry.log_level
            if level is None or level >= self.min_level:
                kept.append(entry)
                continuation_budget = MAX_CONTINUATION_LINES
            else:
                continuation_budget = None

        logger.info(
            "log_entries_filtered",
            min_level=self.min_level.name,
            input_entries=len(entries),
            kept_entries=len(kept),
        )
        return kept


def filter_by_level(entries: List[LogEntry], min_level: Union[LogLevel, str]) -> List[LogEntry]:
    """Filter entries with a one-off LevelFilter."""
    return LevelFilter(min_level).filter(entries)
