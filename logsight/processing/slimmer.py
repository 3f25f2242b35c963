"""Log slimming: deduplication, pattern grouping and summarisation."""

import re
from typing import Dict, List, Optional, Tuple

from logsight.core.logging import get_logger
from logsight.processing.classifier import ErrorClassifier
from logsight.schemas.log_schemas import SUMMARY_LEVEL, LogEntry, SlimmingMode

logger = get_logger(__name__)

TRUNCATION_MARKER = "…"
STACK_TRACE_MARKER = "… stack trace truncated …"

MESSAGE_LIMITS: Dict[SlimmingMode, int] = {
    SlimmingMode.LIGHT: 500,
    SlimmingMode.AGGRESSIVE: 250,
    SlimmingMode.ULTRA: 100,
}

STACK_FRAME_LIMITS: Dict[SlimmingMode, int] = {
    SlimmingMode.LIGHT: 10,
    SlimmingMode.AGGRESSIVE: 5,
    SlimmingMode.ULTRA: 2,
}

CRITICAL_KEYWORDS = (
    "fatal",
    "critical",
    "severe",
    "panic",
    "segmentation fault",
    "out of memory",
    "stack overflow",
    "corrupted",
    "data loss",
    "security",
)

# Applied in order; paths go before IPs and numbers so they are not split up
PATTERN_SUBSTITUTIONS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}"), "[TS]"),
    (
        re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"),
        "[UUID]",
    ),
    (re.compile(r"/[^\s]+"), "[PATH]"),
    (re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b"), "[IP]"),
    (re.compile(r"\b\d+\b"), "[NUM]"),
)

_CLEANUP_SUBSTITUTIONS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r" {4}"), " "),
    PATTERN_SUBSTITUTIONS[0],
    PATTERN_SUBSTITUTIONS[1],
    (re.compile(r"\b[0-9a-fA-F]{16,}\b"), "[HEX]"),
)

_BLANK_RUN_RE = re.compile(r"\n{3,}")
_TAB_RUN_RE = re.compile(r"\t{2,}")

# A leading entry and the continuation lines that follow it
Block = Tuple[LogEntry, List[LogEntry]]


def pattern_key(message: str) -> str:
    """Normalise the variable parts of a message so similar lines share a key."""
    for pattern, replacement in PATTERN_SUBSTITUTIONS:
        message = pattern.sub(replacement, message)
    return message


def is_critical(message: str) -> bool:
    """True if the message must survive Ultra slimming verbatim."""
    lowered = message.lower()
    return any(keyword in lowered for keyword in CRITICAL_KEYWORDS)


def is_stack_frame(entry: LogEntry) -> bool:
    """True for continuation lines that look like a stack frame."""
    message = entry.message.lstrip()
    if message.startswith(("at ", "... ", "Caused by:", 'File "')):
        return True
    return entry.level is None and "at " in message and "(" in message


def truncate(message: str, limit: int) -> str:
    if len(message) <= limit:
        return message
    return message[:limit] + TRUNCATION_MARKER


def _stack_marker() -> LogEntry:
    return LogEntry(message=STACK_TRACE_MARKER)


class LogSlimmer:
    """
    Reduces the volume of filtered log entries before they reach the LLM.

    Modes:
    - light: collapse consecutive duplicates, shorten messages
    - aggressive: group by normalised pattern, keep one representative per group
    - ultra: keep critical entries, summarise everything else per category
    """

    def __init__(self, classifier: Optional[ErrorClassifier] = None) -> None:
        self.classifier = classifier or ErrorClassifier()

    def slim(self, entries: List[LogEntry], mode: SlimmingMode = SlimmingMode.LIGHT) -> List[LogEntry]:
        """
        Slim entries with the given mode.

        Args:
            entries: Filtered entries in source order
            mode: Slimming mode

        Returns:
            New list of entries; the input is not modified
        """
        mode = SlimmingMode(mode)
        if not entries:
            return []

        if mode == SlimmingMode.LIGHT:
            slimmed = self._slim_light(entries)
        elif mode == SlimmingMode.AGGRESSIVE:
            slimmed = self._slim_aggressive(entries)
        else:
            slimmed = self._slim_ultra(entries)

        logger.info(
            "log_entries_slimmed",
            mode=mode.value,
            input_entries=len(entries),
            output_entries=len(slimmed),
        )
        return slimmed

    def _slim_light(self, entries: List[LogEntry]) -> List[LogEntry]:
        collapsed: List[LogEntry] = []
        repeats = 0

        for entry in entries:
            if collapsed and entries_equal(collapsed[-1], entry):
                repeats += 1
                continue
            if repeats:
                collapsed[-1] = _with_suffix(collapsed[-1], f" (repeated {repeats + 1} times)")
            repeats = 0
            collapsed.append(entry.model_copy(update={"message": self._clean_light(entry.message)}))

        if repeats:
            collapsed[-1] = _with_suffix(collapsed[-1], f" (repeated {repeats + 1} times)")

        return self._cap_stack_frames(collapsed, STACK_FRAME_LIMITS[SlimmingMode.LIGHT])

    def _slim_aggressive(self, entries: List[LogEntry]) -> List[LogEntry]:
        groups: Dict[Tuple[Optional[str], str], List] = {}

        for head, tail in group_blocks(entries):
            key = (head.level, pattern_key(head.message))
            if key in groups:
                groups[key][0] += 1
            else:
                groups[key] = [1, head, tail]

        blocks: List[Block] = []
        for count, head, tail in groups.values():
            message = self._clean_aggressive(head.message, MESSAGE_LIMITS[SlimmingMode.AGGRESSIVE])
            if count > 1:
                message += f" (pattern repeated {count} times)"
            blocks.append((head.model_copy(update={"message": message}), tail))

        # Stable: untimed blocks go last, ties keep first-occurrence order
        blocks.sort(key=lambda block: (block[0].timestamp is None, block[0].timestamp or ""))

        slimmed: List[LogEntry] = []
        for head, tail in blocks:
            slimmed.append(head)
            slimmed.extend(self._cap_tail(tail, SlimmingMode.AGGRESSIVE))
        return slimmed

    def _slim_ultra(self, entries: List[LogEntry]) -> List[LogEntry]:
        kept: List[LogEntry] = []
        category_counts: Dict[str, int] = {}

        for head, tail in group_blocks(entries):
            if is_critical(head.message):
                message = self._clean_aggressive(head.message, MESSAGE_LIMITS[SlimmingMode.ULTRA])
                kept.append(head.model_copy(update={"message": message}))
                kept.extend(self._cap_tail(tail, SlimmingMode.ULTRA))
            else:
                label = self.classifier.classify(head.message).category.label
                category_counts[label] = category_counts.get(label, 0) + 1

        for label, count in category_counts.items():
            kept.append(LogEntry(level=SUMMARY_LEVEL, message=f"{label}: {count} occurrences"))
        return kept

    def _cap_tail(self, tail: List[LogEntry], mode: SlimmingMode) -> List[LogEntry]:
        limit = MESSAGE_LIMITS[mode]
        cleaned = [
            entry.model_copy(update={"message": self._clean_aggressive(entry.message, limit)})
            for entry in tail
        ]
        return self._cap_stack_frames(cleaned, STACK_FRAME_LIMITS[mode])

    @staticmethod
    def _cap_stack_frames(entries: List[LogEntry], max_frames: int) -> List[LogEntry]:
        """Keep at most ``max_frames`` consecutive frames, then one marker entry."""
        capped: List[LogEntry] = []
        run = 0
        for entry in entries:
            if not is_stack_frame(entry):
                run = 0
                capped.append(entry)
                continue
            if run < max_frames:
                capped.append(entry)
            elif run == max_frames:
                capped.append(_stack_marker())
            run += 1
        return capped

    @staticmethod
    def _clean_light(message: str) -> str:
        message = _BLANK_RUN_RE.sub("\n", message)
        message = _TAB_RUN_RE.sub("\t", message)
        return truncate(message, MESSAGE_LIMITS[SlimmingMode.LIGHT])

    @staticmethod
    def _clean_aggressive(message: str, limit: int) -> str:
        for pattern, replacement in _CLEANUP_SUBSTITUTIONS:
            message = pattern.sub(replacement, message)
        return truncate(message, limit)


def entries_equal(left: LogEntry, right: LogEntry) -> bool:
    """Duplicate check used for collapsing: same level and same message text."""
    if left.level != right.level:
        return False
    # left may already carry the light cleanup, so compare on cleaned text
    return left.message == LogSlimmer._clean_light(right.message)


def group_blocks(entries: List[LogEntry]) -> List[Block]:
    """Split entries into (leading entry, continuation lines) blocks."""
    blocks: List[Block] = []
    for entry in entries:
        if entry.is_continuation and blocks:
            blocks[-1][1].append(entry)
        else:
            blocks.append((entry, []))
    return blocks


def _with_suffix(entry: LogEntry, suffix: str) -> LogEntry:
    return entry.model_copy(update={"message": entry.message + suffix})
