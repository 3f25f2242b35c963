"""Line parser that recovers timestamp, level, and message from unstructured logs."""

import re
from typing import Iterable, List, Optional, Tuple

from logsight.core.logging import get_logger
from logsight.schemas.log_schemas import LogEntry, LogLevel

logger = get_logger(__name__)

# (start, end) offsets into an ANSI-stripped line
Span = Tuple[int, int]

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")

# ISO-8601-ish, Apache access log and syslog, tried in that order
ISO_TIMESTAMP_RE = re.compile(
    r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d{1,9})?(?:Z|[+-]\d{2}:?\d{2})?"
)
APACHE_TIMESTAMP_RE = re.compile(
    r"\[(\d{2}/[A-Z][a-z]{2}/\d{4}:\d{2}:\d{2}:\d{2} [+-]\d{4})\]"
)
SYSLOG_TIMESTAMP_RE = re.compile(
    r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec) [ \d]\d \d{2}:\d{2}:\d{2}\b"
)

# An explicit ":" or "=" separator keeps prose such as "level 1 support" out
NUMERIC_LEVEL_RE = re.compile(r"\blevel\s*[:=]\s*([0-5])\b", re.IGNORECASE)
SEVERITY_LEVEL_RE = re.compile(r"\bseverity\s*[:=]\s*(high|medium|low)\b", re.IGNORECASE)

_LEVEL_WORDS = "FATAL|CRITICAL|CRIT|ERROR|ERR|WARNING|WARN|INFORMATION|INFO|DEBUG|DBG|TRACE|TRC"

LEADING_LEVEL_RE = re.compile(rf"^\s*({_LEVEL_WORDS})\s*:(?:\s|$)", re.IGNORECASE)

# Bracketed forms, most severe group first
BRACKETED_LEVEL_RES: Tuple[Tuple[re.Pattern, LogLevel], ...] = tuple(
    (re.compile(rf"[\[\(]\s*({words})\s*[\]\)]", re.IGNORECASE), level)
    for words, level in (
        ("FATAL|CRITICAL|CRIT", LogLevel.FATAL),
        ("ERROR|ERR", LogLevel.ERROR),
        ("WARNING|WARN", LogLevel.WARN),
        ("INFORMATION|INFO", LogLevel.INFO),
        ("DEBUG|DBG", LogLevel.DEBUG),
        ("TRACE|TRC", LogLevel.TRACE),
    )
)

# Case-sensitive on purpose: prose such as "the error message" must not match
STANDALONE_LEVEL_RE = re.compile(rf"\b({_LEVEL_WORDS}):?\s+")

LEADING_BRACKET_RE = re.compile(r"^\s*[\[\(][^\]\)]*[\]\)]\s*")

_SEVERITY_WORDS = {"high": LogLevel.ERROR, "medium": LogLevel.WARN, "low": LogLevel.INFO}


def strip_ansi(line: str) -> str:
    """Remove ``ESC [ ... m`` color sequences."""
    return ANSI_ESCAPE_RE.sub("", line)


def extract_timestamp(line: str) -> Tuple[Optional[str], Optional[Span]]:
    """
    Find a timestamp in a line.

    Returns:
        (timestamp, span) where span covers the exact text to remove from the
        message (it includes Apache's brackets), or (None, None)
    """
    match = ISO_TIMESTAMP_RE.search(line)
    if match:
        return match.group(0), match.span()

    match = APACHE_TIMESTAMP_RE.search(line)
    if match:
        return match.group(1), match.span()

    match = SYSLOG_TIMESTAMP_RE.search(line)
    if match:
        return match.group(0), match.span()

    return None, None


def detect_level(line: str) -> Tuple[Optional[LogLevel], Optional[Span]]:
    """
    Detect the level of an ANSI-stripped line.

    Rules are tried from most to least specific: numeric ``Level: N``,
    ``Severity: high|medium|low``, a line-leading ``LEVEL:``, bracketed
    ``[LEVEL]``/``(LEVEL)`` forms, then a bare all-caps level word.

    Returns:
        (level, span) where span covers the matched level token with its
        decoration, or None when the level came from a numeric/severity rule
    """
    match = NUMERIC_LEVEL_RE.search(line)
    if match:
        return LogLevel.from_number(int(match.group(1))), None

    match = SEVERITY_LEVEL_RE.search(line)
    if match:
        return _SEVERITY_WORDS[match.group(1).lower()], None

    match = LEADING_LEVEL_RE.match(line)
    if match:
        return LogLevel.parse(match.group(1)), match.span()

    for pattern, level in BRACKETED_LEVEL_RES:
        match = pattern.search(line)
        if match:
            return level, match.span()

    match = STANDALONE_LEVEL_RE.search(line)
    if match:
        return LogLevel.parse(match.group(1)), match.span()

    return None, None


def _cut_spans(text: str, spans: Iterable[Optional[Span]]) -> str:
    """Remove non-overlapping spans from text, ignoring None."""
    kept: List[Span] = []
    for span in sorted(s for s in spans if s is not None):
        if kept and span[0] < kept[-1][1]:
            continue
        kept.append(span)
    for start, end in reversed(kept):
        text = text[:start] + text[end:]
    return text


class LogParser:
    """
    Parses unstructured log lines into LogEntry objects.

    Lines without a recognizable level become continuation entries
    (level None), which downstream stages attach to the preceding entry.
    """

    def parse_line(self, line: str, line_number: Optional[int] = None) -> LogEntry:
        """
        Parse a single line.

        Args:
            line: Raw text line without its terminator
            line_number: 1-based position in the source

        Returns:
            Parsed entry
        """
        clean = strip_ansi(line)
        timestamp, timestamp_span = extract_timestamp(clean)
        level, level_span = detect_level(clean)

        message = _cut_spans(clean, (timestamp_span, level_span))
        message = LEADING_BRACKET_RE.sub("", message, count=1).strip()

        return LogEntry(
            timestamp=timestamp,
            level=level.name if level is not None else None,
            message=message,
            line_number=line_number,
        )

    def parse_lines(self, lines: Iterable[str]) -> List[LogEntry]:
        """
        Parse a sequence of lines, numbering them from 1 and skipping blank lines.

        Blank lines still count toward numbering, so ``line_number`` is the
        position in the source file.

        Args:
            lines: Decoded text lines, blank lines included

        Returns:
            Entries in input order
        """
        entries = [
            self.parse_line(line, line_number)
            for line_number, line in enumerate(lines, start=1)
            if line.strip()
        ]

        leveled = sum(1 for entry in entries if entry.level is not None)
        logger.info(
            "log_lines_parsed",
            entries=len(entries),
            leveled=leveled,
            continuation=len(entries) - leveled,
        )
        return entries
