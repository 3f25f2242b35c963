"""Encoding recovery and line splitting for raw log bytes."""

import codecs
import io
from typing import BinaryIO, Iterable, List, Optional, Tuple

from logsight.core.logging import get_logger

logger = get_logger(__name__)

# Byte-order marks and the encodings they select
_BOMS: Tuple[Tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)

# Per-line fallback chain for buffers that are not valid UTF-8 as a whole
FALLBACK_ENCODINGS: Tuple[str, ...] = ("utf-8", "cp1252", "iso8859_2", "iso8859_3")


def sniff_bom(data: bytes) -> Tuple[Optional[str], int]:
    """Return (encoding, bom_length) for a leading byte-order mark, or (None, 0)."""
    for bom, encoding in _BOMS:
        if data.startswith(bom):
            return encoding, len(bom)
    return None, 0


def decode_line(raw: bytes) -> str:
    """
    Decode one line of bytes with the fallback chain.

    The first encoding that decodes without errors wins. If none does, the
    line is decoded as UTF-8 with replacement characters.
    """
    for encoding in FALLBACK_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


def split_lines(text: str) -> List[str]:
    """
    Split text on ``\\n`` and ``\\r\\n`` only.

    A lone ``\\r`` stays inside the line. A final line without a trailing
    newline is kept; a trailing newline does not produce an empty last line.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _split_raw_lines(data: bytes) -> List[bytes]:
    if not data:
        return []
    lines = data.split(b"\n")
    if lines[-1] == b"":
        lines.pop()
    return [line[:-1] if line.endswith(b"\r") else line for line in lines]


class LogDecoder:
    """
    Turns raw bytes of unknown encoding into text lines.

    Features:
    - BOM detection (UTF-8, UTF-16LE, UTF-16BE)
    - Whole-buffer strict UTF-8 fast path
    - Per-line fallback through Windows-1252, ISO-8859-2 and ISO-8859-3
    - Lossy recovery when every candidate fails
    - Streaming variant with a hard line cap for very large files
    """

    def __init__(self, max_lines: Optional[int] = None) -> None:
        """
        Initialize decoder.

        Args:
            max_lines: Stop after this many lines (None for no cap)
        """
        self.max_lines = max_lines

    def decode(self, data: bytes) -> List[str]:
        """
        Decode an in-memory buffer into lines.

        Args:
            data: Raw file contents

        Returns:
            Lines with their terminators stripped. Empty input yields an empty list.
        """
        if not data:
            return []

        encoding, bom_length = sniff_bom(data)
        if encoding is not None:
            text = data[bom_length:].decode(encoding, errors="replace")
            lines = split_lines(text)
            logger.debug("bom_detected", encoding=encoding, lines=len(lines))
            return self._cap(lines)

        try:
            lines = split_lines(data.decode("utf-8"))
        except UnicodeDecodeError:
            raw_lines = _split_raw_lines(data)
            if self.max_lines is not None:
                raw_lines = raw_lines[: self.max_lines + 1]
            lines = [decode_line(raw) for raw in raw_lines]
            logger.info("fallback_decoding_used", lines=len(lines))

        return self._cap(lines)

    def decode_stream(self, stream: BinaryIO) -> List[str]:
        """
        Decode a binary stream line by line.

        Blank lines are kept so that line positions match the source file.
        Reading stops once ``max_lines`` lines have been collected and a
        warning event is emitted.

        Args:
            stream: Binary file object positioned at the start

        Returns:
            Decoded lines
        """
        head = stream.read(4)
        encoding, bom_length = sniff_bom(head)
        remainder = head[bom_length:]

        if encoding in ("utf-16-le", "utf-16-be"):
            text_stream = io.TextIOWrapper(
                io.BufferedReader(_Prefixed(remainder, stream)),
                encoding=encoding,
                errors="replace",
                newline="\n",
            )
            lines = (line.rstrip("\n").removesuffix("\r") for line in text_stream)
        else:
            lines = (
                decode_line(raw.removesuffix(b"\r"))
                for raw in _iter_raw_lines(remainder, stream)
            )

        return self._collect(lines)

    def _collect(self, lines: Iterable[str]) -> List[str]:
        collected: List[str] = []
        for line in lines:
            if self.max_lines is not None and len(collected) >= self.max_lines:
                logger.warning(
                    "line_limit_reached",
                    max_lines=self.max_lines,
                    message="Input truncated; remaining lines were not read",
                )
                break
            collected.append(line)
        return collected

    def _cap(self, lines: List[str]) -> List[str]:
        if self.max_lines is not None and len(lines) > self.max_lines:
            logger.warning(
                "line_limit_reached",
                max_lines=self.max_lines,
                total_lines=len(lines),
                message="Input truncated to line limit",
            )
            return lines[: self.max_lines]
        return lines


def _iter_raw_lines(prefix: bytes, stream: BinaryIO) -> Iterable[bytes]:
    """Yield ``\\n``-terminated byte lines, starting with bytes already read."""
    pending = prefix
    for chunk in iter(lambda: stream.read(64 * 1024), b""):
        pending += chunk
        *complete, pending = pending.split(b"\n")
        for line in complete:
            yield line
    if pending:
        yield pending


class _Prefixed(io.RawIOBase):
    """Raw stream that replays already consumed bytes before the rest of a stream."""

    def __init__(self, prefix: bytes, stream: BinaryIO) -> None:
        self._prefix = prefix
        self._stream = stream

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._prefix:
            size = min(len(buffer), len(self._prefix))
            buffer[:size] = self._prefix[:size]
            self._prefix = self._prefix[size:]
            return size
        data = self._stream.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)
