"""Filesystem access used by the analysis pipeline."""

import asyncio
from pathlib import Path
from typing import BinaryIO, Protocol

from pydantic import BaseModel

from logsight.core.error_handling import LogIOError


class FileMetadata(BaseModel):
    """What the pipeline needs to know about a file before reading it."""

    path: str
    size_bytes: int


class FileSystem(Protocol):
    """Minimal read-only filesystem interface."""

    async def metadata(self, path: str) -> FileMetadata:
        ...

    async def read_bytes(self, path: str) -> bytes:
        ...

    def open_binary(self, path: str) -> BinaryIO:
        ...


class LocalFileSystem:
    """Local disk access; blocking calls run in a worker thread."""

    async def metadata(self, path: str) -> FileMetadata:
        """
        Stat a file.

        Raises:
            LogIOError: If the path does not exist or is not a regular file
        """
        return await asyncio.to_thread(self._metadata, path)

    async def read_bytes(self, path: str) -> bytes:
        """
        Read a whole file.

        Raises:
            LogIOError: If the file cannot be read
        """
        try:
            return await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            raise LogIOError(f"Failed to read log file '{path}': {e}") from e

    def open_binary(self, path: str) -> BinaryIO:
        """Open a file for streaming reads (caller closes it)."""
        try:
            return open(path, "rb")
        except OSError as e:
            raise LogIOError(f"Failed to open log file '{path}': {e}") from e

    @staticmethod
    def _metadata(path: str) -> FileMetadata:
        file_path = Path(path)
        if not file_path.exists():
            raise LogIOError(f"Log file not found: {path}")
        if not file_path.is_file():
            raise LogIOError(f"Not a regular file: {path}")
        try:
            size = file_path.stat().st_size
        except OSError as e:
            raise LogIOError(f"Failed to stat log file '{path}': {e}") from e
        return FileMetadata(path=str(file_path), size_bytes=size)
