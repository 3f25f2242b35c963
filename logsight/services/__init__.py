"""Pipeline services."""

from logsight.services.analysis_service import AnalysisService, get_analysis_service
from logsight.services.filesystem import FileMetadata, FileSystem, LocalFileSystem

__all__ = [
    "AnalysisService",
    "FileMetadata",
    "FileSystem",
    "LocalFileSystem",
    "get_analysis_service",
]
