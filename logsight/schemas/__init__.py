"""Pydantic schemas for pipeline data and API responses."""

from logsight.schemas.analysis_schemas import (
    AnalysisAnalytics,
    AnalysisEntry,
    AnalysisFocus,
    AnalysisProgress,
    AnalysisRequest,
    AnalysisReport,
    AnalysisResponse,
    AnomalyAnalysis,
    CategoryKind,
    ContextMeta,
    ContextPayload,
    ErrorAnalysis,
    ErrorCategory,
    ErrorClassification,
    LogChunk,
    PatternAnalysis,
    PerformanceAnalysis,
    ProcessingStrategy,
    RootCauseAnalysis,
    Severity,
)
from logsight.schemas.api_schemas import (
    CircuitBreakersResponse,
    CircuitBreakerStatus,
    HealthResponse,
)
from logsight.schemas.log_schemas import LogEntry, LogLevel, SlimmingMode

__all__ = [
    "AnalysisAnalytics",
    "AnalysisEntry",
    "AnalysisFocus",
    "AnalysisProgress",
    "AnalysisRequest",
    "AnalysisReport",
    "AnalysisResponse",
    "AnomalyAnalysis",
    "CategoryKind",
    "CircuitBreakerStatus",
    "CircuitBreakersResponse",
    "ContextMeta",
    "ContextPayload",
    "ErrorAnalysis",
    "ErrorCategory",
    "ErrorClassification",
    "HealthResponse",
    "LogChunk",
    "LogEntry",
    "LogLevel",
    "PatternAnalysis",
    "PerformanceAnalysis",
    "ProcessingStrategy",
    "RootCauseAnalysis",
    "Severity",
    "SlimmingMode",
]
