"""Post-hoc rollups over filtered entries, computed without the LLM."""

from typing import Dict, List, Optional

from logsight.core.logging import get_logger
from logsight.processing.classifier import ErrorClassifier
from logsight.schemas.analysis_schemas import (
    AnalysisAnalytics,
    AnomalyAnalysis,
    ErrorAnalysis,
    PatternAnalysis,
    PerformanceAnalysis,
)
from logsight.schemas.log_schemas import LogEntry, LogLevel

logger = get_logger(__name__)

TOP_N = 10
ERROR_KEY_LENGTH = 100
PATTERN_WORDS = 5
HIGH_ERROR_RATE = 10.0
ANOMALY_LENGTH_FACTOR = 3.0
MAX_ANOMALIES = 20
MAX_LINE_NUMBERS = 50


def error_severity(frequency: int) -> str:
    if frequency > 10:
        return "critical"
    if frequency > 5:
        return "high"
    if frequency > 2:
        return "medium"
    return "low"


def pattern_trend(frequency: int) -> str:
    if frequency > 5:
        return "increasing"
    if frequency > 2:
        return "stable"
    return "decreasing"


class AnalyticsEnhancer:
    """
    Computes frequency, pattern, rate and anomaly rollups.

    These run over the filtered entries before slimming, so counts reflect
    the real volume rather than what was sent to the model.
    """

    def __init__(self, classifier: Optional[ErrorClassifier] = None) -> None:
        self.classifier = classifier or ErrorClassifier()

    def enhance(self, entries: List[LogEntry], processing_time: float = 0.0) -> AnalysisAnalytics:
        """
        Build all rollups.

        Args:
            entries: Filtered entries
            processing_time: Wall time spent so far, in seconds

        Returns:
            Analytics section of the report
        """
        analytics = AnalysisAnalytics(
            errors_found=self.top_errors(entries),
            patterns=self.top_patterns(entries),
            performance=self.performance(entries, processing_time),
            anomalies=self.anomalies(entries),
        )
        logger.debug(
            "analytics_computed",
            errors=len(analytics.errors_found),
            patterns=len(analytics.patterns),
            anomalies=len(analytics.anomalies),
        )
        return analytics

    def top_errors(self, entries: List[LogEntry]) -> List[ErrorAnalysis]:
        """Group ERROR and FATAL entries by message prefix, most frequent first."""
        groups: Dict[str, List[LogEntry]] = {}
        for entry in entries:
            level = entry.log_level
            if level is None or level < LogLevel.ERROR:
                continue
            groups.setdefault(entry.message[:ERROR_KEY_LENGTH], []).append(entry)

        ranked = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)[:TOP_N]
        return [
            ErrorAnalysis(
                category=self.classifier.classify(key).category.kind.value,
                description=key,
                line_numbers=[e.line_number for e in group if e.line_number][:MAX_LINE_NUMBERS],
                frequency=len(group),
                severity=error_severity(len(group)),
            )
            for key, group in ranked
        ]

    def top_patterns(self, entries: List[LogEntry]) -> List[PatternAnalysis]:
        """Group leveled entries by their first five words, most frequent first."""
        groups: Dict[str, List[LogEntry]] = {}
        for entry in entries:
            if entry.is_continuation:
                continue
            key = " ".join(entry.message.split()[:PATTERN_WORDS])
            if key:
                groups.setdefault(key, []).append(entry)

        ranked = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)[:TOP_N]
        patterns = []
        for key, group in ranked:
            timestamps = [e.timestamp for e in group if e.timestamp]
            patterns.append(
                PatternAnalysis(
                    pattern=key,
                    frequency=len(group),
                    first_occurrence=timestamps[0] if timestamps else None,
                    last_occurrence=timestamps[-1] if timestamps else None,
                    trend=pattern_trend(len(group)),
                )
            )
        return patterns

    def performance(self, entries: List[LogEntry], processing_time: float) -> PerformanceAnalysis:
        """Error and warning rates as percentages of all entries."""
        total = len(entries)
        errors = sum(1 for e in entries if e.log_level is not None and e.log_level >= LogLevel.ERROR)
        warnings = sum(1 for e in entries if e.log_level == LogLevel.WARN)

        error_rate = errors / total * 100 if total else 0.0
        warning_rate = warnings / total * 100 if total else 0.0

        bottlenecks: List[str] = []
        recommendations: List[str] = []
        if error_rate > HIGH_ERROR_RATE:
            bottlenecks.append(f"High error rate: {error_rate:.1f}%")
            recommendations.append("Investigate the most frequent errors to reduce the error rate")

        return PerformanceAnalysis(
            total_processing_time=processing_time,
            bottlenecks=bottlenecks,
            recommendations=recommendations,
            metrics={
                "total_entries": float(total),
                "error_rate": error_rate,
                "warning_rate": warning_rate,
            },
        )

    def anomalies(self, entries: List[LogEntry]) -> List[AnomalyAnalysis]:
        """Entries whose message is more than three times the mean length."""
        if not entries:
            return []

        mean_length = sum(len(e.message) for e in entries) / len(entries)
        if mean_length == 0:
            return []

        threshold = mean_length * ANOMALY_LENGTH_FACTOR
        found = []
        for entry in entries:
            length = len(entry.message)
            if length <= threshold:
                continue
            found.append(
                AnomalyAnalysis(
                    description=f"Unusually long message ({length} chars, mean {mean_length:.0f})",
                    confidence=min(1.0, length / threshold - 0.5),
                    line_numbers=[entry.line_number] if entry.line_number else [],
                    anomaly_type="unusual_length",
                )
            )
            if len(found) >= MAX_ANOMALIES:
                break
        return found
