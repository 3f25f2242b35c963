"""Error classification and relevance scoring."""

import re
from typing import Dict, List, Optional, Tuple

from logsight.schemas.analysis_schemas import (
    CategoryKind,
    ErrorCategory,
    ErrorClassification,
    Severity,
)
from logsight.schemas.log_schemas import LogEntry

KEYWORD_CONFIDENCE = 0.9
UNKNOWN_CONFIDENCE = 0.2

# (triggers, infrastructure component or None for code, fixed severity)
_CASCADE: Tuple[Tuple[Tuple[str, ...], Optional[str], Optional[Severity]], ...] = (
    (("database", "sql", "connection"), "database", None),
    (("timeout", "refused", "unreachable"), "network", None),
    (("out of memory", "heap"), "memory", Severity.CRITICAL),
    (("permission", "denied", "unauthorized"), "auth", None),
    (("no such file", "not found"), "fs", None),
    (("exception", "stacktrace", "traceback"), None, None),
)

EXCEPTION_TYPE_RE = re.compile(r"\b((?:[A-Za-z_]\w*\.)*[A-Z]\w*(?:Exception|Error))\b")


def determine_severity(message: str) -> Severity:
    """Severity from wording: critical/fatal/emergency, then error/fail, then warn."""
    lowered = message.lower()
    if "critical" in lowered or "fatal" in lowered or "emergency" in lowered:
        return Severity.CRITICAL
    if "error" in lowered or "fail" in lowered:
        return Severity.HIGH
    if "warn" in lowered:
        return Severity.MEDIUM
    return Severity.LOW


class ErrorClassifier:
    """Assigns a category to a message with a first-match keyword cascade."""

    def classify(self, message: str) -> ErrorClassification:
        """
        Classify a log message.

        Args:
            message: Message text

        Returns:
            Classification; deterministic for a given message
        """
        lowered = message.lower()

        for triggers, component, fixed_severity in _CASCADE:
            hit = next((t for t in triggers if t in lowered), None)
            if hit is None:
                continue

            if component is None:
                match = EXCEPTION_TYPE_RE.search(message)
                category = ErrorCategory.code(match.group(1) if match else None)
                reason = f"Code error keyword '{hit}' found"
            else:
                severity = fixed_severity or determine_severity(message)
                category = ErrorCategory.infrastructure(component, severity)
                reason = f"Infrastructure ({component}) keyword '{hit}' found"

            return ErrorClassification(
                category=category,
                confidence=KEYWORD_CONFIDENCE,
                reason=reason,
                patterns_matched=[hit],
            )

        return ErrorClassification(
            category=ErrorCategory.unknown(),
            confidence=UNKNOWN_CONFIDENCE,
            reason="No category keywords found",
        )


_SEVERITY_WEIGHTS: Dict[Severity, float] = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.8,
    Severity.MEDIUM: 0.6,
    Severity.LOW: 0.4,
}

_KIND_WEIGHTS: Dict[CategoryKind, float] = {
    CategoryKind.CODE: 0.9,
    CategoryKind.CONFIGURATION: 0.7,
    CategoryKind.EXTERNAL_SERVICE: 0.6,
    CategoryKind.UNKNOWN: 0.2,
}

_LEVEL_WEIGHTS: Dict[str, float] = {
    "fatal": 1.0,
    "error": 1.0,
    "exception": 0.9,
    "fail": 0.8,
    "warn": 0.6,
    "info": 0.3,
    "debug": 0.1,
}
DEFAULT_LEVEL_WEIGHT = 0.1

_CLUSTER_MARKERS = ("caused by", "at ", "stack trace", "nested exception")


def weight_for_category(category: ErrorCategory) -> float:
    """Importance of a category; infrastructure is weighted by severity."""
    if category.kind == CategoryKind.INFRASTRUCTURE:
        return _SEVERITY_WEIGHTS.get(category.severity, _SEVERITY_WEIGHTS[Severity.LOW])
    return _KIND_WEIGHTS[category.kind]


class RelevanceScorer:
    """
    Scores how relevant an entry is to the analysis, in [0, 1].

    score = 0.40 * confidence + 0.30 * category weight + 0.20 * keyword overlap
          + 0.20 * recency + 0.30 * level weight + 0.15 cluster bonus

    The weights add up to more than 1; the result is clamped so several strong
    signals saturate.
    """

    confidence_weight = 0.4
    category_weight = 0.3
    context_weight = 0.2
    recency_weight = 0.2
    severity_weight = 0.3
    cluster_bonus = 0.15

    def __init__(self, user_context: Optional[str] = None) -> None:
        self.user_context_keywords: List[str] = [
            word for word in (user_context or "").lower().split() if len(word) > 2
        ]

    def score(
        self,
        entry: LogEntry,
        classification: ErrorClassification,
        position: int,
        total_entries: int,
    ) -> float:
        """
        Score one entry.

        Args:
            entry: Entry being scored
            classification: Its classification
            position: 0-based index in the sequence being scored
            total_entries: Length of that sequence

        Returns:
            Relevance in [0, 1]
        """
        score = classification.confidence * self.confidence_weight
        score += weight_for_category(classification.category) * self.category_weight
        score += self._keyword_overlap(entry.message) * self.context_weight
        score += self._recency(position, total_entries) * self.recency_weight
        score += self._level_weight(entry.level) * self.severity_weight
        if self._is_clustered(entry.message):
            score += self.cluster_bonus
        return min(score, 1.0)

    def _keyword_overlap(self, message: str) -> float:
        """Fraction of user-context words that appear in the message."""
        if not self.user_context_keywords:
            return 0.0
        lowered = message.lower()
        matches = sum(1 for keyword in self.user_context_keywords if keyword in lowered)
        return matches / len(self.user_context_keywords)

    @staticmethod
    def _recency(position: int, total_entries: int) -> float:
        if total_entries <= 0:
            return 0.0
        return max(0.0, 1.0 - position / total_entries)

    @staticmethod
    def _level_weight(level: Optional[str]) -> float:
        if level is None:
            return DEFAULT_LEVEL_WEIGHT
        return _LEVEL_WEIGHTS.get(level.lower(), DEFAULT_LEVEL_WEIGHT)

    @staticmethod
    def _is_clustered(message: str) -> bool:
        """Message looks like part of a chained error or stack trace."""
        lowered = message.lower()
        return any(marker in lowered for marker in _CLUSTER_MARKERS)
