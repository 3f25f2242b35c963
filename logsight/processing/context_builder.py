"""Bucketed, token-bounded context assembly for a single provider request."""

from typing import Dict, List, Optional

from logsight.core.logging import get_logger
from logsight.processing.classifier import ErrorClassifier, RelevanceScorer
from logsight.schemas.analysis_schemas import AnalysisEntry, ContextMeta, ContextPayload
from logsight.schemas.log_schemas import LogEntry

logger = get_logger(__name__)

PRIORITY_THRESHOLD = 0.7
RELATED_THRESHOLD = 0.4


def estimate_tokens(message: str) -> int:
    """Rough token count: four characters per token."""
    return len(message) // 4


def _entry_tokens(entry: AnalysisEntry) -> int:
    return estimate_tokens(entry.log_entry.message)


class ContextBuilder:
    """
    Sorts entries into priority, related and unrelated buckets by relevance
    and assembles a payload that stays within a token budget.

    Priority entries keep their insertion order; related entries are sent
    best-first; unrelated entries are only counted per category.
    """

    def __init__(
        self,
        max_tokens: int,
        user_context: Optional[str] = None,
        classifier: Optional[ErrorClassifier] = None,
    ) -> None:
        """
        Initialize builder.

        Args:
            max_tokens: Token budget for the payload
            user_context: Free text from the user, used for keyword overlap
            classifier: Classifier to reuse (a new one is created otherwise)
        """
        self.max_tokens = max_tokens
        self.classifier = classifier or ErrorClassifier()
        self.scorer = RelevanceScorer(user_context)

        self.priority_entries: List[AnalysisEntry] = []
        self.related_entries: List[AnalysisEntry] = []
        self.unrelated_entries: List[AnalysisEntry] = []
        self.total_entries = 0
        self.current_tokens = 0
        self.truncated = False

    def add_entry(self, entry: LogEntry, position: int, total_entries: int) -> AnalysisEntry:
        """
        Classify, score and bucket one entry.

        Args:
            entry: Entry to add
            position: 0-based index of the entry in the sequence being analysed
            total_entries: Length of that sequence

        Returns:
            The scored entry
        """
        classification = self.classifier.classify(entry.message)
        score = self.scorer.score(entry, classification, position, total_entries)
        analysis_entry = AnalysisEntry(
            log_entry=entry,
            classification=classification,
            relevance_score=score,
        )

        self.total_entries += 1
        if score >= PRIORITY_THRESHOLD:
            self.priority_entries.append(analysis_entry)
        elif score >= RELATED_THRESHOLD:
            self.related_entries.append(analysis_entry)
        else:
            self.unrelated_entries.append(analysis_entry)
            return analysis_entry

        self.current_tokens += _entry_tokens(analysis_entry)
        if self.current_tokens > self.max_tokens:
            self._trim_to_fit()

        return analysis_entry

    def add_entries(self, entries: List[LogEntry]) -> None:
        """Add a whole sequence, using each entry's index as its position."""
        total = len(entries)
        for position, entry in enumerate(entries):
            self.add_entry(entry, position, total)

    def build_payload(self) -> ContextPayload:
        """
        Assemble the payload.

        The unrelated summary is reserved first. Priority entries are then
        added in insertion order and related entries by descending score,
        each only while it fits the remaining budget.

        Returns:
            Payload whose estimated token count never exceeds ``max_tokens``
        """
        truncated = self.truncated

        summary = self._unrelated_summary()
        summary_tokens = estimate_tokens(summary) if summary else 0
        if summary_tokens > self.max_tokens:
            summary = None
            summary_tokens = 0
            truncated = True

        budget = self.max_tokens - summary_tokens
        used = 0

        priority: List[AnalysisEntry] = []
        for entry in self.priority_entries:
            tokens = _entry_tokens(entry)
            if used + tokens > budget:
                truncated = True
                continue
            priority.append(entry)
            used += tokens

        related: List[AnalysisEntry] = []
        for entry in sorted(self.related_entries, key=lambda e: e.relevance_score, reverse=True):
            tokens = _entry_tokens(entry)
            if used + tokens > budget:
                truncated = True
                continue
            related.append(entry)
            used += tokens

        payload = ContextPayload(
            priority_entries=priority,
            related_entries=related,
            unrelated_summary=summary,
        )
        payload.context_meta = ContextMeta(
            total_entries_analyzed=self.total_entries,
            priority_count=len(priority),
            related_count=len(related),
            unrelated_count=len(self.unrelated_entries),
            estimated_tokens=payload.estimated_tokens(),
            max_tokens=self.max_tokens,
            truncated=truncated,
        )

        logger.debug(
            "context_payload_built",
            priority=len(priority),
            related=len(related),
            unrelated=len(self.unrelated_entries),
            estimated_tokens=payload.context_meta.estimated_tokens,
            truncated=truncated,
        )
        return payload

    def stats(self) -> Dict[str, int]:
        """Bucket sizes and running token count."""
        return {
            "total_entries": self.total_entries,
            "priority_entries": len(self.priority_entries),
            "related_entries": len(self.related_entries),
            "unrelated_entries": len(self.unrelated_entries),
            "current_tokens": self.current_tokens,
            "max_tokens": self.max_tokens,
        }

    def _trim_to_fit(self) -> None:
        """Keep the highest scoring priority, then related, entries that fit."""
        kept_priority = set()
        used = 0
        for index in sorted(
            range(len(self.priority_entries)),
            key=lambda i: self.priority_entries[i].relevance_score,
            reverse=True,
        ):
            tokens = _entry_tokens(self.priority_entries[index])
            if used + tokens <= self.max_tokens:
                kept_priority.add(index)
                used += tokens

        related: List[AnalysisEntry] = []
        for entry in sorted(self.related_entries, key=lambda e: e.relevance_score, reverse=True):
            tokens = _entry_tokens(entry)
            if used + tokens <= self.max_tokens:
                related.append(entry)
                used += tokens

        dropped = len(self.priority_entries) - len(kept_priority)
        dropped += len(self.related_entries) - len(related)

        self.priority_entries = [
            entry for index, entry in enumerate(self.priority_entries) if index in kept_priority
        ]
        self.related_entries = related
        self.current_tokens = used
        if dropped:
            self.truncated = True
            logger.debug("context_trimmed", dropped_entries=dropped, current_tokens=used)

    def _unrelated_summary(self) -> Optional[str]:
        if not self.unrelated_entries:
            return None

        counts: Dict[str, int] = {}
        for entry in self.unrelated_entries:
            label = entry.classification.category.label
            counts[label] = counts.get(label, 0) + 1

        summary = f"Additional {len(self.unrelated_entries)} unrelated log entries found:\n"
        for label, count in counts.items():
            summary += f"- {label}: {count} entries\n"
        return summary
