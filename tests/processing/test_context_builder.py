"""Tests for context payload assembly."""

from logsight.processing.context_builder import ContextBuilder, estimate_tokens
from logsight.schemas.log_schemas import LogEntry


def test_estimate_tokens():
    assert estimate_tokens("x" * 40) == 10
    assert estimate_tokens("abc") == 0


def test_entries_are_bucketed_by_score():
    builder = ContextBuilder(max_tokens=1000)

    priority = builder.add_entry(LogEntry(level="ERROR", message="Database connection failed"), 0, 10)
    related = builder.add_entry(LogEntry(level="WARN", message="Odd thing A"), 5, 10)
    unrelated = builder.add_entry(LogEntry(level="INFO", message="Something odd happened"), 9, 10)

    assert priority.relevance_score >= 0.7
    assert 0.4 <= related.relevance_score < 0.7
    assert unrelated.relevance_score < 0.4
    assert builder.stats() == {
        "total_entries": 3,
        "priority_entries": 1,
        "related_entries": 1,
        "unrelated_entries": 1,
        "current_tokens": len("Database connection failed") // 4 + len("Odd thing A") // 4,
        "max_tokens": 1000,
    }


def test_payload_orders_related_by_descending_score():
    builder = ContextBuilder(max_tokens=1000)
    builder.add_entry(LogEntry(level="WARN", message="Odd thing A"), 5, 10)
    builder.add_entry(LogEntry(level="WARN", message="Odd thing B"), 0, 10)

    payload = builder.build_payload()

    assert [e.log_entry.message for e in payload.related_entries] == ["Odd thing B", "Odd thing A"]
    assert payload.priority_entries == []


def test_priority_entries_keep_insertion_order():
    builder = ContextBuilder(max_tokens=1000)
    builder.add_entry(LogEntry(level="ERROR", message="Database connection failed"), 5, 10)
    builder.add_entry(LogEntry(level="ERROR", message="Permission denied for deploy"), 0, 10)

    payload = builder.build_payload()

    assert [e.log_entry.message for e in payload.priority_entries] == [
        "Database connection failed",
        "Permission denied for deploy",
    ]


def test_unrelated_entries_are_summarised_by_category():
    builder = ContextBuilder(max_tokens=1000)
    builder.add_entries(
        [LogEntry(level="ERROR", message="Database connection failed")]
        + [LogEntry(level="DEBUG", message=f"cache tick {i}") for i in range(3)]
    )

    payload = builder.build_payload()

    assert payload.unrelated_summary == (
        "Additional 3 unrelated log entries found:\n- Unknown: 3 entries\n"
    )
    assert payload.context_meta.unrelated_count == 3
    assert payload.context_meta.priority_count == 1
    assert payload.context_meta.total_entries_analyzed == 4


def test_payload_never_exceeds_token_budget():
    builder = ContextBuilder(max_tokens=1000)
    message = "Database failure " + "x" * 383
    builder.add_entries([LogEntry(level="ERROR", message=message) for _ in range(200)])

    payload = builder.build_payload()

    assert payload.context_meta.estimated_tokens <= 1000
    assert payload.context_meta.estimated_tokens == payload.estimated_tokens()
    assert payload.context_meta.truncated
    assert payload.context_meta.max_tokens == 1000
    assert len(payload.priority_entries) == 10


def test_summary_too_large_for_budget_is_dropped():
    builder = ContextBuilder(max_tokens=5)
    builder.add_entry(LogEntry(level="INFO", message="Something odd happened"), 9, 10)

    payload = builder.build_payload()

    assert payload.unrelated_summary is None
    assert payload.context_meta.truncated
    assert payload.context_meta.estimated_tokens == 0


def test_smaller_related_entry_still_fills_remaining_budget():
    builder = ContextBuilder(max_tokens=20)
    builder.add_entry(LogEntry(level="WARN", message="Odd " + "y" * 92), 0, 10)
    builder.add_entry(LogEntry(level="WARN", message="Odd " + "z" * 20), 5, 10)

    payload = builder.build_payload()

    assert [len(e.log_entry.message) for e in payload.related_entries] == [24]
    assert payload.context_meta.truncated
