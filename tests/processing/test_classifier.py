"""Tests for error classification and relevance scoring."""

import pytest

from logsight.processing.classifier import (
    ErrorClassifier,
    RelevanceScorer,
    determine_severity,
    weight_for_category,
)
from logsight.schemas.analysis_schemas import CategoryKind, ErrorCategory, Severity
from logsight.schemas.log_schemas import LogEntry


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.mark.parametrize(
    "message,component",
    [
        ("Database connection failed", "database"),
        ("Request timeout after 30s", "network"),
        ("Connection refused by upstream", "database"),
        ("Out of memory while allocating buffer", "memory"),
        ("Permission denied for user deploy", "auth"),
        ("No such file or directory: config.yml", "fs"),
    ],
)
def test_infrastructure_keywords(classifier, message, component):
    result = classifier.classify(message)

    assert result.category.kind == CategoryKind.INFRASTRUCTURE
    assert result.category.component == component
    assert result.confidence == 0.9


def test_first_matching_rule_wins(classifier):
    # "connection" is a database trigger and is checked before "timeout"
    result = classifier.classify("connection timeout")

    assert result.category.component == "database"
    assert result.patterns_matched == ["connection"]


def test_severity_follows_wording(classifier):
    assert classifier.classify("Database connection failed").category.severity == Severity.HIGH
    assert classifier.classify("FATAL sql deadlock").category.severity == Severity.CRITICAL
    assert classifier.classify("sql slow query").category.severity == Severity.LOW


def test_memory_is_always_critical(classifier):
    result = classifier.classify("java heap space exhausted")

    assert result.category.severity == Severity.CRITICAL


def test_code_error_extracts_exception_type(classifier):
    result = classifier.classify("Unhandled exception: java.lang.NullPointerException in handler")

    assert result.category.kind == CategoryKind.CODE
    assert result.category.exception_type == "java.lang.NullPointerException"


def test_unmatched_message_is_unknown(classifier):
    result = classifier.classify("Something odd happened")

    assert result.category.kind == CategoryKind.UNKNOWN
    assert result.confidence == 0.2
    assert result.patterns_matched == []


def test_classification_is_deterministic(classifier):
    message = "Permission denied opening /etc/shadow"

    assert classifier.classify(message) == classifier.classify(message)


@pytest.mark.parametrize(
    "message,expected",
    [
        ("emergency shutdown", Severity.CRITICAL),
        ("request failed", Severity.HIGH),
        ("warning: slow", Severity.MEDIUM),
        ("all good", Severity.LOW),
    ],
)
def test_determine_severity(message, expected):
    assert determine_severity(message) == expected


def test_category_weights():
    assert weight_for_category(ErrorCategory.infrastructure("db", Severity.CRITICAL)) == 1.0
    assert weight_for_category(ErrorCategory.code()) == 0.9
    assert weight_for_category(ErrorCategory.unknown()) == 0.2


def test_recent_error_scores_as_priority(classifier):
    entry = LogEntry(level="ERROR", message="Database connection failed")
    scorer = RelevanceScorer()

    score = scorer.score(entry, classifier.classify(entry.message), 0, 10)

    assert score >= 0.7
    assert score <= 1.0


def test_old_info_noise_scores_low(classifier):
    entry = LogEntry(level="INFO", message="Something odd happened")
    scorer = RelevanceScorer()

    score = scorer.score(entry, classifier.classify(entry.message), 9, 10)

    assert score == pytest.approx(0.25)


def test_user_context_overlap_raises_score(classifier):
    entry = LogEntry(level="INFO", message="database pool exhausted")
    classification = classifier.classify(entry.message)

    plain = RelevanceScorer().score(entry, classification, 9, 10)
    focused = RelevanceScorer("database pool").score(entry, classification, 9, 10)

    assert plain == pytest.approx(0.59)
    assert focused == pytest.approx(0.79)


def test_short_context_words_are_ignored():
    assert RelevanceScorer("db is on fire").user_context_keywords == ["fire"]


def test_stack_trace_lines_get_cluster_bonus(classifier):
    entry = LogEntry(message="Caused by: java.io.IOException: broken pipe")
    scorer = RelevanceScorer()
    classification = classifier.classify(entry.message)

    with_bonus = scorer.score(entry, classification, 9, 10)
    without = scorer.score(entry.model_copy(update={"message": "broken pipe"}), classification, 9, 10)

    assert with_bonus - without == pytest.approx(0.15)
