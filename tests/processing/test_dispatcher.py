"""Tests for strategy selection, chunking and synthesis."""

from typing import List

import pytest

from logsight.core.error_handling import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    ProviderServerError,
)
from logsight.processing.dispatcher import (
    EMPTY_INPUT_MESSAGE,
    EMPTY_INPUT_RECOMMENDATION,
    AnalysisDispatcher,
    DispatcherConfig,
    estimate_entry_tokens,
)
from logsight.schemas.analysis_schemas import (
    AnalysisProgress,
    AnalysisResponse,
    ProcessingStrategy,
    RootCauseAnalysis,
)
from logsight.schemas.log_schemas import LogEntry
from tests.conftest import StubProvider


def letters(number: int) -> str:
    """Digits spelled as letters so pattern normalisation keeps entries apart."""
    return "".join(chr(ord("k") + int(d)) for d in f"{number:04d}")


def distinct_errors(count: int) -> List[LogEntry]:
    """ERROR entries with 40-character messages (16 estimated tokens each)."""
    return [
        LogEntry(level="ERROR", message=f"job {letters(i)} failed ".ljust(40, "x"))
        for i in range(count)
    ]


def numbered_errors(count: int) -> List[LogEntry]:
    """ERROR entries that differ only by a number and so share one pattern."""
    return [
        LogEntry(level="ERROR", message=f"job {i:04d} failed ".ljust(40, "x"))
        for i in range(count)
    ]


@pytest.fixture
def config() -> DispatcherConfig:
    return DispatcherConfig(max_tokens_per_chunk=100, chunking_threshold=10)


@pytest.fixture
def dispatcher(stub_provider, config) -> AnalysisDispatcher:
    return AnalysisDispatcher(stub_provider, config=config)


def test_entry_token_estimate():
    assert estimate_entry_tokens(distinct_errors(1)[0]) == 16
    assert estimate_entry_tokens(LogEntry(timestamp="2024-01-20T10:00:00Z", message="abcd")) == 1 + 5 + 5


@pytest.mark.parametrize(
    "count,expected",
    [
        (5, ProcessingStrategy.SINGLE),
        (6, ProcessingStrategy.SINGLE),
        (7, ProcessingStrategy.AGGRESSIVE_SLIMMING),
        (11, ProcessingStrategy.AGGRESSIVE_SLIMMING),
        (20, ProcessingStrategy.CHUNKED),
    ],
)
def test_select_strategy(dispatcher, count, expected):
    assert dispatcher.select_strategy(distinct_errors(count)) == expected


def test_entry_count_above_threshold_avoids_single():
    dispatcher = AnalysisDispatcher(
        StubProvider(), config=DispatcherConfig(max_tokens_per_chunk=1000, chunking_threshold=10)
    )

    assert dispatcher.select_strategy(distinct_errors(11)) == ProcessingStrategy.AGGRESSIVE_SLIMMING


def test_create_chunks_partitions_entries(dispatcher):
    entries = distinct_errors(50)

    chunks = dispatcher.create_chunks(entries)

    assert len(chunks) == 9
    assert [e for chunk in chunks for e in chunk.entries] == entries
    assert [chunk.chunk_id for chunk in chunks] == list(range(9))
    assert all(chunk.total_chunks == 9 for chunk in chunks)
    assert all(chunk.estimated_tokens <= 100 for chunk in chunks)


def test_oversized_entry_gets_its_own_chunk(dispatcher):
    small = distinct_errors(2)
    big = LogEntry(level="ERROR", message="y" * 1000)

    chunks = dispatcher.create_chunks([small[0], big, small[1]])

    assert [len(chunk.entries) for chunk in chunks] == [1, 1, 1]
    assert chunks[1].entries == [big]
    assert chunks[1].estimated_tokens > 100


async def test_empty_input_returns_placeholder_without_calling_provider(dispatcher, stub_provider):
    result = await dispatcher.analyze([])

    assert result.response.sequence_of_events == EMPTY_INPUT_MESSAGE
    assert result.response.recommendations == [EMPTY_INPUT_RECOMMENDATION]
    assert result.strategy == ProcessingStrategy.SINGLE
    assert stub_provider.requests == []


async def test_single_strategy_sends_one_request(dispatcher, stub_provider):
    result = await dispatcher.analyze(distinct_errors(3), user_context="nightly jobs")

    assert result.strategy == ProcessingStrategy.SINGLE
    assert result.chunk_count == 1
    assert len(stub_provider.requests) == 1
    request = stub_provider.requests[0]
    assert request.user_context == "nightly jobs"
    assert len(request.payload.entries) == 3
    assert result.response.recommendations == ["Increase the connection pool size"]


async def test_aggressive_strategy_prefixes_note(dispatcher, stub_provider):
    result = await dispatcher.analyze(numbered_errors(11))

    assert result.strategy == ProcessingStrategy.AGGRESSIVE_SLIMMING
    assert result.slimmed_entries == 1
    assert result.response.sequence_of_events.startswith(
        "Note: Large log set processed with aggressive slimming. "
        "Original 11 entries reduced to 1 entries."
    )
    sent = stub_provider.requests[0].payload.entries[0].log_entry.message
    assert sent.endswith("(pattern repeated 11 times)")


async def test_chunked_strategy_analyses_every_chunk(dispatcher, stub_provider):
    result = await dispatcher.analyze(distinct_errors(20))

    assert result.strategy == ProcessingStrategy.CHUNKED
    assert result.chunk_count == 4
    assert len(stub_provider.requests) == 4
    assert sum(len(r.payload.entries) for r in stub_provider.requests) == 20
    for request in stub_provider.requests:
        assert request.payload.context_meta.estimated_tokens <= 100

    sequence = result.response.sequence_of_events
    assert sequence.startswith("Large log analysis across 4 chunks (original 20 entries):")
    assert "Chunk 1:" in sequence
    assert "Chunk 4:" in sequence


async def test_failed_chunk_fails_the_analysis(config):
    provider = StubProvider(error=ProviderServerError("upstream down", status_code=502))
    dispatcher = AnalysisDispatcher(provider, config=config)

    with pytest.raises(ProviderServerError):
        await dispatcher.analyze(distinct_errors(20))

    assert len(provider.requests) == 1


async def test_progress_is_reported(dispatcher):
    updates: List[AnalysisProgress] = []

    await dispatcher.analyze(distinct_errors(2), progress_callback=updates.append)

    assert [u.phase for u in updates] == [
        "Preparing analysis",
        "Sending to AI provider",
        "Analysis complete",
    ]
    assert updates[-1].chunks_completed == 1


async def test_chunked_progress_counts_chunks(dispatcher):
    updates: List[AnalysisProgress] = []

    await dispatcher.analyze(distinct_errors(20), progress_callback=updates.append)

    chunk_updates = [u for u in updates if u.phase.startswith("Processing chunk")]
    assert [u.current_chunk for u in chunk_updates] == [1, 2, 3, 4]
    assert updates[-1].phase == "Analysis complete"
    assert updates[-1].chunks_completed == 4


async def test_failing_progress_callback_does_not_abort(dispatcher):
    def explode(progress):
        raise RuntimeError("listener gone")

    result = await dispatcher.analyze(distinct_errors(2), progress_callback=explode)

    assert result.strategy == ProcessingStrategy.SINGLE


async def test_provider_failures_trip_the_breaker(config):
    provider = StubProvider(error=ProviderServerError("boom", status_code=500))
    breaker = CircuitBreaker("ai_provider_stub", CircuitBreakerConfig(failure_threshold=2))
    dispatcher = AnalysisDispatcher(provider, breaker=breaker, config=config)

    for _ in range(2):
        with pytest.raises(ProviderServerError):
            await dispatcher.analyze(distinct_errors(1))

    assert breaker.state == CircuitState.OPEN

    with pytest.raises(CircuitOpenError) as exc_info:
        await dispatcher.analyze(distinct_errors(1))

    assert exc_info.value.provider == "stub"
    assert len(provider.requests) == 2


def _response(sequence: str, confidence: float, recommendations: List[str]) -> AnalysisResponse:
    return AnalysisResponse(
        sequence_of_events=sequence,
        root_cause=RootCauseAnalysis(description=f"cause of {sequence}", confidence=confidence),
        recommendations=recommendations,
        confidence=confidence,
        related_errors=[f"{sequence} related"],
    )


def test_synthesize_merges_chunk_responses():
    combined = AnalysisDispatcher.synthesize(
        [
            _response("first", 0.4, ["Restart the worker", "Check disk"]),
            _response("second", 0.9, ["Check disk", "Rotate logs"]),
        ],
        original_count=120,
    )

    assert combined.sequence_of_events == (
        "Large log analysis across 2 chunks (original 120 entries):\n\n"
        "Chunk 1: first\n\nChunk 2: second"
    )
    assert combined.root_cause.description == "cause of second"
    assert combined.recommendations == ["Restart the worker", "Check disk", "Rotate logs"]
    assert combined.confidence == pytest.approx(0.65)
    assert combined.related_errors == ["first related", "second related"]


def test_synthesize_keeps_first_root_cause_on_ties():
    combined = AnalysisDispatcher.synthesize(
        [_response("a", 0.5, []), _response("b", 0.5, [])], original_count=2
    )

    assert combined.root_cause.description == "cause of a"


def test_synthesize_nothing_returns_placeholder():
    combined = AnalysisDispatcher.synthesize([], original_count=0)

    assert combined.sequence_of_events == EMPTY_INPUT_MESSAGE
