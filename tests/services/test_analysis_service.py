"""End-to-end tests for the analysis pipeline."""

import asyncio
import json
import threading

import httpx
import pytest
import respx

from logsight.core.config import Settings
from logsight.core.error_handling import (
    AnalysisTimeoutError,
    CircuitOpenError,
    CircuitState,
    InternalError,
    InvalidInputError,
    LogIOError,
    NoMatchingEntriesError,
    ProviderServerError,
    breaker_name_for,
)
from logsight.processing.slimmer import LogSlimmer
from logsight.providers.registry import create_provider
from logsight.schemas.analysis_schemas import ProcessingStrategy
from logsight.schemas.log_schemas import SlimmingMode
from logsight.services.analysis_service import (
    AnalysisService,
    run_with_timeout,
    validate_timeout,
)
from tests.conftest import StubProvider

OPENROUTER_COMPLETIONS = "https://openrouter.ai/api/v1/chat/completions"

ANALYSIS = {
    "sequence_of_events": "Worker pool crashed",
    "root_cause": {"category": "UnknownRelated", "description": "Bad deploy", "confidence": 0.6},
    "recommendations": ["Roll back the deploy"],
    "confidence": 0.6,
}


def letters(number: int) -> str:
    return "".join(chr(ord("k") + int(d)) for d in f"{number:04d}")


def completion():
    return httpx.Response(
        200,
        json={
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 0,
            "model": "x-ai/grok-4-fast:free",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": json.dumps(ANALYSIS)},
                    "finish_reason": "stop",
                }
            ],
        },
    )


def error_response(status):
    return httpx.Response(status, json={"error": {"message": f"status {status}"}})


@pytest.fixture
async def http_service(settings):
    """Service whose providers talk HTTP to a mocked OpenRouter."""
    async with httpx.AsyncClient() as client:

        def factory(name, api_key=None, model=None):
            return create_provider(name, api_key=api_key, model=model, http_client=client, settings=settings)

        yield AnalysisService(settings=settings, provider_factory=factory)


async def test_empty_file_has_no_matching_entries(analysis_service, write_log, breaker_registry):
    path = write_log(b"")

    with pytest.raises(NoMatchingEntriesError):
        await analysis_service.analyze(path, "ERROR", "stub", breakers=breaker_registry)


async def test_info_lines_below_min_level(analysis_service, write_log, breaker_registry, stub_provider):
    path = write_log([f"2024-01-20T10:00:0{i}Z INFO request {i} served" for i in range(5)])

    with pytest.raises(NoMatchingEntriesError):
        await analysis_service.analyze(path, "ERROR", "stub", breakers=breaker_registry)

    assert stub_provider.requests == []
    assert stub_provider.closed


async def test_single_error_line(analysis_service, write_log, breaker_registry, stub_provider):
    path = write_log(["2024-01-20T10:30:45.123Z ERROR [main] Database connection failed"])

    report = await analysis_service.analyze(path, "ERROR", "stub", breakers=breaker_registry)

    assert report.strategy == ProcessingStrategy.SINGLE
    assert report.chunk_count == 1
    assert report.priority_entries == 1
    assert report.total_lines == 1
    assert report.filtered_entries == 1
    assert report.provider == "stub"
    assert report.model == "stub-model"
    assert report.recommendations == ["Increase the connection pool size"]
    assert report.analytics.errors_found[0].description == "Database connection failed"
    assert len(stub_provider.requests) == 1
    breaker = breaker_registry.get(breaker_name_for("stub"))
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


async def test_large_mixed_log_is_chunked(analysis_service, write_log, breaker_registry, stub_provider):
    lines = []
    for i in range(50_000):
        level = "ERROR" if i % 2 == 0 else "INFO"
        code = letters(i % 5000)
        lines.append(
            f"2024-01-20T10:00:00Z {level} Worker {code} failed to process job queue {code}"
        )
    path = write_log(lines)

    report = await analysis_service.analyze(path, "ERROR", "stub", breakers=breaker_registry)

    assert report.strategy == ProcessingStrategy.CHUNKED
    assert report.chunk_count >= 2
    assert report.total_lines == 50_000
    assert report.filtered_entries == 25_000
    assert report.slimmed_entries == 2500
    assert len(stub_provider.requests) == report.chunk_count
    for request in stub_provider.requests:
        assert request.payload.context_meta.estimated_tokens <= 8000
    assert "Chunk 1:" in report.sequence_of_events
    assert "Chunk 2:" in report.sequence_of_events


@respx.mock
async def test_rate_limit_retries_are_masked_from_breaker(http_service, write_log, breaker_registry):
    route = respx.post(OPENROUTER_COMPLETIONS).mock(
        side_effect=[error_response(429), error_response(429), error_response(429), completion()]
    )
    path = write_log(["2024-01-20T10:00:00Z ERROR Worker pool crashed"])

    report = await http_service.analyze(path, "ERROR", "openrouter", breakers=breaker_registry)

    assert route.call_count == 4
    assert report.recommendations == ["Roll back the deploy"]
    assert report.provider == "openrouter"
    breaker = breaker_registry.get(breaker_name_for("openrouter"))
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


@respx.mock
async def test_server_errors_trip_breaker_after_three_analyses(http_service, write_log, breaker_registry):
    route = respx.post(OPENROUTER_COMPLETIONS).mock(return_value=error_response(500))
    path = write_log(["2024-01-20T10:00:00Z ERROR Worker pool crashed"])

    with pytest.raises(ProviderServerError):
        await http_service.analyze(path, "ERROR", "openrouter", breakers=breaker_registry)

    breaker = breaker_registry.get(breaker_name_for("openrouter"))
    assert route.call_count == 4
    assert breaker.failure_count == 1

    for _ in range(2):
        with pytest.raises(ProviderServerError):
            await http_service.analyze(path, "ERROR", "openrouter", breakers=breaker_registry)

    assert breaker.state == CircuitState.OPEN
    assert route.call_count == 12

    with pytest.raises(CircuitOpenError) as exc_info:
        await http_service.analyze(path, "ERROR", "openrouter", breakers=breaker_registry)

    assert exc_info.value.provider == "openrouter"
    assert route.call_count == 12


async def test_missing_file_is_io_error(analysis_service, tmp_path, breaker_registry):
    with pytest.raises(LogIOError):
        await analysis_service.analyze(
            str(tmp_path / "missing.log"), "ERROR", "stub", breakers=breaker_registry
        )


async def test_directory_is_io_error(analysis_service, tmp_path, breaker_registry):
    with pytest.raises(LogIOError):
        await analysis_service.analyze(str(tmp_path), "ERROR", "stub", breakers=breaker_registry)


async def test_invalid_level_is_rejected(analysis_service, write_log, breaker_registry):
    path = write_log(["ERROR boom"])

    with pytest.raises(InvalidInputError):
        await analysis_service.analyze(path, "LOUD", "stub", breakers=breaker_registry)


@pytest.mark.parametrize("timeout", [10, 59, 1801])
async def test_out_of_range_timeout_is_rejected(analysis_service, write_log, breaker_registry, timeout):
    path = write_log(["ERROR boom"])

    with pytest.raises(InvalidInputError):
        await analysis_service.analyze(
            path, "ERROR", "stub", timeout_seconds=timeout, breakers=breaker_registry
        )


def test_validate_timeout_uses_default():
    assert validate_timeout(None, 300) == 300.0
    assert validate_timeout(60, 300) == 60.0


async def test_run_with_timeout_raises_timeout_error():
    with pytest.raises(AnalysisTimeoutError, match="timed out after 0.01 seconds"):
        await run_with_timeout(asyncio.sleep(1), 0.01)


async def test_unexpected_errors_are_wrapped(settings, write_log, breaker_registry):
    provider = StubProvider(error=RuntimeError("bug in adapter"))
    service = AnalysisService(settings=settings, provider_factory=lambda *a, **kw: provider)
    path = write_log(["ERROR boom"])

    with pytest.raises(InternalError, match="bug in adapter"):
        await service.analyze(path, "ERROR", "stub", breakers=breaker_registry)

    assert provider.closed


async def test_large_files_are_streamed_with_line_cap(write_log, breaker_registry, stub_provider):
    settings = Settings(_env_file=None, large_file_threshold_bytes=10, max_lines=5)
    service = AnalysisService(settings=settings, provider_factory=lambda *a, **kw: stub_provider)
    path = write_log([f"ERROR failure number {i}" for i in range(20)])

    report = await service.analyze(path, "ERROR", "stub", breakers=breaker_registry)

    assert report.total_lines == 5
    assert report.filtered_entries == 5


async def test_large_buffers_are_capped_at_max_lines(breaker_registry, stub_provider):
    settings = Settings(_env_file=None, large_file_threshold_bytes=10, max_lines=5)
    service = AnalysisService(settings=settings, provider_factory=lambda *a, **kw: stub_provider)
    data = "".join(f"ERROR failure number {i}\n" for i in range(20)).encode("utf-8")

    report = await service.analyze_bytes(data, "ERROR", "stub", breakers=breaker_registry)

    assert report.total_lines == 5
    assert report.filtered_entries == 5


async def test_small_buffers_are_not_capped(breaker_registry, stub_provider):
    settings = Settings(_env_file=None, max_lines=5)
    service = AnalysisService(settings=settings, provider_factory=lambda *a, **kw: stub_provider)
    data = "".join(f"ERROR failure number {i}\n" for i in range(20)).encode("utf-8")

    report = await service.analyze_bytes(data, "ERROR", "stub", breakers=breaker_registry)

    assert report.total_lines == 20


async def test_parsing_and_slimming_run_off_the_event_loop(
    analysis_service, breaker_registry, monkeypatch
):
    loop_thread = threading.get_ident()
    threads = {}
    parse_lines = analysis_service.parser.parse_lines
    slim = LogSlimmer.slim

    def recording_parse(lines):
        threads["parse"] = threading.get_ident()
        return parse_lines(lines)

    def recording_slim(self, entries, mode=SlimmingMode.LIGHT):
        threads["slim"] = threading.get_ident()
        return slim(self, entries, mode)

    monkeypatch.setattr(analysis_service.parser, "parse_lines", recording_parse)
    monkeypatch.setattr(LogSlimmer, "slim", recording_slim)

    await analysis_service.analyze_bytes(b"ERROR boom\n", "ERROR", "stub", breakers=breaker_registry)

    assert threads["parse"] != loop_thread
    assert threads["slim"] != loop_thread


async def test_analyze_bytes(analysis_service, breaker_registry, stub_provider):
    data = b"2024-01-20T10:00:00Z WARN disk 91% full\n2024-01-20T10:00:01Z ERROR disk full\n"

    report = await analysis_service.analyze_bytes(
        data, "WARN", "stub", user_context="disk", breakers=breaker_registry
    )

    assert report.filtered_entries == 2
    assert stub_provider.requests[0].user_context == "disk"
    assert stub_provider.closed


async def test_progress_callback_receives_updates(analysis_service, write_log, breaker_registry):
    path = write_log(["ERROR boom"])
    phases = []

    await analysis_service.analyze(
        path,
        "ERROR",
        "stub",
        breakers=breaker_registry,
        progress_callback=lambda progress: phases.append(progress.phase),
    )

    assert phases[-1] == "Analysis complete"


async def test_list_models(analysis_service):
    models = await analysis_service.list_models("stub")

    assert [m.id for m in models] == ["stub-model"]
