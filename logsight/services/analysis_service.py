"""End-to-end log analysis pipeline."""

import asyncio
import io
import time
import uuid
from functools import partial
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from logsight.core.config import Settings, get_settings
from logsight.core.error_handling import (
    AnalysisError,
    AnalysisTimeoutError,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    InternalError,
    InvalidInputError,
    NoMatchingEntriesError,
    breaker_name_for,
    get_breaker_registry,
)
from logsight.core.logging import bind_analysis_context, clear_analysis_context, get_logger
from logsight.monitoring.metrics import get_metrics_collector
from logsight.processing.analytics import AnalyticsEnhancer
from logsight.processing.classifier import ErrorClassifier
from logsight.processing.decoder import LogDecoder
from logsight.processing.dispatcher import AnalysisDispatcher, DispatcherConfig, ProgressCallback
from logsight.processing.level_filter import LevelFilter
from logsight.processing.parser import LogParser
from logsight.providers.base import LLMProvider, ModelInfo
from logsight.providers.registry import ProviderFactory, create_provider
from logsight.schemas.analysis_schemas import AnalysisReport
from logsight.schemas.log_schemas import LogEntry, LogLevel
from logsight.services.filesystem import FileSystem, LocalFileSystem

logger = get_logger(__name__)

MIN_TIMEOUT_SECONDS = 60
MAX_TIMEOUT_SECONDS = 1800

LineLoader = Callable[[], Awaitable[List[str]]]


def validate_timeout(timeout_seconds: Optional[float], default: float) -> float:
    """
    Resolve and bound-check the invocation timeout.

    Raises:
        InvalidInputError: If the timeout is outside [60, 1800] seconds
    """
    timeout = default if timeout_seconds is None else timeout_seconds
    if not MIN_TIMEOUT_SECONDS <= timeout <= MAX_TIMEOUT_SECONDS:
        raise InvalidInputError(
            f"timeout_seconds must be between {MIN_TIMEOUT_SECONDS} and "
            f"{MAX_TIMEOUT_SECONDS}, got {timeout:g}"
        )
    return float(timeout)


async def run_with_timeout(operation: Awaitable[Any], timeout_seconds: float) -> Any:
    """
    Await an operation under the invocation timeout.

    In-flight work, including provider calls, is cancelled on expiry.

    Raises:
        AnalysisTimeoutError: If the operation did not finish in time
    """
    try:
        return await asyncio.wait_for(operation, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise AnalysisTimeoutError(f"Analysis timed out after {timeout_seconds:g} seconds") from e


class AnalysisService:
    """
    Runs decode, parse, filter, dispatch and analytics for one log source.

    Concurrent invocations share only the breaker registry and the pooled
    HTTP client behind the providers.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        filesystem: Optional[FileSystem] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> None:
        """
        Initialize service.

        Args:
            settings: Application settings
            filesystem: File access (local disk by default)
            provider_factory: Builds a provider from (name, api_key, model)
        """
        self.settings = settings or get_settings()
        self.filesystem = filesystem or LocalFileSystem()
        self.provider_factory = provider_factory or partial(create_provider, settings=self.settings)
        self.parser = LogParser()
        self.classifier = ErrorClassifier()
        self.analytics = AnalyticsEnhancer(self.classifier)
        self.metrics = get_metrics_collector()

    async def analyze(
        self,
        file_path: str,
        min_level: str,
        provider_name: str,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        user_context: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> AnalysisReport:
        """
        Analyse a log file.

        Args:
            file_path: Path of the log file
            min_level: Minimum level to keep (TRACE..FATAL, aliases accepted)
            provider_name: Provider from the provider table
            api_key: Overrides the configured provider key
            model: Overrides the provider's default model
            user_context: The problem the user is investigating
            timeout_seconds: Invocation timeout in [60, 1800] seconds
            breakers: Breaker registry (process-global by default)
            progress_callback: Receives dispatcher progress updates

        Returns:
            Analysis report

        Raises:
            InvalidInputError: Bad level, timeout or provider
            LogIOError: File missing or unreadable
            NoMatchingEntriesError: Nothing left after filtering
            AnalysisTimeoutError: Invocation timeout expired
            AnalysisError: Provider and breaker errors
        """

        async def load() -> List[str]:
            return await self._read_lines(file_path)

        return await self._analyze(
            load,
            source=file_path,
            min_level=min_level,
            provider_name=provider_name,
            api_key=api_key,
            model=model,
            user_context=user_context,
            timeout_seconds=timeout_seconds,
            breakers=breakers,
            progress_callback=progress_callback,
        )

    async def analyze_bytes(
        self,
        data: bytes,
        min_level: str,
        provider_name: str,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        user_context: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> AnalysisReport:
        """
        Analyse an in-memory log buffer; same contract as ``analyze``.
        """

        async def load() -> List[str]:
            return await asyncio.to_thread(self._decode_buffer, data)

        return await self._analyze(
            load,
            source="<buffer>",
            min_level=min_level,
            provider_name=provider_name,
            api_key=api_key,
            model=model,
            user_context=user_context,
            timeout_seconds=timeout_seconds,
            breakers=breakers,
            progress_callback=progress_callback,
        )

    async def _analyze(
        self,
        load: LineLoader,
        source: str,
        min_level: str,
        provider_name: str,
        api_key: Optional[str],
        model: Optional[str],
        user_context: Optional[str],
        timeout_seconds: Optional[float],
        breakers: Optional[CircuitBreakerRegistry],
        progress_callback: Optional[ProgressCallback],
    ) -> AnalysisReport:
        timeout = validate_timeout(timeout_seconds, self.settings.analysis_timeout_seconds)
        level = LogLevel.parse(min_level)
        provider = self.provider_factory(provider_name, api_key=api_key, model=model)

        analysis_id = str(uuid.uuid4())
        bind_analysis_context(analysis_id, provider=provider.name)
        start = time.perf_counter()

        logger.info(
            "analysis_started",
            source=source,
            min_level=level.name,
            model=provider.model,
            timeout_seconds=timeout,
        )

        try:
            report = await run_with_timeout(
                self._run_pipeline(
                    load,
                    analysis_id=analysis_id,
                    level=level,
                    provider=provider,
                    user_context=user_context,
                    breakers=breakers or get_breaker_registry(),
                    progress_callback=progress_callback,
                    start=start,
                ),
                timeout,
            )
        except AnalysisError as e:
            duration = time.perf_counter() - start
            self.metrics.record_analysis("unknown", e.code.lower(), duration)
            logger.error(
                "analysis_failed",
                error_code=e.code,
                error=e.user_message,
                duration_seconds=round(duration, 3),
            )
            raise
        except Exception as e:
            duration = time.perf_counter() - start
            self.metrics.record_analysis("unknown", "internal", duration)
            logger.error("analysis_failed_unexpectedly", error=str(e), exc_info=True)
            raise InternalError(f"Unexpected failure during analysis: {e}") from e
        finally:
            await provider.close()
            clear_analysis_context()

        self.metrics.record_analysis(report.strategy.value, "success", report.elapsed_seconds)
        logger.info(
            "analysis_completed",
            analysis_id=analysis_id,
            strategy=report.strategy.value,
            chunks=report.chunk_count,
            confidence=report.confidence,
            duration_seconds=report.elapsed_seconds,
        )
        return report

    async def _run_pipeline(
        self,
        load: LineLoader,
        analysis_id: str,
        level: LogLevel,
        provider: LLMProvider,
        user_context: Optional[str],
        breakers: CircuitBreakerRegistry,
        progress_callback: Optional[ProgressCallback],
        start: float,
    ) -> AnalysisReport:
        lines = await load()
        self.metrics.record_lines_decoded(len(lines))
        if not lines:
            raise NoMatchingEntriesError("No log lines found in input")

        entries, filtered = await asyncio.to_thread(self._parse_and_filter, lines, level)
        self.metrics.record_entries_filtered(len(filtered))
        if not filtered:
            raise NoMatchingEntriesError(f"No log entries at or above {level.name}")

        breaker = await breakers.get_or_create(
            breaker_name_for(provider.name),
            CircuitBreakerConfig.for_provider(
                self.settings.provider_timeout_seconds,
                failure_threshold=self.settings.breaker_failure_threshold,
                success_threshold=self.settings.breaker_success_threshold,
                reset_timeout_seconds=self.settings.breaker_reset_timeout_seconds,
                min_timeout_seconds=self.settings.breaker_min_timeout_seconds,
            ),
        )
        dispatcher = AnalysisDispatcher(
            provider,
            breaker=breaker,
            config=DispatcherConfig.from_settings(self.settings),
            classifier=self.classifier,
        )
        result = await dispatcher.analyze(filtered, user_context, progress_callback)

        analytics = None
        if self.settings.enable_analytics:
            analytics = self.analytics.enhance(filtered, time.perf_counter() - start)

        return AnalysisReport(
            **result.response.model_dump(),
            analysis_id=analysis_id,
            provider=provider.name,
            model=provider.model,
            strategy=result.strategy,
            total_lines=len(lines),
            parsed_entries=len(entries),
            filtered_entries=len(filtered),
            slimmed_entries=result.slimmed_entries,
            chunk_count=result.chunk_count,
            priority_entries=result.priority_entries,
            elapsed_seconds=round(time.perf_counter() - start, 3),
            analytics=analytics,
        )

    async def list_models(
        self, provider_name: str, api_key: Optional[str] = None
    ) -> List[ModelInfo]:
        """
        List models offered by a provider.

        Raises:
            InvalidInputError: Unknown provider or missing API key
            AnalysisError: Mapped provider errors
        """
        provider = self.provider_factory(provider_name, api_key=api_key, model=None)
        try:
            return await provider.list_models()
        finally:
            await provider.close()

    async def _read_lines(self, file_path: str) -> List[str]:
        """Decode a file, streaming it with the line cap when it is large."""
        metadata = await self.filesystem.metadata(file_path)

        if metadata.size_bytes > self.settings.large_file_threshold_bytes:
            logger.info(
                "large_file_streaming",
                size_bytes=metadata.size_bytes,
                max_lines=self.settings.max_lines,
            )
            lines = await asyncio.to_thread(self._decode_streaming, file_path)
        else:
            data = await self.filesystem.read_bytes(file_path)
            lines = await asyncio.to_thread(LogDecoder().decode, data)

        return lines

    def _decode_streaming(self, file_path: str) -> List[str]:
        decoder = LogDecoder(max_lines=self.settings.max_lines)
        with self.filesystem.open_binary(file_path) as stream:
            return decoder.decode_stream(stream)

    def _decode_buffer(self, data: bytes) -> List[str]:
        """Decode an uploaded buffer, applying the line cap when it is large."""
        if len(data) > self.settings.large_file_threshold_bytes:
            logger.info(
                "large_buffer_streaming",
                size_bytes=len(data),
                max_lines=self.settings.max_lines,
            )
            decoder = LogDecoder(max_lines=self.settings.max_lines)
            return decoder.decode_stream(io.BytesIO(data))
        return LogDecoder().decode(data)

    def _parse_and_filter(
        self, lines: List[str], level: LogLevel
    ) -> Tuple[List[LogEntry], List[LogEntry]]:
        entries = self.parser.parse_lines(lines)
        return entries, LevelFilter(level).filter(entries)


# Global service instance for the HTTP surface
_analysis_service: Optional[AnalysisService] = None


def get_analysis_service() -> AnalysisService:
    """Get the process-wide analysis service."""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
