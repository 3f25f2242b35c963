"""Strategy selection, chunking and synthesis for provider requests."""

import asyncio
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from logsight.core.config import Settings, get_settings
from logsight.core.error_handling import CircuitBreaker
from logsight.core.logging import get_logger
from logsight.monitoring.metrics import get_metrics_collector
from logsight.processing.classifier import ErrorClassifier
from logsight.processing.context_builder import ContextBuilder
from logsight.processing.slimmer import LogSlimmer
from logsight.providers.base import LLMProvider
from logsight.schemas.analysis_schemas import (
    AnalysisFocus,
    AnalysisProgress,
    AnalysisRequest,
    AnalysisResponse,
    ContextPayload,
    LogChunk,
    ProcessingStrategy,
    RootCauseAnalysis,
)
from logsight.schemas.log_schemas import LogEntry, SlimmingMode

logger = get_logger(__name__)

EMPTY_INPUT_MESSAGE = "No log entries provided for analysis."
EMPTY_INPUT_RECOMMENDATION = "Provide log entries for analysis"

ProgressCallback = Callable[[AnalysisProgress], None]


def estimate_entry_tokens(entry: LogEntry) -> int:
    """Per-entry token estimate including timestamp, level and framing overhead."""
    return (
        len(entry.message) // 4
        + len(entry.timestamp or "") // 4
        + len(entry.level or "") // 4
        + 5
    )


def estimate_tokens(entries: List[LogEntry]) -> int:
    """Token estimate for a list of entries."""
    return sum(estimate_entry_tokens(entry) for entry in entries)


class DispatcherConfig(BaseModel):
    """Knobs for strategy selection and chunking."""

    max_tokens_per_chunk: int = Field(default=8000, gt=0)
    chunking_threshold: int = Field(default=1000, gt=0)
    slimming_mode: SlimmingMode = SlimmingMode.AGGRESSIVE
    max_parallel_chunks: int = Field(default=4, ge=1)
    focus: AnalysisFocus = AnalysisFocus.ROOT_CAUSE

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DispatcherConfig":
        settings = settings or get_settings()
        return cls(
            max_tokens_per_chunk=settings.max_tokens_per_chunk,
            chunking_threshold=settings.chunking_threshold,
            slimming_mode=SlimmingMode(settings.slimming_mode),
            max_parallel_chunks=settings.max_parallel_chunks,
        )


class DispatchResult(BaseModel):
    """Provider answer plus what the dispatcher did to get it."""

    response: AnalysisResponse
    strategy: ProcessingStrategy
    chunk_count: int = 0
    slimmed_entries: int = 0
    priority_entries: int = 0


class AnalysisDispatcher:
    """
    Fits filtered entries into the provider's context window.

    - single: light slimming, one request
    - aggressive_slimming: the configured (stronger) slimming, one request
    - chunked: slimming, then token-bounded chunks analysed one after another
      and merged into a single response

    Every provider call goes through the circuit breaker when one is given.
    """

    def __init__(
        self,
        provider: LLMProvider,
        breaker: Optional[CircuitBreaker] = None,
        config: Optional[DispatcherConfig] = None,
        slimmer: Optional[LogSlimmer] = None,
        classifier: Optional[ErrorClassifier] = None,
    ) -> None:
        """
        Initialize dispatcher.

        Args:
            provider: LLM provider adapter
            breaker: Circuit breaker for the provider
            config: Strategy and chunking settings
            slimmer: Slimmer to use (a new one is created otherwise)
            classifier: Classifier shared with the slimmer and context builders
        """
        self.provider = provider
        self.breaker = breaker
        self.config = config or DispatcherConfig.from_settings()
        self.classifier = classifier or ErrorClassifier()
        self.slimmer = slimmer or LogSlimmer(self.classifier)
        self._progress_callback: Optional[ProgressCallback] = None
        self._metrics = get_metrics_collector()

    def select_strategy(self, entries: List[LogEntry]) -> ProcessingStrategy:
        """
        Pick a strategy from entry count and estimated tokens.

        Args:
            entries: Filtered entries

        Returns:
            Processing strategy
        """
        tokens = estimate_tokens(entries)
        max_tokens = self.config.max_tokens_per_chunk

        if len(entries) <= self.config.chunking_threshold and tokens <= max_tokens:
            return ProcessingStrategy.SINGLE
        if tokens <= max_tokens * 2:
            return ProcessingStrategy.AGGRESSIVE_SLIMMING
        return ProcessingStrategy.CHUNKED

    def create_chunks(self, entries: List[LogEntry]) -> List[LogChunk]:
        """
        Greedily pack entries into chunks of at most ``max_tokens_per_chunk``.

        An entry larger than the budget on its own becomes a single-entry chunk.

        Args:
            entries: Slimmed entries

        Returns:
            Chunks covering every entry exactly once, in order
        """
        max_tokens = self.config.max_tokens_per_chunk
        chunks: List[LogChunk] = []
        current: List[LogEntry] = []
        current_tokens = 0

        for entry in entries:
            tokens = estimate_entry_tokens(entry)
            if current and current_tokens + tokens > max_tokens:
                chunks.append(
                    LogChunk(entries=current, chunk_id=len(chunks), estimated_tokens=current_tokens)
                )
                current = []
                current_tokens = 0
            current.append(entry)
            current_tokens += tokens

        if current:
            chunks.append(
                LogChunk(entries=current, chunk_id=len(chunks), estimated_tokens=current_tokens)
            )

        for chunk in chunks:
            chunk.total_chunks = len(chunks)
        return chunks

    async def analyze(
        self,
        entries: List[LogEntry],
        user_context: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DispatchResult:
        """
        Analyse filtered entries with the selected strategy.

        Args:
            entries: Filtered entries in source order
            user_context: Free text from the user
            progress_callback: Called with progress updates

        Returns:
            Dispatch result

        Raises:
            AnalysisError: Provider and breaker errors propagate unchanged
        """
        self._progress_callback = progress_callback

        if not entries:
            return DispatchResult(
                response=AnalysisResponse(
                    sequence_of_events=EMPTY_INPUT_MESSAGE,
                    recommendations=[EMPTY_INPUT_RECOMMENDATION],
                ),
                strategy=ProcessingStrategy.SINGLE,
            )

        strategy = self.select_strategy(entries)
        logger.info(
            "processing_strategy_selected",
            strategy=strategy.value,
            entries=len(entries),
            estimated_tokens=estimate_tokens(entries),
            max_tokens_per_chunk=self.config.max_tokens_per_chunk,
        )

        if strategy == ProcessingStrategy.SINGLE:
            return await self._process_single(entries, user_context)
        if strategy == ProcessingStrategy.AGGRESSIVE_SLIMMING:
            return await self._process_aggressive(entries, user_context)
        return await self._process_chunked(entries, user_context)

    async def _process_single(
        self,
        entries: List[LogEntry],
        user_context: Optional[str],
    ) -> DispatchResult:
        self._report_progress(0, 1, 0, 0, "Preparing analysis")

        slimmed = await asyncio.to_thread(self.slimmer.slim, entries, SlimmingMode.LIGHT)
        payload = self._build_payload(slimmed, user_context)

        self._report_progress(0, 1, 0, 0, "Sending to AI provider")
        response = await self._call_provider(payload, user_context)
        self._report_progress(1, 1, 1, payload.context_meta.estimated_tokens, "Analysis complete")

        return DispatchResult(
            response=response,
            strategy=ProcessingStrategy.SINGLE,
            chunk_count=1,
            slimmed_entries=len(slimmed),
            priority_entries=payload.context_meta.priority_count,
        )

    async def _process_aggressive(
        self,
        entries: List[LogEntry],
        user_context: Optional[str],
    ) -> DispatchResult:
        self._report_progress(0, 1, 0, 0, "Applying aggressive slimming")

        slimmed = await asyncio.to_thread(self.slimmer.slim, entries, self._strong_mode())
        logger.info(
            "aggressive_slimming_applied",
            original_entries=len(entries),
            slimmed_entries=len(slimmed),
        )

        payload = self._build_payload(slimmed, user_context)
        self._report_progress(0, 1, 0, 0, "Sending to AI provider")
        response = await self._call_provider(payload, user_context)
        self._report_progress(1, 1, 1, payload.context_meta.estimated_tokens, "Analysis complete")

        response.sequence_of_events = (
            "Note: Large log set processed with aggressive slimming. "
            f"Original {len(entries)} entries reduced to {len(slimmed)} entries.\n\n"
            + response.sequence_of_events
        )

        return DispatchResult(
            response=response,
            strategy=ProcessingStrategy.AGGRESSIVE_SLIMMING,
            chunk_count=1,
            slimmed_entries=len(slimmed),
            priority_entries=payload.context_meta.priority_count,
        )

    async def _process_chunked(
        self,
        entries: List[LogEntry],
        user_context: Optional[str],
    ) -> DispatchResult:
        self._report_progress(0, 0, 0, 0, "Slimming entries for chunking")

        slimmed = await asyncio.to_thread(self.slimmer.slim, entries, self._strong_mode())
        chunks = self.create_chunks(slimmed)
        total_chunks = len(chunks)

        logger.info(
            "chunked_processing_started",
            original_entries=len(entries),
            slimmed_entries=len(slimmed),
            chunks=total_chunks,
        )

        responses: List[AnalysisResponse] = []
        tokens_processed = 0
        priority_entries = 0

        for index, chunk in enumerate(chunks):
            self._report_progress(
                index + 1,
                total_chunks,
                index,
                tokens_processed,
                f"Processing chunk {index + 1} of {total_chunks}",
            )

            payload = self._build_payload(chunk.entries, user_context)
            response = await self._call_provider(payload, user_context)

            responses.append(response)
            tokens_processed += chunk.estimated_tokens
            priority_entries += payload.context_meta.priority_count
            self._metrics.record_chunk_processed()

            logger.debug(
                "chunk_processed",
                chunk_id=chunk.chunk_id,
                entries=len(chunk.entries),
                estimated_tokens=chunk.estimated_tokens,
            )

        self._report_progress(
            total_chunks, total_chunks, total_chunks, tokens_processed, "Synthesizing results"
        )
        combined = self.synthesize(responses, len(entries))
        self._report_progress(
            total_chunks, total_chunks, total_chunks, tokens_processed, "Analysis complete"
        )

        return DispatchResult(
            response=combined,
            strategy=ProcessingStrategy.CHUNKED,
            chunk_count=total_chunks,
            slimmed_entries=len(slimmed),
            priority_entries=priority_entries,
        )

    @staticmethod
    def synthesize(responses: List[AnalysisResponse], original_count: int) -> AnalysisResponse:
        """
        Merge per-chunk responses into one.

        Args:
            responses: One response per chunk, in chunk order
            original_count: Number of entries before slimming

        Returns:
            Combined response: sequences concatenated, the most confident root
            cause, de-duplicated recommendations and the mean confidence
        """
        if not responses:
            return AnalysisResponse(
                sequence_of_events=EMPTY_INPUT_MESSAGE,
                recommendations=[EMPTY_INPUT_RECOMMENDATION],
            )

        sections = [
            f"Chunk {index}: {response.sequence_of_events}"
            for index, response in enumerate(responses, start=1)
            if response.sequence_of_events
        ]
        sequence = (
            f"Large log analysis across {len(responses)} chunks (original {original_count} entries):\n\n"
            + "\n\n".join(sections)
        )

        best = responses[0]
        for response in responses[1:]:
            if response.confidence > best.confidence:
                best = response

        recommendations: List[str] = []
        related: List[str] = []
        unrelated: List[str] = []
        for response in responses:
            for recommendation in response.recommendations:
                if recommendation not in recommendations:
                    recommendations.append(recommendation)
            related.extend(response.related_errors)
            unrelated.extend(response.unrelated_errors)

        return AnalysisResponse(
            sequence_of_events=sequence,
            root_cause=RootCauseAnalysis.model_validate(best.root_cause.model_dump()),
            recommendations=recommendations,
            confidence=sum(r.confidence for r in responses) / len(responses),
            related_errors=related,
            unrelated_errors=unrelated,
        )

    def _build_payload(self, entries: List[LogEntry], user_context: Optional[str]) -> ContextPayload:
        builder = ContextBuilder(
            self.config.max_tokens_per_chunk,
            user_context=user_context,
            classifier=self.classifier,
        )
        builder.add_entries(entries)
        return builder.build_payload()

    async def _call_provider(
        self,
        payload: ContextPayload,
        user_context: Optional[str],
    ) -> AnalysisResponse:
        request = AnalysisRequest(payload=payload, user_context=user_context, focus=self.config.focus)
        if self.breaker is None:
            return await self.provider.analyze(request)
        return await self.breaker.call(self.provider.analyze, request)

    def _strong_mode(self) -> SlimmingMode:
        """Configured slimming mode, but never weaker than aggressive."""
        if self.config.slimming_mode == SlimmingMode.LIGHT:
            return SlimmingMode.AGGRESSIVE
        return self.config.slimming_mode

    def _report_progress(
        self,
        current_chunk: int,
        total_chunks: int,
        chunks_completed: int,
        tokens_processed: int,
        phase: str,
    ) -> None:
        if self._progress_callback is None:
            return
        progress = AnalysisProgress(
            current_chunk=current_chunk,
            total_chunks=total_chunks,
            chunks_completed=chunks_completed,
            estimated_tokens_processed=tokens_processed,
            phase=phase,
        )
        try:
            self._progress_callback(progress)
        except Exception as e:
            logger.warning("progress_callback_failed", phase=phase, error=str(e))
