"""Prometheus metrics collection."""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

from logsight.core.logging import get_logger

logger = get_logger(__name__)

_BREAKER_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class MetricsCollector:
    """Collects and exposes Prometheus metrics for the analysis pipeline."""

    def __init__(self) -> None:
        """Initialize metrics collectors."""
        # Pipeline metrics
        self.analyses_total = Counter(
            "logsight_analyses_total",
            "Analyses run, by processing strategy and outcome",
            ["strategy", "outcome"],
        )

        self.analysis_duration_seconds = Histogram(
            "logsight_analysis_duration_seconds",
            "Wall time of one pipeline invocation",
            buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0],
        )

        self.lines_decoded_total = Counter(
            "logsight_lines_decoded_total", "Lines produced by the decoder"
        )

        self.entries_filtered_total = Counter(
            "logsight_entries_filtered_total", "Entries kept by the level filter"
        )

        self.chunks_processed_total = Counter(
            "logsight_chunks_processed_total", "Chunks sent to a provider"
        )

        # Provider metrics
        self.provider_requests_total = Counter(
            "logsight_provider_requests_total",
            "Provider HTTP requests by provider and result",
            ["provider", "result"],
        )

        self.provider_request_duration_seconds = Histogram(
            "logsight_provider_request_duration_seconds",
            "Provider request latency",
            ["provider"],
            buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
        )

        # Circuit breaker metrics
        self.breaker_transitions_total = Counter(
            "logsight_breaker_transitions_total",
            "Circuit breaker state transitions",
            ["breaker", "state"],
        )

        self.breaker_state = Gauge(
            "logsight_breaker_state",
            "Circuit breaker state (0=closed, 1=half_open, 2=open)",
            ["breaker"],
        )

        # API metrics
        self.api_requests_total = Counter(
            "logsight_api_requests_total",
            "Total API requests",
            ["method", "endpoint", "status_code"],
        )

        logger.info("metrics_collector_initialized")

    def record_analysis(self, strategy: str, outcome: str, duration_seconds: float) -> None:
        """Record one finished analysis."""
        self.analyses_total.labels(strategy=strategy, outcome=outcome).inc()
        self.analysis_duration_seconds.observe(duration_seconds)

    def record_lines_decoded(self, count: int) -> None:
        """Record decoded line count."""
        self.lines_decoded_total.inc(count)

    def record_entries_filtered(self, count: int) -> None:
        """Record entries surviving the level filter."""
        self.entries_filtered_total.inc(count)

    def record_chunk_processed(self) -> None:
        """Record a chunk sent to a provider."""
        self.chunks_processed_total.inc()

    def record_provider_request(self, provider: str, result: str, duration_seconds: float) -> None:
        """Record a provider request attempt."""
        self.provider_requests_total.labels(provider=provider, result=result).inc()
        self.provider_request_duration_seconds.labels(provider=provider).observe(duration_seconds)

    def record_breaker_transition(self, breaker: str, state: str) -> None:
        """Record a circuit breaker transition."""
        self.breaker_transitions_total.labels(breaker=breaker, state=state).inc()
        self.breaker_state.labels(breaker=breaker).set(_BREAKER_STATE_VALUES.get(state, 0))

    def record_api_request(self, method: str, endpoint: str, status_code: int) -> None:
        """Record API request."""
        self.api_requests_total.labels(
            method=method, endpoint=endpoint, status_code=status_code
        ).inc()


# Global metrics collector instance
_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create global metrics collector."""
    global _metrics_collector

    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()

    return _metrics_collector


async def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
