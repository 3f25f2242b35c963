"""Pydantic schemas for classification, context payloads, and analysis reports."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from logsight.schemas.log_schemas import LogEntry


class Severity(str, Enum):
    """Infrastructure error severity."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class CategoryKind(str, Enum):
    """Top-level error category."""

    CODE = "CodeRelated"
    INFRASTRUCTURE = "InfrastructureRelated"
    CONFIGURATION = "ConfigurationRelated"
    EXTERNAL_SERVICE = "ExternalServiceRelated"
    UNKNOWN = "UnknownRelated"


class ErrorCategory(BaseModel):
    """
    Tagged error category.

    Only the fields relevant to ``kind`` are populated: infrastructure errors
    carry a component and severity, code errors may carry a file/line/function,
    and so on.
    """

    kind: CategoryKind = CategoryKind.UNKNOWN
    component: Optional[str] = None
    severity: Optional[Severity] = None
    service: Optional[str] = None
    file: Optional[str] = None
    function: Optional[str] = None
    line: Optional[int] = None
    exception_type: Optional[str] = None
    config_file: Optional[str] = None
    missing_setting: Optional[str] = None
    invalid_value: Optional[str] = None
    endpoint: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def unknown(cls) -> "ErrorCategory":
        return cls(kind=CategoryKind.UNKNOWN)

    @classmethod
    def infrastructure(cls, component: str, severity: Severity) -> "ErrorCategory":
        return cls(kind=CategoryKind.INFRASTRUCTURE, component=component, severity=severity)

    @classmethod
    def code(cls, exception_type: Optional[str] = None) -> "ErrorCategory":
        return cls(kind=CategoryKind.CODE, exception_type=exception_type)

    @classmethod
    def from_tagged(cls, value: Any) -> "ErrorCategory":
        """
        Build a category from the externally tagged form LLMs are asked to emit.

        Accepts ``"UnknownRelated"``, ``{"InfrastructureRelated": {...}}`` or an
        already flat ``{"kind": ...}`` mapping. Anything unrecognised becomes Unknown.
        """
        if isinstance(value, ErrorCategory):
            return value
        if isinstance(value, str):
            try:
                return cls(kind=CategoryKind(value))
            except ValueError:
                return cls.unknown()
        if isinstance(value, dict):
            if "kind" in value:
                try:
                    return cls.model_validate(value)
                except ValueError:
                    return cls.unknown()
            for tag, fields in value.items():
                try:
                    kind = CategoryKind(tag)
                except ValueError:
                    continue
                data = dict(fields) if isinstance(fields, dict) else {}
                if data.get("severity") not in {s.value for s in Severity}:
                    data.pop("severity", None)
                known = {k: v for k, v in data.items() if k in cls.model_fields}
                try:
                    return cls(kind=kind, **known)
                except ValueError:
                    return cls(kind=kind)
        return cls.unknown()

    @property
    def label(self) -> str:
        """Short human-readable name used in summaries."""
        if self.kind == CategoryKind.INFRASTRUCTURE:
            return self.component or "Infrastructure"
        return {
            CategoryKind.CODE: "Code",
            CategoryKind.CONFIGURATION: "Configuration",
            CategoryKind.EXTERNAL_SERVICE: "External Service",
            CategoryKind.UNKNOWN: "Unknown",
        }[self.kind]


class ErrorClassification(BaseModel):
    """Category assigned to a message plus how sure the classifier is."""

    category: ErrorCategory
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    patterns_matched: List[str] = Field(default_factory=list)


class AnalysisEntry(BaseModel):
    """An entry selected for the LLM together with why it was selected."""

    log_entry: LogEntry
    classification: ErrorClassification
    relevance_score: float


class ContextMeta(BaseModel):
    """Header describing what a context payload contains."""

    total_entries_analyzed: int = 0
    priority_count: int = 0
    related_count: int = 0
    unrelated_count: int = 0
    estimated_tokens: int = 0
    max_tokens: int = 0
    truncated: bool = False


class ContextPayload(BaseModel):
    """Bounded, bucket-ordered object submitted to the LLM."""

    priority_entries: List[AnalysisEntry] = Field(default_factory=list)
    related_entries: List[AnalysisEntry] = Field(default_factory=list)
    unrelated_summary: Optional[str] = None
    context_meta: ContextMeta = Field(default_factory=ContextMeta)

    @property
    def entries(self) -> List[AnalysisEntry]:
        """Priority then related entries, in payload order."""
        return self.priority_entries + self.related_entries

    def estimated_tokens(self) -> int:
        """Token estimate of everything that is sent verbatim (4 chars per token)."""
        tokens = sum(len(e.log_entry.message) // 4 for e in self.entries)
        if self.unrelated_summary:
            tokens += len(self.unrelated_summary) // 4
        return tokens


class LogChunk(BaseModel):
    """A slice of the slimmed entries sized to fit one provider request."""

    entries: List[LogEntry]
    chunk_id: int
    total_chunks: int = 0
    estimated_tokens: int = 0


class ProcessingStrategy(str, Enum):
    """How the dispatcher fits a request into the provider context."""

    SINGLE = "single"
    AGGRESSIVE_SLIMMING = "aggressive_slimming"
    CHUNKED = "chunked"


class AnalysisFocus(str, Enum):
    """What the system prompt asks the model to concentrate on."""

    ROOT_CAUSE = "root_cause"
    PERFORMANCE = "performance"
    SECURITY = "security"
    GENERAL = "general"


class AnalysisProgress(BaseModel):
    """Progress notification emitted by the dispatcher."""

    current_chunk: int
    total_chunks: int
    chunks_completed: int
    estimated_tokens_processed: int
    phase: str


class RootCauseAnalysis(BaseModel):
    """Root cause as reported by the model."""

    category: ErrorCategory = Field(default_factory=ErrorCategory.unknown)
    description: str = ""
    file_location: Optional[str] = None
    line_number: Optional[int] = None
    function_name: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, v: Any) -> ErrorCategory:
        """Accept the externally tagged category form."""
        return ErrorCategory.from_tagged(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp model-reported confidence into [0, 1]."""
        try:
            return min(max(float(v), 0.0), 1.0)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("line_number", mode="before")
    @classmethod
    def parse_line_number(cls, v: Any) -> Optional[int]:
        """Drop line numbers the model could not express as an integer."""
        if v is None:
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None


class ErrorAnalysis(BaseModel):
    """Frequency rollup of one error message group."""

    category: str
    description: str
    line_numbers: List[int] = Field(default_factory=list)
    frequency: int
    severity: str


class PatternAnalysis(BaseModel):
    """Frequency rollup of one message prefix pattern."""

    pattern: str
    frequency: int
    first_occurrence: Optional[str] = None
    last_occurrence: Optional[str] = None
    trend: str


class PerformanceAnalysis(BaseModel):
    """Rate-based rollup over all analysed entries."""

    total_processing_time: float = 0.0
    bottlenecks: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    metrics: Dict[str, float] = Field(default_factory=dict)


class AnomalyAnalysis(BaseModel):
    """An entry that stands out from the rest."""

    description: str
    confidence: float
    line_numbers: List[int] = Field(default_factory=list)
    anomaly_type: str


class AnalysisAnalytics(BaseModel):
    """Post-hoc rollups computed without the LLM."""

    errors_found: List[ErrorAnalysis] = Field(default_factory=list)
    patterns: List[PatternAnalysis] = Field(default_factory=list)
    performance: Optional[PerformanceAnalysis] = None
    anomalies: List[AnomalyAnalysis] = Field(default_factory=list)


class AnalysisResponse(BaseModel):
    """Structured answer produced for one context payload (or a synthesis of several)."""

    sequence_of_events: str = ""
    root_cause: RootCauseAnalysis = Field(default_factory=RootCauseAnalysis)
    recommendations: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    related_errors: List[str] = Field(default_factory=list)
    unrelated_errors: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp model-reported confidence into [0, 1]."""
        try:
            return min(max(float(v), 0.0), 1.0)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("recommendations", "related_errors", "unrelated_errors", mode="before")
    @classmethod
    def coerce_string_list(cls, v: Any) -> List[str]:
        """Models sometimes answer with a single string or objects instead of strings."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return [item if isinstance(item, str) else str(item) for item in v]


class AnalysisReport(AnalysisResponse):
    """Final pipeline output returned to callers."""

    analysis_id: str
    provider: str
    model: Optional[str] = None
    strategy: ProcessingStrategy
    total_lines: int = 0
    parsed_entries: int = 0
    filtered_entries: int = 0
    slimmed_entries: int = 0
    chunk_count: int = 1
    priority_entries: int = 0
    elapsed_seconds: float = 0.0
    analytics: Optional[AnalysisAnalytics] = None


class AnalysisRequest(BaseModel):
    """Everything a provider needs to analyse one context payload."""

    payload: ContextPayload
    user_context: Optional[str] = None
    focus: AnalysisFocus = AnalysisFocus.ROOT_CAUSE
