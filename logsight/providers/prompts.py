"""System and user prompt generation for log analysis requests."""

from typing import Dict, List, Optional

from logsight.schemas.analysis_schemas import AnalysisEntry, AnalysisFocus, ContextPayload

DEFAULT_MAX_CONTEXT_ENTRIES = 100

LEVEL_GLYPHS: Dict[str, str] = {
    "FATAL": "💀",
    "ERROR": "❌",
    "WARN": "⚠️",
    "INFO": "ℹ️",
    "DEBUG": "🔍",
    "TRACE": "🔎",
    "SUMMARY": "📊",
}
CONTINUATION_GLYPH = "↳"

BASE_PROMPT = """You are an expert log analysis AI specializing in root cause identification and error discrimination. Your primary goal is to identify WHAT caused the failure or error, distinguishing between different types of issues.

CORE PRINCIPLES:
1. Focus on ROOT CAUSE identification, not just symptoms
2. Distinguish between code errors, infrastructure issues, configuration problems, and external service failures
3. Provide actionable insights for developers and system administrators
4. Be precise about confidence levels and uncertainty"""

FOCUS_PROMPTS: Dict[AnalysisFocus, str] = {
    AnalysisFocus.ROOT_CAUSE: """ANALYSIS FOCUS: ROOT CAUSE IDENTIFICATION
- Trace the sequence of events that led to the failure
- Identify the specific component, file, function, or configuration that caused the issue
- Distinguish between triggering events and underlying causes
- Look for cascade failures and their origins""",
    AnalysisFocus.PERFORMANCE: """ANALYSIS FOCUS: PERFORMANCE ISSUES
- Identify slow operations and resource exhaustion (memory, CPU, disk, network)
- Analyze timing patterns and latency issues
- Point out inefficient queries or algorithms""",
    AnalysisFocus.SECURITY: """ANALYSIS FOCUS: SECURITY ANALYSIS
- Identify authentication and authorization failures
- Look for suspicious access patterns or attacks
- Flag permission problems and access control issues""",
    AnalysisFocus.GENERAL: """ANALYSIS FOCUS: GENERAL ERROR ANALYSIS
- Provide a comprehensive analysis across all error types
- Identify correlations between different issues
- Concentrate on the most severe and impactful errors""",
}

DISCRIMINATION_PROMPT = """ERROR TYPE DISCRIMINATION RULES:

1. CODE-RELATED: stack traces, exceptions, null references, type errors, failed assertions, missing modules
2. INFRASTRUCTURE-RELATED: database and connection pool problems, network timeouts, refused connections, DNS failures, disk or memory exhaustion, certificate problems
3. CONFIGURATION-RELATED: missing environment variables or config files, invalid values, parse errors in YAML/JSON
4. EXTERNAL SERVICE: HTTP 4xx/5xx from third parties, provider outages, rate limiting

Reference line numbers and specific error patterns. Say so if more context is needed."""

FORMAT_PROMPT = """OUTPUT STRUCTURE REQUIREMENTS:

Respond with a single JSON object in exactly this format:
{
  "sequence_of_events": "Step-by-step description of what happened",
  "root_cause": {
    "category": {"InfrastructureRelated": {"component": "database|network|filesystem|memory", "severity": "Critical|High|Medium|Low", "service": "optional"}}
      OR {"CodeRelated": {"file": "optional", "function": "optional", "line": 123, "exception_type": "optional"}}
      OR {"ConfigurationRelated": {"config_file": "optional", "missing_setting": "optional", "invalid_value": "optional"}}
      OR {"ExternalServiceRelated": {"service": "name", "endpoint": "optional", "status_code": 500}}
      OR "UnknownRelated",
    "description": "Specific description of the root cause",
    "file_location": "optional",
    "line_number": 123,
    "function_name": "optional",
    "confidence": 0.0
  },
  "recommendations": ["Specific actionable recommendation"],
  "confidence": 0.0,
  "related_errors": ["Error messages related to the main issue"],
  "unrelated_errors": ["Error messages unrelated to the main issue"]
}

If you cannot produce JSON, use these markdown sections instead:
## Executive Summary
## Critical Issues
## Recommendations
## Root Cause

If you cannot determine the root cause with high confidence, say so and explain why."""


def build_system_prompt(
    user_context: Optional[str] = None,
    focus: AnalysisFocus = AnalysisFocus.ROOT_CAUSE,
) -> str:
    """
    Assemble the system prompt.

    Args:
        user_context: The problem the user reported, if any
        focus: Analysis focus

    Returns:
        Base, focus, user-context, discrimination and format sections
    """
    if user_context:
        context_prompt = (
            f"USER CONTEXT: {user_context}\n\n"
            "IMPORTANT: Focus your analysis on issues related to this user-reported problem. "
            "Prioritize errors that could explain or contribute to it."
        )
    else:
        context_prompt = (
            "USER CONTEXT: No specific context provided.\n\n"
            "Analyze all errors with equal priority, focusing on the most severe and impactful issues."
        )

    return "\n\n".join(
        [BASE_PROMPT, FOCUS_PROMPTS[focus], context_prompt, DISCRIMINATION_PROMPT, FORMAT_PROMPT]
    )


def select_entries(entries: List[AnalysisEntry], limit: int) -> List[AnalysisEntry]:
    """
    Reduce entries to at most ``limit``.

    A third of the budget goes to errors, a third to warnings and a third to
    the most recent other entries; unused budget is filled in payload order.
    The selection is returned in time order, continuation lines kept with
    the entry they belong to.
    """
    if len(entries) <= limit:
        return list(entries)

    third = limit // 3
    errors = [e for e in entries if e.log_entry.level in ("ERROR", "FATAL")]
    warnings = [e for e in entries if e.log_entry.level == "WARN"]
    others = [e for e in entries if e.log_entry.level not in ("ERROR", "FATAL", "WARN")]

    selected = errors[:third] + warnings[:third] + (others[-third:] if third else [])
    chosen = {id(e) for e in selected}
    for entry in entries:
        if len(selected) >= limit:
            break
        if id(entry) not in chosen:
            selected.append(entry)
            chosen.add(id(entry))

    _sort_by_owner_timestamp(selected)
    return selected


def _sort_by_owner_timestamp(selected: List[AnalysisEntry]) -> None:
    """
    Sort entries by time, keeping continuation lines behind their head.

    A continuation takes the timestamp of the nearest leveled entry before it
    in source order. Untimed groups go last; ties keep source order.
    """
    source_order = sorted(selected, key=lambda e: e.log_entry.line_number or 0)
    keys = {}
    owner_timestamp: Optional[str] = None
    for position, entry in enumerate(source_order):
        if not entry.log_entry.is_continuation:
            owner_timestamp = entry.log_entry.timestamp
        keys[id(entry)] = (owner_timestamp is None, owner_timestamp or "", position)
    selected.sort(key=lambda e: keys[id(e)])


def format_entry(index: int, entry: AnalysisEntry) -> str:
    """Render one entry as a numbered line."""
    log = entry.log_entry
    glyph = LEVEL_GLYPHS.get(log.level or "", CONTINUATION_GLYPH)
    parts = [f"{index}. {glyph}"]
    if log.timestamp:
        parts.append(f"[{log.timestamp}]")
    if log.level:
        parts.append(log.level)
    location = f"line {log.line_number}" if log.line_number else "line ?"
    parts.append(
        f"({location}, score {entry.relevance_score:.2f}, {entry.classification.category.label}):"
    )
    parts.append(log.message)
    return " ".join(parts)


def build_user_prompt(
    payload: ContextPayload,
    max_context_entries: int = DEFAULT_MAX_CONTEXT_ENTRIES,
) -> str:
    """
    Render the payload as the user message.

    Args:
        payload: Context payload
        max_context_entries: Entry budget before smart selection applies

    Returns:
        Prompt text
    """
    priority_ids = {id(e) for e in payload.priority_entries}
    selected = select_entries(payload.entries, max_context_entries)

    lines = ["LOG ENTRIES (P = priority, R = related):"]
    for index, entry in enumerate(selected, start=1):
        bucket = "P" if id(entry) in priority_ids else "R"
        lines.append(f"[{bucket}] {format_entry(index, entry)}")
    if not selected:
        lines.append("(none)")

    if payload.unrelated_summary:
        lines.append("")
        lines.append("UNRELATED ERRORS SUMMARY:")
        lines.append(payload.unrelated_summary.rstrip("\n"))

    meta = payload.context_meta
    lines.extend(
        [
            "",
            "CONTEXT METADATA:",
            f"- Total entries analyzed: {meta.total_entries_analyzed}",
            f"- Priority entries: {meta.priority_count}",
            f"- Related entries: {meta.related_count}",
            f"- Entries shown: {len(selected)}",
            f"- Estimated tokens: {meta.estimated_tokens}",
            f"- Analysis truncated: {meta.truncated}",
        ]
    )
    return "\n".join(lines)
