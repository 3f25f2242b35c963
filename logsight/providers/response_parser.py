"""Turns free-form LLM output into a well-formed AnalysisResponse."""

import json
import re
from typing import Dict, List, Optional

from pydantic import ValidationError

from logsight.core.logging import get_logger
from logsight.schemas.analysis_schemas import AnalysisResponse, RootCauseAnalysis

logger = get_logger(__name__)

FALLBACK_RECOMMENDATION = "Review the AI analysis output for details"
FALLBACK_SEQUENCE = (
    "Analysis completed but the response was not structured. "
    "The AI provided natural language analysis."
)
SECTION_CONFIDENCE = 0.6
NATURAL_LANGUAGE_CONFIDENCE = 0.5

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_HEADER_RE = re.compile(r"^#{1,6}\s*(.+?)\s*#*$")
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s+")

_SECTIONS: Dict[str, str] = {
    "executive summary": "summary",
    "critical issues": "issues",
    "recommendations": "recommendations",
    "root cause": "root_cause",
}


def strip_code_fences(content: str) -> str:
    match = _FENCE_RE.match(content.strip())
    return match.group(1) if match else content.strip()


def parse_json(content: str) -> Optional[AnalysisResponse]:
    """Parse the JSON form, or return None if the content is not that form."""
    text = strip_code_fences(content)
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return None
        text = text[start : end + 1]

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    try:
        return AnalysisResponse.model_validate(data)
    except ValidationError as e:
        logger.warning("analysis_json_invalid", error_count=e.error_count())
        return None


def _strip_bullet(line: str) -> str:
    return _BULLET_RE.sub("", line).strip()


def parse_sections(content: str) -> Optional[AnalysisResponse]:
    """
    Extract the ``##`` markdown sections with a line-by-line state machine.

    Returns:
        Response, or None if no known section header was found
    """
    collected: Dict[str, List[str]] = {}
    current: Optional[str] = None

    for raw_line in content.splitlines():
        line = raw_line.strip()
        header = _HEADER_RE.match(line)
        if header:
            current = _SECTIONS.get(header.group(1).strip(" :*").lower())
            if current is not None:
                collected.setdefault(current, [])
            continue
        if current is not None and line:
            collected[current].append(line)

    if not collected:
        return None

    summary = " ".join(collected.get("summary", []))
    issues = [_strip_bullet(line) for line in collected.get("issues", [])]
    recommendations = [_strip_bullet(line) for line in collected.get("recommendations", [])]
    root_cause = " ".join(_strip_bullet(line) for line in collected.get("root_cause", []))

    return AnalysisResponse(
        sequence_of_events=summary,
        root_cause=RootCauseAnalysis(description=root_cause, confidence=SECTION_CONFIDENCE),
        recommendations=[r for r in recommendations if r],
        confidence=SECTION_CONFIDENCE,
        related_errors=[i for i in issues if i],
    )


def parse_natural_language(content: str) -> AnalysisResponse:
    """Keyword-driven extraction for answers with no structure at all."""
    sequence: List[str] = []
    recommendations: List[str] = []
    root_cause = ""
    mode: Optional[str] = None

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        lowered = line.lower()

        if "root cause" in lowered or "caused by" in lowered or "issue is" in lowered:
            root_cause = root_cause or line
            mode = None
        elif "recommend" in lowered or "suggest" in lowered or "should" in lowered:
            recommendations.append(_strip_bullet(line))
            mode = "recommendations"
        elif "sequence" in lowered or "what happened" in lowered:
            mode = "sequence"
        elif mode == "recommendations" and _BULLET_RE.match(line):
            recommendations.append(_strip_bullet(line))
        elif mode == "sequence":
            sequence.append(line)

    if not root_cause and content.strip():
        root_cause = content.strip()[:200] + "..."

    return AnalysisResponse(
        sequence_of_events=" ".join(sequence) or FALLBACK_SEQUENCE,
        root_cause=RootCauseAnalysis(description=root_cause, confidence=NATURAL_LANGUAGE_CONFIDENCE),
        recommendations=[r for r in recommendations if r],
        confidence=NATURAL_LANGUAGE_CONFIDENCE,
    )


def parse_analysis_response(content: str) -> AnalysisResponse:
    """
    Parse model output: JSON first, then markdown sections, then plain prose.

    Args:
        content: Raw message content from the model

    Returns:
        Response with at least one recommendation
    """
    response = parse_json(content)
    parser = "json"
    if response is None:
        response = parse_sections(content)
        parser = "sections"
    if response is None:
        response = parse_natural_language(content)
        parser = "natural_language"

    if not response.recommendations:
        response.recommendations = [FALLBACK_RECOMMENDATION]

    logger.debug(
        "analysis_response_parsed",
        parser=parser,
        recommendations=len(response.recommendations),
        confidence=response.confidence,
    )
    return response
