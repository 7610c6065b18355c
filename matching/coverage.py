from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, List, Optional

from config import COVERAGE_CALL_TIMEOUT_SECONDS, COVERAGE_LLM_MAX_TOKENS
from llm_registry import complete_text, extract_json_object
from matching.models import (
    FALLBACK_COVERAGE,
    MAX_COVERAGE_ITEMS,
    AnswerSet,
    CandidateRepository,
    CoverageResult,
    RequirementProfile,
)
from matching.prompts import requirements_block
from observability import get_logger, log_event
from runtime_metrics import record_counter_metric

LOGGER = get_logger("matching.coverage")


class CoverageParseError(ValueError):
    pass


def build_coverage_prompt(
    candidate: CandidateRepository,
    profile: RequirementProfile,
    answers: Optional[AnswerSet] = None,
) -> str:
    return "\n".join(
        [
            "Analyze how well this GitHub repository matches the following project requirements.",
            "",
            "Repository:",
            f"- Name: {candidate.full_name}",
            f"- Description: {candidate.description or 'No description'}",
            f"- Language: {candidate.primary_language or 'Unknown'}",
            f"- Stars: {candidate.popularity_score}",
            "",
            requirements_block(profile, answers, "Project Requirements:"),
            "",
            "Provide your analysis in the following JSON format:",
            "{",
            '  "coveragePercentage": 65,',
            '  "covers": ["Feature 1 from deliverables", "Feature 2", "Feature 3"],',
            '  "gaps": ["Missing feature 1", "Missing feature 2", "Missing feature 3"]',
            "}",
            "",
            "Guidelines:",
            "- coveragePercentage: Estimate 0-100 how much of the SOW deliverables this repo covers",
            "- covers: List 2-5 specific things this repo handles from the requirements",
            "- gaps: List 2-5 specific things you'd still need to build",
            "",
            "Be concise and specific. Return ONLY valid JSON, no additional text.",
        ]
    )


def _percentage(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise CoverageParseError("coveragePercentage must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise CoverageParseError(f"coveragePercentage must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise CoverageParseError(f"coveragePercentage must be finite, got {value!r}")
    return max(0, min(100, int(round(number))))


def _items(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise CoverageParseError(f"{field} must be a list")
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items[:MAX_COVERAGE_ITEMS]


def parse_coverage(text: str) -> CoverageResult:
    """
    Parse a coverage reply into a CoverageResult.

    Missing fields default to 0 / []; the percentage is clamped to 0-100 and
    each list keeps at most five non-empty entries.
    """
    data = extract_json_object(text)
    if data is None:
        raise CoverageParseError("coverage reply is not a JSON object")
    raw_percentage = data.get("coveragePercentage", data.get("coverage_percentage"))
    return CoverageResult(
        coverage_percentage=_percentage(raw_percentage),
        covers=_items(data.get("covers"), "covers"),
        gaps=_items(data.get("gaps"), "gaps"),
    )


async def score_coverage(
    candidate: CandidateRepository,
    profile: RequirementProfile,
    answers: Optional[AnswerSet] = None,
    *,
    timeout: float = COVERAGE_CALL_TIMEOUT_SECONDS,
) -> CoverageResult:
    """Score one candidate; any failure yields FALLBACK_COVERAGE instead of raising."""
    prompt = build_coverage_prompt(candidate, profile, answers)
    try:
        text = await asyncio.wait_for(
            complete_text(prompt, max_tokens=COVERAGE_LLM_MAX_TOKENS, scope="coverage", timeout=timeout),
            timeout=timeout,
        )
        return parse_coverage(text)
    except Exception as exc:  # noqa: BLE001
        record_counter_metric(name="coverage.fallback", value=1)
        log_event(
            LOGGER,
            logging.WARNING,
            "coverage.fallback",
            repo=candidate.full_name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return FALLBACK_COVERAGE
