from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import DETAIL_CALL_TIMEOUT_SECONDS, DETAIL_LLM_MAX_TOKENS, DETAIL_README_MAX_CHARS
from errors import PipelineError
from llm_registry import complete_text, extract_json_object
from matching.github import GitHubAPIError, candidate_from_payload, count_contributors, fetch_readme, fetch_repo
from matching.models import AnswerSet, FitAnalysis, HealthStatus, RepositoryDetail, RequirementProfile
from matching.prompts import requirements_block
from observability import get_logger, log_event
from runtime_metrics import record_counter_metric, timed

LOGGER = get_logger("matching.detail")

STALE_AFTER_DAYS = 90
ABANDONED_AFTER_DAYS = 365

NO_SUMMARY = "No summary available"
NO_ESTIMATE = "Unable to estimate"

FALLBACK_DETAIL: Tuple[str, FitAnalysis] = (
    "Analysis unavailable",
    FitAnalysis(
        covers=["Repository features detected"],
        gaps=["Detailed analysis unavailable"],
        time_saved_estimate=NO_ESTIMATE,
        recommended_modifications=["Further analysis needed"],
        risks=["Analysis incomplete"],
    ),
)


class DetailFetchError(PipelineError):
    stage = "detail"


class DetailParseError(ValueError):
    pass


def truncate_readme(text: str, limit: int = DETAIL_README_MAX_CHARS) -> str:
    return str(text or "")[: max(0, limit)]


def _parse_timestamp(value: str) -> Optional[datetime]:
    raw = str(value or "").strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_since(timestamp: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed since `timestamp`, or None when it is missing or unparseable."""
    then = _parse_timestamp(timestamp or "")
    if then is None:
        return None
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return max(0, int((current - then).total_seconds() // 86400))


def classify_health(days: Optional[int]) -> HealthStatus:
    if days is None:
        return HealthStatus.ACTIVE
    if days > ABANDONED_AFTER_DAYS:
        return HealthStatus.ABANDONED
    if days > STALE_AFTER_DAYS:
        return HealthStatus.STALE
    return HealthStatus.ACTIVE


def build_detail_prompt(
    repo: Dict[str, Any],
    readme_excerpt: str,
    profile: RequirementProfile,
    answers: Optional[AnswerSet] = None,
) -> str:
    return "\n".join(
        [
            "Analyze this GitHub repository in detail for the given project requirements.",
            "",
            "Repository:",
            f"- Name: {repo.get('full_name') or ''}",
            f"- Description: {repo.get('description') or 'No description'}",
            f"- Language: {repo.get('language') or 'Unknown'}",
            f"- Stars: {int(repo.get('stargazers_count') or 0)}",
            f"- Forks: {int(repo.get('forks_count') or 0)}",
            f"- Open Issues: {int(repo.get('open_issues_count') or 0)}",
            "",
            "README (excerpt):",
            readme_excerpt,
            "",
            requirements_block(profile, answers, "Project Requirements (SOW):"),
            "",
            "Provide a detailed analysis in the following JSON format:",
            "{",
            '  "readmeSummary": "2-3 sentence concise summary of what this repo does and its key features",',
            '  "fitAnalysis": {',
            '    "covers": ["Detailed feature 1 that matches SOW", "Detailed feature 2", "Feature 3"],',
            '    "gaps": ["Specific missing feature 1", "Missing feature 2", "Missing feature 3"],',
            '    "timeSaved": "Estimated 3-4 weeks vs building from scratch",',
            '    "recommendedModifications": ["Add Twilio integration for SMS (~2 days)", "Build admin dashboard (~1 week)"],',
            '    "risks": ["jQuery frontend is dated - may need modernization", "Concern or risk 2"]',
            "  }",
            "}",
            "",
            "Guidelines:",
            "- readmeSummary: Very concise, focus on what it actually does",
            "- covers: 3-5 specific things this repo handles from the SOW",
            "- gaps: 3-5 specific things missing from the SOW",
            "- timeSaved: Realistic estimate with comparison to building from scratch",
            "- recommendedModifications: 3-5 actionable items with time estimates",
            "- risks: 2-4 potential concerns (outdated deps, complexity, etc.)",
            "",
            "Be specific and actionable. Return ONLY valid JSON, no additional text.",
        ]
    )


def _items(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DetailParseError(f"{field} must be a list")
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_detail(text: str) -> Tuple[str, FitAnalysis]:
    data = extract_json_object(text)
    if data is None:
        raise DetailParseError("detail reply is not a JSON object")
    fit = data.get("fitAnalysis") or {}
    if not isinstance(fit, dict):
        raise DetailParseError("fitAnalysis must be an object")
    summary = data.get("readmeSummary")
    time_saved = fit.get("timeSaved", fit.get("timeSavedEstimate"))
    return (
        summary.strip() if isinstance(summary, str) and summary.strip() else NO_SUMMARY,
        FitAnalysis(
            covers=_items(fit.get("covers"), "covers"),
            gaps=_items(fit.get("gaps"), "gaps"),
            time_saved_estimate=time_saved.strip() if isinstance(time_saved, str) and time_saved.strip() else NO_ESTIMATE,
            recommended_modifications=_items(fit.get("recommendedModifications"), "recommendedModifications"),
            risks=_items(fit.get("risks"), "risks"),
        ),
    )


async def _fit_analysis(
    repo: Dict[str, Any],
    readme_excerpt: str,
    profile: RequirementProfile,
    answers: Optional[AnswerSet],
) -> Tuple[str, FitAnalysis]:
    prompt = build_detail_prompt(repo, readme_excerpt, profile, answers)
    try:
        text = await asyncio.wait_for(
            complete_text(prompt, max_tokens=DETAIL_LLM_MAX_TOKENS, scope="detail", timeout=DETAIL_CALL_TIMEOUT_SECONDS),
            timeout=DETAIL_CALL_TIMEOUT_SECONDS,
        )
        return parse_detail(text)
    except Exception as exc:  # noqa: BLE001
        record_counter_metric(name="detail.analysis_fallback", value=1)
        log_event(
            LOGGER,
            logging.WARNING,
            "detail.analysis_fallback",
            repo=str(repo.get("full_name") or ""),
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return FALLBACK_DETAIL


async def analyze_repository(
    owner: str,
    name: str,
    profile: RequirementProfile,
    answers: Optional[AnswerSet] = None,
    *,
    now: Optional[datetime] = None,
) -> RepositoryDetail:
    """
    Build the detail report for one repository.

    Metadata, contributor count and README are fetched concurrently. A missing
    README degrades to a placeholder; metadata or contributor failures raise
    DetailFetchError. A failed model call yields FALLBACK_DETAIL.
    """
    full_name = f"{owner}/{name}"
    with timed("detail.fetch_latency_ms"):
        try:
            metadata, contributors, readme = await asyncio.gather(
                fetch_repo(owner, name),
                count_contributors(owner, name),
                fetch_readme(owner, name),
            )
            candidate = candidate_from_payload(metadata)
        except (GitHubAPIError, ValueError) as exc:
            code = getattr(exc, "code", "")
            log_event(LOGGER, logging.WARNING, "detail.fetch_failed", repo=full_name, error_code=code, error=str(exc))
            raise DetailFetchError(
                "GITHUB_RATE_LIMIT" if code == "GITHUB_RATE_LIMIT" else "DETAIL_FETCH_FAILED",
                f"Failed to fetch repository details for {full_name}",
            ) from exc

    last_commit = metadata.get("pushed_at") or metadata.get("updated_at") or None
    health = classify_health(days_since(last_commit, now))
    summary, fit = await _fit_analysis(metadata, truncate_readme(readme), profile, answers)
    log_event(LOGGER, logging.INFO, "detail.completed", repo=full_name, health_status=health.value)
    return RepositoryDetail(
        **candidate.model_dump(),
        forks_count=max(0, int(metadata.get("forks_count") or 0)),
        open_issues_count=max(0, int(metadata.get("open_issues_count") or 0)),
        contributors_count=contributors,
        last_commit_timestamp=last_commit,
        health_status=health,
        readme_summary=summary,
        fit_analysis=fit,
    )
