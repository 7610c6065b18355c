from __future__ import annotations

import logging
import time
from typing import Optional

from errors import PipelineError
from matching.dedupe import dedupe_candidates
from matching.detail import analyze_repository
from matching.github import search_all
from matching.models import AnswerSet, RepositoryDetail, RequirementProfile, SearchOutcome
from matching.queries import build_search_queries, has_useful_query
from matching.ranking import rank_candidates
from observability import get_logger, log_event
from runtime_metrics import record_counter_metric, record_timing_metric

LOGGER = get_logger("matching.service")

NO_CANDIDATES_MESSAGE = "No repositories found matching your requirements"
NO_RELEVANT_MESSAGE = (
    "No repositories found matching your requirements. Try refining your SOW or additional context."
)


class SearchInputError(PipelineError):
    stage = "search"


class DetailInputError(PipelineError):
    stage = "detail"


async def run_repository_search(
    profile: Optional[RequirementProfile],
    answers: Optional[AnswerSet] = None,
) -> SearchOutcome:
    """Queries -> GitHub search -> dedupe -> coverage ranking."""
    if profile is None:
        raise SearchInputError("SEARCH_INPUT_INVALID", "Analysis is required")
    queries = build_search_queries(profile, answers)
    if not has_useful_query(queries):
        raise SearchInputError(
            "SEARCH_INPUT_INVALID",
            "The analysis has no searchable terms in its project type, deliverables, requirements or integrations",
        )

    started = time.perf_counter()
    result_lists = await search_all(queries)
    candidates = dedupe_candidates(result_lists)
    log_event(
        LOGGER,
        logging.INFO,
        "search.candidates",
        queries=queries,
        per_query=[len(results) for results in result_lists],
        unique=len(candidates),
    )
    if not candidates:
        record_counter_metric(name="search.empty", value=1)
        return SearchOutcome(queries=queries, candidate_count=0, results=[], message=NO_CANDIDATES_MESSAGE)

    ranked = await rank_candidates(candidates, profile, answers)
    record_timing_metric(name="search.latency_ms", duration_ms=(time.perf_counter() - started) * 1000)
    log_event(LOGGER, logging.INFO, "search.completed", candidates=len(candidates), results=len(ranked))
    return SearchOutcome(
        queries=queries,
        candidate_count=len(candidates),
        results=ranked,
        message=None if ranked else NO_RELEVANT_MESSAGE,
    )


async def run_repository_detail(
    owner: str,
    name: str,
    profile: Optional[RequirementProfile],
    answers: Optional[AnswerSet] = None,
) -> RepositoryDetail:
    owner = str(owner or "").strip()
    name = str(name or "").strip()
    if not owner or not name:
        raise DetailInputError("DETAIL_INPUT_INVALID", "Owner and name are required")
    if profile is None:
        raise DetailInputError("DETAIL_INPUT_INVALID", "Analysis is required")
    return await analyze_repository(owner, name, profile, answers)
