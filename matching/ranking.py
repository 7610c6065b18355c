from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from config import (
    COVERAGE_CALL_TIMEOUT_SECONDS,
    COVERAGE_CANDIDATE_LIMIT,
    COVERAGE_MAX_CONCURRENCY,
    COVERAGE_TOP_K,
)
from matching.coverage import score_coverage
from matching.models import (
    FALLBACK_COVERAGE,
    FALLBACK_COVERS_MARKER,
    AnswerSet,
    CandidateRepository,
    CoverageResult,
    RankedRepository,
    RequirementProfile,
)
from observability import get_logger, log_event
from runtime_metrics import record_counter_metric, record_timing_metric

LOGGER = get_logger("matching.ranking")

Scorer = Callable[..., Awaitable[CoverageResult]]


def is_informative(result: CoverageResult) -> bool:
    """False for an empty covers list or the bare fallback marker."""
    if not result.covers:
        return False
    return result.covers != [FALLBACK_COVERS_MARKER]


def sort_ranked(items: Sequence[RankedRepository]) -> List[RankedRepository]:
    # sorted() is stable, so ties keep their candidate order.
    return sorted(items, key=lambda item: item.coverage_percentage, reverse=True)


async def _bounded_score(
    scorer: Scorer,
    candidate: CandidateRepository,
    profile: RequirementProfile,
    answers: Optional[AnswerSet],
    timeout: float,
    semaphore: asyncio.Semaphore,
) -> CoverageResult:
    async with semaphore:
        try:
            return await asyncio.wait_for(scorer(candidate, profile, answers, timeout=timeout), timeout=timeout)
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


async def rank_candidates(
    candidates: Sequence[CandidateRepository],
    profile: RequirementProfile,
    answers: Optional[AnswerSet] = None,
    *,
    scorer: Optional[Scorer] = None,
    candidate_limit: int = COVERAGE_CANDIDATE_LIMIT,
    top_k: int = COVERAGE_TOP_K,
    timeout: float = COVERAGE_CALL_TIMEOUT_SECONDS,
    max_concurrency: int = COVERAGE_MAX_CONCURRENCY,
) -> List[RankedRepository]:
    """
    Score the leading candidates concurrently and return the informative ones.

    Only the first `candidate_limit` candidates are scored. Every call runs
    under its own timeout, so the whole step finishes within roughly one call
    timeout when `max_concurrency` covers the batch. Results with no covered
    requirement (or only the fallback marker) are dropped; the rest are sorted
    by coverage, highest first, and cut to `top_k`.
    """
    scorer = scorer or score_coverage
    batch = list(candidates)[: max(0, candidate_limit)]
    if not batch:
        return []
    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    started = time.perf_counter()
    coverages = await asyncio.gather(
        *(_bounded_score(scorer, candidate, profile, answers, timeout, semaphore) for candidate in batch)
    )
    record_timing_metric(name="coverage.batch_latency_ms", duration_ms=(time.perf_counter() - started) * 1000)

    ranked = [
        RankedRepository.from_parts(candidate, coverage)
        for candidate, coverage in zip(batch, coverages)
        if is_informative(coverage)
    ]
    dropped = len(batch) - len(ranked)
    if dropped:
        record_counter_metric(name="coverage.filtered", value=dropped)
    log_event(
        LOGGER,
        logging.INFO,
        "coverage.ranked",
        scored=len(batch),
        kept=len(ranked),
        dropped=dropped,
    )
    return sort_ranked(ranked)[: max(0, top_k)]
