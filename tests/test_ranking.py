from __future__ import annotations

import asyncio
import time
from typing import Dict, List

from matching import ranking
from matching.models import FALLBACK_COVERAGE, CandidateRepository, CoverageResult, RequirementProfile


def _repo(identity: int) -> CandidateRepository:
    return CandidateRepository(
        identity=identity,
        owner="acme",
        name=f"repo-{identity}",
        full_name=f"acme/repo-{identity}",
        url=f"https://github.com/acme/repo-{identity}",
    )


PROFILE = RequirementProfile(project_type="Scheduling system", deliverables=["Online booking"])


def _scorer(table: Dict[str, CoverageResult], calls: List[str] | None = None, delay: float = 0.0):
    async def _score(candidate, profile, answers=None, *, timeout):  # noqa: ARG001
        if calls is not None:
            calls.append(candidate.identity)
        if delay:
            await asyncio.sleep(delay)
        result = table.get(candidate.identity)
        if result is None:
            raise RuntimeError("no canned coverage")
        return result

    return _score


def _cov(pct: int, covers: List[str] | None = None) -> CoverageResult:
    return CoverageResult(coverage_percentage=pct, covers=["Booking"] if covers is None else covers, gaps=[])


def test_is_informative() -> None:
    assert ranking.is_informative(_cov(10))
    assert not ranking.is_informative(_cov(90, covers=[]))
    assert not ranking.is_informative(FALLBACK_COVERAGE)
    assert ranking.is_informative(_cov(30, covers=["Similar functionality detected", "Calendar"]))


def test_sorts_descending_and_keeps_ties_in_candidate_order() -> None:
    table = {"1": _cov(40), "2": _cov(80), "3": _cov(40), "4": _cov(95)}
    candidates = [_repo(i) for i in range(1, 5)]
    ranked = asyncio.run(ranking.rank_candidates(candidates, PROFILE, scorer=_scorer(table)))
    assert [item.identity for item in ranked] == ["4", "2", "1", "3"]
    assert ranked[0].coverage_percentage == 95


def test_fallback_and_empty_results_are_dropped() -> None:
    table = {"1": FALLBACK_COVERAGE, "2": _cov(50, covers=[]), "3": _cov(20)}
    candidates = [_repo(i) for i in range(1, 5)]
    ranked = asyncio.run(ranking.rank_candidates(candidates, PROFILE, scorer=_scorer(table)))
    assert [item.identity for item in ranked] == ["3"]


def test_only_the_leading_candidates_are_scored() -> None:
    calls: List[str] = []
    table = {str(i): _cov(i) for i in range(1, 16)}
    candidates = [_repo(i) for i in range(1, 16)]
    ranked = asyncio.run(ranking.rank_candidates(candidates, PROFILE, scorer=_scorer(table, calls)))
    assert sorted(calls, key=int) == [str(i) for i in range(1, 11)]
    assert len(ranked) == 10
    assert ranked[0].identity == "10"


def test_top_k_truncates_after_sorting() -> None:
    table = {str(i): _cov(i * 10) for i in range(1, 6)}
    candidates = [_repo(i) for i in range(1, 6)]
    ranked = asyncio.run(ranking.rank_candidates(candidates, PROFILE, scorer=_scorer(table), top_k=2))
    assert [item.identity for item in ranked] == ["5", "4"]


def test_scoring_runs_concurrently() -> None:
    table = {str(i): _cov(50) for i in range(1, 11)}
    candidates = [_repo(i) for i in range(1, 11)]
    started = time.perf_counter()
    ranked = asyncio.run(ranking.rank_candidates(candidates, PROFILE, scorer=_scorer(table, delay=0.2)))
    elapsed = time.perf_counter() - started
    assert len(ranked) == 10
    assert elapsed < 1.0


def test_slow_or_failing_scorer_degrades_to_fallback() -> None:
    slow = _scorer({"1": _cov(70)}, delay=2.0)
    candidates = [_repo(1), _repo(2)]
    ranked = asyncio.run(ranking.rank_candidates(candidates, PROFILE, scorer=slow, timeout=0.05))
    assert ranked == []


def test_empty_candidate_list() -> None:
    assert asyncio.run(ranking.rank_candidates([], PROFILE, scorer=_scorer({}))) == []
