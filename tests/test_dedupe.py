from __future__ import annotations

from matching.dedupe import dedupe_candidates
from matching.models import CandidateRepository


def _repo(identity: int, stars: int = 10) -> CandidateRepository:
    return CandidateRepository(
        identity=identity,
        owner="acme",
        name=f"repo-{identity}",
        full_name=f"acme/repo-{identity}",
        popularity_score=stars,
        url=f"https://github.com/acme/repo-{identity}",
    )


def test_first_occurrence_wins_across_queries() -> None:
    first = [_repo(1, stars=50), _repo(2)]
    second = [_repo(2, stars=999), _repo(3)]
    merged = dedupe_candidates([first, second])
    assert [item.identity for item in merged] == ["1", "2", "3"]
    assert merged[1].popularity_score == 10


def test_dedupe_is_idempotent() -> None:
    lists = [[_repo(4), _repo(5)], [_repo(5), _repo(6), _repo(4)]]
    once = dedupe_candidates(lists)
    twice = dedupe_candidates([once])
    assert once == twice


def test_empty_inputs() -> None:
    assert dedupe_candidates([]) == []
    assert dedupe_candidates([[], []]) == []
