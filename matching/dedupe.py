from typing import Iterable, List

from matching.models import CandidateRepository


def dedupe_candidates(result_lists: Iterable[Iterable[CandidateRepository]]) -> List[CandidateRepository]:
    """Flatten per-query results, keeping the first occurrence of each repository identity."""
    seen: set[str] = set()
    unique: List[CandidateRepository] = []
    for results in result_lists:
        for candidate in results:
            if candidate.identity in seen:
                continue
            seen.add(candidate.identity)
            unique.append(candidate)
    return unique
