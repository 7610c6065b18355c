from typing import Iterable, List, Optional

from config import SEARCH_MAX_QUERIES
from matching.models import AnswerSet, RequirementProfile

MIN_TERM_LENGTH = 4
PROJECT_TYPE_TERMS = 3
DELIVERABLE_TERMS = 2
MAX_QUERIES = 3


def extract_terms(text: str) -> List[str]:
    """Lower-cased whitespace tokens longer than three characters, in order."""
    return [token.lower() for token in str(text or "").split() if len(token) >= MIN_TERM_LENGTH]


def _dedupe_keep_order(items: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    result: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def candidate_terms(profile: RequirementProfile) -> List[str]:
    project_terms = extract_terms(profile.project_type)[:PROJECT_TYPE_TERMS]
    deliverable_terms = extract_terms(" ".join(profile.deliverables))[:DELIVERABLE_TERMS]
    return _dedupe_keep_order(project_terms + deliverable_terms)


def _anchored(anchor: Optional[str], detail: str) -> str:
    return " ".join(part for part in (anchor, detail.strip()) if part)


def build_search_queries(  # noqa: ARG001
    profile: RequirementProfile,
    answers: Optional[AnswerSet] = None,
) -> List[str]:
    """
    Derive up to three repository search queries from the requirement profile.

    Query 1 is the candidate term set (project type terms first, then
    deliverable terms) and may be an empty string when no token is long
    enough. Query 2 anchors the first technical requirement and query 3 the
    first integration on the leading term. `answers` does not influence the
    terms; user preferences are applied when scoring candidates.
    """
    terms = candidate_terms(profile)
    anchor = terms[0] if terms else None
    queries = [" ".join(terms)]
    if profile.technical_requirements:
        queries.append(_anchored(anchor, profile.technical_requirements[0]))
    if profile.integrations:
        queries.append(_anchored(anchor, profile.integrations[0]))
    return queries[: min(MAX_QUERIES, SEARCH_MAX_QUERIES)]


def has_useful_query(queries: List[str]) -> bool:
    return any(query.strip() for query in queries)
