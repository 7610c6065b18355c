from __future__ import annotations

import base64
import logging
import time
import urllib.parse
from typing import Any, Dict, List, Optional

import httpx

from config import (
    APP_VERSION,
    DETAIL_CONTRIBUTORS_CAP,
    GITHUB_API_BASE_URL,
    GITHUB_TIMEOUT_SECONDS,
    GITHUB_TOKEN,
    SEARCH_MIN_STARS,
    SEARCH_PER_QUERY_LIMIT,
)
from matching.models import CandidateRepository
from observability import get_logger, log_event
from runtime_metrics import record_counter_metric, record_timing_metric

LOGGER = get_logger("matching.github")

README_PLACEHOLDER = "README not available"


class GitHubAPIError(RuntimeError):
    def __init__(self, code: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def _headers() -> Dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": f"sow-scout/{APP_VERSION}",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if GITHUB_TOKEN:
        headers["Authorization"] = f"Bearer {GITHUB_TOKEN}"
    return headers


def _repo_path(owner: str, name: str, suffix: str = "") -> str:
    quoted = f"{urllib.parse.quote(owner, safe='')}/{urllib.parse.quote(name, safe='')}"
    return f"/repos/{quoted}{suffix}"


def _trim_search_query(query: str, max_encoded_chars: int = 220) -> str:
    """
    Keep the search `q` expression within GitHub's length budget.

    GitHub rejects search expressions longer than 256 characters with 422.
    Trailing qualifiers such as `stars:>=1` are always kept; keyword tokens
    are dropped from the end until the encoded expression fits.
    """

    normalized = " ".join(str(query or "").split())
    if len(urllib.parse.quote(normalized)) <= max_encoded_chars:
        return normalized

    tokens = normalized.split(" ")
    qualifiers: List[str] = []
    while tokens and ":" in tokens[-1]:
        qualifiers.insert(0, tokens.pop())
    suffix = " ".join(qualifiers)
    suffix_cost = len(urllib.parse.quote(f" {suffix}")) if suffix else 0
    budget = max(1, max_encoded_chars - suffix_cost)

    kept: List[str] = []
    for token in tokens:
        if len(urllib.parse.quote(" ".join(kept + [token]))) > budget:
            break
        kept.append(token)
    trimmed = " ".join(kept)
    if not trimmed and tokens:
        # A single oversized token: cut it down character by character.
        probe = tokens[0]
        while probe and len(urllib.parse.quote(probe)) > budget:
            probe = probe[:-1]
        trimmed = probe
    return " ".join(part for part in (trimmed, suffix) if part)


async def _request_json(
    path: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = GITHUB_TIMEOUT_SECONDS,
) -> Any:
    url = f"{GITHUB_API_BASE_URL}{path}"
    started = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(url, params=params, headers=_headers())
    except httpx.HTTPError as exc:
        record_counter_metric(name="github.request_failed", value=1)
        raise GitHubAPIError("GITHUB_REQUEST_FAILED", repr(exc)) from exc
    record_timing_metric(name="github.latency_ms", duration_ms=(time.perf_counter() - started) * 1000)

    if resp.status_code >= 400:
        record_counter_metric(name="github.http_error", value=1)
        detail = resp.text[:300]
        rate_limited = resp.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in detail.lower()
        if resp.status_code in {403, 429} and rate_limited:
            raise GitHubAPIError("GITHUB_RATE_LIMIT", detail, status_code=resp.status_code)
        if resp.status_code == 404:
            raise GitHubAPIError("GITHUB_NOT_FOUND", f"{path} not found", status_code=404)
        raise GitHubAPIError("GITHUB_HTTP_ERROR", f"{resp.status_code} {detail}", status_code=resp.status_code)
    if resp.status_code == 204 or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError as exc:
        raise GitHubAPIError("GITHUB_PARSE_FAILED", str(exc)) from exc


def candidate_from_payload(item: Dict[str, Any]) -> CandidateRepository:
    full_name = str(item.get("full_name") or "").strip()
    owner_info = item.get("owner") if isinstance(item.get("owner"), dict) else {}
    owner = str(owner_info.get("login") or "").strip()
    name = str(item.get("name") or "").strip()
    if (not owner or not name) and "/" in full_name:
        owner, name = full_name.split("/", 1)
    if not full_name and owner and name:
        full_name = f"{owner}/{name}"
    identity = item.get("id")
    return CandidateRepository(
        identity=str(identity if identity is not None else full_name),
        owner=owner,
        name=name,
        full_name=full_name,
        description=item.get("description") or None,
        primary_language=item.get("language") or None,
        popularity_score=max(0, int(item.get("stargazers_count") or 0)),
        last_activity_timestamp=item.get("pushed_at") or item.get("updated_at") or None,
        url=str(item.get("html_url") or f"https://github.com/{full_name}"),
    )


async def search_repositories(
    query: str,
    min_popularity: int = SEARCH_MIN_STARS,
    limit: int = SEARCH_PER_QUERY_LIMIT,
    timeout: float = GITHUB_TIMEOUT_SECONDS,
) -> List[CandidateRepository]:
    if not str(query or "").strip():
        return []
    expression = _trim_search_query(f"{query.strip()} stars:>={max(0, int(min_popularity))}")
    payload = await _request_json(
        "/search/repositories",
        params={"q": expression, "sort": "stars", "order": "desc", "per_page": max(1, min(int(limit), 100))},
        timeout=timeout,
    )
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return []
    candidates: List[CandidateRepository] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            candidates.append(candidate_from_payload(item))
        except ValueError as exc:
            record_counter_metric(name="github.search.malformed_item", value=1)
            log_event(LOGGER, logging.DEBUG, "github.search.item_skipped", error=str(exc))
    candidates.sort(key=lambda repo: repo.popularity_score, reverse=True)
    return candidates[:limit]


async def search_all(
    queries: List[str],
    min_popularity: int = SEARCH_MIN_STARS,
    limit: int = SEARCH_PER_QUERY_LIMIT,
    timeout: float = GITHUB_TIMEOUT_SECONDS,
) -> List[List[CandidateRepository]]:
    """Run each query in order; a failed query contributes an empty list."""
    results: List[List[CandidateRepository]] = []
    for index, query in enumerate(queries):
        try:
            found = await search_repositories(query, min_popularity=min_popularity, limit=limit, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            record_counter_metric(name="search.query_failed", value=1)
            log_event(
                LOGGER,
                logging.WARNING,
                "search.query_failed",
                query=query,
                query_index=index,
                error_code=getattr(exc, "code", type(exc).__name__),
                error=str(exc),
            )
            found = []
        results.append(found)
    return results


async def fetch_repo(owner: str, name: str, timeout: float = GITHUB_TIMEOUT_SECONDS) -> Dict[str, Any]:
    payload = await _request_json(_repo_path(owner, name), timeout=timeout)
    if not isinstance(payload, dict):
        raise GitHubAPIError("GITHUB_PARSE_FAILED", "repository payload is not an object")
    return payload


async def count_contributors(
    owner: str,
    name: str,
    cap: int = DETAIL_CONTRIBUTORS_CAP,
    timeout: float = GITHUB_TIMEOUT_SECONDS,
) -> int:
    """Contributors on the first page only; counts above `cap` are reported as `cap`."""
    payload = await _request_json(_repo_path(owner, name, "/contributors"), params={"per_page": cap}, timeout=timeout)
    if payload is None:
        return 0
    if not isinstance(payload, list):
        raise GitHubAPIError("GITHUB_PARSE_FAILED", "contributors payload is not a list")
    return min(len(payload), cap)


async def fetch_readme(owner: str, name: str, timeout: float = GITHUB_TIMEOUT_SECONDS) -> str:
    try:
        payload = await _request_json(_repo_path(owner, name, "/readme"), timeout=timeout)
        content = payload.get("content") if isinstance(payload, dict) else None
        encoding = str(payload.get("encoding") or "").lower() if isinstance(payload, dict) else ""
        if not isinstance(content, str) or encoding != "base64":
            raise GitHubAPIError("GITHUB_PARSE_FAILED", "readme payload has no base64 content")
        text = base64.b64decode(content.encode("utf-8"), validate=False).decode("utf-8", errors="replace")
    except (GitHubAPIError, ValueError) as exc:
        record_counter_metric(name="detail.readme_unavailable", value=1)
        log_event(
            LOGGER,
            logging.WARNING,
            "detail.readme_unavailable",
            repo=f"{owner}/{name}",
            error_code=getattr(exc, "code", type(exc).__name__),
            error=str(exc),
        )
        return README_PLACEHOLDER
    return text if text.strip() else README_PLACEHOLDER
