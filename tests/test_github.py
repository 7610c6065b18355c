from __future__ import annotations

import asyncio
import base64
from urllib.parse import quote

import httpx

import matching.github as github_api


def _item(identity: int, stars: int, **overrides) -> dict:
    data = {
        "id": identity,
        "name": f"repo-{identity}",
        "full_name": f"acme/repo-{identity}",
        "owner": {"login": "acme"},
        "description": "Scheduling toolkit",
        "language": "Go",
        "stargazers_count": stars,
        "html_url": f"https://github.com/acme/repo-{identity}",
        "pushed_at": "2026-01-02T03:04:05Z",
        "updated_at": "2025-01-01T00:00:00Z",
    }
    data.update(overrides)
    return data


def test_trim_search_query_keeps_qualifier_suffix() -> None:
    query = " ".join(f"keyword{i}" for i in range(200)) + " stars:>=1"
    trimmed = github_api._trim_search_query(query, max_encoded_chars=220)
    assert len(quote(trimmed)) <= 220
    assert trimmed.endswith("stars:>=1")
    assert trimmed.startswith("keyword0 keyword1")


def test_candidate_from_payload_maps_fields() -> None:
    candidate = github_api.candidate_from_payload(_item(9, 120))
    assert candidate.identity == "9"
    assert candidate.owner == "acme"
    assert candidate.name == "repo-9"
    assert candidate.full_name == "acme/repo-9"
    assert candidate.primary_language == "Go"
    assert candidate.popularity_score == 120
    assert candidate.last_activity_timestamp == "2026-01-02T03:04:05Z"


def test_candidate_from_payload_falls_back_to_full_name_and_updated_at() -> None:
    candidate = github_api.candidate_from_payload(
        _item(3, 1, owner=None, name=None, pushed_at=None, description=None, language=None)
    )
    assert (candidate.owner, candidate.name) == ("acme", "repo-3")
    assert candidate.last_activity_timestamp == "2025-01-01T00:00:00Z"
    assert candidate.description is None
    assert candidate.primary_language is None


def test_search_repositories_sends_popularity_qualifier_and_sort(monkeypatch) -> None:
    captured: dict = {}

    async def _fake_request_json(path, *, params=None, timeout=12):
        captured["path"] = path
        captured["params"] = params
        return {"items": [_item(1, 5), _item(2, 50), "junk"]}

    monkeypatch.setattr(github_api, "_request_json", _fake_request_json)
    results = asyncio.run(github_api.search_repositories("booking calendar", min_popularity=1, limit=20))

    assert captured["path"] == "/search/repositories"
    assert captured["params"]["q"] == "booking calendar stars:>=1"
    assert captured["params"]["sort"] == "stars"
    assert captured["params"]["order"] == "desc"
    assert captured["params"]["per_page"] == 20
    assert [item.identity for item in results] == ["2", "1"]


def test_blank_query_skips_the_network(monkeypatch) -> None:
    async def _boom(*_args, **_kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(github_api, "_request_json", _boom)
    assert asyncio.run(github_api.search_repositories("   ")) == []


def test_search_all_isolates_failed_queries(monkeypatch) -> None:
    async def _fake_search(query, min_popularity=1, limit=20, timeout=12):  # noqa: ARG001
        if query == "broken":
            raise github_api.GitHubAPIError("GITHUB_RATE_LIMIT", "API rate limit exceeded", status_code=403)
        return [github_api.candidate_from_payload(_item(len(query), 10))]

    monkeypatch.setattr(github_api, "search_repositories", _fake_search)
    results = asyncio.run(github_api.search_all(["alpha", "broken", "gamma"]))
    assert [len(items) for items in results] == [1, 0, 1]


def test_request_json_maps_http_errors(monkeypatch) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/missing"):
            return httpx.Response(404, json={"message": "Not Found"})
        if request.url.path.endswith("/limited"):
            return httpx.Response(403, json={"message": "API rate limit exceeded"}, headers={"x-ratelimit-remaining": "0"})
        return httpx.Response(500, text="oops")

    transport = httpx.MockTransport(_handler)
    real_client = httpx.AsyncClient

    monkeypatch.setattr(github_api.httpx, "AsyncClient", lambda **kwargs: real_client(transport=transport, **kwargs))

    async def _codes() -> list:
        codes = []
        for path in ("/repos/acme/missing", "/repos/acme/limited", "/repos/acme/broken"):
            try:
                await github_api._request_json(path)
            except github_api.GitHubAPIError as exc:
                codes.append(exc.code)
        return codes

    assert asyncio.run(_codes()) == ["GITHUB_NOT_FOUND", "GITHUB_RATE_LIMIT", "GITHUB_HTTP_ERROR"]


def test_count_contributors_caps_first_page(monkeypatch) -> None:
    async def _fake_request_json(path, *, params=None, timeout=12):  # noqa: ARG001
        assert path == "/repos/acme/booker/contributors"
        return [{"login": f"user{i}"} for i in range(params["per_page"])]

    monkeypatch.setattr(github_api, "_request_json", _fake_request_json)
    assert asyncio.run(github_api.count_contributors("acme", "booker", cap=100)) == 100


def test_fetch_readme_decodes_base64(monkeypatch) -> None:
    encoded = base64.b64encode("# Booker\nBook appointments.".encode("utf-8")).decode("ascii")

    async def _fake_request_json(path, *, params=None, timeout=12):  # noqa: ARG001
        return {"content": encoded, "encoding": "base64"}

    monkeypatch.setattr(github_api, "_request_json", _fake_request_json)
    assert asyncio.run(github_api.fetch_readme("acme", "booker")) == "# Booker\nBook appointments."


def test_fetch_readme_failure_returns_placeholder(monkeypatch) -> None:
    async def _missing(path, *, params=None, timeout=12):  # noqa: ARG001
        raise github_api.GitHubAPIError("GITHUB_NOT_FOUND", f"{path} not found", status_code=404)

    monkeypatch.setattr(github_api, "_request_json", _missing)
    assert asyncio.run(github_api.fetch_readme("acme", "booker")) == "README not available"
