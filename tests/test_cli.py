from __future__ import annotations

import argparse
import asyncio
import json

import pytest

import cli
from matching.detail import DetailFetchError
from matching.models import ClarifyingQuestion, RankedRepository, RequirementProfile, SearchOutcome
from matching.state import RunStatus, Step

PROFILE = RequirementProfile(
    project_type="Scheduling system",
    deliverables=["Online booking"],
    clarifying_questions=[ClarifyingQuestion(id="q1", prompt="Hosting?", options=["Self-hosted", "Cloud"])],
)


def _patch_pipeline(monkeypatch, captured: dict) -> None:
    async def _analyze(text: str) -> RequirementProfile:
        captured["text"] = text
        return PROFILE

    async def _search(profile, answers=None):
        captured["answers"] = answers
        ranked = RankedRepository(
            identity="1",
            owner="acme",
            name="booker",
            full_name="acme/booker",
            popularity_score=12,
            url="https://github.com/acme/booker",
            coverage_percentage=65,
            covers=["Booking"],
            gaps=["SMS"],
        )
        return SearchOutcome(queries=["scheduling system online booking"], candidate_count=1, results=[ranked])

    async def _detail(owner, name, profile, answers=None):  # noqa: ARG001
        raise DetailFetchError("DETAIL_FETCH_FAILED", f"Failed to fetch repository details for {owner}/{name}")

    monkeypatch.setattr(cli, "analyze_sow", _analyze)
    monkeypatch.setattr(cli, "run_repository_search", _search)
    monkeypatch.setattr(cli, "run_repository_detail", _detail)


def test_parser_validates_answers_and_repo_refs() -> None:
    args = cli.build_parser().parse_args(["sow.md", "--answer", "q1=Cloud", "--detail", "acme/booker"])
    assert args.answer == [("q1", "Cloud")]
    assert args.detail == ("acme", "booker")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._answer_pair("q1")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._repo_ref("acme")


def test_run_reaches_results(monkeypatch, tmp_path) -> None:
    captured: dict = {}
    _patch_pipeline(monkeypatch, captured)
    sow = tmp_path / "sow.md"
    sow.write_text("# Scope\n\nBuild a booking site.\n", encoding="utf-8")

    state, code = asyncio.run(cli.run(sow, [("q1", "Cloud")], "Two shops"))

    assert code == 0
    assert state.step is Step.RESULTS
    assert captured["text"] == "# Scope\n\nBuild a booking site."
    assert captured["answers"].answers == {"q1": "Cloud"}
    report = cli.render_report(state)
    assert "1. acme/booker  65% coverage" in report
    assert "q1: Hosting? [Self-hosted | Cloud] -> Cloud" in report
    payload = json.loads(json.dumps(cli.state_payload(state)))
    assert payload["results"][0]["fullName"] == "acme/booker"


def test_detail_failure_keeps_results(monkeypatch, tmp_path, capsys) -> None:
    _patch_pipeline(monkeypatch, {})
    sow = tmp_path / "sow.txt"
    sow.write_text("Build a booking site", encoding="utf-8")

    state, code = asyncio.run(cli.run(sow, detail=("acme", "gone")))

    assert code == 3
    assert state.detail_run.status is RunStatus.FAILED
    assert len(state.results) == 1
    assert "[sow-scout] FAILED (detail)" in capsys.readouterr().err


def test_unsupported_file_fails_at_upload(tmp_path, capsys) -> None:
    doc = tmp_path / "sow.docx"
    doc.write_bytes(b"PK")
    state, code = asyncio.run(cli.run(doc))
    assert code == 1
    assert state.step is Step.UPLOAD
    assert "FAILED (upload)" in capsys.readouterr().err
