#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from config import LOG_LEVEL
from errors import PipelineError
from intake.analysis import analyze_sow
from intake.text_extract import parse_upload
from matching.service import run_repository_detail, run_repository_search
from matching.state import AppState, InvalidTransition, Step
from observability import configure_logging


def _answer_pair(raw: str) -> Tuple[str, str]:
    question_id, sep, option = raw.partition("=")
    if not sep or not question_id.strip() or not option.strip():
        raise argparse.ArgumentTypeError(f"expected QUESTION_ID=OPTION, got {raw!r}")
    return question_id.strip(), option.strip()


def _repo_ref(raw: str) -> Tuple[str, str]:
    owner, sep, name = raw.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise argparse.ArgumentTypeError(f"expected OWNER/NAME, got {raw!r}")
    return owner, name


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sow-scout",
        description="Find open-source repositories that cover a Statement of Work.",
    )
    parser.add_argument("file", help="SOW document (.pdf, .txt or .md)")
    parser.add_argument(
        "--answer",
        action="append",
        type=_answer_pair,
        default=[],
        metavar="QUESTION_ID=OPTION",
        help="Answer a clarifying question; repeatable",
    )
    parser.add_argument("--context", default="", help="Additional free-text context for scoring")
    parser.add_argument("--detail", type=_repo_ref, default=None, metavar="OWNER/NAME", help="Also build a fit report")
    parser.add_argument("--json", action="store_true", help="Print the final state as JSON")
    return parser


def _fail(stage: str, message: str) -> None:
    print(f"[sow-scout] FAILED ({stage}): {message}", file=sys.stderr)


def state_payload(state: AppState) -> dict:
    return {
        "step": state.step.value,
        "filename": state.filename,
        "analysis": state.analysis.model_dump(by_alias=True, mode="json") if state.analysis else None,
        "answers": state.answers.model_dump(by_alias=True, mode="json"),
        "queries": list(state.queries),
        "results": [item.model_dump(by_alias=True, mode="json") for item in state.results],
        "message": state.results_message,
        "detail": state.selected.model_dump(by_alias=True, mode="json") if state.selected else None,
    }


def render_report(state: AppState) -> str:
    lines: List[str] = []
    if state.analysis is not None:
        lines.append(f"Project: {state.analysis.project_type}")
        for question in state.analysis.clarifying_questions:
            chosen = state.answers.answers.get(question.id)
            suffix = f" -> {chosen}" if chosen else ""
            lines.append(f"  {question.id}: {question.prompt} [{' | '.join(question.options)}]{suffix}")
    if state.queries:
        lines.append(f"Queries: {'; '.join(query or '(empty)' for query in state.queries)}")
    if state.results_message:
        lines.append(state.results_message)
    for index, repo in enumerate(state.results, start=1):
        lines.append(
            f"{index}. {repo.full_name}  {repo.coverage_percentage}% coverage  "
            f"{repo.popularity_score} stars  {repo.primary_language or 'Unknown'}"
        )
        lines.append(f"   covers: {', '.join(repo.covers)}")
        if repo.gaps:
            lines.append(f"   gaps:   {', '.join(repo.gaps)}")
    detail = state.selected
    if detail is not None:
        fit = detail.fit_analysis
        lines.extend(
            [
                "",
                f"{detail.full_name} ({detail.url})",
                f"  health: {detail.health_status.value}  contributors: {detail.contributors_count}"
                f"  forks: {detail.forks_count}  open issues: {detail.open_issues_count}",
                f"  summary: {detail.readme_summary}",
                f"  time saved: {fit.time_saved_estimate}",
            ]
        )
        for label, items in (
            ("covers", fit.covers),
            ("gaps", fit.gaps),
            ("modifications", fit.recommended_modifications),
            ("risks", fit.risks),
        ):
            if items:
                lines.append(f"  {label}: {'; '.join(items)}")
    return "\n".join(lines)


async def run(
    path: Path,
    answers: Sequence[Tuple[str, str]] = (),
    context: str = "",
    detail: Optional[Tuple[str, str]] = None,
) -> Tuple[AppState, int]:
    """Drive upload -> analysis -> search (-> detail); returns the final state and an exit code."""
    state = AppState()
    try:
        raw = path.read_bytes()
    except OSError as exc:
        _fail("upload", str(exc))
        return state, 1
    try:
        state = state.with_document(parse_upload(path.name, raw), path.name)
    except PipelineError as exc:
        _fail(exc.stage, exc.message)
        return state, 1

    state = state.start_run(Step.ANALYSIS, auto=True)
    try:
        profile = await analyze_sow(state.document_text)
    except PipelineError as exc:
        _fail(exc.stage, exc.message)
        return state.fail_run(Step.ANALYSIS, exc.message), 2
    state = state.with_analysis(profile)

    try:
        for question_id, option in answers:
            state = state.with_answer(question_id, option)
        if context:
            state = state.with_additional_context(context)
    except InvalidTransition as exc:
        _fail("analysis", str(exc))
        return state, 1

    state = state.start_run(Step.RESULTS, auto=True)
    try:
        outcome = await run_repository_search(state.analysis, state.answers)
    except PipelineError as exc:
        _fail(exc.stage, exc.message)
        return state.fail_run(Step.RESULTS, exc.message), 2
    state = state.with_results(outcome)

    if detail is not None:
        state = state.start_run(Step.DETAIL)
        try:
            report = await run_repository_detail(detail[0], detail[1], state.analysis, state.answers)
        except PipelineError as exc:
            _fail(exc.stage, exc.message)
            return state.fail_run(Step.DETAIL, exc.message), 3
        state = state.with_detail(report)
    return state, 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=LOG_LEVEL, json_output=False, stream=sys.stderr)
    state, code = asyncio.run(run(Path(args.file), args.answer, args.context, args.detail))
    if args.json:
        print(json.dumps(state_payload(state), ensure_ascii=False, indent=2))
    elif code == 0:
        print(render_report(state))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
