from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from matching.models import AnswerSet, RankedRepository, RepositoryDetail, RequirementProfile, SearchOutcome


class Step(str, enum.Enum):
    UPLOAD = "upload"
    ANALYSIS = "analysis"
    RESULTS = "results"
    DETAIL = "detail"


class RunStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class StageRun:
    """
    Lifecycle of one pipeline stage.

    An automatic start is only allowed from IDLE, so a failed stage is never
    re-triggered on its own; a manual start (retry) is allowed from IDLE or
    FAILED.
    """

    status: RunStatus = RunStatus.IDLE
    error: Optional[str] = None
    attempts: int = 0

    def start(self, auto: bool = False) -> "StageRun":
        allowed = {RunStatus.IDLE} if auto else {RunStatus.IDLE, RunStatus.FAILED}
        if self.status not in allowed:
            kind = "auto-start" if auto else "start"
            raise InvalidTransition(f"cannot {kind} a stage that is {self.status.value}")
        return replace(self, status=RunStatus.RUNNING, error=None, attempts=self.attempts + 1)

    def succeed(self) -> "StageRun":
        if self.status is not RunStatus.RUNNING:
            raise InvalidTransition(f"cannot complete a stage that is {self.status.value}")
        return replace(self, status=RunStatus.SUCCEEDED, error=None)

    def fail(self, message: str) -> "StageRun":
        if self.status is not RunStatus.RUNNING:
            raise InvalidTransition(f"cannot fail a stage that is {self.status.value}")
        return replace(self, status=RunStatus.FAILED, error=str(message or "unknown error"))


def _completed(run: StageRun) -> StageRun:
    if run.status is RunStatus.RUNNING:
        return run.succeed()
    return StageRun(status=RunStatus.SUCCEEDED, attempts=max(1, run.attempts))


_RUN_FIELDS = {
    Step.ANALYSIS: "analysis_run",
    Step.RESULTS: "search_run",
    Step.DETAIL: "detail_run",
}


@dataclass(frozen=True)
class AppState:
    step: Step = Step.UPLOAD
    document_text: str = ""
    filename: Optional[str] = None
    analysis: Optional[RequirementProfile] = None
    answers: AnswerSet = field(default_factory=AnswerSet)
    queries: Tuple[str, ...] = ()
    results: Tuple[RankedRepository, ...] = ()
    results_message: Optional[str] = None
    selected: Optional[RepositoryDetail] = None
    analysis_run: StageRun = field(default_factory=StageRun)
    search_run: StageRun = field(default_factory=StageRun)
    detail_run: StageRun = field(default_factory=StageRun)

    def run_for(self, step: Step) -> StageRun:
        if step not in _RUN_FIELDS:
            raise InvalidTransition(f"step {step.value} has no pipeline run")
        return getattr(self, _RUN_FIELDS[step])

    def start_run(self, step: Step, auto: bool = False) -> "AppState":
        run = self.run_for(step).start(auto=auto)
        return replace(self, **{_RUN_FIELDS[step]: run})

    def fail_run(self, step: Step, message: str) -> "AppState":
        run = self.run_for(step).fail(message)
        return replace(self, **{_RUN_FIELDS[step]: run})

    def with_document(self, text: str, filename: Optional[str] = None) -> "AppState":
        """A new document starts a fresh session at the analysis step."""
        if not str(text or "").strip():
            raise InvalidTransition("document text is empty")
        return AppState(step=Step.ANALYSIS, document_text=text, filename=filename)

    def with_analysis(self, profile: RequirementProfile) -> "AppState":
        if not self.document_text:
            raise InvalidTransition("no document to analyze")
        return replace(
            self,
            analysis=profile,
            answers=AnswerSet(),
            queries=(),
            results=(),
            results_message=None,
            selected=None,
            analysis_run=_completed(self.analysis_run),
            search_run=StageRun(),
            detail_run=StageRun(),
        )

    def with_answer(self, question_id: str, option: str) -> "AppState":
        if self.analysis is None:
            raise InvalidTransition("answers require an analysis")
        question = self.analysis.question(question_id)
        if question is None:
            raise InvalidTransition(f"unknown question {question_id!r}")
        if option not in question.options:
            raise InvalidTransition(f"{option!r} is not an option for {question_id!r}")
        answers = dict(self.answers.answers)
        answers[question_id] = option
        return replace(self, answers=self.answers.model_copy(update={"answers": answers}))

    def with_additional_context(self, text: str) -> "AppState":
        if self.analysis is None:
            raise InvalidTransition("additional context requires an analysis")
        return replace(self, answers=self.answers.model_copy(update={"additional_context": str(text or "").strip()}))

    def with_results(self, outcome: SearchOutcome) -> "AppState":
        if self.analysis is None:
            raise InvalidTransition("results require an analysis")
        return replace(
            self,
            step=Step.RESULTS,
            queries=tuple(outcome.queries),
            results=tuple(outcome.results),
            results_message=outcome.message,
            selected=None,
            search_run=_completed(self.search_run),
            detail_run=StageRun(),
        )

    def with_detail(self, detail: RepositoryDetail) -> "AppState":
        if self.step not in {Step.RESULTS, Step.DETAIL}:
            raise InvalidTransition("repository detail is only reachable from the results")
        return replace(self, step=Step.DETAIL, selected=detail, detail_run=_completed(self.detail_run))

    def back_to_results(self) -> "AppState":
        if self.step is not Step.DETAIL:
            raise InvalidTransition("not viewing a repository")
        return replace(self, step=Step.RESULTS, selected=None, detail_run=StageRun())

    def reset(self) -> "AppState":
        return AppState()
