from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_COVERAGE_ITEMS = 5


def _clean_strings(values: Any) -> List[str]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValueError("expected a list of strings")
    return [str(item).strip() for item in values if item is not None and str(item).strip()]


class WireModel(BaseModel):
    """snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ClarifyingQuestion(WireModel):
    id: str
    prompt: str = Field(validation_alias=AliasChoices("prompt", "question"))
    options: List[str]

    @field_validator("options", mode="before")
    @classmethod
    def _check_options(cls, value: Any) -> List[str]:
        options = _clean_strings(value)
        if not 2 <= len(options) <= 4:
            raise ValueError("a clarifying question needs 2-4 options")
        return options


class RequirementProfile(WireModel):
    project_type: str
    deliverables: List[str]
    technical_requirements: List[str] = Field(default_factory=list)
    integrations: List[str] = Field(default_factory=list)
    clarifying_questions: List[ClarifyingQuestion] = Field(
        default_factory=list,
        validation_alias=AliasChoices("clarifyingQuestions", "questions", "clarifying_questions"),
    )

    @field_validator("project_type", mode="before")
    @classmethod
    def _strip_project_type(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("deliverables", mode="before")
    @classmethod
    def _require_deliverables(cls, value: Any) -> List[str]:
        deliverables = _clean_strings(value)
        if not deliverables:
            raise ValueError("deliverables must not be empty")
        return deliverables

    @field_validator("technical_requirements", "integrations", mode="before")
    @classmethod
    def _clean_lists(cls, value: Any) -> List[str]:
        return _clean_strings(value)

    def question(self, question_id: str) -> Optional[ClarifyingQuestion]:
        return next((item for item in self.clarifying_questions if item.id == question_id), None)


class AnswerSet(WireModel):
    answers: Dict[str, str] = Field(default_factory=dict)
    additional_context: str = ""

    @field_validator("answers", mode="before")
    @classmethod
    def _drop_blank_answers(cls, value: Any) -> Dict[str, str]:
        if not value:
            return {}
        if not isinstance(value, dict):
            raise ValueError("answers must map question ids to options")
        return {str(k): str(v).strip() for k, v in value.items() if v is not None and str(v).strip()}

    @field_validator("additional_context", mode="before")
    @classmethod
    def _strip_context(cls, value: Any) -> str:
        return str(value or "").strip()


class CandidateRepository(WireModel):
    identity: str = Field(validation_alias=AliasChoices("identity", "id"))
    owner: str
    name: str
    full_name: str
    description: Optional[str] = None
    primary_language: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("primaryLanguage", "primary_language", "language")
    )
    popularity_score: int = Field(default=0, ge=0, validation_alias=AliasChoices("popularityScore", "popularity_score", "stars"))
    last_activity_timestamp: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lastActivityTimestamp", "last_activity_timestamp", "lastActivity")
    )
    url: str

    @field_validator("identity", mode="before")
    @classmethod
    def _identity_as_text(cls, value: Any) -> str:
        return str(value)


class CoverageResult(WireModel):
    coverage_percentage: int = Field(ge=0, le=100)
    covers: List[str] = Field(default_factory=list, max_length=MAX_COVERAGE_ITEMS)
    gaps: List[str] = Field(default_factory=list, max_length=MAX_COVERAGE_ITEMS)


FALLBACK_COVERS_MARKER = "Similar functionality detected"
FALLBACK_GAPS_MARKER = "Detailed analysis unavailable"

FALLBACK_COVERAGE = CoverageResult(
    coverage_percentage=30,
    covers=[FALLBACK_COVERS_MARKER],
    gaps=[FALLBACK_GAPS_MARKER],
)


class RankedRepository(CandidateRepository):
    coverage_percentage: int = Field(ge=0, le=100)
    covers: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)

    @classmethod
    def from_parts(cls, candidate: CandidateRepository, coverage: CoverageResult) -> "RankedRepository":
        return cls(**candidate.model_dump(), **coverage.model_dump())


class HealthStatus(str, enum.Enum):
    ACTIVE = "active"
    STALE = "stale"
    ABANDONED = "abandoned"


class FitAnalysis(WireModel):
    covers: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    time_saved_estimate: str = Field(
        default="Unable to estimate",
        validation_alias=AliasChoices("timeSavedEstimate", "timeSaved", "time_saved_estimate"),
    )
    recommended_modifications: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)


class RepositoryDetail(CandidateRepository):
    forks_count: int = 0
    open_issues_count: int = 0
    contributors_count: int = 0
    last_commit_timestamp: Optional[str] = None
    health_status: HealthStatus
    readme_summary: str
    fit_analysis: FitAnalysis


class SearchOutcome(WireModel):
    queries: List[str] = Field(default_factory=list)
    candidate_count: int = 0
    results: List[RankedRepository] = Field(default_factory=list)
    message: Optional[str] = None
