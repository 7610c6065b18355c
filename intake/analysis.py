import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from config import ANALYSIS_LLM_MAX_TOKENS, ANALYSIS_MAX_INPUT_CHARS
from errors import PipelineError
from llm_registry import LLMError, LLMNotConfiguredError, complete_text, extract_json_object
from matching.models import ClarifyingQuestion, RequirementProfile
from observability import get_logger, log_event
from runtime_metrics import record_counter_metric

LOGGER = get_logger("intake.analysis")

MAX_QUESTION_OPTIONS = 4

ANALYSIS_PROMPT = """You are analyzing a Statement of Work (SOW) document to help find relevant open-source GitHub repositories that could accelerate project delivery.

Analyze the following SOW and extract key information:

<sow>
{sow}
</sow>

Provide your analysis in the following JSON format:
{{
  "projectType": "Brief description of the project type (e.g., 'Appointment scheduling system for multi-location service business')",
  "deliverables": ["List", "of", "core", "deliverables"],
  "technicalRequirements": ["List", "of", "technical", "requirements", "or", "tech", "stack", "mentioned"],
  "integrations": ["List", "of", "third-party", "integrations", "or", "platforms", "mentioned"],
  "questions": [
    {{
      "id": "q1",
      "question": "Context-specific question based on the SOW?",
      "options": ["Option 1", "Option 2", "Option 3", "Option 4"]
    }}
  ]
}}

Guidelines for questions:
- Generate 2-4 questions that are specific to this SOW content
- Questions should help narrow down the best GitHub repositories
- Ask about ambiguities or gaps in the SOW (tech stack if not mentioned, deployment preference, priority between features)
- Do not ask generic questions such as "What programming language?"
- Each question should have 2-4 answer options of 1-4 words each

Return ONLY valid JSON, no additional text."""


class AnalysisFailure(PipelineError):
    stage = "analysis"


def build_analysis_prompt(sow_text: str) -> str:
    return ANALYSIS_PROMPT.format(sow=sow_text[:ANALYSIS_MAX_INPUT_CHARS])


def _usable_questions(raw: Any) -> List[ClarifyingQuestion]:
    """Questions with fewer than two options are dropped; extra options are cut."""
    if not isinstance(raw, list):
        return []
    questions: List[ClarifyingQuestion] = []
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            continue
        options = [str(option).strip() for option in item.get("options") or [] if str(option).strip()]
        prompt = str(item.get("question") or item.get("prompt") or "").strip()
        if not prompt or len(options) < 2:
            record_counter_metric(name="analysis.question_dropped", value=1)
            continue
        questions.append(
            ClarifyingQuestion(
                id=str(item.get("id") or f"q{index}"),
                prompt=prompt,
                options=options[:MAX_QUESTION_OPTIONS],
            )
        )
    return questions


def parse_analysis(text: str) -> RequirementProfile:
    data: Dict[str, Any] = extract_json_object(text) or {}
    if not data:
        raise AnalysisFailure("ANALYSIS_FAILED", "Failed to parse analysis response")
    if not data.get("projectType") or not data.get("deliverables") or not isinstance(data.get("questions"), list):
        raise AnalysisFailure("ANALYSIS_FAILED", "Invalid analysis response structure")
    try:
        return RequirementProfile(
            project_type=data["projectType"],
            deliverables=data["deliverables"],
            technical_requirements=data.get("technicalRequirements") or [],
            integrations=data.get("integrations") or [],
            clarifying_questions=_usable_questions(data["questions"]),
        )
    except ValidationError as exc:
        raise AnalysisFailure("ANALYSIS_FAILED", f"Invalid analysis response structure: {exc.error_count()} errors") from exc


async def analyze_sow(sow_text: str) -> RequirementProfile:
    text = str(sow_text or "").strip()
    if not text:
        raise AnalysisFailure("ANALYSIS_INPUT_MISSING", "SOW content is required")
    try:
        reply = await complete_text(build_analysis_prompt(text), max_tokens=ANALYSIS_LLM_MAX_TOKENS, scope="analysis")
    except LLMNotConfiguredError as exc:
        raise AnalysisFailure("LLM_NOT_CONFIGURED", str(exc)) from exc
    except LLMError as exc:
        log_event(LOGGER, logging.WARNING, "analysis.llm_failed", error=str(exc))
        raise AnalysisFailure("ANALYSIS_FAILED", str(exc)) from exc
    profile = parse_analysis(reply)
    log_event(
        LOGGER,
        logging.INFO,
        "analysis.completed",
        project_type=profile.project_type,
        deliverables=len(profile.deliverables),
        questions=len(profile.clarifying_questions),
    )
    return profile
