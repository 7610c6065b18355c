from typing import List, Optional

from matching.models import AnswerSet, RequirementProfile


def _joined(items: List[str]) -> str:
    return ", ".join(items) if items else "None specified"


def requirement_lines(profile: RequirementProfile) -> List[str]:
    return [
        f"- Type: {profile.project_type or 'Unspecified'}",
        f"- Deliverables: {_joined(profile.deliverables)}",
        f"- Technical Requirements: {_joined(profile.technical_requirements)}",
        f"- Integrations: {_joined(profile.integrations)}",
    ]


def preference_lines(profile: RequirementProfile, answers: Optional[AnswerSet]) -> List[str]:
    """User answers rendered against their questions, plus any free-text context."""
    if answers is None:
        return []
    lines: List[str] = []
    for question_id, choice in answers.answers.items():
        question = profile.question(question_id)
        label = question.prompt if question else question_id
        lines.append(f"- {label} -> {choice}")
    if answers.additional_context:
        lines.append(f"- Additional context: {answers.additional_context}")
    return lines


def requirements_block(profile: RequirementProfile, answers: Optional[AnswerSet], heading: str) -> str:
    block = "\n".join([heading, *requirement_lines(profile)])
    preferences = preference_lines(profile, answers)
    if preferences:
        block = "\n".join([block, "", "User Preferences:", *preferences])
    return block
