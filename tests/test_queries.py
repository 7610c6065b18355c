from __future__ import annotations

from matching import queries
from matching.models import AnswerSet, RequirementProfile


def _profile(**overrides) -> RequirementProfile:
    data = {
        "project_type": "Appointment scheduling system for multi-location barbershop",
        "deliverables": ["Online booking widget", "Staff calendar"],
        "technical_requirements": ["React"],
        "integrations": ["Twilio SMS"],
    }
    data.update(overrides)
    return RequirementProfile(**data)


def test_builds_three_queries_anchored_on_leading_term() -> None:
    result = queries.build_search_queries(_profile())
    assert result == [
        "appointment scheduling system online booking",
        "appointment React",
        "appointment Twilio SMS",
    ]


def test_terms_shorter_than_four_characters_are_skipped() -> None:
    profile = _profile(project_type="Chat app for a gym", deliverables=["Web UI"], technical_requirements=[], integrations=[])
    assert queries.candidate_terms(profile) == ["chat"]
    assert queries.build_search_queries(profile) == ["chat"]


def test_candidate_terms_are_deduplicated_in_order() -> None:
    profile = _profile(project_type="Booking system booking", deliverables=["booking engine"])
    assert queries.candidate_terms(profile) == ["booking", "system", "engine"]


def test_optional_queries_depend_on_requirements_and_integrations() -> None:
    only_tech = _profile(integrations=[])
    only_integration = _profile(technical_requirements=[])
    neither = _profile(technical_requirements=[], integrations=[])

    assert len(queries.build_search_queries(only_tech)) == 2
    assert queries.build_search_queries(only_integration)[1] == "appointment Twilio SMS"
    assert len(queries.build_search_queries(neither)) == 1


def test_query_count_never_exceeds_three() -> None:
    profile = _profile(technical_requirements=["React", "Node", "Postgres"], integrations=["Stripe", "Twilio"])
    assert len(queries.build_search_queries(profile)) <= 3


def test_no_candidate_terms_leaves_primary_query_empty() -> None:
    profile = _profile(project_type="App", deliverables=["UI"], technical_requirements=["Go"], integrations=[])
    result = queries.build_search_queries(profile)
    assert result == ["", "Go"]
    assert queries.has_useful_query(result)


def test_has_useful_query_rejects_blank_sets() -> None:
    assert not queries.has_useful_query([""])
    assert not queries.has_useful_query(["  ", ""])
    assert not queries.has_useful_query([])


def test_answers_do_not_change_search_terms() -> None:
    profile = _profile()
    answers = AnswerSet(answers={"q1": "Self-hosted"}, additional_context="Must support Spanish")
    assert queries.build_search_queries(profile, answers) == queries.build_search_queries(profile)


def test_profile_without_requirements_or_integrations_yields_one_query() -> None:
    profile = RequirementProfile(
        project_type="Appointment scheduling system",
        deliverables=["Booking UI", "SMS reminders"],
    )
    assert queries.build_search_queries(profile) == ["appointment scheduling system booking reminders"]
