import random

import pytest

from core.config import Settings
from core.errors import ConfigurationError, PathwayPlanningError, ProviderError
from schemas.recommendation import EducationPathway, RecommendationProgram
from services.match_scorer import MatchScorer
from services.metrics_service import MetricsCollector
from services.orchestrator import (
    PLANNING_FAILURE_NOTE,
    TIMEOUT_NOTE,
    UNEXPECTED_ERROR_NOTE,
    PipelineState,
    RecommendationOrchestrator,
)
from services.program_researcher import ProgramResearcher
from services.simulated_generator import INSTITUTIONS, SimulatedRecommendationGenerator

from fakes import FakePlanner, FakeResearcher, pathway_payload, program_payload

SIMULATED_INSTITUTIONS = {name for name, _ in INSTITUTIONS}


def _pathways(*titles, **overrides):
    return [EducationPathway.model_validate(pathway_payload(title, **overrides)) for title in titles]


def _programs(prefix, count):
    return [
        RecommendationProgram.model_validate(program_payload(
            f"{prefix} {i}",
            matchRationale={"careerAlignment": 90 - i, "budgetFit": 80, "locationMatch": 95, "academicFit": 85},
        ))
        for i in range(count)
    ]


def _settings(**overrides):
    values = {
        "openai_api_key": "sk-test",
        "perplexity_api_key": "pplx-test",
        "orchestration_timeout_seconds": 5.0,
        "research_timeout_seconds": 2.0,
        "pathway_timeout_seconds": 1.0,
    }
    values.update(overrides)
    return Settings(**values)


def _orchestrator(planner, researcher, settings=None):
    return RecommendationOrchestrator(
        planner=planner,
        researcher=researcher,
        scorer=MatchScorer(),
        simulator=SimulatedRecommendationGenerator(random.Random(11)),
        settings=settings or _settings(),
        metrics=MetricsCollector(),
    )


def _assert_ranked(recommendations):
    scores = [p.match_score for p in recommendations]
    assert scores == sorted(scores, reverse=True)
    for program in recommendations:
        assert program.match_score == program.match_rationale.weighted_score()


@pytest.mark.asyncio
async def test_top_ten_from_researched_programs(profile):
    pathways = _pathways("A", "B", "C")
    researcher = FakeResearcher({title: _programs(title, 5) for title in ("A", "B", "C")})

    result = await _orchestrator(FakePlanner(pathways), researcher).generate(profile)

    assert result.note is None
    assert result.state is PipelineState.ASSEMBLED
    assert len(result.recommendations) == 10
    _assert_ranked(result.recommendations)
    assert all(p.institution == "Example University" for p in result.recommendations)


@pytest.mark.asyncio
async def test_only_first_three_pathways_are_researched(profile):
    pathways = _pathways("A", "B", "C", "D", "E")
    researcher = FakeResearcher({title: _programs(title, 2) for title in ("A", "B", "C", "D", "E")})

    result = await _orchestrator(FakePlanner(pathways), researcher).generate(profile)

    assert sorted(researcher.calls) == ["A", "B", "C"]
    assert {p.name.split()[0] for p in result.recommendations} == {"A", "B", "C"}


@pytest.mark.asyncio
async def test_planning_failure_returns_default_pathway_fallback(profile):
    planner = FakePlanner(error=PathwayPlanningError("Education pathway generation failed: boom"))
    researcher = FakeResearcher()

    result = await _orchestrator(planner, researcher).generate(profile)

    assert result.note == PLANNING_FAILURE_NOTE
    assert result.state is PipelineState.FALLBACK_ASSEMBLED
    assert 1 <= len(result.recommendations) <= 10
    assert all(p.field_of_study == "General Studies" for p in result.recommendations)
    assert researcher.calls == []


@pytest.mark.asyncio
async def test_research_deadline_discards_partial_results_and_cancels(profile):
    pathways = _pathways("Fast", "Slow")
    researcher = FakeResearcher({"Fast": _programs("Fast", 3), "Slow": _programs("Slow", 3)}, delays={"Slow": 30})
    settings = _settings(research_timeout_seconds=0.1, pathway_timeout_seconds=10.0)

    result = await _orchestrator(FakePlanner(pathways), researcher, settings).generate(profile)

    assert result.note == TIMEOUT_NOTE
    assert result.state is PipelineState.FALLBACK_ASSEMBLED
    assert result.recommendations
    assert all(p.institution in SIMULATED_INSTITUTIONS for p in result.recommendations)
    assert researcher.cancelled == ["Slow"]
    _assert_ranked(result.recommendations)


@pytest.mark.asyncio
async def test_global_deadline_during_planning_uses_default_pathway(profile):
    settings = _settings(orchestration_timeout_seconds=0.1)
    result = await _orchestrator(FakePlanner(_pathways("A"), delay=30), FakeResearcher(), settings).generate(profile)

    assert result.note == TIMEOUT_NOTE
    assert result.state is PipelineState.FALLBACK_ASSEMBLED
    assert all(p.field_of_study == "General Studies" for p in result.recommendations)


@pytest.mark.asyncio
async def test_slow_pathway_is_simulated_within_its_time_box(profile):
    pathways = _pathways("Fast") + _pathways("Slow", fieldOfStudy="Marine Biology")
    researcher = FakeResearcher({"Fast": _programs("Fast", 3)}, delays={"Slow": 30})
    settings = _settings(pathway_timeout_seconds=0.1)

    result = await _orchestrator(FakePlanner(pathways), researcher, settings).generate(profile)

    assert result.note is None
    names = [p.name for p in result.recommendations]
    assert {"Fast 0", "Fast 1", "Fast 2"} <= set(names)
    assert any(p.field_of_study == "Marine Biology" for p in result.recommendations)
    assert researcher.cancelled == ["Slow"]


@pytest.mark.asyncio
async def test_failed_pathway_is_simulated_without_note(profile):
    pathways = _pathways("Good") + _pathways("Broken", fieldOfStudy="Philosophy")
    researcher = FakeResearcher(
        {"Good": _programs("Good", 2)},
        errors={"Broken": ProviderError("openai API error 500", provider="openai", status=500)},
    )

    result = await _orchestrator(FakePlanner(pathways), researcher).generate(profile)

    assert result.note is None
    assert any(p.field_of_study == "Philosophy" for p in result.recommendations)
    assert any(p.name == "Good 0" for p in result.recommendations)


@pytest.mark.asyncio
async def test_empty_research_falls_back_to_simulation(profile):
    pathways = _pathways("A", "B")

    result = await _orchestrator(FakePlanner(pathways), FakeResearcher()).generate(profile)

    assert result.note is None
    assert result.recommendations
    assert all(p.institution in SIMULATED_INSTITUTIONS for p in result.recommendations)


@pytest.mark.asyncio
async def test_unexpected_pathway_error_keeps_sibling_results(profile):
    pathways = _pathways("Good") + _pathways("Bad", fieldOfStudy="Linguistics")
    researcher = FakeResearcher(
        {"Good": _programs("Good", 3)},
        errors={"Bad": UnicodeDecodeError("utf-8", b"\xff\xfe", 0, 1, "invalid start byte")},
    )

    result = await _orchestrator(FakePlanner(pathways), researcher).generate(profile)

    assert result.note is None
    assert result.state is PipelineState.ASSEMBLED
    names = [p.name for p in result.recommendations]
    assert {"Good 0", "Good 1", "Good 2"} <= set(names)
    assert any(p.field_of_study == "Linguistics" for p in result.recommendations)


@pytest.mark.asyncio
async def test_unexpected_planner_error_is_recovered_with_note(profile):
    planner = FakePlanner(error=RuntimeError("bug"))

    result = await _orchestrator(planner, FakeResearcher()).generate(profile)

    assert result.note == UNEXPECTED_ERROR_NOTE
    assert result.state is PipelineState.FALLBACK_ASSEMBLED
    assert result.recommendations
    assert all(p.field_of_study == "General Studies" for p in result.recommendations)


def test_ensure_configured_requires_generative_key():
    orchestrator = _orchestrator(FakePlanner(), FakeResearcher(), _settings(openai_api_key=None))

    with pytest.raises(ConfigurationError) as exc_info:
        orchestrator.ensure_configured()

    assert str(exc_info.value) == "Server configuration error: Missing OpenAI API key"


@pytest.mark.asyncio
async def test_search_disabled_produces_simulated_programs_in_budget(profile):
    settings = _settings(perplexity_api_key=None)
    simulator = SimulatedRecommendationGenerator(random.Random(2))
    researcher = ProgramResearcher(
        invoker=None, extractor=None, simulator=simulator, settings=settings, metrics=MetricsCollector()
    )

    result = await _orchestrator(FakePlanner(_pathways("A")), researcher, settings).generate(profile)

    assert result.note is None
    assert 1 <= len(result.recommendations) <= 10
    for program in result.recommendations:
        assert 15000 <= program.cost_per_year <= 50000
        assert program.is_deleted is False
    _assert_ranked(result.recommendations)
