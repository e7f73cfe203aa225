import random

import pytest

from core.config import Settings
from services.metrics_service import ComponentType, MetricsCollector
from services.program_researcher import ProgramResearcher, construct_detailed_query
from services.research_invoker import FallbackResearchInvoker
from services.simulated_generator import INSTITUTIONS, SimulatedRecommendationGenerator
from services.structured_extractor import StructuredExtractor

from fakes import FakeGenerativeClient, FakeSearchClient, complete_search_text, program_payload, responses_body

SIMULATED_INSTITUTIONS = {name for name, _ in INSTITUTIONS}


def _researcher(settings, search_script=None, response_script=None):
    metrics = MetricsCollector()
    search = FakeSearchClient(search_script)
    generative = FakeGenerativeClient(response_script=response_script)
    invoker = FallbackResearchInvoker(search, generative, settings, metrics=metrics, retry_wait_seconds=0)
    extractor = StructuredExtractor(generative, settings.evaluation_model, metrics=metrics)
    researcher = ProgramResearcher(
        invoker,
        extractor,
        SimulatedRecommendationGenerator(random.Random(5)),
        settings,
        metrics=metrics,
        rng=random.Random(5),
    )
    return researcher, search, generative, metrics


@pytest.mark.asyncio
async def test_simulates_when_search_is_not_configured(pathway, profile):
    settings = Settings(openai_api_key="sk-test", perplexity_api_key=None)
    researcher, search, generative, metrics = _researcher(settings)

    programs = await researcher.research(pathway, profile)

    assert programs
    assert all(p.institution in SIMULATED_INSTITUTIONS for p in programs)
    assert search.calls == []
    assert generative.responses.calls == []
    assert [e.component for e in metrics.events] == [ComponentType.SIMULATOR]


@pytest.mark.asyncio
async def test_search_first_path_extracts_and_ranks(settings, pathway, profile):
    payload = {"programs": [program_payload(f"Program {i}") for i in range(7)]}
    researcher, search, generative, _ = _researcher(
        settings, [complete_search_text()], [responses_body(payload)]
    )

    programs = await researcher.research(pathway, profile)

    assert 1 <= len(programs) <= 5
    assert len({p.id for p in programs}) == len(programs)
    assert all(p.id.startswith("prg_") for p in programs)
    assert all(p.match_score == p.match_rationale.weighted_score() for p in programs)
    assert [p.match_score for p in programs] == sorted((p.match_score for p in programs), reverse=True)
    assert all(p.is_favorite is False and p.is_deleted is False for p in programs)

    [request] = generative.responses.calls
    assert "previous_response_id" not in request
    assert request["input"][1]["content"] == complete_search_text()


@pytest.mark.asyncio
async def test_evaluate_path_chains_and_recomputes_scores(settings, pathway, profile):
    payload = {"programs": [program_payload("MSc AI", matchScore=10)]}
    researcher, _, generative, _ = _researcher(settings, [complete_search_text()], [responses_body(payload)])

    [program] = await researcher.research(pathway, profile, previous_response_id="resp_prev")

    assert program.match_score == 88
    assert program.name == "MSc AI"
    [request] = generative.responses.calls
    assert request["previous_response_id"] == "resp_prev"
    assert request["input"][1]["content"].startswith("Evaluate these researched programs")


@pytest.mark.asyncio
async def test_unparseable_extraction_falls_back_to_simulation(settings, pathway, profile):
    researcher, _, _, _ = _researcher(settings, [complete_search_text()], [{"output_text": "no programs here"}])

    programs = await researcher.research(pathway, profile)

    assert programs
    assert all(p.institution in SIMULATED_INSTITUTIONS for p in programs)


@pytest.mark.asyncio
async def test_empty_extraction_falls_back_to_simulation(settings, pathway, profile):
    researcher, _, _, _ = _researcher(settings, [complete_search_text()], [responses_body({"programs": []})])

    programs = await researcher.research(pathway, profile)

    assert programs
    assert all(p.institution in SIMULATED_INSTITUTIONS for p in programs)


def test_detailed_query_lists_criteria(pathway, profile):
    query = construct_detailed_query(pathway, profile)

    assert query.lstrip().startswith("MSc Computer Science Canada")
    assert "TYPE: Master's programs" in query
    assert "FIELD: Computer Science with specializations in Machine Learning" in query
    assert "LOCATION: Canada" in query
    assert "BUDGET: $15,000-$50,000 per year" in query
    assert "DURATION: 12-24 months" in query
    assert "Bachelor's in Computer Science from University of Lisbon (GPA: 3.7)" in query
    assert "USER FEEDBACK ON THIS PATHWAY" not in query


def test_detailed_query_includes_pathway_feedback(pathway, profile):
    query = construct_detailed_query(
        pathway, profile, {"comments": "Too expensive", "concerns": "Visa requirements"}
    )

    assert "USER FEEDBACK ON THIS PATHWAY:\nToo expensive" in query
    assert "Areas of concern: Visa requirements" in query
