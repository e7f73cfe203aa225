import random

from schemas.recommendation import EducationPathway
from services.simulated_generator import (
    ACADEMIC_BAND,
    BUDGET_BAND,
    CAREER_BAND,
    INSTITUTIONS,
    LOCATION_BAND,
    SimulatedRecommendationGenerator,
)

from fakes import pathway_payload


def test_generate_with_no_pathways_is_empty():
    assert SimulatedRecommendationGenerator().generate([]) == []


def test_single_pathway_yields_scored_programs_within_ranges(pathway):
    programs = SimulatedRecommendationGenerator(random.Random(42)).generate([pathway])

    assert 1 <= len(programs) <= 3
    institutions = {name for name, _ in INSTITUTIONS}
    for program in programs:
        rationale = program.match_rationale
        assert CAREER_BAND[0] <= rationale.career_alignment <= CAREER_BAND[1]
        assert BUDGET_BAND[0] <= rationale.budget_fit <= BUDGET_BAND[1]
        assert LOCATION_BAND[0] <= rationale.location_match <= LOCATION_BAND[1]
        assert ACADEMIC_BAND[0] <= rationale.academic_fit <= ACADEMIC_BAND[1]
        assert program.match_score == rationale.weighted_score()
        assert 15000 <= program.cost_per_year <= 50000
        assert 12 <= program.duration <= 24
        assert program.institution in institutions
        assert program.id.startswith("prg_")


def test_program_count_scales_with_pathway_count():
    pathways = [EducationPathway.model_validate(pathway_payload(f"Pathway {i}")) for i in range(4)]

    programs = SimulatedRecommendationGenerator(random.Random(1)).generate(pathways)

    # floor(10 / 4) == 2 per pathway
    assert len(programs) == 8
    assert len({p.id for p in programs}) == 8


def test_output_sorted_descending():
    pathways = [EducationPathway.model_validate(pathway_payload(f"Pathway {i}")) for i in range(3)]

    programs = SimulatedRecommendationGenerator(random.Random(3)).generate(pathways)
    scores = [p.match_score for p in programs]

    assert scores == sorted(scores, reverse=True)


def test_seeded_generation_is_reproducible(pathway):
    first = SimulatedRecommendationGenerator(random.Random(9)).generate([pathway])
    second = SimulatedRecommendationGenerator(random.Random(9)).generate([pathway])

    assert [p.match_score for p in first] == [p.match_score for p in second]
    assert [p.institution for p in first] == [p.institution for p in second]
