"""
Terminal fallback: synthetic programs built from pathway data alone.

Never raises and never performs I/O, so the pipeline always has something to return.
"""
from __future__ import annotations

import logging
import random
import uuid
from typing import List, Optional, Sequence

from schemas.recommendation import EducationPathway, MatchRationale, RecommendationProgram, Scholarship

logger = logging.getLogger("simulator")

# (institution, location)
INSTITUTIONS = (
    ("University of Toronto", "Toronto, Canada"),
    ("University of Melbourne", "Melbourne, Australia"),
    ("Technical University of Munich", "Munich, Germany"),
    ("University of Edinburgh", "Edinburgh, United Kingdom"),
    ("National University of Singapore", "Singapore, Singapore"),
    ("University of Amsterdam", "Amsterdam, Netherlands"),
    ("University of California, Berkeley", "Berkeley, USA"),
    ("KTH Royal Institute of Technology", "Stockholm, Sweden"),
)

MAX_PER_PATHWAY = 3
TOTAL_PROGRAMS = 10

CAREER_BAND = (80, 95)
BUDGET_BAND = (75, 95)
LOCATION_BAND = (70, 95)
ACADEMIC_BAND = (75, 95)


def new_program_id() -> str:
    return f"prg_{uuid.uuid4().hex}"


class SimulatedRecommendationGenerator:
    """Synthetic programs drawn from a fixed institution table and the pathway's own ranges."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(self, pathways: Sequence[EducationPathway]) -> List[RecommendationProgram]:
        if not pathways:
            return []

        per_pathway = min(MAX_PER_PATHWAY, TOTAL_PROGRAMS // len(pathways))
        programs: List[RecommendationProgram] = []
        for pathway in pathways:
            for _ in range(max(1, per_pathway)):
                programs.append(self._program(pathway))

        programs.sort(key=lambda p: p.match_score, reverse=True)
        logger.info(f"Generated {len(programs)} simulated programs for {len(pathways)} pathways",
                    extra={"count": len(programs)})
        return programs

    def _uniform(self, low: float, high: float) -> float:
        if high < low:
            low, high = high, low
        return self.rng.uniform(low, high)

    def _program(self, pathway: EducationPathway) -> RecommendationProgram:
        institution, location = self.rng.choice(INSTITUTIONS)
        cost = round(self._uniform(pathway.budget_range.min, pathway.budget_range.max))
        duration = round(self._uniform(pathway.duration.min, pathway.duration.max))

        rationale = MatchRationale(
            career_alignment=self.rng.randint(*CAREER_BAND),
            budget_fit=self.rng.randint(*BUDGET_BAND),
            location_match=self.rng.randint(*LOCATION_BAND),
            academic_fit=self.rng.randint(*ACADEMIC_BAND),
        )

        program = RecommendationProgram(
            id=new_program_id(),
            name=f"{pathway.qualification_type} in {pathway.field_of_study}",
            institution=institution,
            degree_type=pathway.qualification_type,
            field_of_study=pathway.field_of_study,
            description=(
                f"This {pathway.qualification_type} program in {pathway.field_of_study} at {institution} "
                f"offers comprehensive education aligned with the {pathway.title} pathway."
            ),
            cost_per_year=cost,
            duration=duration,
            location=location,
            start_date="September",
            application_deadline="Rolling admissions",
            requirements=["Previous qualification in a related field", "English language proficiency"],
            highlights=[f"Specialization options in {', '.join(pathway.subfields) or pathway.field_of_study}"],
            scholarships=[
                Scholarship(
                    name=f"{institution} Merit Scholarship",
                    amount="Varies",
                    eligibility="Awarded on academic merit",
                )
            ],
            is_favorite=False,
            feedback_negative=False,
            is_deleted=False,
        )
        return program.with_rationale(rationale)
