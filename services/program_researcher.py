"""
Program research for a single education pathway.

Search-first path: detailed query -> research tiers -> structured extraction ->
rank-based scoring. Evaluate-after-research path (a previous response id is given):
the extraction chains on the stored conversation and the model scores the programs
itself. Any failure degrades to simulated programs for this pathway only.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional

from core.config import Settings
from core.errors import AdvisorError
from schemas.profile import NONE_SENTINEL, UserProfile
from schemas.recommendation import EducationPathway, RecommendationProgram
from services.match_scorer import MatchScorer
from services.metrics_service import ComponentType, MetricsCollector, MetricsContext, get_metrics_collector
from services.research_invoker import FallbackResearchInvoker
from services.simulated_generator import SimulatedRecommendationGenerator, new_program_id
from services.structured_extractor import PROGRAM_EVALUATION_SCHEMA, ProgramBatch, StructuredExtractor

logger = logging.getLogger("researcher")

MAX_PROGRAMS_PER_PATHWAY = 5

EXTRACTION_INSTRUCTIONS = (
    "You are an expert education data analyst. Extract every distinct educational program "
    "described in the research text into the provided JSON schema. Use numbers for costPerYear "
    "(annual cost in USD) and duration (months). Use empty strings or empty arrays when a detail "
    "is not mentioned. Do not invent programs that are not in the text."
)

EVALUATION_INSTRUCTIONS = """You are an expert education advisor evaluating researched programs for the user from our previous conversation.
For each program in the research text, assign four sub-scores from 0 to 100:
- careerAlignment: how directly the program leads to the user's desired industries and roles
- budgetFit: how well the annual cost fits the user's budget range
- locationMatch: how well the location matches the user's preferred locations
- academicFit: whether the program is a natural next step from the user's education history
Compute matchScore = floor(0.4 * careerAlignment + 0.2 * budgetFit + 0.2 * locationMatch + 0.2 * academicFit).
Return only the 5 programs with the highest matchScore, strictly following the provided JSON schema."""


def construct_detailed_query(
    pathway: EducationPathway,
    profile: UserProfile,
    pathway_feedback: Optional[Dict[str, Any]] = None,
) -> str:
    """Build the research query for one pathway."""
    prefs = profile.preferences
    education = ", ".join(
        f"{edu.degree_level if edu.degree_level != NONE_SENTINEL else 'Unknown level'} in "
        f"{edu.field_of_study or 'Not specified'} from {edu.institution or 'Not specified'}"
        + (f" (GPA: {edu.gpa})" if edu.gpa else "")
        for edu in profile.education
    ) or "Not specified"
    subfields = ", ".join(pathway.subfields)
    regions = ", ".join(pathway.target_regions) or "Global"

    feedback_notes = ""
    if pathway_feedback:
        lines = [
            "USER FEEDBACK ON THIS PATHWAY:",
            str(pathway_feedback.get("comments") or "No specific comments provided"),
        ]
        if pathway_feedback.get("preferences"):
            lines.append(f"Specific preferences: {pathway_feedback['preferences']}")
        if pathway_feedback.get("concerns"):
            lines.append(f"Areas of concern: {pathway_feedback['concerns']}")
        lines.append("Please take this feedback into account when finding specific programs.")
        feedback_notes = "\n".join(lines)

    return f"""
{pathway.query_string}
I need a comprehensive list of educational programs matching the following criteria:

TYPE: {pathway.qualification_type} programs
FIELD: {pathway.field_of_study}{f' with specializations in {subfields}' if subfields else ''}
LOCATION: {regions}
BUDGET: ${prefs.budget_range.min:,.0f}-${prefs.budget_range.max:,.0f} per year
DURATION: {pathway.duration.min:g}-{pathway.duration.max:g} months

USER BACKGROUND:
- Education: {education}
- Skills: {', '.join(profile.skills) or 'Not specified'}

USER PREFERENCES:
- Preferred locations: {', '.join(prefs.preferred_locations) or 'Not specified'}
- Study mode preference: {prefs.study_mode if prefs.study_mode != NONE_SENTINEL else 'Not specified'}
- Target start date: {prefs.start_date or 'Not specified'}

{feedback_notes}

IMPORTANT INSTRUCTIONS:
1. List AT LEAST 5 different programs - preferably 8-10 if available.
2. List them in a numbered format (1. First Program, 2. Second Program, etc.)
3. For EACH program, provide comprehensive details including:
   - Program name and degree/certificate type
   - Institution name
   - Field of study and specializations
   - Detailed program description
   - Annual cost in USD
   - Program duration in months
   - Location (city, country, or online)
   - Application deadlines and start dates
   - Key admission requirements
   - Program highlights and unique features
   - Direct URL to the program webpage
   - Available scholarships and financial aid options
4. Continue providing programs until you've listed at least 5 complete program profiles.
5. Make sure to provide URLs for each program.
6. Prioritize programs that match the user's budget and location preferences.
7. DO NOT abbreviate or truncate your response. List all programs in full detail.

Begin your response with "PROGRAM LIST:" followed by the complete numbered list of programs.
"""


def _finalize(programs: List[RecommendationProgram]) -> List[RecommendationProgram]:
    finalized = [
        program.model_copy(update={
            "id": new_program_id(),
            "is_favorite": False,
            "feedback_negative": False,
            "is_deleted": False,
            "scholarships": program.scholarships or [],
        })
        for program in programs
    ]
    finalized.sort(key=lambda p: p.match_score, reverse=True)
    return finalized[:MAX_PROGRAMS_PER_PATHWAY]


class ProgramResearcher:
    """Finds concrete programs for one pathway."""

    def __init__(
        self,
        invoker: FallbackResearchInvoker,
        extractor: StructuredExtractor,
        simulator: SimulatedRecommendationGenerator,
        settings: Settings,
        scorer: Optional[MatchScorer] = None,
        metrics: Optional[MetricsCollector] = None,
        rng: Optional[random.Random] = None,
    ):
        self.invoker = invoker
        self.extractor = extractor
        self.simulator = simulator
        self.settings = settings
        self.scorer = scorer or MatchScorer()
        self.metrics = metrics
        self.rng = rng or random.Random()

    async def research(
        self,
        pathway: EducationPathway,
        profile: UserProfile,
        previous_response_id: Optional[str] = None,
        pathway_feedback: Optional[Dict[str, Any]] = None,
    ) -> List[RecommendationProgram]:
        if not self.settings.search_enabled:
            logger.warning("Search provider not configured, simulating programs", extra={"pathway": pathway.title})
            return self.simulate(pathway)

        query = construct_detailed_query(pathway, profile, pathway_feedback)
        try:
            async with MetricsContext(
                ComponentType.RESEARCHER, "research", collector=self.metrics, pathway=pathway.title
            ):
                if previous_response_id:
                    programs = await self.evaluate_programs(query, pathway, profile, previous_response_id)
                else:
                    programs = await self.search_programs(query, pathway)
        except AdvisorError as exc:
            logger.error(
                f"Program research failed, simulating programs: {exc}",
                extra={"pathway": pathway.title, "error_type": type(exc).__name__},
            )
            return self.simulate(pathway)

        if not programs:
            logger.warning("No programs extracted, simulating programs", extra={"pathway": pathway.title})
            return self.simulate(pathway)

        logger.info(f"Found {len(programs)} programs", extra={"pathway": pathway.title, "count": len(programs)})
        return programs

    def simulate(self, pathway: EducationPathway) -> List[RecommendationProgram]:
        programs = self.simulator.generate([pathway])
        (self.metrics or get_metrics_collector()).record_latency(
            ComponentType.SIMULATOR, "pathway", 0.0, True, pathway=pathway.title
        )
        return programs

    async def search_programs(self, query: str, pathway: EducationPathway) -> List[RecommendationProgram]:
        text = await self.call_search_api(query)
        return await self.parse_search_response(text, pathway)

    async def call_search_api(self, query: str) -> str:
        return await self.invoker.research(query)

    async def parse_search_response(self, text: str, pathway: EducationPathway) -> List[RecommendationProgram]:
        result = await self.extractor.extract(
            text,
            PROGRAM_EVALUATION_SCHEMA,
            schema_name="program_evaluation",
            instructions=EXTRACTION_INSTRUCTIONS,
            model=self.settings.evaluation_model,
            validator=ProgramBatch,
        )
        programs = result.data.programs
        logger.debug(f"Extracted {len(programs)} programs from {len(text)} chars", extra={"pathway": pathway.title})
        return _finalize(self.scorer.rank_based_scores(programs, pathway, self.rng))

    async def evaluate_programs(
        self, query: str, pathway: EducationPathway, profile: UserProfile, previous_response_id: str
    ) -> List[RecommendationProgram]:
        text = await self.call_search_api(query)
        result = await self.extractor.extract(
            f"Evaluate these researched programs for the pathway {pathway.summary()}:\n\n{text}",
            PROGRAM_EVALUATION_SCHEMA,
            schema_name="program_evaluation",
            instructions=EVALUATION_INSTRUCTIONS,
            previous_response_id=previous_response_id,
            model=self.settings.evaluation_model,
            validator=ProgramBatch,
        )
        return _finalize(self.scorer.score_all(result.data.programs, profile))
