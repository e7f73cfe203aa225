"""
Recommendation orchestration: planning -> parallel research -> scoring -> top N.

The whole run sits under a global deadline and the research phase under its own
sub-deadline. Planning failures and deadlines degrade to simulated programs with an
explanatory note; generate() never raises.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Sequence

from core.config import Settings, get_settings
from core.errors import AdvisorError, ConfigurationError, OrchestrationTimeoutError
from schemas.profile import UserProfile
from schemas.recommendation import EducationPathway, NumericRange, RecommendationProgram
from services.match_scorer import MatchScorer
from services.metrics_service import ComponentType, MetricsCollector, MetricsContext, get_metrics_collector
from services.pathway_planner import PathwayPlanner
from services.pii_redaction import redact_user_data
from services.program_researcher import ProgramResearcher
from services.provider_client import build_generative_client, build_search_client
from services.research_invoker import FallbackResearchInvoker
from services.simulated_generator import SimulatedRecommendationGenerator
from services.structured_extractor import StructuredExtractor

logger = logging.getLogger("orchestrator")

PLANNING_FAILURE_NOTE = "Showing fallback recommendations due to a pathway generation error."
TIMEOUT_NOTE = "Showing fallback recommendations because recommendation generation timed out."
UNEXPECTED_ERROR_NOTE = "Showing fallback recommendations due to an unexpected error."

DEFAULT_PATHWAY = EducationPathway(
    title="General Graduate Studies",
    qualification_type="Master's Degree",
    field_of_study="General Studies",
    subfields=["Interdisciplinary Studies"],
    target_regions=["Global"],
    budget_range=NumericRange(min=10000, max=50000),
    duration=NumericRange(min=12, max=24),
    alignment_rationale="A broad graduate pathway used when personalized planning is unavailable.",
    alternatives=["Graduate Certificate", "Postgraduate Diploma"],
    query_string="Graduate programs in general and interdisciplinary studies",
)


async def _within(awaitable, seconds: float, stage: str):
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise OrchestrationTimeoutError(f"{stage} exceeded {seconds}s") from exc


class PipelineState(str, Enum):
    START = "START"
    PLANNING = "PLANNING"
    RESEARCHING = "RESEARCHING"
    SCORING = "SCORING"
    ASSEMBLED = "ASSEMBLED"
    FALLBACK_ASSEMBLED = "FALLBACK_ASSEMBLED"


@dataclass
class RecommendationResult:
    recommendations: List[RecommendationProgram] = field(default_factory=list)
    note: Optional[str] = None
    state: PipelineState = PipelineState.ASSEMBLED


@dataclass
class _Run:
    state: PipelineState = PipelineState.START
    pathways: List[EducationPathway] = field(default_factory=list)

    def advance(self, state: PipelineState):
        logger.debug(f"{self.state.value} -> {state.value}", extra={"state": state.value})
        self.state = state


class RecommendationOrchestrator:
    """Sequences the pipeline under its deadlines."""

    def __init__(
        self,
        planner: PathwayPlanner,
        researcher: ProgramResearcher,
        scorer: MatchScorer,
        simulator: SimulatedRecommendationGenerator,
        settings: Settings,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.planner = planner
        self.researcher = researcher
        self.scorer = scorer
        self.simulator = simulator
        self.settings = settings
        self.metrics = metrics

    def ensure_configured(self):
        if not self.settings.openai_api_key:
            raise ConfigurationError("Server configuration error: Missing OpenAI API key")

    async def generate(self, profile: UserProfile) -> RecommendationResult:
        run = _Run()
        start = time.perf_counter()
        logger.info(
            "Generating recommendations for profile: "
            + json.dumps(redact_user_data(profile.model_dump(by_alias=True, exclude_none=True)), default=str)
        )

        try:
            async with MetricsContext(ComponentType.ORCHESTRATOR, "generate", collector=self.metrics):
                result = await _within(
                    self._run(profile, run), self.settings.orchestration_timeout_seconds, "Recommendation generation"
                )
        except OrchestrationTimeoutError as exc:
            logger.error(f"{exc} during {run.state.value}", extra={"state": run.state.value})
            result = self._fallback(run.pathways, TIMEOUT_NOTE)
        except Exception as exc:
            logger.exception(f"Unexpected failure during {run.state.value}: {exc}", extra={"state": run.state.value})
            result = self._fallback(run.pathways, UNEXPECTED_ERROR_NOTE)

        logger.info(
            f"Returning {len(result.recommendations)} recommendations",
            extra={
                "state": result.state.value,
                "count": len(result.recommendations),
                "duration_ms": round((time.perf_counter() - start) * 1000),
            },
        )
        return result

    async def _run(self, profile: UserProfile, run: _Run) -> RecommendationResult:
        run.advance(PipelineState.PLANNING)
        try:
            planning = await self.planner.plan(profile)
        except AdvisorError as exc:
            logger.error(f"Pathway planning failed, using default pathway: {exc}",
                         extra={"error_type": type(exc).__name__})
            return self._fallback([], PLANNING_FAILURE_NOTE)

        run.pathways = planning.pathways[: self.settings.max_research_pathways]
        run.advance(PipelineState.RESEARCHING)

        research_timed_out = False
        try:
            batches = await _within(
                self._research_all(run.pathways, profile), self.settings.research_timeout_seconds, "Program research"
            )
        except OrchestrationTimeoutError as exc:
            logger.warning(f"{exc}, discarding partial results", extra={"state": run.state.value})
            research_timed_out = True
            batches = []

        run.advance(PipelineState.SCORING)
        programs = [program for batch in batches if batch for program in batch if program]
        if research_timed_out or not programs:
            programs = self.simulator.generate(run.pathways)

        scored = self.scorer.score_all(programs, profile)
        scored.sort(key=lambda p: p.match_score, reverse=True)
        recommendations = scored[: self.settings.max_recommendations]

        if research_timed_out:
            run.advance(PipelineState.FALLBACK_ASSEMBLED)
            return RecommendationResult(recommendations, TIMEOUT_NOTE, PipelineState.FALLBACK_ASSEMBLED)

        run.advance(PipelineState.ASSEMBLED)
        return RecommendationResult(recommendations, None, PipelineState.ASSEMBLED)

    async def _research_all(
        self, pathways: Sequence[EducationPathway], profile: UserProfile
    ) -> List[List[RecommendationProgram]]:
        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_research))

        async def research_one(pathway: EducationPathway) -> List[RecommendationProgram]:
            async with semaphore:
                return await self.research_pathway(pathway, profile)

        return await asyncio.gather(*(research_one(pathway) for pathway in pathways))

    async def research_pathway(
        self,
        pathway: EducationPathway,
        profile: UserProfile,
        previous_response_id: Optional[str] = None,
        pathway_feedback: Optional[dict] = None,
    ) -> List[RecommendationProgram]:
        """Research one pathway inside its time box; failures yield simulated programs."""
        try:
            return await asyncio.wait_for(
                self.researcher.research(pathway, profile, previous_response_id, pathway_feedback),
                timeout=self.settings.pathway_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Research for pathway exceeded {self.settings.pathway_timeout_seconds}s, simulating",
                extra={"pathway": pathway.title},
            )
        except AdvisorError as exc:
            logger.error(f"Research for pathway failed, simulating: {exc}",
                         extra={"pathway": pathway.title, "error_type": type(exc).__name__})
        except Exception as exc:
            # Isolated per pathway; siblings keep their results
            logger.exception(f"Unexpected research failure for pathway, simulating: {exc}",
                             extra={"pathway": pathway.title, "error_type": type(exc).__name__})
        return self.simulator.generate([pathway])

    def _fallback(self, pathways: Sequence[EducationPathway], note: str) -> RecommendationResult:
        programs = self.simulator.generate(list(pathways) or [DEFAULT_PATHWAY])
        programs.sort(key=lambda p: p.match_score, reverse=True)
        return RecommendationResult(
            recommendations=programs[: self.settings.max_recommendations],
            note=note,
            state=PipelineState.FALLBACK_ASSEMBLED,
        )


@lru_cache(maxsize=1)
def get_orchestrator() -> RecommendationOrchestrator:
    """Build the pipeline once from settings (FastAPI dependency)."""
    settings = get_settings()
    metrics = get_metrics_collector()
    generative_client = build_generative_client(settings)
    extractor = StructuredExtractor(generative_client, settings.evaluation_model, metrics)
    invoker = FallbackResearchInvoker(build_search_client(settings), generative_client, settings, metrics)
    simulator = SimulatedRecommendationGenerator()
    scorer = MatchScorer()
    return RecommendationOrchestrator(
        planner=PathwayPlanner(extractor, settings, metrics),
        researcher=ProgramResearcher(invoker, extractor, simulator, settings, scorer=scorer, metrics=metrics),
        scorer=scorer,
        simulator=simulator,
        settings=settings,
        metrics=metrics,
    )
