"""
Versioned API v1 routes.

Design choices:
- The router does not hardcode a prefix; main.py mounts it using settings.api_prefix.
- Error bodies are plain `{"error": ...}` objects. Only a missing profile (400) and missing
  server credentials or failed pathway planning (500) are surfaced; everything else
  degrades to simulated results inside the pipeline.
- Request bodies are optional at the signature level so a missing body gets the same
  400 as a missing `userProfile`.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from core.errors import ConfigurationError, PathwayPlanningError
from schemas.api import (
    ErrorResponse,
    GeneratePathwaysRequest,
    GeneratePathwaysResponse,
    GenerateRecommendationsRequest,
    GenerateRecommendationsResponse,
    ResearchProgramsRequest,
    ResearchProgramsResponse,
)
from services.orchestrator import RecommendationOrchestrator, get_orchestrator

router = APIRouter(tags=["recommendations"])  # mounted under /api by main.py
logger = logging.getLogger("api")

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/recommendations/generate",
    response_model=GenerateRecommendationsResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def generate_recommendations(
    request: Optional[GenerateRecommendationsRequest] = None,
    orchestrator: RecommendationOrchestrator = Depends(get_orchestrator),
):
    """Plan pathways, research programs and return the top ranked recommendations."""
    if request is None or request.user_profile is None:
        return _error(400, "Missing required parameter: userProfile")

    try:
        orchestrator.ensure_configured()
    except ConfigurationError as exc:
        logger.error(f"Recommendation request rejected: {exc}")
        return _error(500, str(exc))

    profile = request.user_profile
    if request.vector_store_id and not profile.vector_store_id:
        profile = profile.model_copy(update={"vector_store_id": request.vector_store_id})

    result = await orchestrator.generate(profile)
    return GenerateRecommendationsResponse(recommendations=result.recommendations, note=result.note)


@router.post(
    "/recommendations/pathways/generate",
    response_model=GeneratePathwaysResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def generate_pathways(
    request: Optional[GeneratePathwaysRequest] = None,
    orchestrator: RecommendationOrchestrator = Depends(get_orchestrator),
):
    """Generate (more) education pathways, optionally chaining on a previous response."""
    if request is None or request.user_profile is None:
        return _error(400, "Missing required parameter: userProfile")

    missing = request.user_profile.missing_planning_fields()
    if missing:
        return _error(400, f"Incomplete user profile. Please provide: {', '.join(missing)}")

    try:
        orchestrator.ensure_configured()
    except ConfigurationError as exc:
        logger.error(f"Pathway request rejected: {exc}")
        return _error(500, str(exc))

    try:
        result = await orchestrator.planner.plan(
            request.user_profile,
            previous_response_id=request.previous_response_id,
            existing_pathways=request.existing_pathways,
            feedback_context=[item.model_dump(by_alias=True) for item in request.feedback_context],
        )
    except PathwayPlanningError as exc:
        return _error(500, str(exc))

    return GeneratePathwaysResponse(pathways=result.pathways, response_id=result.response_id)


@router.post(
    "/recommendations/programs/research",
    response_model=ResearchProgramsResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def research_programs(
    request: Optional[ResearchProgramsRequest] = None,
    orchestrator: RecommendationOrchestrator = Depends(get_orchestrator),
):
    """Research concrete programs for one pathway and mark the pathway explored."""
    if request is None or request.pathway is None or request.user_profile is None:
        return _error(400, "Missing required parameters: pathway and userProfile")

    try:
        orchestrator.ensure_configured()
    except ConfigurationError as exc:
        logger.error(f"Research request rejected: {exc}")
        return _error(500, str(exc))

    programs = await orchestrator.research_pathway(
        request.pathway,
        request.user_profile,
        previous_response_id=request.previous_response_id,
        pathway_feedback=request.pathway_feedback,
    )
    return ResearchProgramsResponse(programs=programs, pathway=request.pathway.mark_explored())
