"""
API contract schemas for the recommendation endpoints.

Future-proofing notes:
- Request bodies keep `userProfile` optional at the schema level so the route can answer
  with the documented 400 body instead of FastAPI's generic 422.
- Feedback payloads stay loosely typed (Dict[str, Any]); the planner only renders them.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from .profile import CamelModel, UserProfile
from .recommendation import EducationPathway, RecommendationProgram


class FeedbackItem(CamelModel):
    pathway_summary: str = Field(description="Short description of the pathway the feedback refers to")
    feedback: Dict[str, Any] = Field(default_factory=dict)


class GenerateRecommendationsRequest(CamelModel):
    user_profile: Optional[UserProfile] = None
    vector_store_id: Optional[str] = None


class GenerateRecommendationsResponse(CamelModel):
    recommendations: List[RecommendationProgram] = Field(default_factory=list)
    note: Optional[str] = Field(default=None, description="Present only when results were degraded to fallback data")


class GeneratePathwaysRequest(CamelModel):
    user_profile: Optional[UserProfile] = None
    previous_response_id: Optional[str] = None
    existing_pathways: List[EducationPathway] = Field(default_factory=list)
    feedback_context: List[FeedbackItem] = Field(default_factory=list)


class GeneratePathwaysResponse(CamelModel):
    pathways: List[EducationPathway]
    response_id: Optional[str] = None


class ResearchProgramsRequest(CamelModel):
    pathway: Optional[EducationPathway] = None
    user_profile: Optional[UserProfile] = None
    previous_response_id: Optional[str] = None
    pathway_feedback: Optional[Dict[str, Any]] = None


class ResearchProgramsResponse(CamelModel):
    programs: List[RecommendationProgram]
    pathway: EducationPathway


class ErrorResponse(CamelModel):
    error: str
