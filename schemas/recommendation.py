"""
Pathway and program schemas produced by the recommendation pipeline.

Future-proofing notes:
- Provider output (camelCase, `alignment`) and stored rows (snake_case, scalar
  `duration_months`) both validate into the same EducationPathway.
- Flags that live as snake_case columns in the store (`is_deleted`, `is_explored`,
  `last_explored_at`) keep that spelling on the wire.
- MatchRationale clamps sub-scores into [0, 100]; the overall score is always
  recomputed from them so the weighted-score invariant holds for every program.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field, field_validator

from .profile import CamelModel

# Weights of the overall match score
CAREER_WEIGHT = 0.4
BUDGET_WEIGHT = 0.2
LOCATION_WEIGHT = 0.2
ACADEMIC_WEIGHT = 0.2


class NumericRange(CamelModel):
    min: float = 0
    max: float = 0

    @field_validator("min", "max", mode="before")
    @classmethod
    def default_missing(cls, v: Any) -> Any:
        return 0 if v is None else v


class EducationPathway(CamelModel):
    id: Optional[str] = None
    title: str = "Untitled Pathway"
    qualification_type: str = "Degree"
    field_of_study: str = "General Studies"
    subfields: List[str] = Field(default_factory=list)
    target_regions: List[str] = Field(default_factory=list)
    budget_range: NumericRange = Field(
        default_factory=lambda: NumericRange(min=10000, max=50000),
        validation_alias=AliasChoices("budgetRange", "budget_range", "budget_range_usd"),
    )
    duration: NumericRange = Field(
        default_factory=lambda: NumericRange(min=12, max=24),
        validation_alias=AliasChoices("duration", "duration_months"),
    )
    alignment_rationale: str = Field(
        default="",
        validation_alias=AliasChoices("alignmentRationale", "alignment_rationale", "alignment"),
    )
    alternatives: List[str] = Field(default_factory=list)
    query_string: str = ""
    is_deleted: bool = Field(default=False, alias="is_deleted")
    is_explored: bool = Field(default=False, alias="is_explored")
    last_explored_at: Optional[datetime] = Field(default=None, alias="last_explored_at")

    @field_validator("duration", mode="before")
    @classmethod
    def scalar_duration(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return {"min": v, "max": v}
        return v

    @field_validator("subfields", "target_regions", "alternatives", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def summary(self) -> str:
        return f'"{self.title}" - {self.qualification_type} in {self.field_of_study}'

    def mark_explored(self) -> "EducationPathway":
        return self.model_copy(update={"is_explored": True, "last_explored_at": datetime.now(timezone.utc)})


class MatchRationale(CamelModel):
    career_alignment: int = 0
    budget_fit: int = 0
    location_match: int = 0
    academic_fit: int = 0

    @field_validator("career_alignment", "budget_fit", "location_match", "academic_fit", mode="before")
    @classmethod
    def clamp(cls, v: Any) -> int:
        try:
            value = int(math.floor(float(v)))
        except (TypeError, ValueError):
            value = 0
        return max(0, min(100, value))

    def weighted_score(self) -> int:
        return weighted_match_score(self.career_alignment, self.budget_fit, self.location_match, self.academic_fit)


def weighted_match_score(career: float, budget: float, location: float, academic: float) -> int:
    # Weights scaled to tenths so integer sub-scores floor exactly (0.4 * 95 is not 38.0 in floats)
    score = (
        round(CAREER_WEIGHT * 10) * career
        + round(BUDGET_WEIGHT * 10) * budget
        + round(LOCATION_WEIGHT * 10) * location
        + round(ACADEMIC_WEIGHT * 10) * academic
    ) // 10
    return max(0, min(100, int(score)))


class Scholarship(CamelModel):
    name: str = "Unnamed Scholarship"
    amount: str = "0"
    eligibility: str = "No eligibility criteria specified"


class RecommendationProgram(CamelModel):
    id: str = ""
    name: str = "Unnamed Program"
    institution: str = "Unknown Institution"
    degree_type: str = "Not Specified"
    field_of_study: str = "Not Specified"
    description: str = "No description available"
    cost_per_year: float = 0
    duration: float = 12
    location: str = "Not specified"
    start_date: str = "Not specified"
    application_deadline: str = "Not specified"
    requirements: List[str] = Field(default_factory=list)
    highlights: List[str] = Field(default_factory=list)
    page_link: Optional[str] = None
    scholarships: Optional[List[Scholarship]] = None
    match_score: int = 0
    match_rationale: Optional[MatchRationale] = None
    is_favorite: Optional[bool] = None
    feedback_negative: Optional[bool] = None
    feedback_reason: Optional[str] = None
    feedback_data: Optional[Dict[str, Any]] = None
    is_deleted: Optional[bool] = Field(default=None, alias="is_deleted")

    @field_validator("cost_per_year", "duration", mode="before")
    @classmethod
    def numeric_or_zero(cls, v: Any) -> Any:
        if v is None:
            return 0
        if isinstance(v, str):
            digits = v.replace(",", "").replace("$", "").strip()
            try:
                return float(digits)
            except ValueError:
                return 0
        return v

    @field_validator("requirements", "highlights", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def with_rationale(self, rationale: MatchRationale) -> "RecommendationProgram":
        return self.model_copy(update={"match_rationale": rationale, "match_score": rationale.weighted_score()})
