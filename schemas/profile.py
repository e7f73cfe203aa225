"""
User profile schema consumed by the recommendation pipeline.

Design choices:
- Wire format is camelCase (alias generator); snake_case names are accepted too so
  stored rows and API payloads validate through the same model.
- Enumerated fields never fail validation on free text: values are normalized
  against a closed set and collapse to the "__NONE__" sentinel when unknown.
- Missing nested sections get the same defaults the profile sanitizer used, so
  prompt builders never have to guard against None.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

NONE_SENTINEL = "__NONE__"

DEGREE_LEVELS = (
    "High School",
    "Associate's",
    "Bachelor's",
    "Master's",
    "Doctorate",
    "Certificate",
    "Diploma",
    "Other",
)
STUDY_MODES = ("Full-time", "Part-time", "Online", "Hybrid", "Flexible")
PROFICIENCY_LEVELS = ("Native", "Fluent", "Advanced", "Intermediate", "Basic")
DURATION_UNITS = ("months", "years")

_DEGREE_SYNONYMS = {
    "highschool": "High School",
    "secondary": "High School",
    "gcse": "High School",
    "alevel": "High School",
    "associate": "Associate's",
    "associates": "Associate's",
    "bachelor": "Bachelor's",
    "bachelors": "Bachelor's",
    "undergraduate": "Bachelor's",
    "ba": "Bachelor's",
    "bs": "Bachelor's",
    "bsc": "Bachelor's",
    "master": "Master's",
    "masters": "Master's",
    "postgraduate": "Master's",
    "ma": "Master's",
    "ms": "Master's",
    "msc": "Master's",
    "mba": "Master's",
    "phd": "Doctorate",
    "doctoral": "Doctorate",
    "doctor": "Doctorate",
    "dphil": "Doctorate",
    "cert": "Certificate",
    "certification": "Certificate",
}
_STUDY_MODE_SYNONYMS = {
    "fulltime": "Full-time",
    "parttime": "Part-time",
    "remote": "Online",
    "distance": "Online",
    "distancelearning": "Online",
    "blended": "Hybrid",
    "any": "Flexible",
    "either": "Flexible",
}
_PROFICIENCY_SYNONYMS = {
    "mothertongue": "Native",
    "nativespeaker": "Native",
    "c2": "Fluent",
    "proficient": "Fluent",
    "c1": "Advanced",
    "b2": "Intermediate",
    "b1": "Intermediate",
    "conversational": "Intermediate",
    "a2": "Basic",
    "a1": "Basic",
    "beginner": "Basic",
    "elementary": "Basic",
}


def _key(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def normalize_choice(value: Any, choices: tuple, synonyms: Optional[Dict[str, str]] = None) -> str:
    """Collapse free text onto one member of `choices`, or the sentinel."""
    if value is None:
        return NONE_SENTINEL
    text = str(value).strip()
    if not text or text == NONE_SENTINEL:
        return NONE_SENTINEL
    key = _key(text)
    for choice in choices:
        if _key(choice) == key:
            return choice
    if synonyms and key in synonyms:
        return synonyms[key]
    return NONE_SENTINEL


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Education(CamelModel):
    degree_level: str = NONE_SENTINEL
    institution: str = ""
    field_of_study: str = ""
    graduation_year: str = ""
    gpa: Optional[str] = None

    @field_validator("degree_level", mode="before")
    @classmethod
    def normalize_degree_level(cls, v: Any) -> str:
        return normalize_choice(v, DEGREE_LEVELS, _DEGREE_SYNONYMS)

    @field_validator("graduation_year", "gpa", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        # Extraction output often carries numbers here
        if isinstance(v, (int, float)):
            return str(v)
        return v


class CareerGoals(CamelModel):
    short_term: str = ""
    long_term: str = ""
    achievements: str = ""
    desired_industry: List[str] = Field(default_factory=list)
    desired_roles: List[str] = Field(default_factory=list)

    @field_validator("desired_industry", "desired_roles", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class BudgetRange(CamelModel):
    min: float = 0
    max: float = 100000


class PreferredDuration(CamelModel):
    min: Optional[float] = None
    max: Optional[float] = None
    unit: Optional[str] = None

    @field_validator("unit", mode="before")
    @classmethod
    def normalize_unit(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return normalize_choice(v, DURATION_UNITS, {"month": "months", "year": "years"})


class LivingExpensesBudget(CamelModel):
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None


class Preferences(CamelModel):
    preferred_locations: List[str] = Field(default_factory=list)
    study_mode: str = "Full-time"
    start_date: str = ""
    budget_range: BudgetRange = Field(default_factory=BudgetRange)
    preferred_duration: Optional[PreferredDuration] = None
    preferred_study_language: str = ""
    living_expenses_budget: Optional[LivingExpensesBudget] = None
    residency_interest: Optional[bool] = None

    @field_validator("study_mode", mode="before")
    @classmethod
    def normalize_study_mode(cls, v: Any) -> str:
        return normalize_choice(v, STUDY_MODES, _STUDY_MODE_SYNONYMS)

    @field_validator("budget_range", mode="before")
    @classmethod
    def default_budget(cls, v: Any) -> Any:
        return v if v else BudgetRange()

    @field_validator("preferred_locations", mode="before")
    @classmethod
    def coerce_locations(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class LanguageProficiency(CamelModel):
    language: str = ""
    level: str = NONE_SENTINEL

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        return normalize_choice(v, PROFICIENCY_LEVELS, _PROFICIENCY_SYNONYMS)


class UserProfile(CamelModel):
    first_name: str = ""
    last_name: str = ""
    preferred_name: str = ""
    email: str = ""
    phone: str = ""
    current_location: str = ""
    nationality: str = ""

    education: List[Education] = Field(default_factory=list)
    career_goals: CareerGoals = Field(default_factory=CareerGoals)
    skills: List[str] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    target_study_level: str = NONE_SENTINEL
    language_proficiency: List[LanguageProficiency] = Field(default_factory=list)
    vector_store_id: Optional[str] = None

    @field_validator("target_study_level", mode="before")
    @classmethod
    def normalize_target_level(cls, v: Any) -> str:
        return normalize_choice(v, DEGREE_LEVELS, _DEGREE_SYNONYMS)

    @field_validator("career_goals", "preferences", mode="before")
    @classmethod
    def default_sections(cls, v: Any) -> Any:
        return v if v is not None else {}

    @field_validator("education", "skills", "language_proficiency", mode="before")
    @classmethod
    def default_lists(cls, v: Any) -> Any:
        return v if v is not None else []

    def missing_planning_fields(self) -> List[str]:
        """Names of the profile sections pathway planning cannot work without."""
        missing: List[str] = []
        if not self.education:
            missing.append("education history")
        if self.target_study_level == NONE_SENTINEL:
            missing.append("target study level")
        goals = self.career_goals
        if not (goals.short_term or goals.long_term or goals.desired_industry or goals.desired_roles):
            missing.append("career goals")
        if not self.preferences.preferred_locations:
            missing.append("preferences")
        return missing
