"""
Pathway planning: turns a user profile into 3-5 education pathways.

Pathways come from the Responses API under a strict JSON schema. The response id
is returned so later calls (more pathways, program evaluation) can chain on the
stored conversation instead of resending the profile.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from core.config import Settings
from core.errors import AdvisorError, PathwayPlanningError
from schemas.profile import NONE_SENTINEL, UserProfile
from schemas.recommendation import EducationPathway
from services.metrics_service import ComponentType, MetricsCollector, MetricsContext
from services.structured_extractor import PATHWAY_SCHEMA, PathwayBatch, StructuredExtractor

logger = logging.getLogger("planner")

MAX_PATHWAYS = 5

PLANNER_SYSTEM_PROMPT = (
    "You are an expert career and education pathway planner. "
    "Respond strictly according to the provided JSON schema."
)

PLANNING_INSTRUCTIONS = """INSTRUCTIONS:
1. Analyze the user's background, education history, career goals, skills, preferences and constraints.
2. Consider their budget constraints, location preferences, and time limitations carefully.
3. Think outside the box - don't just suggest the most obvious educational paths.
4. If budget is low, consider alternative routes (e.g., certificates first, then degrees; online options; countries with free/cheaper education).
5. If the user already has degrees, consider if they need additional qualifications or could benefit from specialized certificates instead.
6. Consider both immediate next steps and longer-term educational journeys.
7. If existing pathways are provided, do not repeat them - suggest entirely new alternatives.
8. If user feedback is provided, learn from it to create better, more personalized recommendations.

Think carefully about each suggestion and ensure they truly fit the user's unique circumstances and goals. Be creative but practical. Respond using the required JSON schema."""


@dataclass
class PlanningResult:
    pathways: List[EducationPathway] = field(default_factory=list)
    response_id: Optional[str] = None


def _joined(values: Sequence[str]) -> str:
    cleaned = [v for v in values if v]
    return ", ".join(cleaned) if cleaned else "Not specified"


def _or_unspecified(value: Optional[str]) -> str:
    if not value or value == NONE_SENTINEL:
        return "Not specified"
    return value


def profile_summary(profile: UserProfile) -> str:
    """Render the profile sections the planner reasons over."""
    education = _joined([
        f"{_or_unspecified(edu.degree_level)} in {edu.field_of_study or 'Not specified'}"
        f" from {edu.institution or 'Not specified'} ({edu.graduation_year or 'n/a'})"
        for edu in profile.education
    ])
    gpas = _joined([f"{edu.gpa} GPA" for edu in profile.education if edu.gpa])
    goals = profile.career_goals
    prefs = profile.preferences
    languages = _joined([
        f"{lang.language} ({_or_unspecified(lang.level)})" for lang in profile.language_proficiency if lang.language
    ])

    return f"""SPECIFIC DETAILS TO CONSIDER:
1. Educational Background:
   - Current education level: {education}
   - Academic performance: {gpas}
   - Target study level: {_or_unspecified(profile.target_study_level)}

2. Career Goals:
   - Short-term goals: {goals.short_term or 'Not specified'}
   - Long-term goals: {goals.long_term or 'Not specified'}
   - Target industries: {_joined(goals.desired_industry)}
   - Desired roles: {_joined(goals.desired_roles)}

3. Skills & Competencies:
   - {_joined(profile.skills)}
   - Languages: {languages}

4. Program Preferences:
   - Preferred locations: {_joined(prefs.preferred_locations)}
   - Study mode: {_or_unspecified(prefs.study_mode)}
   - Target start: {prefs.start_date or 'Not specified'}
   - Budget constraints: ${prefs.budget_range.min:,.0f} - ${prefs.budget_range.max:,.0f} per year"""


def existing_pathways_context(existing: Sequence[EducationPathway]) -> str:
    if not existing:
        return ""
    lines = [f"{index}. {pathway.summary()}" for index, pathway in enumerate(existing, start=1)]
    return "EXISTING PATHWAYS (DO NOT DUPLICATE):\n" + "\n".join(lines)


def feedback_context_block(feedback: Sequence[Dict[str, Any]], limit: int) -> str:
    if not feedback:
        return ""
    recent = list(feedback)[-limit:] if limit > 0 else []
    if not recent:
        return ""
    lines = [
        f'{index}. Pathway: "{item.get("pathwaySummary", "")}"\n   Feedback: {json.dumps(item.get("feedback", {}))}'
        for index, item in enumerate(recent, start=1)
    ]
    return "RECENT USER FEEDBACK:\n" + "\n\n".join(lines)


class PathwayPlanner:
    """Career & education matcher."""

    def __init__(self, extractor: StructuredExtractor, settings: Settings,
                 metrics: Optional[MetricsCollector] = None):
        self.extractor = extractor
        self.settings = settings
        self.metrics = metrics

    def build_prompt(
        self,
        profile: UserProfile,
        previous_response_id: Optional[str] = None,
        existing_pathways: Optional[Sequence[EducationPathway]] = None,
        feedback_context: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> str:
        sections: List[str] = []
        if previous_response_id:
            sections.append(
                "Generate new education pathway suggestions for the same user, "
                "building on our previous conversation."
            )
        else:
            sections.append(
                "Your task is to analyze a user's profile and generate 4 creative, "
                "tailored education pathway suggestions."
            )
            sections.append(profile_summary(profile))

        existing_block = existing_pathways_context(existing_pathways or [])
        if existing_block:
            sections.append(existing_block)
        feedback_block = feedback_context_block(feedback_context or [], self.settings.feedback_context_limit)
        if feedback_block:
            sections.append(feedback_block)

        sections.append(PLANNING_INSTRUCTIONS)
        return "\n\n".join(sections)

    async def plan(
        self,
        profile: UserProfile,
        previous_response_id: Optional[str] = None,
        existing_pathways: Optional[Sequence[EducationPathway]] = None,
        feedback_context: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> PlanningResult:
        logger.info(
            f"Planning pathways (previous response: {previous_response_id or 'none'}, "
            f"existing: {len(existing_pathways or [])}, feedback: {len(feedback_context or [])})"
        )
        prompt = self.build_prompt(profile, previous_response_id, existing_pathways, feedback_context)

        try:
            async with MetricsContext(ComponentType.PLANNER, "plan", collector=self.metrics):
                result = await self.extractor.extract(
                    prompt,
                    PATHWAY_SCHEMA,
                    schema_name="education_pathways",
                    instructions=PLANNER_SYSTEM_PROMPT,
                    previous_response_id=previous_response_id,
                    model=self.settings.planner_model,
                    validator=PathwayBatch,
                )
        except AdvisorError as exc:
            logger.error(f"Pathway generation failed: {exc}", extra={"error_type": type(exc).__name__})
            raise PathwayPlanningError(f"Education pathway generation failed: {exc}") from exc

        pathways = [
            pathway.model_copy(update={"is_deleted": False, "is_explored": False})
            for pathway in result.data.pathways[:MAX_PATHWAYS]
        ]
        if not pathways:
            raise PathwayPlanningError("Education pathway generation failed: no pathways were returned")

        logger.info(f"Generated {len(pathways)} pathways", extra={"count": len(pathways)})
        return PlanningResult(pathways=pathways, response_id=result.response_id)
