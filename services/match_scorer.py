"""
Match scoring between programs and a user profile.

Four sub-scores (career alignment, budget fit, location match, academic fit) are
combined into the overall match score with weights 0.4/0.2/0.2/0.2.
"""
from __future__ import annotations

import logging
import math
import random
from typing import List, Optional

from schemas.profile import NONE_SENTINEL, UserProfile
from schemas.recommendation import EducationPathway, MatchRationale, RecommendationProgram

logger = logging.getLogger("scoring")

DEFAULT_BUDGET_MAX = 100000

# Degree progressions that earn the academic-fit bonus: (held degree, program level)
_PROGRESSIONS = (
    ("bachelor", ("master",)),
    ("master", ("doctor", "phd")),
)


def _country(location: str) -> Optional[str]:
    # "New York, USA" -> "usa"
    parts = location.split(",")
    if len(parts) > 1:
        return parts[-1].strip().lower()
    return None


class MatchScorer:
    """Deterministic heuristics behind the match rationale."""

    def career_alignment(self, program: RecommendationProgram, profile: UserProfile) -> int:
        program_field = (program.field_of_study or "").lower()
        industries = [i.lower() for i in profile.career_goals.desired_industry if i]
        roles = [r.lower() for r in profile.career_goals.desired_roles if r]

        score = 75
        if any(industry in program_field for industry in industries):
            score += 10
        if any(role in program_field for role in roles):
            score += 10
        return min(95, score)

    def budget_fit(self, program: RecommendationProgram, profile: UserProfile) -> int:
        budget_max = profile.preferences.budget_range.max or DEFAULT_BUDGET_MAX
        cost = program.cost_per_year or 0

        if cost <= budget_max:
            return min(100, math.floor(100 - (cost / budget_max) * 100 + 75))
        return max(50, math.floor(90 - ((cost - budget_max) / budget_max) * 100))

    def location_match(self, program: RecommendationProgram, profile: UserProfile) -> int:
        preferred = [p for p in profile.preferences.preferred_locations if p and p.strip()]
        if not preferred:
            return 80

        location = (program.location or "").lower()
        if any(p.strip().lower() in location for p in preferred):
            return 95

        location_country = _country(location)
        if location_country:
            for p in preferred:
                if _country(p) == location_country:
                    return 85
        return 70

    def academic_fit(self, program: RecommendationProgram, profile: UserProfile) -> int:
        program_level = (program.degree_type or "").lower()
        history = [edu for edu in profile.education if edu.degree_level != NONE_SENTINEL]

        score = 75
        latest = max(history, key=lambda edu: _year(edu.graduation_year), default=None)
        held = latest.degree_level.lower() if latest else None
        if held is None:
            if "bachelor" in program_level:
                score += 15
        else:
            for degree, next_levels in _PROGRESSIONS:
                if degree in held and any(level in program_level for level in next_levels):
                    score += 15
                    break

        program_field = (program.field_of_study or "").lower()
        studied = [edu.field_of_study.lower() for edu in profile.education if edu.field_of_study]
        if any(field in program_field for field in studied):
            score += 5
        return min(95, score)

    def rationale(self, program: RecommendationProgram, profile: UserProfile) -> MatchRationale:
        return MatchRationale(
            career_alignment=self.career_alignment(program, profile),
            budget_fit=self.budget_fit(program, profile),
            location_match=self.location_match(program, profile),
            academic_fit=self.academic_fit(program, profile),
        )

    def enhance(self, program: RecommendationProgram, profile: UserProfile) -> RecommendationProgram:
        """Fill the rationale when absent; the overall score always follows the rationale."""
        rationale = program.match_rationale or self.rationale(program, profile)
        return program.with_rationale(rationale)

    def score_all(self, programs: List[RecommendationProgram], profile: UserProfile) -> List[RecommendationProgram]:
        scored = [self.enhance(program, profile) for program in programs]
        logger.debug(f"Scored {len(scored)} programs", extra={"count": len(scored)})
        return scored

    @staticmethod
    def rank_based_scores(
        programs: List[RecommendationProgram],
        pathway: EducationPathway,
        rng: Optional[random.Random] = None,
    ) -> List[RecommendationProgram]:
        """Score search results by their position, nudged by how well they match the pathway."""
        rng = rng or random.Random()
        qualification = pathway.qualification_type.lower()
        field = pathway.field_of_study.lower()

        scored = []
        for rank, program in enumerate(programs):
            base = max(70, 95 - 3 * rank)
            if qualification and qualification in program.degree_type.lower():
                base += 2
            if field and field in program.field_of_study.lower():
                base += 3
            base = min(98, base)

            rationale = MatchRationale(
                career_alignment=base + rng.randint(-5, 5),
                budget_fit=base + rng.randint(-5, 5),
                location_match=base + rng.randint(-5, 5),
                academic_fit=base + rng.randint(-5, 5),
            )
            scored.append(program.with_rationale(rationale))
        return scored


def _year(value: str) -> int:
    try:
        return int(str(value).strip()[:4])
    except ValueError:
        return 0
