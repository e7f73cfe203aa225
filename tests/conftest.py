"""
Shared fixtures: a complete profile, a pathway and test settings.
"""

from typing import Any, Dict

import pytest

from core.config import Settings
from schemas.profile import UserProfile
from schemas.recommendation import EducationPathway

from fakes import pathway_payload


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="sk-test",
        perplexity_api_key="pplx-test",
        search_max_attempts=2,
    )


@pytest.fixture
def profile_data() -> Dict[str, Any]:
    return {
        "firstName": "Alex",
        "lastName": "Rivera",
        "email": "alex.rivera@example.com",
        "phone": "555-123-4567",
        "currentLocation": "Lisbon, Portugal",
        "nationality": "Portuguese",
        "education": [
            {
                "degreeLevel": "bachelors",
                "institution": "University of Lisbon",
                "fieldOfStudy": "Computer Science",
                "graduationYear": 2021,
                "gpa": 3.7,
            }
        ],
        "careerGoals": {
            "shortTerm": "Join an ML team",
            "longTerm": "Lead AI research",
            "achievements": "",
            "desiredIndustry": ["Technology"],
            "desiredRoles": ["Machine Learning Engineer"],
        },
        "skills": ["Python", "Statistics"],
        "preferences": {
            "preferredLocations": ["Canada", "Berlin, Germany"],
            "studyMode": "full time",
            "startDate": "Fall 2025",
            "budgetRange": {"min": 15000, "max": 50000},
        },
        "targetStudyLevel": "masters",
        "languageProficiency": [{"language": "English", "level": "C1"}],
    }


@pytest.fixture
def profile(profile_data) -> UserProfile:
    return UserProfile.model_validate(profile_data)


@pytest.fixture
def pathway() -> EducationPathway:
    return EducationPathway.model_validate(pathway_payload())
