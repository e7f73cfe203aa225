"""
Schema-constrained extraction through the OpenAI Responses API.

Owns the JSON schemas the planner and the program evaluator extract against,
the output-text lookup across the Responses API shapes, and a regex fallback
for output that is not clean JSON.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError, model_validator

from core.errors import ProviderRefusalError, SchemaParseError
from schemas.profile import CamelModel
from schemas.recommendation import EducationPathway, RecommendationProgram
from services.metrics_service import ComponentType, MetricsCollector, MetricsContext
from services.provider_client import OpenAIClient

logger = logging.getLogger("extractor")

PREVIEW_CHARS = 200


def _range_schema(unit: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "min": {"type": "number", "description": f"Minimum estimated {unit}"},
            "max": {"type": "number", "description": f"Maximum estimated {unit}"},
        },
        "required": ["min", "max"],
        "additionalProperties": False,
    }


PATHWAY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "pathways": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "A concise title describing the pathway"},
                    "qualificationType": {"type": "string", "description": "The type of qualification suggested (e.g., Degree, Certificate, Diploma)"},
                    "fieldOfStudy": {"type": "string", "description": "Main field(s) of study"},
                    "subfields": {"type": "array", "items": {"type": "string"}, "description": "Specialization areas within the field of study"},
                    "targetRegions": {"type": "array", "items": {"type": "string"}, "description": "Geographic region(s) to target for programs"},
                    "budgetRange": _range_schema("annual cost"),
                    "duration": _range_schema("duration in months"),
                    "alignment": {"type": "string", "description": "Why this pathway aligns with the user's profile and goals"},
                    "alternatives": {"type": "array", "items": {"type": "string"}, "description": "Alternative options or variations within this pathway"},
                    "queryString": {"type": "string", "description": "A search query that would help find specific programs matching this pathway"},
                },
                "required": [
                    "title",
                    "qualificationType",
                    "fieldOfStudy",
                    "subfields",
                    "targetRegions",
                    "budgetRange",
                    "duration",
                    "alignment",
                    "alternatives",
                    "queryString",
                ],
                "additionalProperties": False,
            },
        }
    },
    "required": ["pathways"],
    "additionalProperties": False,
}

_SCORE = {"type": "integer", "minimum": 0, "maximum": 100}

PROGRAM_EVALUATION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "programs": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "institution": {"type": "string"},
                    "degreeType": {"type": "string"},
                    "fieldOfStudy": {"type": "string"},
                    "description": {"type": "string"},
                    "costPerYear": {"type": "number", "description": "Annual cost in USD"},
                    "duration": {"type": "number", "description": "Program duration in months"},
                    "location": {"type": "string"},
                    "startDate": {"type": "string"},
                    "applicationDeadline": {"type": "string"},
                    "requirements": {"type": "array", "items": {"type": "string"}},
                    "highlights": {"type": "array", "items": {"type": "string"}},
                    "pageLink": {"type": "string"},
                    "scholarships": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "amount": {"type": "string"},
                                "eligibility": {"type": "string"},
                            },
                            "required": ["name", "amount", "eligibility"],
                            "additionalProperties": False,
                        },
                    },
                    "matchScore": _SCORE,
                    "matchRationale": {
                        "type": "object",
                        "properties": {
                            "careerAlignment": _SCORE,
                            "budgetFit": _SCORE,
                            "locationMatch": _SCORE,
                            "academicFit": _SCORE,
                        },
                        "required": ["careerAlignment", "budgetFit", "locationMatch", "academicFit"],
                        "additionalProperties": False,
                    },
                },
                "required": [
                    "name",
                    "institution",
                    "degreeType",
                    "fieldOfStudy",
                    "description",
                    "costPerYear",
                    "duration",
                    "location",
                    "startDate",
                    "applicationDeadline",
                    "requirements",
                    "highlights",
                    "pageLink",
                    "scholarships",
                    "matchScore",
                    "matchRationale",
                ],
                "additionalProperties": False,
            },
        }
    },
    "required": ["programs"],
    "additionalProperties": False,
}


class PathwayBatch(CamelModel):
    pathways: List[EducationPathway] = Field(default_factory=list)


class ProgramBatch(CamelModel):
    programs: List[RecommendationProgram] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_array(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"programs": data}
        return data


@dataclass
class ExtractionResult:
    data: Any
    response_id: Optional[str] = None


_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_JSON_START = re.compile(r"[\[{]")


def extract_json_from_text(text: str) -> Optional[Any]:
    """Return the first JSON object or array embedded in model prose.

    Fenced code blocks are tried before the surrounding text. Within each candidate,
    decoding starts at every `{` or `[` in order, so a bare program array is found
    as readily as a wrapping object, and trailing prose after the value is ignored.
    """
    decoder = json.JSONDecoder()
    candidates = [block.strip() for block in _CODE_FENCE.findall(text)] + [text]

    for candidate in candidates:
        for start in _JSON_START.finditer(candidate):
            try:
                data, _ = decoder.raw_decode(candidate, start.start())
            except json.JSONDecodeError:
                continue
            return data

    logger.warning("Could not extract valid JSON from generated text")
    return None


def find_output_text(response: Dict[str, Any]) -> Optional[str]:
    """Locate the structured output text in a Responses API body.

    Raises ProviderRefusalError for a refusal item and SchemaParseError for an
    incomplete response.
    """
    if response.get("status") == "incomplete":
        details = response.get("incomplete_details") or {}
        reason = details.get("reason") or "unknown"
        raise SchemaParseError(f"Response was incomplete. Reason: {reason}")

    if response.get("output_text"):
        return response["output_text"]

    output = response.get("output") or []
    message = next((item for item in output if item.get("type") == "message"), None)
    if message:
        content = message.get("content") or []
        for part in content:
            if part.get("type") == "refusal":
                raise ProviderRefusalError(
                    f"Model refused the request: {part.get('refusal', '')}", provider="openai"
                )
        for part in content:
            if part.get("type") == "output_text" and part.get("text"):
                return part["text"]

    for item in output:
        if item.get("type") == "reasoning" and item.get("text"):
            return item["text"]

    for item in output:
        if item.get("text"):
            return item["text"]

    return None


class StructuredExtractor:
    """Turns free text into schema-validated data via the Responses API."""

    def __init__(self, client: OpenAIClient, default_model: str, metrics: Optional[MetricsCollector] = None):
        self.client = client
        self.default_model = default_model
        self.metrics = metrics

    async def extract(
        self,
        source_text: str,
        schema: Dict[str, Any],
        *,
        schema_name: str,
        instructions: str,
        previous_response_id: Optional[str] = None,
        model: Optional[str] = None,
        validator: Optional[Type[BaseModel]] = None,
    ) -> ExtractionResult:
        request: Dict[str, Any] = {
            "model": model or self.default_model,
            "input": [
                {"role": "system", "content": instructions},
                {"role": "user", "content": source_text},
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "schema": schema,
                    "strict": True,
                }
            },
            "store": True,
        }
        if previous_response_id:
            request["previous_response_id"] = previous_response_id

        async with MetricsContext(ComponentType.EXTRACTOR, schema_name, collector=self.metrics):
            response = await self.client.create_response(request)
            data = self.parse_response(response)

        if validator is not None:
            try:
                data = validator.model_validate(data)
            except ValidationError as exc:
                raise SchemaParseError(
                    f"{schema_name} output did not match its schema: {exc.error_count()} errors",
                    preview=json.dumps(data, default=str)[:PREVIEW_CHARS],
                ) from exc

        return ExtractionResult(data=data, response_id=response.get("id"))

    @staticmethod
    def parse_response(response: Dict[str, Any]) -> Any:
        text = find_output_text(response)
        if text is None:
            raise SchemaParseError(
                "No output text found in response",
                preview=json.dumps(response, default=str)[:PREVIEW_CHARS],
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Structured output was not clean JSON, scanning text")

        data = extract_json_from_text(text)
        if data is None:
            raise SchemaParseError(
                f"Failed to parse structured output: {text[:PREVIEW_CHARS]}",
                preview=text[:PREVIEW_CHARS],
            )
        return data
