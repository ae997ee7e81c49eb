"""
Strict shapes of the inference service responses.

These only report problems; the records in `records` are what the app keeps.
A response that fails here is still coerced into a record.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, List, Literal

import pydantic
from pydantic import BaseModel, Field, StrictStr, field_validator, model_validator
from pydantic.config import ConfigDict

from featurelab_web.domain.records import SOLUTION_ALIASES, drop_nulls, is_number

MetricType = Literal["engagement", "ops", "retention", "revenue"]


def _not_blank(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


class ResponseSchema(BaseModel):
    """A null field is reported as missing."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _nulls_are_absent(cls, data: Any) -> Any:
        return drop_nulls(data) if isinstance(data, Mapping) else data


# -----------------------------
# Analysis
# -----------------------------
class UserProblemGoalSchema(ResponseSchema):
    problem: StrictStr
    user_goal: StrictStr

    @field_validator("problem", "user_goal")
    @classmethod
    def _check_blank(cls, v: Any) -> Any:
        return _not_blank(v)


class ScopeSchema(ResponseSchema):
    in_scope: List[StrictStr]
    out_scope: List[StrictStr]
    constraints: List[StrictStr]


class SuccessMetricSchema(ResponseSchema):
    type: MetricType


class AnalysisBoardSchema(ResponseSchema):
    product_goal: StrictStr
    user_problem_goal: UserProblemGoalSchema
    target_segments: List[StrictStr]
    user_insights_data: List[Any]
    scope: ScopeSchema
    success_metrics: List[SuccessMetricSchema]

    @field_validator("product_goal")
    @classmethod
    def _check_blank(cls, v: Any) -> Any:
        return _not_blank(v)


# -----------------------------
# Critique
# -----------------------------
class CritiquePointSchema(ResponseSchema):
    category: StrictStr
    critique: StrictStr
    challenge_question: StrictStr

    @field_validator("category", "critique", "challenge_question")
    @classmethod
    def _check_blank(cls, v: Any) -> Any:
        return _not_blank(v)


class CritiqueSchema(ResponseSchema):
    overall_summary: StrictStr
    critique_points: List[CritiquePointSchema]

    @field_validator("overall_summary")
    @classmethod
    def _check_blank(cls, v: Any) -> Any:
        return _not_blank(v)


# -----------------------------
# Assessment
# -----------------------------
def _number(v: Any) -> Any:
    if not is_number(v):
        raise ValueError("must be a number")
    return v


class CategoryScoresSchema(ResponseSchema):
    strategic_alignment: Any
    authenticity_and_evidence: Any
    clarity_and_specificity: Any
    risk_awareness: Any

    @field_validator("*")
    @classmethod
    def _check_number(cls, v: Any) -> Any:
        return _number(v)


class CategoryRationaleSchema(ResponseSchema):
    strategic_alignment: StrictStr
    authenticity_and_evidence: StrictStr
    clarity_and_specificity: StrictStr
    risk_awareness: StrictStr


class AssessmentSchema(ResponseSchema):
    scores: CategoryScoresSchema
    overall_score: Any
    rationale: CategoryRationaleSchema

    @field_validator("overall_score")
    @classmethod
    def _check_number(cls, v: Any) -> Any:
        return _number(v)


# -----------------------------
# Solution architect
# -----------------------------
class RiskSchema(ResponseSchema):
    risk: StrictStr
    mitigation_idea: StrictStr
    resulting_tradeoff: StrictStr


class ApproachSchema(ResponseSchema):
    approach_name: StrictStr
    description: StrictStr
    benefits: List[StrictStr] = Field(validation_alias=SOLUTION_ALIASES["benefits"])
    risks: List[RiskSchema] = Field(validation_alias=SOLUTION_ALIASES["risks"])

    @field_validator("approach_name", "description")
    @classmethod
    def _check_blank(cls, v: Any) -> Any:
        return _not_blank(v)


class EvaluationRowSchema(ResponseSchema):
    approach_name: StrictStr
    impact_score: Any
    effort_score: Any
    confidence_score: Any

    @field_validator("impact_score", "effort_score", "confidence_score")
    @classmethod
    def _scalar(cls, v: Any) -> Any:
        if not (isinstance(v, str) or is_number(v)):
            raise ValueError("must be a string or number")
        return v


class ComparisonSchema(ResponseSchema):
    evaluation_table: List[EvaluationRowSchema] = Field(validation_alias=SOLUTION_ALIASES["evaluation_table"])
    recommendation: StrictStr


class SolutionSchema(ResponseSchema):
    problem_statement: StrictStr
    solution_analysis: List[ApproachSchema]
    comparison: ComparisonSchema = Field(validation_alias=SOLUTION_ALIASES["comparison"])

    @field_validator("problem_statement")
    @classmethod
    def _check_blank(cls, v: Any) -> Any:
        return _not_blank(v)


# -----------------------------
# Error rendering
# -----------------------------
def _where(loc) -> str:
    where = ""
    for part in loc:
        if isinstance(part, int):
            where += f"[{part}]"
        else:
            where += f".{part}" if where else str(part)
    return where or "response"


def describe_errors(exc: pydantic.ValidationError) -> List[str]:
    """One readable line per schema error, in field order."""
    messages: List[str] = []
    for err in exc.errors():
        where = _where(err["loc"])
        kind = err["type"]
        ctx = err.get("ctx") or {}
        if kind == "missing":
            messages.append(f"Missing {where}")
        elif kind == "list_type":
            messages.append(f"{where} must be an array")
        elif kind == "string_type":
            messages.append(f"{where} must be a string")
        elif kind in ("dict_type", "model_type", "model_attributes_type"):
            messages.append(f"{where} must be an object")
        elif kind == "literal_error":
            messages.append(f"{where} must be one of {ctx.get('expected')}")
        elif kind == "value_error":
            messages.append(f"{where} {ctx.get('error')}")
        else:
            messages.append(f"{where}: {err['msg']}")
    return messages
