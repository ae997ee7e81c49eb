from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, Field, field_validator, model_validator
from pydantic.config import ConfigDict

Scalar = Union[str, int, float]
Number = Union[int, float]


# -----------------------------
# Coercion helpers
# -----------------------------
def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def as_list(value: Any) -> List[Any]:
    """None -> [], bare value -> [value] (including ""), sequences copied."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def as_number(value: Any) -> Number:
    if is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0
    return 0


def as_scalar(value: Any) -> Scalar:
    if value is None:
        return ""
    if isinstance(value, str) or is_number(value):
        return value
    return str(value)


def drop_nulls(data: Mapping) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


Text = Annotated[str, BeforeValidator(as_text)]
TextList = Annotated[List[Text], BeforeValidator(as_list)]
ScoreValue = Annotated[Scalar, BeforeValidator(as_scalar)]

# canonical field -> upstream names, first non-null wins.
# The canonical name is always accepted so dumped records read back unchanged.
SOLUTION_ALIASES: Dict[str, AliasChoices] = {
    "benefits": AliasChoices("pros", "key_benefits", "benefits"),
    "risks": AliasChoices("risk_tradeoff_analysis", "implementation_risk_analysis", "risks"),
    "evaluation_table": AliasChoices("evaluation_table", "prioritization_matrix"),
    "comparison": AliasChoices("comparison_summary", "comparison"),
}


class Record(BaseModel):
    """
    Lenient, immutable view of a service response.

    Coercion never fails: a non-object becomes the defaults, or fills
    `scalar_field` when the record has one (a bare string in a list of insights).
    A null value counts as absent, so an alias falls through to the next name.
    """

    scalar_field: ClassVar[Optional[str]] = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _coerce_shape(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data
        if isinstance(data, Mapping):
            return drop_nulls(data)
        if data is None or cls.scalar_field is None:
            return {}
        return {cls.scalar_field: data}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


# -----------------------------
# Analysis family
# -----------------------------
class UserProblemGoal(Record):
    problem: Text = ""
    user_goal: Text = ""


class UserInsight(Record):
    scalar_field = "insight"

    insight: Text = ""
    evidence: Text = ""


class AnalysisScope(Record):
    in_scope: TextList = Field(default_factory=list)
    out_scope: TextList = Field(default_factory=list)
    constraints: TextList = Field(default_factory=list)


class SuccessMetric(Record):
    scalar_field = "name"

    name: Text = ""
    type: Text = ""             # engagement | ops | retention | revenue
    formula: Text = ""
    target: Text = ""


class AnalysisRecord(Record):
    product_goal: Text = ""
    business_goal: Text = ""
    user_problem_goal: UserProblemGoal = Field(default_factory=UserProblemGoal)
    target_segments: TextList = Field(default_factory=list)
    user_insights_data: Annotated[List[UserInsight], BeforeValidator(as_list)] = Field(default_factory=list)
    scope: AnalysisScope = Field(default_factory=AnalysisScope)
    success_metrics: Annotated[List[SuccessMetric], BeforeValidator(as_list)] = Field(default_factory=list)
    key_assumptions_open_questions: Text = ""


# -----------------------------
# Solution-architect family
# -----------------------------
class ApproachRisk(Record):
    scalar_field = "risk"

    risk: Text = ""
    mitigation_idea: Text = ""
    resulting_tradeoff: Text = ""


class SolutionApproach(Record):
    scalar_field = "approach_name"

    approach_name: Text = ""
    description: Text = ""
    core_tradeoff: Text = ""
    benefits: TextList = Field(default_factory=list, validation_alias=SOLUTION_ALIASES["benefits"])
    risks: Annotated[List[ApproachRisk], BeforeValidator(as_list)] = Field(
        default_factory=list, validation_alias=SOLUTION_ALIASES["risks"]
    )

    def to_request_payload(self) -> Dict[str, Any]:
        """Body of `selected_approach` for solution_to_ui."""
        core_tradeoff = self.core_tradeoff
        if not core_tradeoff and self.risks:
            core_tradeoff = self.risks[0].resulting_tradeoff
        return {
            "approach_name": self.approach_name,
            "description": self.description,
            "core_tradeoff": core_tradeoff or "No core tradeoff identified",
            "key_benefits": list(self.benefits),
            "implementation_risk_analysis": [r.to_dict() for r in self.risks],
        }


class EvaluationEntry(Record):
    scalar_field = "approach_name"

    approach_name: Text = ""
    impact_score: ScoreValue = ""
    effort_score: ScoreValue = ""
    confidence_score: ScoreValue = ""


class SolutionComparison(Record):
    evaluation_table: Annotated[List[EvaluationEntry], BeforeValidator(as_list)] = Field(
        default_factory=list, validation_alias=SOLUTION_ALIASES["evaluation_table"]
    )
    recommendation: Text = ""


class SolutionRecord(Record):
    problem_statement: Text = ""
    solution_analysis: Annotated[List[SolutionApproach], BeforeValidator(as_list)] = Field(default_factory=list)
    comparison: SolutionComparison = Field(
        default_factory=SolutionComparison, validation_alias=SOLUTION_ALIASES["comparison"]
    )


# -----------------------------
# Critique family
# -----------------------------
class CritiquePoint(Record):
    scalar_field = "critique"

    category: Text = ""
    critique: Text = ""
    challenge_question: Text = ""


class CritiqueRecord(Record):
    overall_summary: Text = ""
    critique_points: Annotated[List[CritiquePoint], BeforeValidator(as_list)] = Field(default_factory=list)


# -----------------------------
# Assessment family
# -----------------------------
ASSESSMENT_CATEGORIES = (
    "strategic_alignment",
    "authenticity_and_evidence",
    "clarity_and_specificity",
    "risk_awareness",
)


class AssessmentRecord(Record):
    """Always carries every category; unknown categories are dropped."""

    scores: Dict[str, Number] = Field(default_factory=lambda: {c: 0 for c in ASSESSMENT_CATEGORIES})
    overall_score: Annotated[Number, BeforeValidator(as_number)] = 0
    rationale: Dict[str, str] = Field(default_factory=lambda: {c: "" for c in ASSESSMENT_CATEGORIES})

    @field_validator("scores", mode="before")
    @classmethod
    def _all_scores(cls, v: Any) -> Dict[str, Number]:
        source = v if isinstance(v, Mapping) else {}
        return {c: as_number(source.get(c)) for c in ASSESSMENT_CATEGORIES}

    @field_validator("rationale", mode="before")
    @classmethod
    def _all_rationale(cls, v: Any) -> Dict[str, str]:
        source = v if isinstance(v, Mapping) else {}
        return {c: as_text(source.get(c)) for c in ASSESSMENT_CATEGORIES}
