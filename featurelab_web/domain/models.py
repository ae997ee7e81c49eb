from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

from featurelab_web.domain.records import AnalysisRecord, AssessmentRecord, CritiqueRecord

T = TypeVar("T")
R = TypeVar("R")


def to_jsonable(value: Any) -> Any:
    """Records, outcomes and entries become plain dicts/lists."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


# -----------------------------
# Envelopes
# -----------------------------
@dataclass(frozen=True)
class RequestEnvelope:
    endpoint: str
    payload: Optional[Dict[str, Any]]
    correlation_id: str


@dataclass(frozen=True)
class APIResult(Generic[T]):
    """
    Tagged success/failure envelope.
    success=True carries data and no error; success=False carries a non-empty error and no data.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.success:
            if self.data is None or self.error is not None:
                raise ValueError("successful APIResult must carry data and no error")
        else:
            if not self.error or self.data is not None:
                raise ValueError("failed APIResult must carry an error message and no data")

    @classmethod
    def ok(cls, data: T) -> "APIResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Any) -> "APIResult[T]":
        message = str(error or "").strip() or "Unknown error"
        return cls(success=False, error=message)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": to_jsonable(self.data)}
        return {"success": False, "error": self.error}


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))


@dataclass(frozen=True)
class NormalizedResponse(Generic[R]):
    record: R
    validation: ValidationResult


# -----------------------------
# Derived views
# -----------------------------
@dataclass(frozen=True)
class AnalysisSummary:
    target_segments_count: int
    user_insights_count: int
    in_scope_count: int
    out_scope_count: int
    constraints_count: int
    success_metrics_count: int


@dataclass(frozen=True)
class CritiqueAnalysis:
    total_points: int
    categories: List[str]
    summary_length: int
    has_challenge_questions: bool


@dataclass(frozen=True)
class AssessmentAnalysis:
    total_score: float
    average_score: float
    highest_score: float
    lowest_score: float
    score_ranking: List[tuple]
    grade: str


# -----------------------------
# History + session
# -----------------------------
class HistoryKind:
    ANALYSIS = "analysis"
    UI = "ui"

    ALL = (ANALYSIS, UI)


class RunStatus:
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"

    TERMINAL = (SUCCESS, ERROR)


@dataclass
class HistoryEntry:
    id: str
    timestamp: str
    kind: str                   # analysis | ui
    prompt: str
    title: str
    status: str = RunStatus.PENDING
    error: Optional[str] = None
    results: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=str(d["id"]),
            timestamp=str(d.get("timestamp") or ""),
            kind=str(d.get("kind") or HistoryKind.ANALYSIS),
            prompt=str(d.get("prompt") or ""),
            title=str(d.get("title") or ""),
            status=str(d.get("status") or RunStatus.PENDING),
            error=d.get("error"),
            results=dict(d.get("results") or {}),
            metadata=dict(d.get("metadata") or {}),
        )


@dataclass
class AppSessionSnapshot:
    active_tab: str = "analysis"
    ui_input: str = ""
    has_content: bool = False
    solution_markdown: str = ""
    solution_data: Optional[Dict[str, Any]] = None
    show_history: bool = False
    current_history_id: Optional[str] = None
    analysis_data: Optional[Dict[str, Any]] = None
    analysis_form_data: Optional[Dict[str, Any]] = None
    selected_approach: str = ""
    last_updated: float = 0.0
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -----------------------------
# Workflow outcomes
# -----------------------------
@dataclass(frozen=True)
class AnalysisOutcome:
    analysis_board: AnalysisRecord
    history_id: str
    validation: ValidationResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_board": self.analysis_board.to_dict(),
            "history_id": self.history_id,
            "validation": asdict(self.validation),
        }


class GenerationType:
    SOLUTION = "solution-based"
    ANALYSIS = "analysis-based"
    PROMPT = "prompt-based"


@dataclass(frozen=True)
class UIOutcome:
    html_content: str
    response_id: str
    approach_name: str
    generation_type: str
    history_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReviewOutcome:
    critique: CritiqueRecord
    assessment: AssessmentRecord
    review_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "critique": self.critique.to_dict(),
            "assessment": self.assessment.to_dict(),
            "review_text": self.review_text,
        }


@dataclass
class AutoGenerateSignal:
    """
    One-shot hand-off token from a finished analysis to UI generation.
    `consume` succeeds exactly once; a consumed token expires `window_seconds` later.
    """
    signal_id: str
    history_id: Optional[str]
    issued_at: float
    window_seconds: float = 0.5
    consumed_at: Optional[float] = None

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None

    def consume(self, now: float) -> bool:
        if self.consumed_at is not None:
            return False
        self.consumed_at = now
        return True

    def expired(self, now: float) -> bool:
        return self.consumed_at is not None and (now - self.consumed_at) >= self.window_seconds
