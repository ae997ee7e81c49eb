from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from featurelab_web.domain.errors import ValidationError
from featurelab_web.domain.models import (
    AnalysisOutcome,
    APIResult,
    AppSessionSnapshot,
    AutoGenerateSignal,
    GenerationType,
    HistoryEntry,
    HistoryKind,
    ReviewOutcome,
    RunStatus,
    UIOutcome,
)
from featurelab_web.domain.records import AnalysisRecord, SolutionApproach, SolutionRecord, as_text
from featurelab_web.repositories.history_store import HistoryStore
from featurelab_web.repositories.session_cache import SessionCache
from featurelab_web.services.analysis_normalizer import AnalysisNormalizer
from featurelab_web.services.assessment_normalizer import AssessmentNormalizer
from featurelab_web.services.critique_normalizer import CritiqueNormalizer
from featurelab_web.services.inference_client import InferenceApiClient
from featurelab_web.services.solution_normalizer import SolutionNormalizer

logger = logging.getLogger(__name__)

PROMPT_APPROACH_NAME = "Generated from Prompt"
SIGNAL_CONSUMED = "Auto-generate signal already consumed"


class RunState:
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


def _json_size(value: Any) -> int:
    return len(json.dumps(value, ensure_ascii=False))


def _merge_field(current: Any, updated: Any, field_name: str) -> Any:
    """
    field-edit answers with the bare value, the value keyed by its field name,
    or a partial object (`{"problem": ...}` for user_problem_goal).
    """
    if isinstance(updated, Mapping):
        if field_name in updated:
            return updated[field_name]
        if isinstance(current, Mapping):
            return {**current, **updated}
    return updated


class PipelineCoordinator:
    """
    Service layer: sequences inference calls into the analysis and UI workflows.
    Keeps routes thin.

    Only one workflow runs at a time; a call made while a run is in flight
    returns None and changes nothing. Each successful stage is merged into the
    run's history entry before the next stage starts.
    """

    def __init__(
        self,
        client: InferenceApiClient,
        analysis: AnalysisNormalizer,
        solution: SolutionNormalizer,
        critique: CritiqueNormalizer,
        assessment: AssessmentNormalizer,
        history: HistoryStore,
        session: SessionCache,
        *,
        analysis_context: str = "Product improvement",
        ui_context: str = "UI generation from user input",
        auto_generate_window_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex[:12],
    ):
        self.client = client
        self.analysis = analysis
        self.solution = solution
        self.critique = critique
        self.assessment = assessment
        self.history = history
        self.session = session
        self.analysis_context = analysis_context
        self.ui_context = ui_context
        self.auto_generate_window_seconds = auto_generate_window_seconds
        self._clock = clock
        self._id_factory = id_factory

        self.state = RunState.IDLE
        self.current_history_id: Optional[str] = None
        self._guard = threading.Lock()
        self._pending_signal: Optional[AutoGenerateSignal] = None

    # -----------------------------
    # Re-entrancy guard
    # -----------------------------
    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[bool]:
        acquired = self._guard.acquire(blocking=False)
        if not acquired:
            logger.info("%s ignored: a run is already in flight", operation)
        try:
            yield acquired
        finally:
            if acquired:
                self._guard.release()

    def _run_workflow(self, operation: str, fn: Callable[..., Optional[APIResult]], *args: Any) -> Optional[APIResult]:
        with self._exclusive(operation) as acquired:
            if not acquired:
                return None
            previous = self.state
            self.state = RunState.IN_FLIGHT
            result: Optional[APIResult] = None
            try:
                result = fn(*args)
                return result
            finally:
                if result is None:
                    self.state = previous
                else:
                    self.state = RunState.COMPLETED if result.success else RunState.FAILED

    @property
    def in_flight(self) -> bool:
        return self.state == RunState.IN_FLIGHT

    # -----------------------------
    # Auto-generate hand-off
    # -----------------------------
    def _issue_signal(self, history_id: Optional[str]) -> AutoGenerateSignal:
        return AutoGenerateSignal(
            signal_id=self._id_factory(),
            history_id=history_id,
            issued_at=self._clock(),
            window_seconds=self.auto_generate_window_seconds,
        )

    @property
    def pending_auto_generate(self) -> Optional[AutoGenerateSignal]:
        signal = self._pending_signal
        if signal is not None and signal.expired(self._clock()):
            self._pending_signal = None
            return None
        return signal

    # -----------------------------
    # Public workflows
    # -----------------------------
    def start_analysis(
        self,
        idea: str,
        context: Optional[str] = None,
        *,
        auto_generate_ui: bool = False,
        file_count: int = 0,
    ) -> Optional[APIResult[AnalysisOutcome]]:
        return self._run_workflow(
            "start_analysis", self._analysis_workflow, idea, context or self.analysis_context, auto_generate_ui, file_count
        )

    def start_ui_generation(self, idea: str, approach_name: Optional[str] = None) -> Optional[APIResult[UIOutcome]]:
        return self._run_workflow("start_ui_generation", self._ui_workflow, idea, approach_name)

    def generate_ui_from_signal(self, signal: AutoGenerateSignal) -> Optional[APIResult[UIOutcome]]:
        return self._run_workflow("generate_ui_from_signal", self._signal_workflow, signal)

    def select_approach(self, approach_name: str) -> Optional[APIResult[UIOutcome]]:
        return self._run_workflow("select_approach", self._select_approach_workflow, approach_name)

    def start_review(self) -> Optional[APIResult[ReviewOutcome]]:
        return self._run_workflow("start_review", self._review_workflow)

    def edit_analysis_field(self, field_name: str, updated_field: Mapping[str, Any]) -> Optional[APIResult[AnalysisOutcome]]:
        return self._run_workflow("edit_analysis_field", self._field_edit_workflow, field_name, updated_field)

    # -----------------------------
    # Workflow bodies (guard held)
    # -----------------------------
    def _analysis_workflow(self, idea: str, context: str, auto_generate_ui: bool, file_count: int) -> APIResult[AnalysisOutcome]:
        idea = (idea or "").strip()
        if not idea:
            return APIResult.fail("Idea is required")

        started = self._clock()
        history_id = self.history.add_entry(HistoryKind.ANALYSIS, idea, has_files=file_count > 0, file_count=file_count)
        self.current_history_id = history_id
        self._pending_signal = None
        self.solution.clear()

        result = self._analysis_stage(idea, context, history_id, active_tab="analysis")
        if not result.success:
            return self._fail_entry(history_id, result.error)

        self.history.update_status(
            history_id,
            RunStatus.SUCCESS,
            metadata={
                "response_size": _json_size(result.data.analysis_board.to_dict()),
                "processing_time_ms": self._elapsed_ms(started),
            },
        )
        if auto_generate_ui:
            self._pending_signal = self._issue_signal(history_id)
        return result

    def _ui_workflow(self, idea: str, approach_name: Optional[str]) -> APIResult[UIOutcome]:
        idea = (idea or "").strip()
        if not idea and not (self.solution.is_loaded() or self.analysis.is_loaded()):
            return APIResult.fail("Idea is required")

        started = self._clock()
        history_id = self.history.add_entry(HistoryKind.UI, idea)
        self.current_history_id = history_id
        self.session.save({"ui_input": idea, "active_tab": "ui", "current_history_id": history_id})

        if self.solution.is_loaded():
            logger.info("UI generation from resident solution", extra={"strategy": "solution", "history_id": history_id})
            result = self._ui_from_solution(history_id, approach_name, idea)
        elif self.analysis.is_loaded():
            logger.info("UI generation from resident analysis", extra={"strategy": "analysis", "history_id": history_id})
            result = self._ui_from_analysis(history_id)
        else:
            logger.info("UI generation from prompt", extra={"strategy": "full_chain", "history_id": history_id})
            result = self._full_chain(idea, history_id)

        return self._complete_ui(history_id, result, started)

    def _signal_workflow(self, signal: AutoGenerateSignal) -> APIResult[UIOutcome]:
        if signal.consumed:
            logger.info("Auto-generate signal %s already consumed", signal.signal_id)
            return APIResult.fail(SIGNAL_CONSUMED)

        source = self.history.get_entry(signal.history_id) if signal.history_id else None
        prompt = source.prompt if source else ""

        started = self._clock()
        history_id = self.history.add_entry(HistoryKind.UI, prompt)
        self.current_history_id = history_id
        result = self._consume_signal(signal, history_id, prompt)
        return self._complete_ui(history_id, result, started)

    def _select_approach_workflow(self, approach_name: str) -> APIResult[UIOutcome]:
        if not self.solution.is_loaded():
            return APIResult.fail("Solution architect data not available")
        approach = self.solution.approach(approach_name)
        if approach is None:
            return APIResult.fail(f'Solution approach "{approach_name}" not found')

        started = self._clock()
        history_id = self.history.add_entry(HistoryKind.UI, self.solution.problem_statement)
        self.current_history_id = history_id
        result = self._ui_stage(history_id, self.solution.problem_statement, approach, GenerationType.SOLUTION)
        return self._complete_ui(history_id, result, started)

    def _review_workflow(self) -> APIResult[ReviewOutcome]:
        if not self.analysis.is_loaded():
            return APIResult.fail("Analysis data not available")

        board = self.analysis.record.to_dict()
        critique_result = self.client.product_critique(board)
        if not critique_result.success:
            return APIResult.fail(critique_result.error)
        critique = self.critique.load(critique_result.data)
        if not critique.validation.is_valid:
            logger.warning("Critique response has issues: %s", "; ".join(critique.validation.errors))

        assessment_result = self.client.assessment_center(board, critique_result.data)
        if not assessment_result.success:
            return APIResult.fail(assessment_result.error)
        assessment = self.assessment.load(assessment_result.data)
        if not assessment.validation.is_valid:
            logger.warning("Assessment response has issues: %s", "; ".join(assessment.validation.errors))

        review_text = self.critique.export_as_text() + "\n\n" + self.assessment.export_as_text()
        if self.current_history_id:
            self.history.update_results(
                self.current_history_id,
                {"review_text": review_text, "ui_state": {"overall_review": review_text}},
            )
        self.session.save({"overall_review": review_text})
        return APIResult.ok(ReviewOutcome(critique=critique.record, assessment=assessment.record, review_text=review_text))

    def _field_edit_workflow(self, field_name: str, updated_field: Mapping[str, Any]) -> APIResult[AnalysisOutcome]:
        if not self.analysis.is_loaded():
            return APIResult.fail("Analysis data not available")
        if field_name not in AnalysisRecord.model_fields:
            return APIResult.fail(f'Unknown analysis field "{field_name}"')

        board = self.analysis.record.to_dict()
        result = self.client.update_analysis_field(board, field_name, dict(updated_field))
        if not result.success:
            return APIResult.fail(result.error)

        data = result.data if isinstance(result.data, Mapping) else {}
        if "updated_value" not in data:
            return APIResult.fail("Response missing updated_value")
        board[field_name] = _merge_field(board[field_name], data["updated_value"], field_name)

        # an invalid edit leaves the current board loaded
        try:
            normalized = self.analysis.require(board)
        except ValidationError as e:
            return APIResult.fail(f"Data validation failed: {e}")

        # the resident solution was derived from the previous board
        self.solution.clear()
        record = normalized.record.to_dict()
        if self.current_history_id:
            self.history.update_results(
                self.current_history_id,
                {"analysis_record": record, "ui_state": {"analysis_form_data": record}},
            )
        self.session.save({"analysis_data": record, "analysis_form_data": record, "solution_data": None})
        logger.info("Analysis field %s updated", field_name, extra={"history_id": self.current_history_id})
        return APIResult.ok(AnalysisOutcome(
            analysis_board=normalized.record,
            history_id=self.current_history_id or "",
            validation=normalized.validation,
        ))

    # -----------------------------
    # Stages
    # -----------------------------
    def _analysis_stage(self, idea: str, context: str, history_id: str, *, active_tab: str) -> APIResult[AnalysisOutcome]:
        self.analysis.clear()
        result = self.client.idea_to_analysis(idea, context)
        if not result.success:
            return APIResult.fail(result.error)

        data = result.data
        board = data.get("analysis_board") if isinstance(data, Mapping) and "analysis_board" in data else data
        normalized = self.analysis.load(board)
        if not normalized.validation.is_valid:
            return APIResult.fail("Data validation failed: " + "; ".join(normalized.validation.errors))

        record = normalized.record.to_dict()
        self.history.update_results(
            history_id,
            {"analysis_record": record, "ui_state": {"active_tab": active_tab, "analysis_form_data": record}},
        )
        self.session.save({
            "analysis_data": record,
            "analysis_form_data": record,
            "has_content": True,
            "current_history_id": history_id,
        })
        return APIResult.ok(AnalysisOutcome(
            analysis_board=normalized.record,
            history_id=history_id,
            validation=normalized.validation,
        ))

    def _solution_stage(self, history_id: str) -> APIResult[SolutionRecord]:
        result = self.client.solution_architect(self.analysis.record.to_dict())
        if not result.success:
            return APIResult.fail(result.error)

        self.solution.clear()
        try:
            normalized = self.solution.require(result.data)
        except ValidationError as e:
            return APIResult.fail(f"Invalid solution architect response: {e}")

        record = normalized.record.to_dict()
        self.history.update_results(history_id, {"solution_record": record, "ui_state": {"solution_data": record}})
        self.session.save({"solution_data": record})
        return APIResult.ok(normalized.record)

    def _ui_stage(
        self, history_id: str, problem_statement: str, approach: SolutionApproach, generation_type: str
    ) -> APIResult[UIOutcome]:
        result = self.client.solution_to_ui(problem_statement, approach.to_request_payload())
        return self._store_ui(history_id, result, approach.approach_name, generation_type)

    def _ui_from_prompt(self, history_id: str, prompt: str) -> APIResult[UIOutcome]:
        if not prompt:
            return APIResult.fail("Idea is required")
        result = self.client.solution_to_ui_from_prompt(prompt)
        return self._store_ui(history_id, result, PROMPT_APPROACH_NAME, GenerationType.PROMPT)

    def _store_ui(self, history_id: str, result: APIResult, approach_name: str, generation_type: str) -> APIResult[UIOutcome]:
        if not result.success:
            return APIResult.fail(result.error)

        data = result.data if isinstance(result.data, Mapping) else {}
        html = as_text(data.get("html_content"))
        if not html:
            return APIResult.fail("Response missing html_content")

        outcome = UIOutcome(
            html_content=html,
            response_id=as_text(data.get("response_id")),
            approach_name=approach_name,
            generation_type=generation_type,
            history_id=history_id,
        )
        ui_result = dict(outcome.to_dict(), timestamp=datetime.now(timezone.utc).isoformat())
        self.history.update_results(
            history_id,
            {
                "ui_result": ui_result,
                "ui_state": {"active_tab": "ui", "selected_approach": approach_name, "generated_content": html},
            },
        )
        self.session.save({"active_tab": "ui", "selected_approach": approach_name, "has_content": True})
        return APIResult.ok(outcome)

    # -----------------------------
    # UI entry strategies
    # -----------------------------
    def _ui_from_solution(self, history_id: str, approach_name: Optional[str], fallback_prompt: str) -> APIResult[UIOutcome]:
        if approach_name:
            approach = self.solution.approach(approach_name)
            if approach is None:
                return APIResult.fail(f'Solution approach "{approach_name}" not found')
        else:
            approach = self.solution.first_approach()

        if approach is None:
            logger.info("Resident solution has no approaches; generating from prompt")
            return self._ui_from_prompt(history_id, self.solution.problem_statement or fallback_prompt)
        return self._ui_stage(history_id, self.solution.problem_statement, approach, GenerationType.SOLUTION)

    def _ui_from_analysis(self, history_id: str) -> APIResult[UIOutcome]:
        stage = self._solution_stage(history_id)
        if not stage.success:
            return APIResult.fail(stage.error)
        approach = self.solution.first_approach()
        if approach is None:
            return APIResult.fail("No solution approaches found")
        return self._ui_stage(history_id, self.solution.problem_statement, approach, GenerationType.ANALYSIS)

    def _full_chain(self, idea: str, history_id: str) -> APIResult[UIOutcome]:
        if not idea:
            return APIResult.fail("Idea is required")

        analysis = self._analysis_stage(idea, self.ui_context, history_id, active_tab="ui")
        if not analysis.success:
            logger.warning("No analysis obtainable (%s); generating UI from prompt only", analysis.error)
            self.analysis.clear()
            return self._ui_from_prompt(history_id, idea)

        signal = self._issue_signal(history_id)
        return self._consume_signal(signal, history_id, idea)

    def _consume_signal(self, signal: AutoGenerateSignal, history_id: str, fallback_prompt: str) -> APIResult[UIOutcome]:
        if not signal.consume(self._clock()):
            return APIResult.fail(SIGNAL_CONSUMED)
        if self.solution.is_loaded():
            return self._ui_from_solution(history_id, None, fallback_prompt)
        if self.analysis.is_loaded():
            return self._ui_from_analysis(history_id)
        return self._ui_from_prompt(history_id, fallback_prompt)

    # -----------------------------
    # Bookkeeping
    # -----------------------------
    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    def _fail_entry(self, history_id: str, error: Optional[str]) -> APIResult:
        self.history.update_status(history_id, RunStatus.ERROR, error=error)
        logger.error("Run %s failed: %s", history_id, error, extra={"history_id": history_id})
        return APIResult.fail(error)

    def _complete_ui(self, history_id: str, result: APIResult[UIOutcome], started: float) -> APIResult[UIOutcome]:
        if not result.success:
            return self._fail_entry(history_id, result.error)
        self.history.update_status(
            history_id,
            RunStatus.SUCCESS,
            metadata={
                "response_size": len(result.data.html_content),
                "processing_time_ms": self._elapsed_ms(started),
            },
        )
        return result

    # -----------------------------
    # History + session surface
    # -----------------------------
    def get_history(self) -> List[HistoryEntry]:
        return self.history.get_history()

    def search_history(self, query: str) -> List[HistoryEntry]:
        return self.history.search(query)

    def history_by_type(self, kind: str) -> List[HistoryEntry]:
        return self.history.by_type(kind)

    def delete_history_entry(self, entry_id: str) -> bool:
        return self.history.delete_entry(entry_id)

    def clear_history(self) -> None:
        self.history.clear()

    def load_history_entry(self, entry_id: str) -> Optional[HistoryEntry]:
        """Restore the resident analysis/solution records saved with a past run."""
        with self._exclusive("load_history_entry") as acquired:
            if not acquired:
                return None
            entry = self.history.get_entry(entry_id)
            if entry is None:
                return None

            results = entry.results
            self.analysis.clear()
            self.solution.clear()
            self._pending_signal = None
            if results.get("analysis_record"):
                self.analysis.load(results["analysis_record"])
            if results.get("solution_record"):
                self.solution.load(results["solution_record"])
            self.current_history_id = entry.id

            ui_state = results.get("ui_state") or {}
            self.session.save({
                "active_tab": ui_state.get("active_tab") or entry.kind,
                "ui_input": entry.prompt,
                "has_content": entry.status == RunStatus.SUCCESS,
                "current_history_id": entry.id,
                "analysis_data": results.get("analysis_record"),
                "analysis_form_data": ui_state.get("analysis_form_data") or results.get("analysis_record"),
                "solution_data": results.get("solution_record"),
                "show_history": False,
            })
            return entry

    def get_session_snapshot(self) -> AppSessionSnapshot:
        return self.session.load()

    def save_session_snapshot(self, partial: Mapping[str, Any]) -> AppSessionSnapshot:
        return self.session.save(partial)

    def session_status(self) -> Dict[str, Any]:
        return {
            "has_valid_cache": self.session.has_valid_cache(),
            "cache_age_minutes": self.session.cache_age_minutes(),
        }

    def clear_session(self) -> bool:
        """Discard the current run: cached snapshot, resident records and pending signal."""
        with self._exclusive("clear_session") as acquired:
            if not acquired:
                return False
            self.session.clear()
            for normalizer in (self.analysis, self.solution, self.critique, self.assessment):
                normalizer.clear()
            self.current_history_id = None
            self._pending_signal = None
            self.state = RunState.IDLE
            return True
