from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from featurelab_web.domain.models import APIResult, HistoryKind, to_jsonable
from featurelab_web.services.pipeline_coordinator import PipelineCoordinator

BUSY_MESSAGE = "A run is already in progress"


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _required_str(body: Dict[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required")
    return value.strip()


def _respond(result: Optional[APIResult]):
    if result is None:
        return jsonify(APIResult.fail(BUSY_MESSAGE).to_dict()), 409
    return jsonify(result.to_dict()), 200


def create_blueprint(coordinator: PipelineCoordinator) -> Blueprint:
    bp = Blueprint("web", __name__)

    @bp.errorhandler(ValueError)
    def bad_request(e: ValueError):
        return jsonify(APIResult.fail(str(e)).to_dict()), 400

    # -----------------------------
    # Workflows
    # -----------------------------
    @bp.post("/api/analysis")
    def start_analysis():
        body = _json_body()
        idea = _required_str(body, "idea")
        context = (body.get("context") or "").strip() or None
        result = coordinator.start_analysis(
            idea,
            context,
            auto_generate_ui=bool(body.get("auto_generate_ui")),
            file_count=int(body.get("file_count") or 0),
        )
        if result is None:
            return _respond(None)

        response = result.to_dict()
        if result.success:
            signal = coordinator.pending_auto_generate
            response["auto_generate_signal"] = signal.signal_id if signal and not signal.consumed else None
            current_app.logger.info("Analysis finished: %s", result.data.history_id)
        return jsonify(response), 200

    @bp.post("/api/ui")
    def start_ui_generation():
        body = _json_body()
        approach_name = (body.get("approach_name") or "").strip() or None
        result = coordinator.start_ui_generation(body.get("idea") or "", approach_name)
        return _respond(result)

    @bp.post("/api/ui/auto")
    def generate_ui_from_signal():
        signal_id = _required_str(_json_body(), "signal_id")
        signal = coordinator.pending_auto_generate
        if signal is None or signal.signal_id != signal_id:
            current_app.logger.info("Unknown or expired auto-generate signal: %s", signal_id)
            return jsonify(APIResult.fail("Auto-generate signal not found or expired").to_dict()), 404
        return _respond(coordinator.generate_ui_from_signal(signal))

    @bp.post("/api/approach")
    def select_approach():
        name = _required_str(_json_body(), "approach_name")
        return _respond(coordinator.select_approach(name))

    @bp.post("/api/review")
    def start_review():
        return _respond(coordinator.start_review())

    @bp.post("/api/analysis/field")
    def edit_analysis_field():
        body = _json_body()
        field_name = _required_str(body, "field_name")
        updated_field = body.get("updated_field")
        if updated_field is None:
            updated_field = {"instruction": _required_str(body, "instruction")}
        elif not isinstance(updated_field, dict):
            raise ValueError("updated_field must be an object")
        return _respond(coordinator.edit_analysis_field(field_name, updated_field))

    # -----------------------------
    # History
    # -----------------------------
    @bp.get("/api/history")
    def get_history():
        query = (request.args.get("q") or "").strip()
        kind = (request.args.get("type") or "").strip()
        if kind and kind not in HistoryKind.ALL:
            raise ValueError(f"type must be one of {', '.join(HistoryKind.ALL)}")

        if query:
            entries = coordinator.search_history(query)
        elif kind:
            entries = coordinator.history_by_type(kind)
        else:
            entries = coordinator.get_history()
        if query and kind:
            entries = [e for e in entries if e.kind == kind]

        current_app.logger.info("History entries loaded: %d", len(entries))
        return jsonify({"entries": to_jsonable(entries), "total": len(entries)})

    @bp.get("/api/history/<entry_id>")
    def load_history_entry(entry_id: str):
        if coordinator.in_flight:
            return _respond(None)
        entry = coordinator.load_history_entry(entry_id)
        if entry is None:
            return jsonify(APIResult.fail(f"History entry {entry_id} not found").to_dict()), 404
        return jsonify(APIResult.ok(entry).to_dict())

    @bp.delete("/api/history/<entry_id>")
    def delete_history_entry(entry_id: str):
        if not coordinator.delete_history_entry(entry_id):
            return jsonify(APIResult.fail(f"History entry {entry_id} not found").to_dict()), 404
        return jsonify({"success": True})

    @bp.delete("/api/history")
    def clear_history():
        coordinator.clear_history()
        return jsonify({"success": True})

    # -----------------------------
    # Session snapshot
    # -----------------------------
    @bp.get("/api/session")
    def get_session_snapshot():
        return jsonify(coordinator.get_session_snapshot().to_dict())

    @bp.post("/api/session")
    def save_session_snapshot():
        snapshot = coordinator.save_session_snapshot(_json_body())
        return jsonify(snapshot.to_dict())

    @bp.get("/api/session/status")
    def session_status():
        return jsonify(coordinator.session_status())

    @bp.delete("/api/session")
    def clear_session():
        if not coordinator.clear_session():
            return _respond(None)
        return jsonify({"success": True})

    # -----------------------------
    # Service passthrough
    # -----------------------------
    @bp.get("/api/health")
    def health():
        result = coordinator.client.health_check()
        return jsonify(result.to_dict()), (200 if result.success else 503)

    @bp.get("/api/sample-prompts")
    def sample_prompts():
        result = coordinator.client.sample_prompts()
        return jsonify(result.to_dict()), (200 if result.success else 502)

    @bp.post("/api/mobile-prototype")
    def mobile_prototype():
        body = _json_body()
        result = coordinator.client.mobile_prototype(_required_str(body, "type"), _required_str(body, "variant"))
        return jsonify(result.to_dict()), (200 if result.success else 502)

    return bp
