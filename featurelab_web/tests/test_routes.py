from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pytest

from featurelab_web.adapters.storage import InMemoryStorage
from featurelab_web.app_factory import create_app
from featurelab_web.config.ini_config import AppSettings

BOARD = {
    "product_goal": "Help users track todos",
    "business_goal": "Retention",
    "user_problem_goal": {"problem": "Tasks get lost", "user_goal": "Never forget a task"},
    "target_segments": ["students"],
    "user_insights_data": [],
    "scope": {"in_scope": [], "out_scope": [], "constraints": []},
    "success_metrics": [],
    "key_assumptions_open_questions": "",
}


# -----------------------------
# Test doubles
# -----------------------------
class FakeResponse:
    def __init__(self, status_code: int, body: Any, reason: str = "OK"):
        self.status_code = status_code
        self.reason = reason
        self._body = body

    def json(self):
        return self._body


class FakeHttpSession:
    """Answers by the last path segment of the URL."""

    def __init__(self, routes: Dict[str, FakeResponse]):
        self.routes = routes
        self.calls: List[str] = []
        self.bodies: Dict[str, Any] = {}

    def _answer(self, url: str, body: Any = None) -> FakeResponse:
        endpoint = url.rsplit("/", 1)[-1]
        self.calls.append(endpoint)
        self.bodies[endpoint] = body
        return self.routes.get(endpoint, FakeResponse(404, None, "Not Found"))

    def post(self, url, json=None, timeout=None):
        return self._answer(url, json)

    def get(self, url, timeout=None):
        return self._answer(url)


# -----------------------------
# Helpers
# -----------------------------
def make_settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        api_base_url="https://api.test/api",
        timeout_seconds=5,
        max_retries=0,
        retry_delay_seconds=0.0,
        analysis_context="Product improvement",
        ui_context="UI generation from user input",
        auto_generate_window_seconds=0.5,
        storage_backend="memory",
        storage_dir=tmp_path,
        history_max_entries=100,
        session_ttl_hours=24,
        sqlserver_table="dbo.FeatureLabState",
        log_level="WARNING",
        flask_host="127.0.0.1",
        flask_port=5000,
        flask_debug=False,
    )


@pytest.fixture
def http():
    return FakeHttpSession({
        "idea_to_analysis": FakeResponse(200, {"success": True, "data": {"analysis_board": BOARD}}),
        "solution_to_ui": FakeResponse(200, {"html_content": "<main>todo</main>", "response_id": "r-1"}),
        "health": FakeResponse(200, {"status": "ok"}),
        "sample-prompts": FakeResponse(500, None, "Internal Server Error"),
        "field-edit": FakeResponse(200, {"success": True, "data": {
            "id": "e-1", "field_name": "product_goal", "updated_value": "Never miss a chore",
        }}),
        "mobile_prototype": FakeResponse(200, {"success": True, "data": {"html_content": "<nav>app</nav>"}}),
    })


@pytest.fixture
def app(tmp_path: Path, http):
    return create_app(make_settings(tmp_path), storage=InMemoryStorage(), http_session=http)


@pytest.fixture
def client(app):
    return app.test_client()


def test_analysis_requires_an_idea(client):
    resp = client.post("/api/analysis", json={"idea": "  "})

    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "error": "idea is required"}


def test_non_object_body_is_a_bad_request(client):
    resp = client.post("/api/analysis", json=["idea"])

    assert resp.status_code == 400


def test_analysis_returns_board_and_records_history(client):
    resp = client.post("/api/analysis", json={"idea": "Build a todo app"})

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["data"]["analysis_board"]["product_goal"] == "Help users track todos"
    assert body["auto_generate_signal"] is None

    history = client.get("/api/history").get_json()
    assert history["total"] == 1
    assert history["entries"][0]["status"] == "success"


def test_auto_generate_signal_round_trip(client, http):
    signal_id = client.post(
        "/api/analysis", json={"idea": "Build a todo app", "auto_generate_ui": True}
    ).get_json()["auto_generate_signal"]
    assert signal_id

    # no solution_architect route: the chain stops there and the entry is marked failed
    resp = client.post("/api/ui/auto", json={"signal_id": signal_id})

    assert resp.status_code == 200
    assert resp.get_json()["success"] is False
    assert "solution_architect" in http.calls


def test_consumed_signal_answers_with_an_error_not_a_conflict(app, client):
    app.extensions["featurelab.coordinator"]._clock = lambda: 100.0
    signal_id = client.post(
        "/api/analysis", json={"idea": "Build a todo app", "auto_generate_ui": True}
    ).get_json()["auto_generate_signal"]
    client.post("/api/ui/auto", json={"signal_id": signal_id})

    resp = client.post("/api/ui/auto", json={"signal_id": signal_id})

    assert resp.status_code == 200
    assert resp.get_json() == {"success": False, "error": "Auto-generate signal already consumed"}


def test_unknown_signal_is_not_found(client):
    resp = client.post("/api/ui/auto", json={"signal_id": "nope"})

    assert resp.status_code == 404


def test_ui_falls_back_to_prompt_when_analysis_is_unavailable(tmp_path: Path):
    http = FakeHttpSession({
        "solution_to_ui": FakeResponse(200, {"html_content": "<main>bakery</main>", "response_id": "r-2"}),
    })
    client = create_app(make_settings(tmp_path), storage=InMemoryStorage(), http_session=http).test_client()

    body = client.post("/api/ui", json={"idea": "Landing page for a bakery"}).get_json()

    assert body["success"] is True
    assert body["data"]["generation_type"] == "prompt-based"
    assert body["data"]["html_content"] == "<main>bakery</main>"
    assert http.calls == ["idea_to_analysis", "solution_to_ui"]


def test_busy_coordinator_answers_conflict(app, client):
    coordinator = app.extensions["featurelab.coordinator"]
    coordinator._guard.acquire()
    try:
        resp = client.post("/api/ui", json={"idea": "x"})
    finally:
        coordinator._guard.release()

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "A run is already in progress"


def test_history_endpoints(client):
    client.post("/api/analysis", json={"idea": "Build a todo app"})
    entry_id = client.get("/api/history").get_json()["entries"][0]["id"]

    assert client.get("/api/history?type=ui").get_json()["total"] == 0
    assert client.get("/api/history?q=TODO").get_json()["total"] == 1
    assert client.get("/api/history?type=bogus").status_code == 400

    loaded = client.get(f"/api/history/{entry_id}")
    assert loaded.status_code == 200
    assert loaded.get_json()["data"]["id"] == entry_id
    assert client.get("/api/history/missing").status_code == 404

    assert client.delete(f"/api/history/{entry_id}").status_code == 200
    assert client.delete(f"/api/history/{entry_id}").status_code == 404
    assert client.delete("/api/history").get_json() == {"success": True}


def test_session_snapshot_endpoints(client):
    saved = client.post("/api/session", json={"ui_input": "draft", "active_tab": "ui"}).get_json()
    assert saved["ui_input"] == "draft"

    assert client.get("/api/session").get_json()["active_tab"] == "ui"
    assert client.delete("/api/session").get_json() == {"success": True}
    assert client.get("/api/session").get_json()["ui_input"] == ""


def test_service_passthrough(client):
    health = client.get("/api/health")
    prompts = client.get("/api/sample-prompts")

    assert health.status_code == 200
    assert health.get_json() == {"success": True, "data": {"status": "ok"}}
    assert prompts.status_code == 502
    assert prompts.get_json()["error"] == "API error: 500 - Internal Server Error"


def test_session_status_endpoint(client):
    assert client.get("/api/session/status").get_json() == {"has_valid_cache": False, "cache_age_minutes": None}

    client.post("/api/session", json={"ui_input": "draft"})
    status = client.get("/api/session/status").get_json()

    assert status["has_valid_cache"] is True
    assert status["cache_age_minutes"] < 1


# -----------------------------
# Field edits + prototypes
# -----------------------------
def test_field_edit_updates_the_resident_board(client, http):
    assert client.post("/api/analysis/field", json={"field_name": "product_goal", "instruction": "x"}).get_json() == {
        "success": False,
        "error": "Analysis data not available",
    }
    client.post("/api/analysis", json={"idea": "Build a todo app"})

    resp = client.post("/api/analysis/field", json={"field_name": "product_goal", "instruction": "Sharper"})

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["data"]["analysis_board"]["product_goal"] == "Never miss a chore"
    assert http.bodies["field-edit"] == {
        "analysis_board": BOARD,
        "field_name": "product_goal",
        "updated_field": {"instruction": "Sharper"},
    }
    assert client.get("/api/session").get_json()["analysis_data"]["product_goal"] == "Never miss a chore"


def test_field_edit_validates_its_body(client):
    assert client.post("/api/analysis/field", json={"instruction": "x"}).status_code == 400
    assert client.post("/api/analysis/field", json={"field_name": "scope"}).status_code == 400
    resp = client.post("/api/analysis/field", json={"field_name": "scope", "updated_field": "narrow"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "updated_field must be an object"


def test_mobile_prototype_passthrough(client, http):
    resp = client.post("/api/mobile-prototype", json={"type": "todo", "variant": "dark"})

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "data": {"html_content": "<nav>app</nav>"}}
    assert http.bodies["mobile_prototype"] == {
        "inputData": '{"type": "todo", "variant": "dark", "features": []}'
    }
    assert client.post("/api/mobile-prototype", json={"type": "todo"}).status_code == 400
