from __future__ import annotations

import logging
from typing import Any, List, Optional

import pytest
import requests

from featurelab_web.domain.models import APIResult
from featurelab_web.services.request_orchestrator import RequestOrchestrator

ORCH_LOGGER = "featurelab_web.services.request_orchestrator"


# -----------------------------
# Test doubles
# -----------------------------
class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, reason: str = "OK", invalid_json: bool = False):
        self.status_code = status_code
        self.reason = reason
        self._body = body
        self._invalid_json = invalid_json

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


class FakeSession:
    """Replays scripted outcomes in order; the last one repeats. Exceptions are raised."""

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls: List[tuple] = []

    def _next(self):
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json, timeout))
        return self._next()

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None, timeout))
        return self._next()


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# -----------------------------
# Helpers
# -----------------------------
def make_orchestrator(outcomes: List[Any], **kwargs):
    clock = FakeClock()
    session = FakeSession(outcomes)
    orch = RequestOrchestrator(
        "https://api.test/api/",
        session=session,
        sleep=clock.sleep,
        clock=clock,
        id_factory=lambda: "corr-1",
        **kwargs,
    )
    return orch, session, clock


def events(caplog) -> List[Optional[str]]:
    return [getattr(r, "event", None) for r in caplog.records if r.name == ORCH_LOGGER]


# -----------------------------
# Retry policy
# -----------------------------
def test_every_attempt_failing_makes_six_attempts_and_waits_five_delays():
    orch, session, clock = make_orchestrator([requests.ConnectionError("connection refused")])

    result = orch.issue("idea_to_analysis", {"idea": "x", "context": "y"})

    assert result.success is False
    assert result.data is None
    assert result.error == "connection refused"
    assert len(session.calls) == 6
    assert clock.sleeps == [1.0] * 5
    assert sum(clock.sleeps) >= 5.0


def test_success_after_three_transport_failures(caplog):
    caplog.set_level(logging.DEBUG, logger=ORCH_LOGGER)
    orch, session, _ = make_orchestrator([
        requests.ConnectionError("reset"),
        requests.Timeout("timed out"),
        requests.ConnectionError("reset"),
        FakeResponse(200, {"success": True, "data": {"analysis_board": {"product_goal": "Help users track todos"}}}),
    ])

    result = orch.issue("idea_to_analysis", {"idea": "Build a todo app", "context": "context"})

    assert result.success is True
    assert result.error is None
    assert result.data["analysis_board"]["product_goal"] == "Help users track todos"
    assert len(session.calls) == 4
    assert events(caplog) == ["api_request_retry"] * 3 + ["api_request_succeeded"]


def test_retry_log_records_carry_structured_fields(caplog):
    caplog.set_level(logging.DEBUG, logger=ORCH_LOGGER)
    orch, _, _ = make_orchestrator([requests.ConnectionError("down")], max_retries=1)

    orch.issue("product_critique", {"analysis_board": {}})

    records = [r for r in caplog.records if r.name == ORCH_LOGGER]
    assert [r.event for r in records] == ["api_request_retry", "api_request_attempt_failed", "api_request_exhausted"]
    retry = records[0]
    assert retry.endpoint == "product_critique"
    assert retry.correlation_id == "corr-1"
    assert retry.attempt == 1
    assert retry.will_retry is True
    assert records[1].will_retry is False


@pytest.mark.parametrize("status, reason", [(400, "Bad Request"), (404, "Not Found"), (500, "Internal Server Error")])
def test_non_2xx_is_retried_like_any_other_failure(status, reason):
    orch, session, _ = make_orchestrator([FakeResponse(status, reason=reason)])

    result = orch.issue("solution_architect", {"analysis_board": {}})

    assert result.success is False
    assert result.error == f"API error: {status} - {reason}"
    assert len(session.calls) == 6


def test_in_band_failure_is_retried_then_plain_body_is_returned():
    orch, session, clock = make_orchestrator([
        FakeResponse(200, {"success": False, "error": "model overloaded"}),
        FakeResponse(200, {"html_content": "<div/>", "response_id": "r1"}),
    ])

    result = orch.issue("solution_to_ui", {"problem_statement": "p"})

    assert result.success is True
    assert result.data == {"html_content": "<div/>", "response_id": "r1"}
    assert clock.sleeps == [1.0]
    assert len(session.calls) == 2


def test_in_band_failure_message_is_surfaced_on_exhaustion():
    orch, _, _ = make_orchestrator([FakeResponse(200, {"success": False, "message": "quota exceeded"})], max_retries=2)

    result = orch.issue("assessment_center", {})

    assert result.error == "quota exceeded"


def test_success_envelope_without_data_keeps_remaining_fields():
    orch, _, _ = make_orchestrator([FakeResponse(200, {"success": True, "prompts": [], "total": 0})])

    result = orch.issue("anything", {})

    assert result.data == {"prompts": [], "total": 0}


def test_invalid_json_counts_as_failure():
    orch, session, _ = make_orchestrator([FakeResponse(200, invalid_json=True)], max_retries=0)

    result = orch.issue("idea_to_analysis", {})

    assert result.success is False
    assert result.error.startswith("Invalid JSON response")
    assert len(session.calls) == 1


def test_unexpected_exception_never_escapes():
    orch, _, _ = make_orchestrator([RuntimeError("kaboom")], max_retries=0)

    result = orch.issue("idea_to_analysis", {})

    assert result.success is False
    assert result.error == "RuntimeError: kaboom"


def test_post_sends_json_to_joined_url_with_timeout():
    orch, session, _ = make_orchestrator([FakeResponse(200, {"ok": True})], timeout_seconds=30)

    orch.issue("idea_to_analysis", {"idea": "a", "context": "b"})

    assert session.calls == [("POST", "https://api.test/api/idea_to_analysis", {"idea": "a", "context": "b"}, 30)]


def test_get_variant_uses_the_same_retry_contract():
    orch, session, clock = make_orchestrator([
        requests.ConnectionError("down"),
        FakeResponse(200, {"status": "ok"}),
    ])

    result = orch.get("health")

    assert result.success is True
    assert result.data == {"status": "ok"}
    assert [c[0] for c in session.calls] == ["GET", "GET"]
    assert session.calls[0][1] == "https://api.test/api/health"
    assert clock.sleeps == [1.0]


# -----------------------------
# APIResult envelope
# -----------------------------
@pytest.mark.parametrize(
    "kwargs",
    [
        {"success": True},
        {"success": True, "data": {"a": 1}, "error": "also an error"},
        {"success": False},
        {"success": False, "error": ""},
        {"success": False, "data": {"a": 1}, "error": "boom"},
    ],
)
def test_api_result_rejects_invalid_combinations(kwargs):
    with pytest.raises(ValueError):
        APIResult(**kwargs)


def test_api_result_constructors():
    assert APIResult.ok({}).to_dict() == {"success": True, "data": {}}
    assert APIResult.fail("").error == "Unknown error"
    assert APIResult.fail(None).to_dict() == {"success": False, "error": "Unknown error"}
