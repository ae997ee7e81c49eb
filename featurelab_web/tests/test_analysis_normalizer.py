from __future__ import annotations

import pytest

from featurelab_web.domain.errors import NotLoadedError
from featurelab_web.domain.records import AnalysisRecord
from featurelab_web.services.analysis_normalizer import AnalysisNormalizer


def full_board() -> dict:
    return {
        "product_goal": "Help users track todos",
        "business_goal": "Grow weekly actives",
        "user_problem_goal": {"problem": "Tasks get lost", "user_goal": "Never forget a task"},
        "target_segments": ["students", "freelancers"],
        "user_insights_data": [
            {"insight": "Users forget recurring chores", "evidence": "Interview #3"},
            {"insight": "Mobile first", "evidence": "70% traffic is mobile"},
        ],
        "scope": {"in_scope": ["lists"], "out_scope": ["calendar"], "constraints": ["2 devs"]},
        "success_metrics": [
            {"name": "WAU", "type": "engagement", "formula": "unique users / week", "target": "10k"},
            {"name": "Churn", "type": "retention", "formula": "lost / total", "target": ""},
        ],
        "key_assumptions_open_questions": "Will users pay?",
    }


def test_full_board_is_valid_and_kept_as_is():
    result = AnalysisNormalizer().normalize(full_board())

    assert result.validation.is_valid
    assert result.validation.errors == []
    assert result.record.to_dict() == full_board()


def test_missing_fields_are_all_reported_not_just_the_first():
    result = AnalysisNormalizer().normalize({"target_segments": "students"})

    assert not result.validation.is_valid
    assert result.validation.errors == [
        "Missing product_goal",
        "Missing user_problem_goal",
        "target_segments must be an array",
        "Missing user_insights_data",
        "Missing scope",
        "Missing success_metrics",
    ]


def test_coercion_fills_defaults_and_wraps_scalars():
    record = AnalysisNormalizer().normalize({
        "product_goal": "Goal",
        "target_segments": "students",
        "scope": {"in_scope": "lists"},
        "user_insights_data": ["plain insight"],
    }).record

    assert record.business_goal == ""
    assert record.key_assumptions_open_questions == ""
    assert record.user_problem_goal.problem == ""
    assert record.target_segments == ["students"]
    assert record.scope.in_scope == ["lists"]
    assert record.scope.out_scope == []
    assert record.scope.constraints == []
    assert record.success_metrics == []
    assert record.user_insights_data[0].insight == "plain insight"
    assert record.user_insights_data[0].evidence == ""


def test_unknown_metric_type_is_flagged():
    board = full_board()
    board["success_metrics"][0]["type"] = "vanity"

    result = AnalysisNormalizer().normalize(board)

    [error] = result.validation.errors
    assert error.startswith("success_metrics[0].type must be one of")
    assert "retention" in error
    assert result.record.success_metrics[0].type == "vanity"


def test_non_object_input_is_invalid_but_still_yields_a_record():
    result = AnalysisNormalizer().normalize(["not", "an", "object"])

    assert result.validation.errors == ["Response must be a JSON object"]
    assert result.record == AnalysisRecord()


@pytest.mark.parametrize(
    "raw",
    [
        full_board(),
        {},
        {"product_goal": 42, "target_segments": "one", "scope": "bad", "success_metrics": {"name": "x"}},
        {"user_insights_data": [None, "text", {"insight": "a"}], "scope": {"constraints": None}},
    ],
)
def test_normalize_is_idempotent(raw):
    n = AnalysisNormalizer()
    once = n.normalize(raw).record

    assert n.normalize(once).record == once
    assert n.normalize(once.to_dict()).record == once


def test_accessors_require_a_loaded_record():
    n = AnalysisNormalizer()

    assert n.is_loaded() is False
    with pytest.raises(NotLoadedError):
        _ = n.product_goal
    with pytest.raises(NotLoadedError):
        n.summary()


def test_derived_accessors_after_load():
    n = AnalysisNormalizer()
    n.load(full_board())

    assert n.is_loaded()
    summary = n.summary()
    assert summary.target_segments_count == 2
    assert summary.success_metrics_count == 2
    assert [i.insight for i in n.search_insights("MOBILE")] == ["Mobile first"]
    assert [m.name for m in n.metrics_by_type("retention")] == ["Churn"]
    assert [m.name for m in n.metrics_with_targets()] == ["WAU"]

    n.clear()
    assert n.is_loaded() is False


def test_empty_string_list_field_keeps_one_empty_item():
    result = AnalysisNormalizer().normalize(dict(full_board(), target_segments=""))

    assert result.record.target_segments == [""]
    assert result.validation.errors == ["target_segments must be an array"]


def test_blank_goal_and_wrong_scope_types_are_reported():
    board = full_board()
    board["user_problem_goal"] = {"problem": " ", "user_goal": 7}
    board["scope"]["constraints"] = "2 devs"

    result = AnalysisNormalizer().normalize(board)

    assert result.validation.errors == [
        "user_problem_goal.problem must not be empty",
        "user_problem_goal.user_goal must be a string",
        "scope.constraints must be an array",
    ]
    assert result.record.user_problem_goal.user_goal == "7"
    assert result.record.scope.constraints == ["2 devs"]
