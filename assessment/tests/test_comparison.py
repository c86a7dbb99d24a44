"""Tests for the comparison engine and comparand selection."""

from __future__ import annotations

from datetime import datetime

import pytest

from catalog.src.models import ProtocolType
from assessment.src.comparison import (
    ChangeDirection,
    ComparisonConfig,
    ComparisonEngine,
    ComparisonError,
    ComparisonReport,
    classify,
    compare,
    latest_completed,
    select_previous,
)
from assessment.src.models import (
    CategorySummary,
    Evaluation,
    EvaluationStatus,
    ItemScore,
    OverallSummary,
)

# ===================================================================
# Helpers
# ===================================================================


def _make_evaluation(
    evaluation_id: str,
    category_percentages: dict[str, int] | None = None,
    scores: dict[str, object] | None = None,
    client_id: str = "client_1",
    protocol_type: ProtocolType = ProtocolType.ABLLS_R,
    completed: bool = True,
    created_at: datetime | None = None,
    completed_at: datetime | None = None,
) -> Evaluation:
    """Build an Evaluation with a hand-written summary.

    Each category is given a max of 100 so its score equals its
    percentage.
    """
    category_percentages = category_percentages or {}
    summaries = {
        key: CategorySummary(
            category_id=key,
            category_title=f"Category {key}",
            total_items=4,
            scored_items=4,
            total_score=pct,
            max_possible_score=100,
            percentage=pct,
        )
        for key, pct in category_percentages.items()
    }
    total = sum(category_percentages.values())
    maximum = 100 * len(category_percentages)
    created = created_at or datetime(2026, 3, 1, 9, 0, 0)
    return Evaluation(
        id=evaluation_id,
        client_id=client_id,
        protocol_type=protocol_type,
        status=EvaluationStatus.COMPLETED if completed else EvaluationStatus.IN_PROGRESS,
        scores={k: ItemScore(item_id=k, value=v) for k, v in (scores or {}).items()},
        summary=OverallSummary(
            category_summaries=summaries,
            overall_score=total,
            overall_max_score=maximum,
            overall_percentage=total * 100 // maximum if maximum else 0,
        ),
        created_at=created,
        updated_at=created,
        completed_at=(completed_at or created) if completed else None,
    )


# ===================================================================
# classify
# ===================================================================


class TestClassify:
    """Delta sign classification."""

    def test_directions(self):
        assert classify(15) == ChangeDirection.IMPROVED
        assert classify(-0.5) == ChangeDirection.REGRESSED
        assert classify(0) == ChangeDirection.UNCHANGED

    def test_lower_is_better_inverts(self):
        assert classify(-5, lower_is_better=True) == ChangeDirection.IMPROVED
        assert classify(2.5, lower_is_better=True) == ChangeDirection.REGRESSED
        assert classify(0, lower_is_better=True) == ChangeDirection.UNCHANGED


# ===================================================================
# ComparisonEngine
# ===================================================================


class TestComparisonEngine:
    """Category and item deltas between two evaluations."""

    def test_category_improvement(self):
        previous = _make_evaluation("eval_prev", {"A": 60})
        current = _make_evaluation("eval_curr", {"A": 75})
        report = ComparisonEngine().compare(current, previous)
        delta = report.category_deltas[0]
        assert delta.delta == 15
        assert delta.direction == ChangeDirection.IMPROVED
        assert delta.previous_percentage == 60
        assert delta.current_percentage == 75
        assert report.overall_delta == 15

    def test_regression_and_unchanged(self):
        previous = _make_evaluation("eval_prev", {"A": 60, "B": 40, "C": 50})
        current = _make_evaluation("eval_curr", {"A": 45, "B": 40, "C": 70})
        report = compare(current, previous)
        assert [d.category_id for d in report.regressions] == ["A"]
        assert [d.category_id for d in report.improvements] == ["C"]
        assert report.unchanged == ["B"]

    def test_categories_missing_on_one_side_skipped(self):
        previous = _make_evaluation("eval_prev", {"A": 60})
        current = _make_evaluation("eval_curr", {"A": 60, "B": 20})
        report = compare(current, previous)
        assert [d.category_id for d in report.category_deltas] == ["A"]

    def test_item_deltas(self):
        previous = _make_evaluation("eval_prev", {"A": 50}, scores={"A1": 1, "A2": 2, "A4": 2})
        current = _make_evaluation("eval_curr", {"A": 60}, scores={"A1": 2, "A2": 2, "A3": 4})
        report = compare(current, previous)
        by_id = {d.item_id: d for d in report.item_deltas}
        assert [d.item_id for d in report.item_deltas] == ["A1", "A2", "A3", "A4"]
        assert by_id["A1"].delta == 1
        assert by_id["A1"].direction == ChangeDirection.IMPROVED
        assert by_id["A2"].direction == ChangeDirection.UNCHANGED
        assert by_id["A3"].direction == ChangeDirection.NEWLY_ASSESSED
        assert by_id["A3"].delta is None
        assert by_id["A4"].direction == ChangeDirection.NOT_REASSESSED
        assert report.newly_assessed == ["A3"]

    def test_item_deltas_on_mastery_and_achievement_scales(self):
        previous = _make_evaluation(
            "eval_prev", {"cognitive": 0}, scores={"cog_am_1": "A", "LNG-1": False},
            protocol_type=ProtocolType.CAROLINA,
        )
        current = _make_evaluation(
            "eval_curr", {"cognitive": 10}, scores={"cog_am_1": "M", "LNG-1": True},
            protocol_type=ProtocolType.CAROLINA,
        )
        by_id = {d.item_id: d for d in compare(current, previous).item_deltas}
        assert by_id["cog_am_1"].delta == 2
        assert by_id["LNG-1"].delta == 1

    def test_na_items_are_not_scored(self):
        previous = _make_evaluation("eval_prev", {"A": 50}, scores={"A1": 1})
        current = _make_evaluation("eval_curr", {"A": 50})
        current.scores["A1"] = ItemScore(item_id="A1", is_na=True)
        by_id = {d.item_id: d for d in compare(current, previous).item_deltas}
        assert by_id["A1"].direction == ChangeDirection.NOT_REASSESSED

    def test_no_previous_returns_none(self):
        current = _make_evaluation("eval_curr", {"A": 75})
        assert compare(current, None) is None

    def test_in_progress_previous_returns_none(self):
        previous = _make_evaluation("eval_prev", {"A": 60}, completed=False)
        current = _make_evaluation("eval_curr", {"A": 75})
        assert compare(current, previous) is None

    def test_same_evaluation_rejected(self):
        evaluation = _make_evaluation("eval_same", {"A": 60})
        with pytest.raises(ComparisonError, match="itself"):
            compare(evaluation, evaluation)

    def test_different_client_rejected(self):
        previous = _make_evaluation("eval_prev", {"A": 60}, client_id="client_2")
        current = _make_evaluation("eval_curr", {"A": 75})
        with pytest.raises(ComparisonError):
            compare(current, previous)

    def test_different_protocol_rejected(self):
        previous = _make_evaluation("eval_prev", {"A": 60}, protocol_type=ProtocolType.PORTAGE)
        current = _make_evaluation("eval_curr", {"A": 75})
        with pytest.raises(ComparisonError):
            compare(current, previous)


class TestPlainLanguageSummary:
    """Readable summaries."""

    def test_improvement_summary(self):
        previous = _make_evaluation("eval_prev", {"A": 60, "B": 40})
        current = _make_evaluation("eval_curr", {"A": 75, "B": 42})
        summary = compare(current, previous).plain_language_summary
        assert "improved by 8 percentage points" in summary
        assert "Largest gains: Category A (+15)." in summary
        assert "Category B" not in summary
        assert "2 areas improved, 0 regressed and 0 unchanged." in summary

    def test_regression_summary(self):
        previous = _make_evaluation("eval_prev", {"A": 60})
        current = _make_evaluation("eval_curr", {"A": 30})
        summary = compare(current, previous).plain_language_summary
        assert "decreased by 30 percentage points" in summary
        assert "Areas needing attention: Category A (-30)." in summary

    def test_unchanged_summary(self):
        previous = _make_evaluation("eval_prev", {"A": 60})
        current = _make_evaluation("eval_curr", {"A": 60})
        assert "unchanged" in compare(current, previous).plain_language_summary

    def test_threshold_configurable(self):
        previous = _make_evaluation("eval_prev", {"A": 60})
        current = _make_evaluation("eval_curr", {"A": 65})
        report = ComparisonEngine(ComparisonConfig(significant_change=5)).compare(current, previous)
        assert "Largest gains: Category A (+5)." in report.plain_language_summary

    def test_newly_assessed_mentioned(self):
        previous = _make_evaluation("eval_prev", {"A": 0})
        current = _make_evaluation("eval_curr", {"A": 20}, scores={"A1": 2})
        summary = compare(current, previous).plain_language_summary
        assert "1 items were assessed for the first time." in summary

    def test_rating_scale_drop_is_improvement(self):
        previous = _make_evaluation(
            "eval_prev", {"CARS": 70}, scores={"CARS-1": 3.5}, protocol_type=ProtocolType.CARS
        )
        current = _make_evaluation(
            "eval_curr", {"CARS": 50}, scores={"CARS-1": 2}, protocol_type=ProtocolType.CARS
        )
        report = compare(current, previous)
        assert report.overall_delta == -20
        assert [d.category_id for d in report.improvements] == ["CARS"]
        assert report.item_deltas[0].delta == -1.5
        assert report.item_deltas[0].direction == ChangeDirection.IMPROVED
        summary = report.plain_language_summary
        assert "symptom rating fell by 20 percentage points (improved)" in summary
        assert "Largest gains: Category CARS (-20)." in summary

    def test_rating_scale_rise_is_regression(self):
        previous = _make_evaluation("eval_prev", {"CARS": 40}, protocol_type=ProtocolType.CARS)
        current = _make_evaluation("eval_curr", {"CARS": 55}, protocol_type=ProtocolType.CARS)
        report = compare(current, previous)
        assert [d.category_id for d in report.regressions] == ["CARS"]
        assert "rose by 15 percentage points (regressed)" in report.plain_language_summary


class TestReportSerialization:
    """ComparisonReport to_dict / from_dict."""

    def test_round_trip(self):
        previous = _make_evaluation("eval_prev", {"A": 60}, scores={"A1": 1})
        current = _make_evaluation("eval_curr", {"A": 75}, scores={"A1": 2})
        report = compare(current, previous)
        data = report.to_dict()
        assert data["improvements"] == ["A"]
        assert data["protocol_type"] == "ablls_r"
        restored = ComparisonReport.from_dict(data)
        assert restored.category_deltas == report.category_deltas
        assert restored.item_deltas == report.item_deltas

    def test_config_from_dict_defaults(self):
        assert ComparisonConfig.from_dict({}).significant_change == 10.0


# ===================================================================
# Comparand selection
# ===================================================================


class TestSelectPrevious:
    """Picking the most recent completed predecessor."""

    def test_latest_completed_wins(self):
        first = _make_evaluation(
            "eval_1", created_at=datetime(2026, 1, 1), completed_at=datetime(2026, 1, 5)
        )
        second = _make_evaluation(
            "eval_2", created_at=datetime(2026, 2, 1), completed_at=datetime(2026, 2, 5)
        )
        current = _make_evaluation("eval_3", completed=False, created_at=datetime(2026, 3, 1))
        assert select_previous([first, second, current], current).id == "eval_2"

    def test_in_progress_never_selected(self):
        done = _make_evaluation("eval_1", created_at=datetime(2026, 1, 1))
        draft = _make_evaluation("eval_2", completed=False, created_at=datetime(2026, 2, 1))
        current = _make_evaluation("eval_3", completed=False, created_at=datetime(2026, 3, 1))
        assert select_previous([done, draft, current], current).id == "eval_1"

    def test_newer_evaluations_ignored(self):
        current = _make_evaluation("eval_1", created_at=datetime(2026, 1, 1))
        later = _make_evaluation("eval_2", created_at=datetime(2026, 2, 1))
        assert select_previous([current, later], current) is None

    def test_other_clients_and_protocols_ignored(self):
        other_client = _make_evaluation("eval_1", client_id="client_2", created_at=datetime(2026, 1, 1))
        other_protocol = _make_evaluation(
            "eval_2", protocol_type=ProtocolType.VB_MAPP, created_at=datetime(2026, 1, 1)
        )
        current = _make_evaluation("eval_3", completed=False, created_at=datetime(2026, 3, 1))
        assert select_previous([other_client, other_protocol], current) is None

    def test_latest_completed_without_bound(self):
        first = _make_evaluation("eval_1", completed_at=datetime(2026, 1, 5))
        second = _make_evaluation("eval_2", completed_at=datetime(2026, 4, 5))
        found = latest_completed([second, first], "client_1", ProtocolType.ABLLS_R)
        assert found.id == "eval_2"
        assert latest_completed([], "client_1", ProtocolType.ABLLS_R) is None
