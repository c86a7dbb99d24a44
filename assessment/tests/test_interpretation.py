"""Tests for clinical interpretation of evaluation summaries."""

from __future__ import annotations

import pytest

from catalog.src.models import ProtocolType
from assessment.src.interpretation import (
    ClinicalInterpreter,
    InterpretationConfig,
    barrier_recommendation,
    calculate_developmental_delay,
    category_status,
    domain_scores,
    interpret_percentage,
    interpret_rating_severity,
    priority_areas,
)
from assessment.src.models import CategorySummary, Evaluation, ItemScore
from assessment.src.summary import summarize_protocol

# ===================================================================
# Helpers
# ===================================================================


def _summary(category_id: str, score: float, maximum: float, pct: int) -> CategorySummary:
    return CategorySummary(
        category_id=category_id,
        category_title=f"Category {category_id}",
        total_items=4,
        scored_items=4,
        total_score=score,
        max_possible_score=maximum,
        percentage=pct,
    )


def _scored_evaluation(protocol, values: dict, chronological_age_months=None) -> Evaluation:
    scores = {k: ItemScore(item_id=k, value=v) for k, v in values.items()}
    return Evaluation(
        id="eval_interp01",
        client_id="client_1",
        protocol_type=protocol.protocol_type,
        scores=scores,
        summary=summarize_protocol(protocol, scores),
        chronological_age_months=chronological_age_months,
    )


# ===================================================================
# Banding
# ===================================================================


class TestBanding:
    """Percentage bands and category status."""

    @pytest.mark.parametrize(
        "pct, level",
        [(95, "excellent"), (80, "excellent"), (79, "good"), (45, "moderate"), (20, "significant"), (5, "profound")],
    )
    def test_interpret_percentage(self, pct, level):
        assert interpret_percentage(pct).level == level

    def test_custom_thresholds(self):
        config = InterpretationConfig(excellent_threshold=90)
        assert interpret_percentage(85, config).level == "good"

    @pytest.mark.parametrize(
        "pct, status", [(80, "mastered"), (60, "developing"), (40, "emerging"), (39, "priority")]
    )
    def test_category_status(self, pct, status):
        assert category_status(pct)["status"] == status

    def test_config_round_trip(self):
        config = InterpretationConfig(priority_max=60, max_priority_areas=3)
        assert InterpretationConfig.from_dict(config.to_dict()) == config


class TestDevelopmentalDelay:
    """Delay against chronological age."""

    def test_no_delay(self):
        delay = calculate_developmental_delay(24, 30)
        assert delay.severity == "none"
        assert delay.delay_months == 0

    @pytest.mark.parametrize(
        "chrono, dev, pct, severity",
        [(48, 40, 17, "mild"), (48, 36, 25, "moderate"), (48, 24, 50, "severe"), (48, 12, 75, "profound")],
    )
    def test_severity_bands(self, chrono, dev, pct, severity):
        delay = calculate_developmental_delay(chrono, dev)
        assert delay.delay_percentage == pct
        assert delay.severity == severity
        assert delay.delay_months == chrono - dev


class TestRollups:
    """Domains, priority areas and barrier recommendations."""

    def test_domain_scores(self):
        summaries = {
            "A": _summary("A", 8, 10, 80),
            "B": _summary("B", 2, 10, 20),
            "D": _summary("D", 4, 8, 50),
        }
        domains = domain_scores(summaries)
        assert domains["Foundational Skills"] == {"percentage": 50, "categories": ["A", "B"]}
        assert domains["Language & Communication"]["percentage"] == 50
        assert domains["Motor Skills"] == {"percentage": 0, "categories": []}

    def test_priority_areas_window_and_order(self):
        summaries = {
            "A": _summary("A", 0, 10, 10),
            "B": _summary("B", 5, 10, 50),
            "C": _summary("C", 3, 10, 30),
            "D": _summary("D", 9, 10, 90),
        }
        areas = priority_areas(summaries)
        assert [a.category_id for a in areas] == ["C", "B"]

    def test_priority_areas_limited(self):
        summaries = {k: _summary(k, 3, 10, 30) for k in "ABCDEFG"}
        assert len(priority_areas(summaries, InterpretationConfig(max_priority_areas=2))) == 2

    def test_barrier_recommendation(self):
        assert "reinforcers" in barrier_recommendation("BAR-1")
        assert "BCBA" in barrier_recommendation("BAR-99")


# ===================================================================
# ClinicalInterpreter
# ===================================================================


class TestClinicalInterpreter:
    """Full reports per instrument."""

    def test_ablls_report(self, ablls):
        evaluation = _scored_evaluation(ablls, {"A1": 2, "A2": 2, "A3": 4, "A4": 2, "B1": 2})
        report = ClinicalInterpreter().interpret(evaluation)
        assert report.overall.level == "significant"
        assert report.category_status["A"]["status"] == "mastered"
        assert "Foundational Skills" in report.domains
        assert report.developmental_delay is None
        data = report.to_dict()
        assert data["protocol_type"] == "ablls_r"
        assert data["developmental_delay"] is None

    def test_portage_uses_delay(self, portage):
        evaluation = _scored_evaluation(
            portage, {"LNG-1": True, "LNG-2": True, "SLF-4": True}, chronological_age_months=48
        )
        report = ClinicalInterpreter().interpret(evaluation)
        assert report.developmental_delay.delay_months == 36
        assert report.developmental_delay.severity == "profound"
        assert report.overall.title == "Profound Developmental Delay"

    def test_portage_without_age_uses_percentage(self, portage):
        evaluation = _scored_evaluation(portage, {"LNG-1": True})
        report = ClinicalInterpreter().interpret(evaluation)
        assert report.developmental_delay is None
        assert report.overall.level == "profound"

    def test_vb_mapp_level_and_barriers(self, vb_mapp):
        values = {f"{c}-{n}": 1 for c in ("MAND1", "TACT1", "LR1") for n in range(1, 5)}
        values.update({"BAR-1": 4, "BAR-3": 3, "BAR-2": 1})
        evaluation = _scored_evaluation(vb_mapp, values, chronological_age_months=36)
        report = ClinicalInterpreter().interpret(evaluation)
        assert report.developmental_age_band == "0-18 months"
        assert report.developmental_delay.delay_months == 27
        assert report.developmental_delay.severity == "profound"
        assert "Level 1" in report.overall.description
        assert set(report.barrier_recommendations) == {"BAR-1", "BAR-3"}
        assert report.protocol_type == ProtocolType.VB_MAPP

    def test_cars_uses_severity_band(self, cars):
        values = {f"CARS-{n}": 2.5 for n in range(1, 16)}
        evaluation = _scored_evaluation(cars, values, chronological_age_months=40)
        report = ClinicalInterpreter().interpret(evaluation)
        assert evaluation.summary.severity == "severe"
        assert report.overall.title == "Severe Autism Symptoms"
        assert report.developmental_delay is None
        assert report.category_status == {}
        assert report.priority_areas == []

    @pytest.mark.parametrize(
        "severity, level",
        [("none", "excellent"), ("mild_moderate", "moderate"), ("severe", "significant")],
    )
    def test_interpret_rating_severity(self, severity, level):
        assert interpret_rating_severity(severity).level == level
