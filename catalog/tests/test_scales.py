"""Tests for scoring-scale validation and point conversion."""

from __future__ import annotations

import pytest

from catalog.src.models import ProtocolItem, ScoringScale
from catalog.src.scales import (
    MasteryValue,
    OutOfRangeError,
    is_emerging,
    normalize_value,
    value_points,
)

FOUR_POINT = ProtocolItem(id="A3", text="Four point item", max_score=4)
HALF_STEP = ProtocolItem(id="MAND1-1", text="Milestone", max_score=1, score_step=0.5)
TRANSITION = ProtocolItem(id="TRANS-1", text="Transition", max_score=5, min_score=1)
BINARY = ProtocolItem(id="LNG-1", text="Says two words", age_months=12)


# ===================================================================
# Point scale
# ===================================================================


class TestPointScale:
    """Numeric scores between 0 and an item's max."""

    @pytest.mark.parametrize("value", [0, 1, 2, 3, 4])
    def test_valid_integers(self, value):
        assert normalize_value(ScoringScale.POINTS, FOUR_POINT, value) == value

    def test_integral_float_becomes_int(self):
        result = normalize_value(ScoringScale.POINTS, FOUR_POINT, 2.0)
        assert result == 2
        assert isinstance(result, int)

    def test_half_step(self):
        assert normalize_value(ScoringScale.POINTS, HALF_STEP, 0.5) == 0.5

    def test_below_min_rejected(self):
        with pytest.raises(OutOfRangeError, match="outside 1-5"):
            normalize_value(ScoringScale.POINTS, TRANSITION, 0)

    @pytest.mark.parametrize("value", [1, 5])
    def test_min_and_max_accepted(self, value):
        assert normalize_value(ScoringScale.POINTS, TRANSITION, value) == value

    def test_off_step_rejected(self):
        with pytest.raises(OutOfRangeError, match="multiple of 0.5"):
            normalize_value(ScoringScale.POINTS, HALF_STEP, 0.25)

    def test_above_max_rejected(self):
        with pytest.raises(OutOfRangeError, match="outside 0-4"):
            normalize_value(ScoringScale.POINTS, FOUR_POINT, 5)

    def test_negative_rejected(self):
        with pytest.raises(OutOfRangeError):
            normalize_value(ScoringScale.POINTS, FOUR_POINT, -1)

    def test_nan_rejected(self):
        with pytest.raises(OutOfRangeError):
            normalize_value(ScoringScale.POINTS, FOUR_POINT, float("nan"))

    @pytest.mark.parametrize("value", [True, "2", None])
    def test_non_numeric_rejected(self, value):
        with pytest.raises(OutOfRangeError, match="numeric"):
            normalize_value(ScoringScale.POINTS, FOUR_POINT, value)

    def test_out_of_range_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_value(ScoringScale.POINTS, FOUR_POINT, 9)


# ===================================================================
# Achievement and mastery scales
# ===================================================================


class TestAchievementScale:
    """Portage achieved / not achieved."""

    def test_bool_accepted(self):
        assert normalize_value(ScoringScale.ACHIEVEMENT, BINARY, True) is True
        assert normalize_value(ScoringScale.ACHIEVEMENT, BINARY, False) is False

    @pytest.mark.parametrize("value", [1, "yes", 0])
    def test_non_bool_rejected(self, value):
        with pytest.raises(OutOfRangeError):
            normalize_value(ScoringScale.ACHIEVEMENT, BINARY, value)

    def test_points(self):
        assert value_points(ScoringScale.ACHIEVEMENT, True) == 1
        assert value_points(ScoringScale.ACHIEVEMENT, False) == 0


class TestMasteryScale:
    """Carolina Absent / Developing / Mastered."""

    def test_lowercase_normalized(self):
        assert normalize_value(ScoringScale.MASTERY, BINARY, "m") == "M"

    def test_enum_accepted(self):
        assert normalize_value(ScoringScale.MASTERY, BINARY, MasteryValue.DEVELOPING) == "D"

    def test_unknown_letter_rejected(self):
        with pytest.raises(OutOfRangeError, match="A, D, M"):
            normalize_value(ScoringScale.MASTERY, BINARY, "X")

    @pytest.mark.parametrize("value, points", [("A", 0), ("D", 1), ("M", 2)])
    def test_points(self, value, points):
        assert value_points(ScoringScale.MASTERY, value) == points


# ===================================================================
# is_emerging
# ===================================================================


class TestIsEmerging:
    """Emerging means strictly between absent and mastered."""

    def test_point_scale(self):
        assert is_emerging(ScoringScale.POINTS, FOUR_POINT, 2)
        assert not is_emerging(ScoringScale.POINTS, FOUR_POINT, 0)
        assert not is_emerging(ScoringScale.POINTS, FOUR_POINT, 4)

    def test_half_point_milestone(self):
        assert is_emerging(ScoringScale.POINTS, HALF_STEP, 0.5)

    def test_min_score_is_not_emerging(self):
        assert not is_emerging(ScoringScale.POINTS, TRANSITION, 1)
        assert is_emerging(ScoringScale.POINTS, TRANSITION, 2)

    def test_mastery_scale(self):
        assert is_emerging(ScoringScale.MASTERY, BINARY, "D")
        assert not is_emerging(ScoringScale.MASTERY, BINARY, "M")

    def test_achievement_never_emerging(self):
        assert not is_emerging(ScoringScale.ACHIEVEMENT, BINARY, True)
