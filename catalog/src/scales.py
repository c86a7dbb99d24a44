"""Scoring-scale rules shared by every protocol.

Validates recorded values against an item's scale and converts them to
numeric points so summaries and comparisons can treat all scales alike.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from catalog.src.models import ProtocolItem, ScoringScale


class OutOfRangeError(ValueError):
    """Raised when a value is not valid on an item's scoring scale."""


class MasteryValue(str, Enum):
    """Carolina tri-state rating.

    Attributes:
        ABSENT: Skill not observed.
        DEVELOPING: Skill emerging, performed inconsistently or with help.
        MASTERED: Skill performed independently.
    """

    ABSENT = "A"
    DEVELOPING = "D"
    MASTERED = "M"


_MASTERY_POINTS = {
    MasteryValue.ABSENT: 0,
    MasteryValue.DEVELOPING: 1,
    MasteryValue.MASTERED: 2,
}


def normalize_value(scale: ScoringScale, item: ProtocolItem, value: Any) -> Any:
    """Validate a raw value for an item and return its canonical form.

    Point scales return an int when the value is integral, else a float.
    Achievement scales return a bool. Mastery scales return the
    MasteryValue's one-letter code.

    Args:
        scale: The protocol's scoring scale.
        item: The item being scored.
        value: Raw value supplied by the evaluator.

    Returns:
        The canonical value to store.

    Raises:
        OutOfRangeError: If the value is the wrong type, outside the
            item's min and max, or not a multiple of the item's score step.
    """
    if scale == ScoringScale.ACHIEVEMENT:
        if not isinstance(value, bool):
            raise OutOfRangeError(f"Item {item.id} expects achieved true/false, got {value!r}")
        return value

    if scale == ScoringScale.MASTERY:
        if isinstance(value, MasteryValue):
            return value.value
        try:
            return MasteryValue(str(value).upper()).value
        except ValueError as exc:
            raise OutOfRangeError(
                f"Item {item.id} expects one of A, D, M, got {value!r}"
            ) from exc

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise OutOfRangeError(f"Item {item.id} expects a numeric score, got {value!r}")
    if math.isnan(value) or value < item.min_score or value > item.max_score:
        raise OutOfRangeError(
            f"Score {value} for item {item.id} is outside "
            f"{_fmt(item.min_score)}-{_fmt(item.max_score)}"
        )
    steps = value / item.score_step
    if not math.isclose(steps, round(steps), abs_tol=1e-9):
        raise OutOfRangeError(
            f"Score {value} for item {item.id} must be a multiple of {_fmt(item.score_step)}"
        )
    return int(value) if float(value).is_integer() else float(value)


def value_points(scale: ScoringScale, value: Any) -> float:
    """Convert a stored value to numeric points.

    Achievement values count 1 / 0; mastery values map A, D, M to 0, 1, 2.
    """
    if scale == ScoringScale.ACHIEVEMENT:
        return 1 if value else 0
    if scale == ScoringScale.MASTERY:
        return _MASTERY_POINTS[MasteryValue(value)]
    return value


def is_emerging(scale: ScoringScale, item: ProtocolItem, value: Any) -> bool:
    """Return True when a value sits strictly between absent and mastered."""
    if scale == ScoringScale.ACHIEVEMENT:
        return False
    if scale == ScoringScale.MASTERY:
        return value == MasteryValue.DEVELOPING.value
    return item.min_score < value < item.max_score


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)
