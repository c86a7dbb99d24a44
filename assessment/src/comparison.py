"""Longitudinal comparison between an evaluation and its predecessor.

Computes category-level percentage deltas and item-level raw score
deltas between two evaluations of the same client and protocol, and
writes a plain-language summary suitable for parents and clinicians.

Having no previous completed evaluation is a normal outcome: ``compare``
returns None instead of raising.

Example::

    previous = select_previous(storage.list_evaluations(client_id), current)
    report = ComparisonEngine().compare(current, previous)
    if report is not None:
        print(report.plain_language_summary)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from catalog.src.models import ProtocolType, ScoringScale
from catalog.src.scales import value_points
from assessment.src.models import Evaluation, EvaluationStatus, ItemScore


class ComparisonError(Exception):
    """Raised when two evaluations cannot be compared at all."""


# Protocols whose scores rate symptoms, so a lower score is better
LOWER_IS_BETTER = frozenset({ProtocolType.CARS})


# ===================================================================
# Enums and data classes
# ===================================================================


class ChangeDirection(str, Enum):
    """Classification of a category or item delta.

    Attributes:
        IMPROVED: Delta above zero.
        REGRESSED: Delta below zero.
        UNCHANGED: Delta exactly zero.
        NEWLY_ASSESSED: Item scored now but not in the previous evaluation.
        NOT_REASSESSED: Item scored previously but not in the current one.
    """

    IMPROVED = "improved"
    REGRESSED = "regressed"
    UNCHANGED = "unchanged"
    NEWLY_ASSESSED = "newly_assessed"
    NOT_REASSESSED = "not_reassessed"


def classify(delta: float, lower_is_better: bool = False) -> ChangeDirection:
    """Classify a numeric delta by its sign.

    On rating scales (``lower_is_better``) a falling score is an improvement.
    """
    if lower_is_better:
        delta = -delta
    if delta > 0:
        return ChangeDirection.IMPROVED
    if delta < 0:
        return ChangeDirection.REGRESSED
    return ChangeDirection.UNCHANGED


@dataclass
class ComparisonConfig:
    """Thresholds for the comparison summary.

    Attributes:
        significant_change: Percentage-point change at or above which a
            category is called out by name in the summary.
    """

    significant_change: float = 10.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"significant_change": self.significant_change}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComparisonConfig:
        """Deserialize from dictionary. Missing keys use defaults."""
        return cls(significant_change=data.get("significant_change", 10.0))


@dataclass
class CategoryDelta:
    """Percentage change of one category between two evaluations."""

    category_id: str
    category_title: str
    previous_percentage: int
    current_percentage: int
    delta: int
    direction: ChangeDirection

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "category_id": self.category_id,
            "category_title": self.category_title,
            "previous_percentage": self.previous_percentage,
            "current_percentage": self.current_percentage,
            "delta": self.delta,
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CategoryDelta:
        """Deserialize from dictionary."""
        return cls(
            category_id=data["category_id"],
            category_title=data["category_title"],
            previous_percentage=data["previous_percentage"],
            current_percentage=data["current_percentage"],
            delta=data["delta"],
            direction=ChangeDirection(data["direction"]),
        )


@dataclass
class ItemDelta:
    """Raw score change of one item.

    ``delta`` is None for items scored in only one of the evaluations.
    """

    item_id: str
    previous_value: Any
    current_value: Any
    delta: float | None
    direction: ChangeDirection

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "item_id": self.item_id,
            "previous_value": self.previous_value,
            "current_value": self.current_value,
            "delta": self.delta,
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemDelta:
        """Deserialize from dictionary."""
        return cls(
            item_id=data["item_id"],
            previous_value=data.get("previous_value"),
            current_value=data.get("current_value"),
            delta=data.get("delta"),
            direction=ChangeDirection(data["direction"]),
        )


@dataclass
class ComparisonReport:
    """Growth report between a current evaluation and its predecessor.

    Attributes:
        current_evaluation_id: The newer evaluation.
        previous_evaluation_id: The comparand.
        protocol_type: Shared protocol of both evaluations.
        overall_delta: Change in overall percentage.
        category_deltas: One entry per category present in both summaries.
        item_deltas: Items scored in either evaluation, in id order.
        plain_language_summary: Readable description of the change.
        created_at: When the report was generated.
    """

    current_evaluation_id: str
    previous_evaluation_id: str
    protocol_type: ProtocolType
    overall_delta: int
    category_deltas: list[CategoryDelta] = field(default_factory=list)
    item_deltas: list[ItemDelta] = field(default_factory=list)
    plain_language_summary: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def improvements(self) -> list[CategoryDelta]:
        """Categories whose percentage went up."""
        return [d for d in self.category_deltas if d.direction == ChangeDirection.IMPROVED]

    @property
    def regressions(self) -> list[CategoryDelta]:
        """Categories whose percentage went down."""
        return [d for d in self.category_deltas if d.direction == ChangeDirection.REGRESSED]

    @property
    def unchanged(self) -> list[str]:
        """Ids of categories with no change."""
        return [
            d.category_id for d in self.category_deltas if d.direction == ChangeDirection.UNCHANGED
        ]

    @property
    def newly_assessed(self) -> list[str]:
        """Ids of items scored for the first time."""
        return [
            d.item_id for d in self.item_deltas if d.direction == ChangeDirection.NEWLY_ASSESSED
        ]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "current_evaluation_id": self.current_evaluation_id,
            "previous_evaluation_id": self.previous_evaluation_id,
            "protocol_type": self.protocol_type.value,
            "overall_delta": self.overall_delta,
            "category_deltas": [d.to_dict() for d in self.category_deltas],
            "item_deltas": [d.to_dict() for d in self.item_deltas],
            "improvements": [d.category_id for d in self.improvements],
            "regressions": [d.category_id for d in self.regressions],
            "unchanged": self.unchanged,
            "newly_assessed": self.newly_assessed,
            "plain_language_summary": self.plain_language_summary,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComparisonReport:
        """Deserialize from dictionary."""
        return cls(
            current_evaluation_id=data["current_evaluation_id"],
            previous_evaluation_id=data["previous_evaluation_id"],
            protocol_type=ProtocolType(data["protocol_type"]),
            overall_delta=data["overall_delta"],
            category_deltas=[CategoryDelta.from_dict(d) for d in data.get("category_deltas", [])],
            item_deltas=[ItemDelta.from_dict(d) for d in data.get("item_deltas", [])],
            plain_language_summary=data.get("plain_language_summary", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


# ===================================================================
# Comparand selection
# ===================================================================


def latest_completed(
    candidates: Iterable[Evaluation],
    client_id: str,
    protocol_type: ProtocolType,
    before: datetime | None = None,
    exclude_id: str | None = None,
) -> Evaluation | None:
    """Return the most recently completed evaluation matching the filters.

    Args:
        candidates: Evaluations to choose from, in any order.
        client_id: Required client.
        protocol_type: Required protocol.
        before: Only consider evaluations created at or before this time.
        exclude_id: Evaluation id to skip (usually the current one).

    Returns:
        The evaluation with the latest ``completed_at``, or None.
    """
    eligible = [
        e
        for e in candidates
        if e.status == EvaluationStatus.COMPLETED
        and e.completed_at is not None
        and e.client_id == client_id
        and e.protocol_type == protocol_type
        and e.id != exclude_id
        and (before is None or e.created_at <= before)
    ]
    if not eligible:
        return None
    return max(eligible, key=lambda e: (e.completed_at, e.created_at))


def select_previous(
    candidates: Iterable[Evaluation], current: Evaluation
) -> Evaluation | None:
    """Pick the comparand for ``current``.

    Among completed evaluations of the same client and protocol created
    before ``current``, the most recently completed one wins. In-progress
    evaluations are never selected.
    """
    return latest_completed(
        candidates,
        current.client_id,
        current.protocol_type,
        before=current.created_at,
        exclude_id=current.id,
    )


# ===================================================================
# ComparisonEngine
# ===================================================================


class ComparisonEngine:
    """Computes growth between two evaluations of one client.

    Args:
        config: Summary thresholds.
    """

    def __init__(self, config: ComparisonConfig | None = None) -> None:
        self._config = config or ComparisonConfig()

    def compare(
        self, current: Evaluation, previous: Evaluation | None
    ) -> ComparisonReport | None:
        """Compare an evaluation against its predecessor.

        Args:
            current: The newer evaluation.
            previous: The comparand, or None.

        Returns:
            ComparisonReport, or None when ``previous`` is missing or not
            completed.

        Raises:
            ComparisonError: If the evaluations belong to different
                clients or protocols, or are the same evaluation.
        """
        if previous is None or previous.status != EvaluationStatus.COMPLETED:
            return None
        if previous.id == current.id:
            raise ComparisonError("Cannot compare an evaluation with itself")
        if (
            previous.client_id != current.client_id
            or previous.protocol_type != current.protocol_type
        ):
            raise ComparisonError(
                f"Evaluations {current.id} and {previous.id} are not for the "
                "same client and protocol"
            )

        report = ComparisonReport(
            current_evaluation_id=current.id,
            previous_evaluation_id=previous.id,
            protocol_type=current.protocol_type,
            overall_delta=current.overall_percentage - previous.overall_percentage,
            category_deltas=self._category_deltas(current, previous),
            item_deltas=self._item_deltas(
                current.scores, previous.scores, current.protocol_type in LOWER_IS_BETTER
            ),
        )
        report.plain_language_summary = self._generate_summary(report)
        return report

    @staticmethod
    def _category_deltas(current: Evaluation, previous: Evaluation) -> list[CategoryDelta]:
        lower_is_better = current.protocol_type in LOWER_IS_BETTER
        deltas: list[CategoryDelta] = []
        for category_id, now in current.category_summaries.items():
            before = previous.category_summaries.get(category_id)
            if before is None:
                continue
            delta = now.percentage - before.percentage
            deltas.append(
                CategoryDelta(
                    category_id=category_id,
                    category_title=now.category_title,
                    previous_percentage=before.percentage,
                    current_percentage=now.percentage,
                    delta=delta,
                    direction=classify(delta, lower_is_better),
                )
            )
        return deltas

    @staticmethod
    def _item_deltas(
        current: dict[str, ItemScore],
        previous: dict[str, ItemScore],
        lower_is_better: bool = False,
    ) -> list[ItemDelta]:
        deltas: list[ItemDelta] = []
        scored_now = {k for k, v in current.items() if v.is_scored}
        scored_before = {k for k, v in previous.items() if v.is_scored}
        for item_id in sorted(scored_now | scored_before):
            now = current[item_id].value if item_id in scored_now else None
            before = previous[item_id].value if item_id in scored_before else None
            if item_id not in scored_before:
                deltas.append(
                    ItemDelta(item_id, None, now, None, ChangeDirection.NEWLY_ASSESSED)
                )
            elif item_id not in scored_now:
                deltas.append(
                    ItemDelta(item_id, before, None, None, ChangeDirection.NOT_REASSESSED)
                )
            else:
                delta = score_points(now) - score_points(before)
                if float(delta).is_integer():
                    delta = int(delta)
                direction = classify(delta, lower_is_better)
                deltas.append(ItemDelta(item_id, before, now, delta, direction))
        return deltas

    def _generate_summary(self, report: ComparisonReport) -> str:
        """Build a plain-language description of the change."""
        parts: list[str] = []
        change = abs(report.overall_delta)
        if report.protocol_type in LOWER_IS_BETTER and report.overall_delta:
            verb = "rose" if report.overall_delta > 0 else "fell"
            outcome = classify(report.overall_delta, lower_is_better=True).value
            parts.append(
                f"Overall symptom rating {verb} by {change} percentage points ({outcome})."
            )
        elif report.overall_delta > 0:
            parts.append(f"Overall score improved by {change} percentage points.")
        elif report.overall_delta < 0:
            parts.append(f"Overall score decreased by {change} percentage points.")
        else:
            parts.append("Overall score is unchanged since the previous evaluation.")

        threshold = self._config.significant_change
        notable_gains = [d for d in report.improvements if abs(d.delta) >= threshold]
        notable_drops = [d for d in report.regressions if abs(d.delta) >= threshold]
        if notable_gains:
            names = ", ".join(f"{d.category_title} ({d.delta:+d})" for d in notable_gains)
            parts.append(f"Largest gains: {names}.")
        if notable_drops:
            names = ", ".join(f"{d.category_title} ({d.delta:+d})" for d in notable_drops)
            parts.append(f"Areas needing attention: {names}.")
        parts.append(
            f"{len(report.improvements)} areas improved, "
            f"{len(report.regressions)} regressed and {len(report.unchanged)} unchanged."
        )
        if report.newly_assessed:
            parts.append(f"{len(report.newly_assessed)} items were assessed for the first time.")
        return " ".join(parts)


def score_points(value: Any) -> float:
    """Numeric points of a stored value, inferring the scale from its type."""
    if isinstance(value, bool):
        return value_points(ScoringScale.ACHIEVEMENT, value)
    if isinstance(value, str):
        return value_points(ScoringScale.MASTERY, value)
    return value_points(ScoringScale.POINTS, value)


def compare(
    current: Evaluation,
    previous: Evaluation | None,
    config: ComparisonConfig | None = None,
) -> ComparisonReport | None:
    """Module-level shortcut for ``ComparisonEngine(config).compare``."""
    return ComparisonEngine(config).compare(current, previous)
