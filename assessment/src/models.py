"""Assessment data models.

Defines the per-evaluation score store (ItemScore), the derived summary
shapes (CategorySummary, OverallSummary and the VB-MAPP section
summaries), and the Evaluation record that ties them to a client and a
protocol. All models are dataclasses with to_dict / from_dict so they
round-trip through SQLite JSON columns and API responses.

Summaries are projections of the score map. They are cached on the
Evaluation for readers but are always rebuilt from ``scores``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from catalog.src.models import ProtocolType


class EvaluationStatus(str, Enum):
    """Lifecycle status of an evaluation. COMPLETED is terminal."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class ItemScore:
    """One recorded response for one item.

    Attributes:
        item_id: Catalog item identifier.
        value: Points (int/float), achieved flag (bool), or A/D/M code.
            None when the item was touched but not yet scored.
        is_na: Not applicable; excluded from numerator and denominator.
        note: Optional free-text evaluator note.
        updated_at: Last write time.
    """

    item_id: str
    value: Any = None
    is_na: bool = False
    note: str | None = None
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_scored(self) -> bool:
        """True when the item carries a value and is not N/A."""
        return not self.is_na and self.value is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "item_id": self.item_id,
            "value": self.value,
            "is_na": self.is_na,
            "note": self.note,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemScore:
        """Deserialize from dictionary."""
        return cls(
            item_id=data["item_id"],
            value=data.get("value"),
            is_na=bool(data.get("is_na", False)),
            note=data.get("note"),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


# ===================================================================
# Summaries
# ===================================================================


@dataclass
class SequenceSummary:
    """Mastery breakdown for one Carolina sequence."""

    sequence_id: str
    title: str
    total_items: int = 0
    mastered_count: int = 0
    developing_count: int = 0
    percentage: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "sequence_id": self.sequence_id,
            "title": self.title,
            "total_items": self.total_items,
            "mastered_count": self.mastered_count,
            "developing_count": self.developing_count,
            "percentage": self.percentage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SequenceSummary:
        """Deserialize from dictionary."""
        return cls(
            sequence_id=data["sequence_id"],
            title=data["title"],
            total_items=data.get("total_items", 0),
            mastered_count=data.get("mastered_count", 0),
            developing_count=data.get("developing_count", 0),
            percentage=data.get("percentage", 0),
        )


@dataclass
class CategorySummary:
    """Roll-up of one category's item scores.

    The base fields have the same meaning for every protocol. Variant
    extras are None (or empty) when the protocol does not produce them.

    Attributes:
        category_id: Catalog category id.
        category_title: Display title.
        total_items: Items that are not N/A.
        scored_items: Items carrying a value.
        total_score: Sum of points (mastered count for Carolina).
        max_possible_score: Sum of max points over non-N/A items.
        percentage: Round-half-up of total / max * 100, 0 if max is 0.
        developmental_age_months: Highest achieved age band (Portage).
        mastered_count: Items rated M (Carolina).
        developing_count: Items rated D (Carolina).
        sequences: Per-sequence breakdown (Carolina).
        level: VB-MAPP milestone level of the category.
    """

    category_id: str
    category_title: str
    total_items: int = 0
    scored_items: int = 0
    total_score: float = 0
    max_possible_score: float = 0
    percentage: int = 0
    developmental_age_months: int | None = None
    mastered_count: int | None = None
    developing_count: int | None = None
    sequences: list[SequenceSummary] = field(default_factory=list)
    level: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary, omitting extras that are not set."""
        data: dict[str, Any] = {
            "category_id": self.category_id,
            "category_title": self.category_title,
            "total_items": self.total_items,
            "scored_items": self.scored_items,
            "total_score": self.total_score,
            "max_possible_score": self.max_possible_score,
            "percentage": self.percentage,
        }
        for key in ("developmental_age_months", "mastered_count", "developing_count", "level"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.sequences:
            data["sequences"] = [s.to_dict() for s in self.sequences]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CategorySummary:
        """Deserialize from dictionary."""
        return cls(
            category_id=data["category_id"],
            category_title=data["category_title"],
            total_items=data.get("total_items", 0),
            scored_items=data.get("scored_items", 0),
            total_score=data.get("total_score", 0),
            max_possible_score=data.get("max_possible_score", 0),
            percentage=data.get("percentage", 0),
            developmental_age_months=data.get("developmental_age_months"),
            mastered_count=data.get("mastered_count"),
            developing_count=data.get("developing_count"),
            sequences=[SequenceSummary.from_dict(s) for s in data.get("sequences", [])],
            level=data.get("level"),
        )


@dataclass
class LevelSummary:
    """VB-MAPP milestone roll-up for one level (1-3)."""

    level: int
    total_score: float = 0
    max_possible_score: float = 0
    percentage: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "level": self.level,
            "total_score": self.total_score,
            "max_possible_score": self.max_possible_score,
            "percentage": self.percentage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LevelSummary:
        """Deserialize from dictionary."""
        return cls(
            level=data["level"],
            total_score=data.get("total_score", 0),
            max_possible_score=data.get("max_possible_score", 0),
            percentage=data.get("percentage", 0),
        )


@dataclass
class BarrierSummary:
    """VB-MAPP barriers section: severity 0-4 per barrier.

    Attributes:
        total_score: Sum of barrier severities.
        scored_count: Barriers with a recorded severity.
        average_severity: Mean severity to one decimal, 0 if none scored.
        severe_barriers: Item ids scored 3 or higher, in catalog order.
    """

    total_score: float = 0
    scored_count: int = 0
    average_severity: float = 0.0
    severe_barriers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "total_score": self.total_score,
            "scored_count": self.scored_count,
            "average_severity": self.average_severity,
            "severe_barriers": list(self.severe_barriers),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BarrierSummary:
        """Deserialize from dictionary."""
        return cls(
            total_score=data.get("total_score", 0),
            scored_count=data.get("scored_count", 0),
            average_severity=data.get("average_severity", 0.0),
            severe_barriers=list(data.get("severe_barriers", [])),
        )


@dataclass
class TransitionSummary:
    """VB-MAPP transition section: readiness 1-5 per item."""

    total_items: int = 0
    scored_items: int = 0
    total_score: float = 0
    max_possible_score: float = 0
    percentage: int = 0
    readiness: str = "not_ready"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "total_items": self.total_items,
            "scored_items": self.scored_items,
            "total_score": self.total_score,
            "max_possible_score": self.max_possible_score,
            "percentage": self.percentage,
            "readiness": self.readiness,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransitionSummary:
        """Deserialize from dictionary."""
        return cls(
            total_items=data.get("total_items", 0),
            scored_items=data.get("scored_items", 0),
            total_score=data.get("total_score", 0),
            max_possible_score=data.get("max_possible_score", 0),
            percentage=data.get("percentage", 0),
            readiness=data.get("readiness", "not_ready"),
        )


@dataclass
class OverallSummary:
    """Per-category summaries plus overall aggregates.

    ``overall_score`` and ``overall_max_score`` are always the sums over
    ``category_summaries``. VB-MAPP barrier and transition categories are
    reported in their own sections and never appear in
    ``category_summaries``.
    """

    category_summaries: dict[str, CategorySummary] = field(default_factory=dict)
    overall_score: float = 0
    overall_max_score: float = 0
    overall_percentage: int = 0
    developmental_age_months: float | None = None
    total_mastered: int | None = None
    total_emerging: int | None = None
    levels: list[LevelSummary] = field(default_factory=list)
    dominant_level: int | None = None
    barriers: BarrierSummary | None = None
    transition: TransitionSummary | None = None
    severity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary, omitting extras that are not set."""
        data: dict[str, Any] = {
            "category_summaries": {
                key: summary.to_dict() for key, summary in self.category_summaries.items()
            },
            "overall_score": self.overall_score,
            "overall_max_score": self.overall_max_score,
            "overall_percentage": self.overall_percentage,
        }
        for key in (
            "developmental_age_months",
            "total_mastered",
            "total_emerging",
            "dominant_level",
            "severity",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.levels:
            data["levels"] = [lvl.to_dict() for lvl in self.levels]
        if self.barriers is not None:
            data["barriers"] = self.barriers.to_dict()
        if self.transition is not None:
            data["transition"] = self.transition.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OverallSummary:
        """Deserialize from dictionary."""
        barriers = data.get("barriers")
        transition = data.get("transition")
        return cls(
            category_summaries={
                key: CategorySummary.from_dict(value)
                for key, value in data.get("category_summaries", {}).items()
            },
            overall_score=data.get("overall_score", 0),
            overall_max_score=data.get("overall_max_score", 0),
            overall_percentage=data.get("overall_percentage", 0),
            developmental_age_months=data.get("developmental_age_months"),
            total_mastered=data.get("total_mastered"),
            total_emerging=data.get("total_emerging"),
            levels=[LevelSummary.from_dict(lvl) for lvl in data.get("levels", [])],
            dominant_level=data.get("dominant_level"),
            barriers=BarrierSummary.from_dict(barriers) if barriers else None,
            transition=TransitionSummary.from_dict(transition) if transition else None,
            severity=data.get("severity"),
        )


# ===================================================================
# Evaluation
# ===================================================================


@dataclass
class Evaluation:
    """One administration of a protocol to one client.

    Attributes:
        id: Unique identifier (prefixed with 'eval_').
        client_id: Owning client.
        protocol_type: Instrument being administered.
        status: IN_PROGRESS until completed; COMPLETED is terminal.
        evaluator_id: Who administers the evaluation.
        evaluator_name: Display name of the evaluator.
        scores: Item id to ItemScore. Owned by this evaluation only.
        summary: Cached projection of ``scores``.
        previous_evaluation_id: Earlier evaluation this one is compared to.
        chronological_age_months: Client age at evaluation time.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        completed_at: Set once when the evaluation is completed.
    """

    id: str
    client_id: str
    protocol_type: ProtocolType
    status: EvaluationStatus = EvaluationStatus.IN_PROGRESS
    evaluator_id: str = ""
    evaluator_name: str = ""
    scores: dict[str, ItemScore] = field(default_factory=dict)
    summary: OverallSummary = field(default_factory=OverallSummary)
    previous_evaluation_id: str | None = None
    chronological_age_months: int | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @staticmethod
    def generate_id() -> str:
        """Generate a unique evaluation ID."""
        return f"eval_{uuid.uuid4().hex[:12]}"

    @property
    def is_completed(self) -> bool:
        """True once the evaluation has been completed."""
        return self.status == EvaluationStatus.COMPLETED

    @property
    def category_summaries(self) -> dict[str, CategorySummary]:
        """Cached per-category summaries."""
        return self.summary.category_summaries

    @property
    def overall_score(self) -> float:
        """Sum of category total scores."""
        return self.summary.overall_score

    @property
    def overall_max_score(self) -> float:
        """Sum of category max possible scores."""
        return self.summary.overall_max_score

    @property
    def overall_percentage(self) -> int:
        """Overall percentage, 0 when nothing contributes."""
        return self.summary.overall_percentage

    def to_dict(self, include_scores: bool = True) -> dict[str, Any]:
        """Serialize to dictionary.

        Summary fields are flattened onto the evaluation.

        Args:
            include_scores: When False, the item score map is omitted.
        """
        data: dict[str, Any] = {
            "id": self.id,
            "client_id": self.client_id,
            "protocol_type": self.protocol_type.value,
            "status": self.status.value,
            "evaluator_id": self.evaluator_id,
            "evaluator_name": self.evaluator_name,
            "previous_evaluation_id": self.previous_evaluation_id,
            "chronological_age_months": self.chronological_age_months,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        data.update(self.summary.to_dict())
        if include_scores:
            data["scores"] = {key: score.to_dict() for key, score in self.scores.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Evaluation:
        """Deserialize from dictionary."""
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            client_id=data["client_id"],
            protocol_type=ProtocolType(data["protocol_type"]),
            status=EvaluationStatus(data.get("status", "in_progress")),
            evaluator_id=data.get("evaluator_id", ""),
            evaluator_name=data.get("evaluator_name", ""),
            scores={
                key: ItemScore.from_dict(value)
                for key, value in data.get("scores", {}).items()
            },
            summary=OverallSummary.from_dict(data),
            previous_evaluation_id=data.get("previous_evaluation_id"),
            chronological_age_months=data.get("chronological_age_months"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )
