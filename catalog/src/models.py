"""Protocol catalog data models.

Defines the immutable structure of a clinical assessment instrument:
protocols, categories (domains / skill areas), Carolina-style sequences,
and items with their scoring criteria. All models are frozen dataclasses
built once at load time and shared read-only across every evaluation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class CatalogNotFoundError(LookupError):
    """Raised when a protocol, category, or item id does not exist."""


class ProtocolType(str, Enum):
    """Supported assessment instruments."""

    ABLLS_R = "ablls_r"
    VB_MAPP = "vb_mapp"
    PORTAGE = "portage"
    CAROLINA = "carolina"
    CARS = "cars"


class ScoringScale(str, Enum):
    """How an item's recorded value is interpreted.

    Attributes:
        POINTS: Numeric score between the item's min and max (ABLLS-R,
            VB-MAPP, CARS).
        ACHIEVEMENT: Boolean achieved / not achieved (Portage).
        MASTERY: Tri-state Absent / Developing / Mastered (Carolina).
    """

    POINTS = "points"
    ACHIEVEMENT = "achievement"
    MASTERY = "mastery"


class CategorySection(str, Enum):
    """Part of a protocol a category belongs to.

    VB-MAPP barrier and transition categories are summarized separately
    from skill areas. RATING holds symptom-rating items (CARS) that are
    summarized like milestones but never produce skill goals.
    """

    MILESTONES = "milestones"
    BARRIERS = "barriers"
    TRANSITION = "transition"
    RATING = "rating"


_PREFIX_SPLIT = re.compile(r"[-_]")
_LEADING_LETTERS = re.compile(r"[A-Za-z]+")


def item_prefix(item_id: str) -> str:
    """Return the category prefix encoded in an item identifier.

    The prefix is everything before the first ``-`` or ``_``; ids without
    a separator (``A12``) use their leading letters.

    Args:
        item_id: Item identifier such as ``A12``, ``MAND1-3`` or ``cog_am_1``.

    Returns:
        The prefix string, or ``""`` if none can be derived.
    """
    if _PREFIX_SPLIT.search(item_id):
        return _PREFIX_SPLIT.split(item_id, maxsplit=1)[0]
    match = _LEADING_LETTERS.match(item_id)
    return match.group(0) if match else ""


@dataclass(frozen=True)
class ScoringCriterion:
    """Description of what a given score value means for one item."""

    score: float
    text: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"score": self.score, "text": self.text}


@dataclass(frozen=True)
class ProtocolItem:
    """A single scorable item of a protocol.

    Attributes:
        id: Unique id within the protocol; its prefix names the category.
        text: Display text.
        max_score: Highest achievable score on the item's scale.
        criteria: Ordered scoring-criteria descriptions.
        objective: Optional teaching objective.
        stimulus: Optional stimulus (SD) description.
        response: Optional expected response description.
        age_months: Age band in months (Portage, VB-MAPP, some Carolina items).
        score_step: Smallest allowed increment on a point scale.
        min_score: Lowest valid score on a point scale.
    """

    id: str
    text: str
    max_score: float = 1
    criteria: tuple[ScoringCriterion, ...] = ()
    objective: str | None = None
    stimulus: str | None = None
    response: str | None = None
    age_months: int | None = None
    score_step: float = 1
    min_score: float = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "text": self.text,
            "max_score": self.max_score,
            "criteria": [c.to_dict() for c in self.criteria],
            "objective": self.objective,
            "stimulus": self.stimulus,
            "response": self.response,
            "age_months": self.age_months,
            "score_step": self.score_step,
            "min_score": self.min_score,
        }


@dataclass(frozen=True)
class ProtocolSequence:
    """Carolina-style grouping of items inside a domain."""

    id: str
    title: str
    items: tuple[ProtocolItem, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True)
class ProtocolCategory:
    """A scoring aggregation unit (category, domain, or skill area).

    For Carolina the ``items`` tuple is the concatenation of the
    sequences' items in catalog order.

    Attributes:
        id: Category identifier.
        title: Display title.
        items: Ordered items.
        prefix: Item-id prefix owned by this category (defaults to ``id``).
        sequences: Intermediate groupings (Carolina only).
        section: Protocol section (VB-MAPP barriers / transition).
        level: VB-MAPP milestone level 1-3.
    """

    id: str
    title: str
    items: tuple[ProtocolItem, ...] = ()
    prefix: str = ""
    sequences: tuple[ProtocolSequence, ...] = ()
    section: CategorySection = CategorySection.MILESTONES
    level: int | None = None
    _items_by_id: Mapping[str, ProtocolItem] = field(
        default_factory=lambda: MappingProxyType({}), init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not self.prefix:
            object.__setattr__(self, "prefix", self.id)
        object.__setattr__(
            self, "_items_by_id", MappingProxyType({i.id: i for i in self.items})
        )

    def get_item(self, item_id: str) -> ProtocolItem | None:
        """Return the item with this id, or None."""
        return self._items_by_id.get(item_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "prefix": self.prefix,
            "section": self.section.value,
            "level": self.level,
            "items": [i.to_dict() for i in self.items],
        }
        if self.sequences:
            data["sequences"] = [
                {"id": s.id, "title": s.title, "item_ids": [i.id for i in s.items]}
                for s in self.sequences
            ]
        return data


@dataclass(frozen=True)
class Protocol:
    """A complete assessment instrument.

    Lookups by category id and by item id are O(1): the item id's prefix
    selects the owning category, which holds its own item index.

    Attributes:
        protocol_type: Which instrument this is.
        name: Display name (e.g. "ABLLS-R").
        version: Content version string.
        scale: Scoring scale used by every item.
        categories: Ordered categories.
    """

    protocol_type: ProtocolType
    name: str
    version: str
    scale: ScoringScale
    categories: tuple[ProtocolCategory, ...] = ()
    _by_id: Mapping[str, ProtocolCategory] = field(
        default_factory=lambda: MappingProxyType({}), init=False, repr=False, compare=False
    )
    _by_prefix: Mapping[str, ProtocolCategory] = field(
        default_factory=lambda: MappingProxyType({}), init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_by_id", MappingProxyType({c.id: c for c in self.categories})
        )
        object.__setattr__(
            self, "_by_prefix", MappingProxyType({c.prefix: c for c in self.categories})
        )

    def get_category(self, category_id: str) -> ProtocolCategory | None:
        """Return the category with this id, or None."""
        return self._by_id.get(category_id)

    def get_item(self, item_id: str) -> ProtocolItem | None:
        """Return the item with this id, or None.

        Args:
            item_id: Item identifier; its prefix selects the category.

        Returns:
            The ProtocolItem, or None if no category owns the prefix or
            the category has no such item.
        """
        category = self.category_for_item(item_id)
        if category is None:
            return None
        return category.get_item(item_id)

    def category_for_item(self, item_id: str) -> ProtocolCategory | None:
        """Return the category that owns an item id, or None."""
        return self._by_prefix.get(item_prefix(item_id))

    def require_category(self, category_id: str) -> ProtocolCategory:
        """Return the category or raise CatalogNotFoundError."""
        category = self.get_category(category_id)
        if category is None:
            raise CatalogNotFoundError(
                f"Category '{category_id}' not found in {self.name}"
            )
        return category

    def require_item(self, item_id: str) -> ProtocolItem:
        """Return the item or raise CatalogNotFoundError."""
        item = self.get_item(item_id)
        if item is None:
            raise CatalogNotFoundError(f"Item '{item_id}' not found in {self.name}")
        return item

    def categories_in(self, section: CategorySection) -> tuple[ProtocolCategory, ...]:
        """Return the categories belonging to one section, in order."""
        return tuple(c for c in self.categories if c.section == section)

    @property
    def total_items(self) -> int:
        """Number of items across all categories."""
        return sum(len(c.items) for c in self.categories)

    def to_dict(self, include_items: bool = True) -> dict[str, Any]:
        """Serialize to dictionary.

        Args:
            include_items: When False, categories are listed without items.
        """
        if include_items:
            categories = [c.to_dict() for c in self.categories]
        else:
            categories = [
                {
                    "id": c.id,
                    "title": c.title,
                    "section": c.section.value,
                    "level": c.level,
                    "item_count": len(c.items),
                }
                for c in self.categories
            ]
        return {
            "protocol_type": self.protocol_type.value,
            "name": self.name,
            "version": self.version,
            "scale": self.scale.value,
            "total_items": self.total_items,
            "categories": categories,
        }
