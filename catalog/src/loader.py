"""Protocol content loader and catalog registry.

Protocol content ships as one JSON file per instrument under
``catalog/data/``. Each file is parsed once into immutable Protocol
objects and validated (unique ids, item prefixes matching their
category) before being handed out. Nothing in the running application
mutates a loaded protocol.

Example::

    registry = CatalogRegistry.load()
    ablls = registry.get(ProtocolType.ABLLS_R)
    item = ablls.require_item("A1")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from catalog.src.models import (
    CatalogNotFoundError,
    CategorySection,
    Protocol,
    ProtocolCategory,
    ProtocolItem,
    ProtocolSequence,
    ProtocolType,
    ScoringCriterion,
    ScoringScale,
    item_prefix,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class CatalogLoadError(Exception):
    """Raised when protocol content is missing or malformed."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_item(data: dict[str, Any], defaults: dict[str, Any]) -> ProtocolItem:
    merged = {**defaults, **data}
    try:
        return ProtocolItem(
            id=merged["id"],
            text=merged["text"],
            max_score=merged.get("max_score", 1),
            criteria=tuple(
                ScoringCriterion(score=c["score"], text=c["text"])
                for c in merged.get("criteria", [])
            ),
            objective=merged.get("objective"),
            stimulus=merged.get("stimulus"),
            response=merged.get("response"),
            age_months=merged.get("age_months"),
            score_step=merged.get("score_step", 1),
            min_score=merged.get("min_score", 0),
        )
    except KeyError as exc:
        raise CatalogLoadError(f"Item is missing field {exc}: {data!r}") from exc


def _parse_category(data: dict[str, Any]) -> ProtocolCategory:
    """Build a ProtocolCategory, flattening Carolina sequences into items."""
    defaults = data.get("item_defaults", {})
    sequences = tuple(
        ProtocolSequence(
            id=seq["id"],
            title=seq["title"],
            items=tuple(_parse_item(i, defaults) for i in seq.get("items", [])),
        )
        for seq in data.get("sequences", [])
    )
    if sequences:
        items = tuple(item for seq in sequences for item in seq.items)
    else:
        items = tuple(_parse_item(i, defaults) for i in data.get("items", []))
    try:
        return ProtocolCategory(
            id=data["id"],
            title=data["title"],
            items=items,
            prefix=data.get("prefix", ""),
            sequences=sequences,
            section=CategorySection(data.get("section", CategorySection.MILESTONES.value)),
            level=data.get("level"),
        )
    except KeyError as exc:
        raise CatalogLoadError(f"Category is missing field {exc}") from exc
    except ValueError as exc:
        raise CatalogLoadError(f"Category {data.get('id')!r}: {exc}") from exc


def parse_protocol(data: dict[str, Any]) -> Protocol:
    """Build and validate a Protocol from its JSON representation.

    Args:
        data: Parsed protocol document.

    Returns:
        The immutable Protocol.

    Raises:
        CatalogLoadError: On missing fields, unknown enum values,
            duplicate ids, or item ids whose prefix does not match
            their category.
    """
    try:
        protocol = Protocol(
            protocol_type=ProtocolType(data["protocol_type"]),
            name=data["name"],
            version=data.get("version", "1"),
            scale=ScoringScale(data["scale"]),
            categories=tuple(_parse_category(c) for c in data.get("categories", [])),
        )
    except KeyError as exc:
        raise CatalogLoadError(f"Protocol is missing field {exc}") from exc
    except ValueError as exc:
        raise CatalogLoadError(str(exc)) from exc
    _validate(protocol)
    return protocol


def _validate(protocol: Protocol) -> None:
    errors: list[str] = []
    category_ids: set[str] = set()
    prefixes: set[str] = set()
    item_ids: set[str] = set()
    for category in protocol.categories:
        if category.id in category_ids:
            errors.append(f"duplicate category id {category.id}")
        if category.prefix in prefixes:
            errors.append(f"duplicate category prefix {category.prefix}")
        category_ids.add(category.id)
        prefixes.add(category.prefix)
        for item in category.items:
            if item.id in item_ids:
                errors.append(f"duplicate item id {item.id}")
            item_ids.add(item.id)
            if item_prefix(item.id) != category.prefix:
                errors.append(f"item {item.id} does not belong to category prefix {category.prefix}")
            if item.max_score <= 0 or item.score_step <= 0:
                errors.append(f"item {item.id} has a non-positive max score or step")
            elif not 0 <= item.min_score < item.max_score:
                errors.append(f"item {item.id} has a min score outside 0 and its max")
    if errors:
        raise CatalogLoadError(f"{protocol.name}: " + "; ".join(errors))


def load_protocol_file(path: Path) -> Protocol:
    """Read one protocol JSON file.

    Raises:
        CatalogLoadError: If the file is missing, not JSON, or invalid.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CatalogLoadError(f"Protocol file not found: {path.name}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(f"Protocol file {path.name} is not valid JSON") from exc
    return parse_protocol(data)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class CatalogRegistry:
    """Read-only collection of loaded protocols, keyed by protocol type.

    Args:
        protocols: Already-built protocols.
    """

    def __init__(self, protocols: list[Protocol] | tuple[Protocol, ...] = ()) -> None:
        self._protocols: dict[ProtocolType, Protocol] = {}
        for protocol in protocols:
            if protocol.protocol_type in self._protocols:
                raise CatalogLoadError(
                    f"Protocol {protocol.protocol_type.value} registered twice"
                )
            self._protocols[protocol.protocol_type] = protocol

    @classmethod
    def load(cls, data_dir: Path | None = None) -> CatalogRegistry:
        """Load every ``*.json`` protocol file from a directory.

        Args:
            data_dir: Content directory. Defaults to the bundled content.

        Returns:
            Registry with one entry per protocol file.
        """
        directory = data_dir or DEFAULT_DATA_DIR
        if not directory.is_dir():
            raise CatalogLoadError(f"Protocol content directory not found: {directory}")
        protocols = [load_protocol_file(p) for p in sorted(directory.glob("*.json"))]
        registry = cls(protocols)
        logger.info(
            "Loaded %d protocols: %s",
            len(protocols),
            ", ".join(f"{p.name} ({p.total_items} items)" for p in protocols),
        )
        return registry

    def get(self, protocol_type: ProtocolType | str) -> Protocol:
        """Return a protocol or raise CatalogNotFoundError."""
        try:
            key = ProtocolType(protocol_type)
        except ValueError as exc:
            raise CatalogNotFoundError(f"Unknown protocol type: {protocol_type}") from exc
        protocol = self._protocols.get(key)
        if protocol is None:
            raise CatalogNotFoundError(f"Protocol not loaded: {key.value}")
        return protocol

    def list_protocols(self) -> list[Protocol]:
        """Return all loaded protocols in enum order."""
        return [self._protocols[t] for t in ProtocolType if t in self._protocols]

    def __contains__(self, protocol_type: object) -> bool:
        try:
            return ProtocolType(protocol_type) in self._protocols
        except ValueError:
            return False
