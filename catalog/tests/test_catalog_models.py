"""Tests for protocol catalog models and item id prefixes."""

from __future__ import annotations

import dataclasses

import pytest

from catalog.src.models import (
    CatalogNotFoundError,
    CategorySection,
    ProtocolCategory,
    ProtocolItem,
    item_prefix,
)

# ===================================================================
# item_prefix
# ===================================================================


class TestItemPrefix:
    """Prefix extraction from item identifiers."""

    @pytest.mark.parametrize(
        "item_id, expected",
        [
            ("A12", "A"),
            ("MAND1-3", "MAND1"),
            ("BAR-2", "BAR"),
            ("LNG-4", "LNG"),
            ("cog_am_1", "cog"),
            ("fm_tool_2", "fm"),
        ],
    )
    def test_prefix(self, item_id, expected):
        assert item_prefix(item_id) == expected

    def test_no_letters_gives_empty_prefix(self):
        assert item_prefix("123") == ""


# ===================================================================
# ProtocolCategory
# ===================================================================


class TestProtocolCategory:
    """Category construction and lookups."""

    def test_prefix_defaults_to_id(self):
        category = ProtocolCategory(id="A", title="Cooperation")
        assert category.prefix == "A"
        assert category.section == CategorySection.MILESTONES

    def test_explicit_prefix_kept(self):
        category = ProtocolCategory(id="language", title="Language", prefix="LNG")
        assert category.prefix == "LNG"

    def test_get_item(self):
        item = ProtocolItem(id="A1", text="Takes a reinforcer", max_score=2)
        category = ProtocolCategory(id="A", title="Cooperation", items=(item,))
        assert category.get_item("A1") is item
        assert category.get_item("A9") is None

    def test_frozen(self):
        category = ProtocolCategory(id="A", title="Cooperation")
        with pytest.raises(dataclasses.FrozenInstanceError):
            category.title = "Changed"  # type: ignore[misc]


# ===================================================================
# Protocol
# ===================================================================


class TestProtocol:
    """Protocol lookups and serialization."""

    def test_get_category(self, small_protocol):
        assert small_protocol.get_category("B").title == "Visual Performance"
        assert small_protocol.get_category("Z") is None

    def test_get_item_via_prefix(self, small_protocol):
        item = small_protocol.get_item("A2")
        assert item is not None
        assert item.max_score == 4

    def test_category_for_item(self, small_protocol):
        assert small_protocol.category_for_item("B1").id == "B"
        assert small_protocol.category_for_item("Q1") is None

    def test_get_item_unknown_in_known_category(self, small_protocol):
        assert small_protocol.get_item("A99") is None

    def test_require_item_raises(self, small_protocol):
        with pytest.raises(CatalogNotFoundError, match="A99"):
            small_protocol.require_item("A99")

    def test_require_category_raises(self, small_protocol):
        with pytest.raises(CatalogNotFoundError):
            small_protocol.require_category("Z")

    def test_not_found_is_lookup_error(self, small_protocol):
        with pytest.raises(LookupError):
            small_protocol.require_item("nope")

    def test_total_items(self, small_protocol):
        assert small_protocol.total_items == 3

    def test_categories_in(self, small_protocol):
        assert len(small_protocol.categories_in(CategorySection.MILESTONES)) == 2
        assert small_protocol.categories_in(CategorySection.BARRIERS) == ()

    def test_to_dict_with_items(self, small_protocol):
        data = small_protocol.to_dict()
        assert data["protocol_type"] == "ablls_r"
        assert data["scale"] == "points"
        assert data["total_items"] == 3
        first = data["categories"][0]
        assert first["items"][0]["id"] == "A1"
        assert first["items"][0]["criteria"][1] == {"score": 2, "text": "Takes independently"}

    def test_to_dict_without_items(self, small_protocol):
        data = small_protocol.to_dict(include_items=False)
        assert data["categories"][0] == {
            "id": "A",
            "title": "Cooperation",
            "section": "milestones",
            "level": None,
            "item_count": 2,
        }
