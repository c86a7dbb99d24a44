"""Shared fixtures for catalog tests."""

from __future__ import annotations

import pytest

from catalog.src.loader import CatalogRegistry
from catalog.src.models import (
    Protocol,
    ProtocolCategory,
    ProtocolItem,
    ProtocolType,
    ScoringCriterion,
    ScoringScale,
)


@pytest.fixture(scope="session")
def registry() -> CatalogRegistry:
    """Registry loaded from the bundled protocol content."""
    return CatalogRegistry.load()


@pytest.fixture
def small_protocol() -> Protocol:
    """A two-category point-scale protocol built in memory."""
    return Protocol(
        protocol_type=ProtocolType.ABLLS_R,
        name="Mini",
        version="test",
        scale=ScoringScale.POINTS,
        categories=(
            ProtocolCategory(
                id="A",
                title="Cooperation",
                items=(
                    ProtocolItem(
                        id="A1",
                        text="Takes a reinforcer",
                        max_score=2,
                        criteria=(
                            ScoringCriterion(0, "Does not take"),
                            ScoringCriterion(2, "Takes independently"),
                        ),
                    ),
                    ProtocolItem(id="A2", text="Sits at table", max_score=4),
                ),
            ),
            ProtocolCategory(
                id="B",
                title="Visual Performance",
                items=(ProtocolItem(id="B1", text="Matches objects", max_score=4),),
            ),
        ),
    )
