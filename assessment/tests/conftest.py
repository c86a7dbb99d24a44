"""Shared fixtures for assessment tests."""

from __future__ import annotations

import pytest

from catalog.src.loader import CatalogRegistry
from catalog.src.models import Protocol, ProtocolType
from assessment.src.lifecycle import EvaluationLifecycle
from assessment.src.storage import AssessmentStorage


@pytest.fixture(scope="session")
def registry() -> CatalogRegistry:
    """Registry loaded from the bundled protocol content."""
    return CatalogRegistry.load()


@pytest.fixture
def ablls(registry: CatalogRegistry) -> Protocol:
    return registry.get(ProtocolType.ABLLS_R)


@pytest.fixture
def vb_mapp(registry: CatalogRegistry) -> Protocol:
    return registry.get(ProtocolType.VB_MAPP)


@pytest.fixture
def portage(registry: CatalogRegistry) -> Protocol:
    return registry.get(ProtocolType.PORTAGE)


@pytest.fixture
def carolina(registry: CatalogRegistry) -> Protocol:
    return registry.get(ProtocolType.CAROLINA)


@pytest.fixture
def cars(registry: CatalogRegistry) -> Protocol:
    return registry.get(ProtocolType.CARS)


@pytest.fixture
def memory_store() -> AssessmentStorage:
    """In-memory AssessmentStorage with schema initialized."""
    store = AssessmentStorage(":memory:")
    store.initialize_schema()
    return store


@pytest.fixture
def lifecycle(memory_store: AssessmentStorage, registry: CatalogRegistry) -> EvaluationLifecycle:
    """Lifecycle over in-memory storage and the bundled catalog."""
    return EvaluationLifecycle(memory_store, registry)

