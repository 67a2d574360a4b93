"""Shared test configuration and fixtures."""

import os

import pytest

# Set high rate limit before importing app to avoid rate limiting in tests
# This must be done before any imports that load the routes module
os.environ.setdefault("FOCUSGUARD_METADATA_RATE_LIMIT", "10000/minute")

from focusguard.services.categories import DOUBLE_EDGED, NEUTRAL  # noqa: E402
from focusguard.services.reconciler import SessionReconciler  # noqa: E402
from tests.fakes import FakeMetadata, FakeRegistrar, FakeTabs  # noqa: E402


@pytest.fixture
def registrar() -> FakeRegistrar:
    """Create an in-memory registrar."""
    return FakeRegistrar()


@pytest.fixture
def metadata() -> FakeMetadata:
    """Create a metadata provider with no pages."""
    return FakeMetadata()


@pytest.fixture
def tabs() -> FakeTabs:
    """Create an empty browser tab view."""
    return FakeTabs()


@pytest.fixture
def reconciler(registrar: FakeRegistrar, metadata: FakeMetadata) -> SessionReconciler:
    """Create a reconciler where youtube.com is tracked per content item."""
    registrar.categories["youtube.com"] = DOUBLE_EDGED
    return SessionReconciler(
        registrar,
        metadata,
        default_category_id=NEUTRAL,
        double_edged_category_ids={DOUBLE_EDGED},
    )
