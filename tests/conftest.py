"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest

from grcdash.auth.capabilities import (
    ROLE_CCRO_TEAM,
    ROLE_CEO,
    ROLE_OWNER,
    ROLE_REVIEWER,
    ROLE_VIEWER,
    Viewer,
)
from grcdash.engine.registry import SectionDef, SectionRegistry

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed evaluation time used by every temporal test."""
    return NOW


@pytest.fixture
def ccro():
    return Viewer.for_role("u-ccro", ROLE_CCRO_TEAM)


@pytest.fixture
def ceo():
    return Viewer.for_role("u-ceo", ROLE_CEO)


@pytest.fixture
def owner():
    return Viewer.for_role("u-owner", ROLE_OWNER)


@pytest.fixture
def reviewer():
    return Viewer.for_role("u-reviewer", ROLE_REVIEWER)


@pytest.fixture
def viewer():
    return Viewer.for_role("u-viewer", ROLE_VIEWER)


# --- Small registries ---

def make_registry(keys, hidden_for=None, order_for=None):
    """Build a registry of bare sections, e.g. ``make_registry(["A", "B", "C"])``."""
    return SectionRegistry.build(
        sections=[SectionDef(k, k, f"Section {k}") for k in keys],
        role_default_hidden=hidden_for or {},
        role_default_order=order_for or {},
    )


@pytest.fixture
def abc_registry():
    """Sections A, B, C where owners hide C by default."""
    return make_registry(["A", "B", "C"], hidden_for={ROLE_OWNER: ["C"]})


@pytest.fixture
def registry_of():
    """Factory fixture for ad-hoc registries."""
    return make_registry
