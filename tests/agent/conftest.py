"""Shared fixtures for agent core tests."""

import pytest

from core_harness import CoreTestHarness


@pytest.fixture
def harness():
    """A fresh harness with no slices."""
    return CoreTestHarness()
