"""Shared BDD fixtures for the Ordering domain."""

import pytest


@pytest.fixture
def outcome():
    """Container for the result of the last When step."""
    return {"order_id": None, "exc": None}
