"""Shared BDD fixtures and step definitions for the dispatch context."""

import pytest
from pytest_bdd import parsers, then

from dispatch.errors import StateError


@pytest.fixture()
def error():
    """Container for captured state errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the update is rejected with "{message}"'))
def update_rejected(error, message):
    assert isinstance(error["exc"], StateError)
    assert message in str(error["exc"])
