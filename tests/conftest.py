"""
Shared pytest fixtures for tether tests.
"""

import pytest

from tether import _anchor, scheduler


@pytest.fixture(autouse=True)
def reset_engine():
    """Fresh scheduler, error handler and recorder for every test."""
    scheduler._reset()
    _anchor.recorder = None
    yield
    scheduler._reset()
    _anchor.recorder = None
