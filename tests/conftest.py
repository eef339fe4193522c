import pytest

from objson import Engine


@pytest.fixture
def engine():
    """A fresh engine, so plans and aliases never leak between tests."""
    return Engine()
