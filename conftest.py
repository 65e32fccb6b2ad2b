import pytest

from checkpoint.auth.registry import providers


@pytest.fixture(autouse=True)
def clean_registry():
    """Each test starts with an empty, unfrozen provider registry."""
    providers.clear()
    yield
    providers.clear()
