import pytest


@pytest.fixture
def store_dir(tmp_path):
    """Isolated batch store location; not created until something is cached."""
    return tmp_path / "cache"
