"""Shared fixtures."""

import pytest

from drawsync.storage.settings_store import SettingsStore
from drawsync.sync.surface import HeadlessSurface


@pytest.fixture
def settings_store(tmp_path):
    """Per-test SettingsStore with the schema initialized."""
    store = SettingsStore(tmp_path / "settings.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def surface():
    return HeadlessSurface()


@pytest.fixture
def rectangle():
    return {"type": "rectangle", "x": 0, "y": 0, "width": 100, "height": 50}
