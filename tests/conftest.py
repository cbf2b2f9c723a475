import pytest

from creational_patterns.config import CreationalSettings, get_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the store directory at tmp_path and drop cached settings."""
    monkeypatch.setenv("CREATIONAL_STORE_DIRECTORY", str(tmp_path))
    monkeypatch.delenv("CREATIONAL_LOCALE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> CreationalSettings:
    return CreationalSettings(store_directory=tmp_path, store_load_timeout=5.0)
