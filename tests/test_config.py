# ==============================================
# Tests for configuration loading
# ==============================================

import pytest

from fieldsync.config import get_config, reset_config


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


def test_defaults(monkeypatch):
    for name in ("MYSQL_HOST", "SOURCE_PAGE_SIZE", "SYNC_SAMPLE_SIZE", "IDENTIFIER_MAX_LENGTH"):
        monkeypatch.delenv(name, raising=False)
    config = get_config()
    assert config.mysql.host == "localhost"
    assert config.source.page_size == 100
    assert config.sync.sample_size == 200
    assert config.sync.identifier_max_length == 64
    assert config.sync.external_id_field == "_id"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MYSQL_DATABASE", "warehouse")
    monkeypatch.setenv("SOURCE_PAGE_SIZE", "500")
    monkeypatch.setenv("SYNC_SAMPLE_SIZE", "50")
    monkeypatch.setenv("SOURCE_API_TOKEN", "")
    config = get_config()
    assert config.mysql.database == "warehouse"
    # The Data API never returns more than 100 per page
    assert config.source.page_size == 100
    assert config.sync.sample_size == 50
    assert config.source.api_token is None


def test_singleton():
    assert get_config() is get_config()
