"""Tests for environment-driven settings."""

from pydantic import ValidationError
import pytest

from search_backend.config import Settings


def test_defaults_select_auto_engine_with_ten_minute_refresh():
    settings = Settings()

    assert settings.search_engine == "auto"
    assert settings.default_refresh_interval_seconds == 600
    assert settings.catalog_interval() == 600
    assert settings.techdocs_interval() == 600
    assert settings.page_limit_default == 25
    assert settings.auth_headers() == {}


def test_type_specific_intervals_override_default(monkeypatch):
    monkeypatch.setenv("DEFAULT_REFRESH_INTERVAL_SECONDS", "900")
    monkeypatch.setenv("TECHDOCS_REFRESH_INTERVAL_SECONDS", "120")

    settings = Settings()

    assert settings.catalog_interval() == 900
    assert settings.techdocs_interval() == 120


def test_backend_token_becomes_bearer_header(monkeypatch):
    monkeypatch.setenv("BACKEND_TOKEN", "s3cret")

    assert Settings().auth_headers() == {"Authorization": "Bearer s3cret"}


@pytest.mark.parametrize(
    ("engine", "message"),
    [("elasticsearch", "ELASTICSEARCH_URL"), ("sqlite", "SQLITE_PATH")],
)
def test_explicit_engine_requires_its_location(engine, message):
    with pytest.raises(ValidationError, match=message):
        Settings(search_engine=engine)


@pytest.mark.parametrize(
    "overrides",
    [
        {"search_engine": "solr"},
        {"default_refresh_interval_seconds": 0},
        {"page_limit_default": 101},
        {"cycle_timeout_seconds": 0},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_env_file_is_read_from_working_directory(tmp_path):
    (tmp_path / ".env").write_text("CATALOG_URL=http://catalog.local\nLOG_JSON=false\n")

    settings = Settings()

    assert settings.catalog_url == "http://catalog.local"
    assert settings.log_json is False
