"""Tests for environment-driven settings."""

import pytest

from settings import Settings, load_settings

ENV_VARS = [
    "MONGODB_URI",
    "DATABASE_URL",
    "DATABASE_NAME",
    "SCHOOL_ID_POLICY",
    "SCHOOL_TEST_STORAGE",
    "SCHOOL_STORAGE_TIMEOUT_MS",
    "SCHOOL_INSERT_RETRIES",
    "PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        # setenv first so teardown also removes values loaded from .env
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_defaults():
    settings = load_settings()
    assert settings == Settings()
    assert not settings.embedded_tests


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "mongodb://db:27017")
    monkeypatch.setenv("DATABASE_NAME", "district")
    monkeypatch.setenv("SCHOOL_ID_POLICY", "Sequential")
    monkeypatch.setenv("SCHOOL_TEST_STORAGE", "embedded")
    monkeypatch.setenv("SCHOOL_STORAGE_TIMEOUT_MS", "2500")
    settings = load_settings()
    assert settings.mongodb_uri == "mongodb://db:27017"
    assert settings.database_name == "district"
    assert settings.id_policy == "sequential"
    assert settings.embedded_tests
    assert settings.storage_timeout_ms == 2500


def test_mongodb_uri_wins_over_database_url(monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://primary")
    monkeypatch.setenv("DATABASE_URL", "mongodb://fallback")
    assert load_settings().mongodb_uri == "mongodb://primary"


def test_reads_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("DATABASE_NAME=from_dotenv\n")
    assert load_settings().database_name == "from_dotenv"


@pytest.mark.parametrize("name,value", [("SCHOOL_ID_POLICY", "uuid"), ("SCHOOL_TEST_STORAGE", "sharded")])
def test_rejects_unknown_variants(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_settings()
