from __future__ import annotations

from pathlib import Path

import allure
import pytest

from newswire.config import ApiSettings, ClientSettings, EngineSettings, Settings

pytestmark = [
    allure.epic("Wire Configuration"),
    allure.feature("Settings"),
]


def test_from_env_reads_prefixed_variables(monkeypatch) -> None:
    monkeypatch.setenv("NEWSWIRE_DB_PATH", "/tmp/wire-test.db")
    monkeypatch.setenv("NEWSWIRE_ENGINE_GATED", "yes")
    monkeypatch.setenv("NEWSWIRE_CONSUMPTION_WAIT_SECONDS", "2.5")
    monkeypatch.setenv("NEWSWIRE_API_MODE", "Simple")
    monkeypatch.setenv("NEWSWIRE_API_BASE_PATH", "/LFG/LinkSimulation")
    monkeypatch.setenv("NEWSWIRE_CLIENT_MAX_RETRIES", "7")

    settings = Settings.from_env()

    assert settings.db_path == Path("/tmp/wire-test.db")
    assert settings.engine.gated is True
    assert settings.engine.consumption_wait_seconds == 2.5
    assert settings.api.mode == "simple"
    assert settings.api.base_path == "/LFG/LinkSimulation"
    assert settings.client.max_retries == 7


def test_from_env_explicit_db_path_wins(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NEWSWIRE_DB_PATH", "/tmp/ignored.db")
    settings = Settings.from_env(db_path=tmp_path / "wire.db")
    assert settings.db_path == tmp_path / "wire.db"


def test_from_env_rejects_invalid_boolean(monkeypatch) -> None:
    monkeypatch.setenv("NEWSWIRE_ENGINE_GATED", "maybe")
    with pytest.raises(ValueError, match="Invalid boolean value for NEWSWIRE_ENGINE_GATED"):
        Settings.from_env()


def test_validate_for_engine_accepts_defaults() -> None:
    Settings().validate_for_engine()


def test_validate_for_engine_rejects_unknown_mode() -> None:
    settings = Settings(api=ApiSettings(mode="websocket"))
    with pytest.raises(ValueError, match="NEWSWIRE_API_MODE"):
        settings.validate_for_engine()


def test_validate_for_engine_rejects_non_positive_poll() -> None:
    settings = Settings(engine=EngineSettings(consumption_poll_seconds=0))
    with pytest.raises(ValueError, match="CONSUMPTION_POLL_SECONDS"):
        settings.validate_for_engine()


def test_validate_for_engine_rejects_unknown_timezone() -> None:
    settings = Settings(engine=EngineSettings(publish_timezone="Mars/Olympus_Mons"))
    with pytest.raises(ValueError, match="NEWSWIRE_PUBLISH_TIMEZONE"):
        settings.validate_for_engine()


def test_validate_for_client_rejects_relative_api_url() -> None:
    settings = Settings(client=ClientSettings(api_url="localhost:8000"))
    with pytest.raises(ValueError, match="Invalid wire API URL"):
        settings.validate_for_client()


def test_validate_for_client_accepts_override_url() -> None:
    settings = Settings(client=ClientSettings(api_url="not a url"))
    settings.validate_for_client(override_api_url="https://wire.example.com/LFG")


def test_validate_for_client_rejects_cap_below_base() -> None:
    settings = Settings(
        client=ClientSettings(backoff_base_seconds=5.0, backoff_cap_seconds=1.0),
    )
    with pytest.raises(ValueError, match="BACKOFF_CAP_SECONDS"):
        settings.validate_for_client()
