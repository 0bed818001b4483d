from __future__ import annotations

import pytest

from api_saver import config


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setattr(config, "load_dotenv", lambda **_: None)
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "data" / "store.sqlite"))
    monkeypatch.setenv("TELEMETRY_LOG_DIR", str(tmp_path / "logs"))
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


def test_split_csv() -> None:
    assert config._split_csv(" /a, /b ,,/c ") == ["/a", "/b", "/c"]
    assert config._split_csv(None) == []


def test_resolve_path_relative_is_under_project_root() -> None:
    root = config._project_root().resolve()
    assert config._resolve_path("data/x.sqlite") == str(root / "data" / "x.sqlite")


def test_env_int_uses_default_for_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT_VALUE", "")
    assert config._env_int("TEST_INT_VALUE", 7) == 7


def test_env_int_invalid_value_returns_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT_INVALID", "not_a_number")
    assert config._env_int("TEST_INT_INVALID", 42) == 42


def test_env_float_invalid_value_returns_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_FLOAT_INVALID", "not_a_float")
    assert config._env_float("TEST_FLOAT_INVALID", 2.5) == 2.5


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("TRUE", True), ("no", False)])
def test_env_bool(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("TEST_BOOL", raw)
    assert config._env_bool("TEST_BOOL", not expected) is expected


def test_defaults(tmp_path) -> None:
    settings = config.load_settings()

    assert settings.telemetry.ip_mode == "raw"
    assert settings.telemetry.max_body_bytes == 2048
    assert settings.telemetry.excluded_paths == config.DEFAULT_EXCLUDED_PATHS
    assert settings.enrichment.ttl_seconds == 3600
    assert settings.enrichment.max_entries is None
    assert (tmp_path / "data").is_dir()
    assert (tmp_path / "logs").is_dir()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEMETRY_IP_MODE", "hash")
    monkeypatch.setenv("IP_HASH_SALT", "pepper")
    monkeypatch.setenv("TELEMETRY_EXCLUDED_PATHS", "/metrics, /ping")
    monkeypatch.setenv("ENRICHMENT_MAX_ENTRIES", "500")
    monkeypatch.setenv("ADMIN_KEY", "fallback")

    settings = config.load_settings()

    assert settings.telemetry.ip_mode == "hash"
    assert settings.telemetry.ip_hash_salt == "pepper"
    assert settings.telemetry.excluded_paths == ("/metrics", "/ping")
    assert settings.enrichment.max_entries == 500
    assert settings.admin.admin_key == "fallback"


def test_load_settings_is_cached() -> None:
    assert config.load_settings() is config.load_settings()


def test_invalid_ip_mode_raises_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEMETRY_IP_MODE", "scramble")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()


def test_negative_body_budget_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEMETRY_MAX_BODY_BYTES", "-1")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()
