"""Tests for engine configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from autotax.local_rates import load_local_rates
from autotax.policies import load_store
from autotax.settings import (
    DEFAULT_LOCAL_RATES_PATH,
    DEFAULT_MATRIX_TERMS,
    DEFAULT_POLICY_PATH,
    EngineSettings,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in [
        "AUTOTAX_POLICY_PATH",
        "AUTOTAX_LOCAL_RATES_PATH",
        "AUTOTAX_MATRIX_TERMS",
        "AUTOTAX_LOG_LEVEL",
        "AUTOTAX_DEFAULT_POSTAL_CODE",
    ]:
        monkeypatch.delenv(name, raising=False)
    # Keep a stray .env in the working directory out of the picture
    monkeypatch.chdir(tmp_path)


def test_defaults_point_at_bundled_data():
    settings = EngineSettings()
    assert settings.policy_path == DEFAULT_POLICY_PATH
    assert settings.local_rates_path == DEFAULT_LOCAL_RATES_PATH
    assert settings.matrix_terms == list(DEFAULT_MATRIX_TERMS)
    assert settings.log_level == "WARNING"
    assert settings.default_postal_code is None
    assert DEFAULT_POLICY_PATH.exists()
    assert DEFAULT_LOCAL_RATES_PATH.exists()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AUTOTAX_LOG_LEVEL", "debug")
    monkeypatch.setenv("AUTOTAX_MATRIX_TERMS", "[60, 36, 60]")
    monkeypatch.setenv("AUTOTAX_DEFAULT_POSTAL_CODE", "90001")
    settings = EngineSettings()
    assert settings.log_level == "DEBUG"
    assert settings.matrix_terms == [36, 60]
    assert settings.default_postal_code == "90001"


def test_env_file(tmp_path):
    (tmp_path / ".env").write_text("AUTOTAX_LOG_LEVEL=INFO\n", encoding="utf-8")
    assert EngineSettings().log_level == "INFO"


def test_invalid_log_level():
    with pytest.raises(ValidationError, match="Unknown log level"):
        EngineSettings(log_level="LOUD")


def test_invalid_matrix_terms():
    with pytest.raises(ValidationError):
        EngineSettings(matrix_terms=[])
    with pytest.raises(ValidationError):
        EngineSettings(matrix_terms=[0, 36])


def test_loaders_follow_settings():
    settings = EngineSettings(policy_path=Path(DEFAULT_POLICY_PATH))
    assert load_store(settings).get("MI").code == "MI"
    assert len(load_local_rates(settings)) > 0
