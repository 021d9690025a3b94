"""
Engine configuration.

Settings come from ``AUTOTAX_*`` environment variables or a ``.env``
file. Every field has a default that points at the datasets bundled
with the package, so ``EngineSettings()`` works out of the box.

Usage:
    from autotax.settings import EngineSettings

    settings = EngineSettings()
    store = load_store(settings)
    rates = load_local_rates(settings)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_POLICY_PATH = DATA_DIR / "jurisdictions.yaml"
DEFAULT_LOCAL_RATES_PATH = DATA_DIR / "local_rates.csv"
DEFAULT_MATRIX_TERMS = (36, 48, 60, 72, 84)


class EngineSettings(BaseSettings):
    """Dataset locations and engine defaults.

    Environment Variables:
        AUTOTAX_POLICY_PATH: YAML jurisdiction policy dataset
        AUTOTAX_LOCAL_RATES_PATH: CSV postal-code local rate dataset
        AUTOTAX_MATRIX_TERMS: JSON list of default matrix terms
        AUTOTAX_LOG_LEVEL: log level used by the CLI
        AUTOTAX_DEFAULT_POSTAL_CODE: postal code used when none is given
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTOTAX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    policy_path: Path = Field(
        default=DEFAULT_POLICY_PATH,
        description="Jurisdiction policy dataset (YAML)",
    )
    local_rates_path: Path = Field(
        default=DEFAULT_LOCAL_RATES_PATH,
        description="Postal-code local rate dataset (CSV)",
    )
    matrix_terms: list[int] = Field(
        default_factory=lambda: list(DEFAULT_MATRIX_TERMS),
        description="Terms in months used by the scenario matrix",
    )
    log_level: str = Field(
        default="WARNING",
        description="Logging level for the command-line interface",
    )
    default_postal_code: Optional[str] = Field(
        default=None,
        description="Postal code used when a request does not carry one",
    )

    @field_validator("matrix_terms")
    @classmethod
    def validate_matrix_terms(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("matrix_terms must not be empty")
        if any(t <= 0 for t in v):
            raise ValueError("matrix_terms must be positive month counts")
        return sorted(set(v))

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
