"""
config/settings.py — Process configuration for the NATS check exporter.

Uses pydantic-settings to load, validate, and type-check the environment
variables that control where the exporter listens, which check file it reads
and how long checks may take. The check list itself lives in the YAML file
named by EXPORTER_CONFIG (see exporter/check_config.py).

Two usage modes:
  Production / CLI:
      cfg = load_settings()              # reads from .env + os.environ
      cfg = load_settings("env/prod.env") # override env file path

  Tests (isolated, no env file and no os.environ bleed):
      cfg = Settings(EXPORTER_PORT=9100, EXPORTER_NAMESPACE="nats")
      # All values come exclusively from kwargs → clean, reproducible.
"""
from __future__ import annotations

import os
import re
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from exporter import DEFAULT_NAMESPACE


class Settings(BaseSettings):
    # env_file=None disables dotenv reading, but env_settings (os.environ) is
    # still active in the default source chain. We override customise_sources
    # to return ONLY init_settings so Settings() reads purely from kwargs.
    # load_settings() is the explicit production entry point that reads both.
    model_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Only kwargs. load_settings() supplies env vars explicitly as kwargs.
        return (init_settings,)

    # -------------------------------------------------------------------------
    # Check configuration
    # -------------------------------------------------------------------------
    EXPORTER_CONFIG: str = "exporter.yml"
    EXPORTER_NAMESPACE: str = DEFAULT_NAMESPACE
    NATS_CONTEXT_DIR: Optional[str] = None

    # -------------------------------------------------------------------------
    # HTTP endpoint
    # -------------------------------------------------------------------------
    EXPORTER_LISTEN_ADDRESS: str = "0.0.0.0"
    EXPORTER_PORT: int = 8080

    # -------------------------------------------------------------------------
    # Timeouts (seconds)
    # -------------------------------------------------------------------------
    EXPORTER_CHECK_TIMEOUT_SECONDS: float = 2.0
    # 0 disables the scrape-wide deadline
    EXPORTER_SCRAPE_TIMEOUT_SECONDS: float = 0

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    EXPORTER_LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator("EXPORTER_CONFIG", "EXPORTER_LISTEN_ADDRESS", mode="before")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("EXPORTER_NAMESPACE", mode="before")
    @classmethod
    def namespace_default(cls, v: Optional[str]) -> str:
        """A blank namespace falls back to the fixed default so metric names stay valid."""
        v = (v or "").strip()
        return v or DEFAULT_NAMESPACE

    @field_validator("EXPORTER_LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        return str(v).strip().upper()

    @field_validator("NATS_CONTEXT_DIR", mode="before")
    @classmethod
    def blank_context_dir_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("EXPORTER_PORT")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("EXPORTER_PORT must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> Settings:
        if self.EXPORTER_CHECK_TIMEOUT_SECONDS <= 0:
            raise ValueError("EXPORTER_CHECK_TIMEOUT_SECONDS must be > 0")
        if self.EXPORTER_SCRAPE_TIMEOUT_SECONDS < 0:
            raise ValueError("EXPORTER_SCRAPE_TIMEOUT_SECONDS must be >= 0")
        if 0 < self.EXPORTER_SCRAPE_TIMEOUT_SECONDS < self.EXPORTER_CHECK_TIMEOUT_SECONDS:
            raise ValueError(
                "EXPORTER_SCRAPE_TIMEOUT_SECONDS must be 0 (disabled) or at least "
                "EXPORTER_CHECK_TIMEOUT_SECONDS"
            )
        return self


def load_settings(env_file: str = ".env") -> Settings:
    """Load and validate settings from an env file + os.environ.

    Manually parses the env file and merges with os.environ (os.environ wins),
    then passes only known Settings fields as explicit kwargs. The
    pydantic-settings dotenv and env source chain is disabled so that
    Settings() is a pure validation contract (no implicit env reads).

    Raises:
        ValidationError: if any value is invalid.
        ValueError: if the timeouts are inconsistent.
    """
    file_vals: dict[str, str] = {}
    try:
        with open(env_file, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                k, _, v = line.partition("=")
                k = k.strip()
                # Strip inline comments: "8080   # metrics port" → "8080"
                v = re.sub(r"\s+#.*$", "", v.strip())
                if k:
                    file_vals[k] = v
    except FileNotFoundError:
        pass
    merged = {**file_vals, **os.environ}  # os.environ wins
    known = {k: v for k, v in merged.items() if k in Settings.model_fields}
    return Settings(**known)
