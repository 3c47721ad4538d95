"""
Typed check configuration contract for the exporter.

The configuration file is validated as a unit before any check runs:
  - every check has a non-blank name and kind
  - check names are unique (they label the emitted series)
  - `properties` is kept as raw data; only the handler for `kind` decodes it

An unknown `kind` is not a configuration error. The collector logs and skips
it so one typo does not take the whole exporter down.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator


class Check(BaseModel):
    """One configured health probe."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: str
    context: str = ""
    # Kind-specific payload, decoded lazily by exporter.registry.
    properties: Any = None

    @field_validator("name", "kind", mode="before")
    @classmethod
    def strip_required_strings(cls, value: object) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("context", mode="before")
    @classmethod
    def optional_context(cls, value: object) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("must be a string")
        return value.strip()


class ExporterConfig(BaseModel):
    """Versionless contract for the exporter YAML file."""

    model_config = ConfigDict(frozen=True)

    context: str = ""
    checks: list[Check] = []

    @field_validator("context", mode="before")
    @classmethod
    def optional_context(cls, value: object) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("must be a string")
        return value.strip()

    @field_validator("checks", mode="before")
    @classmethod
    def null_checks_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    @model_validator(mode="after")
    def validate_unique_names(self) -> ExporterConfig:
        names = [c.name for c in self.checks]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"checks contain duplicate names: {', '.join(duplicates)}")
        return self


def load_config_yaml(path: Path) -> dict:
    with open(path, encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
        if not isinstance(payload, dict):
            raise ValueError("configuration root must be a YAML mapping/object")
        return payload


def parse_config(path: str | Path) -> ExporterConfig:
    """Load and validate an exporter configuration file.

    Raises:
        OSError: the file is missing or unreadable.
        ValueError: the YAML is malformed or fails validation.
    """
    path = Path(path)
    try:
        payload = load_config_yaml(path)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid YAML in {path}: {exc}") from exc
    try:
        return ExporterConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(exc) from exc
