"""
tests/conftest.py — Shared fixtures and path setup for all tests.

Adds the project root to sys.path so unit tests can import:
    from config.settings import Settings
    from exporter import Result, Severity
    from exporter.collector import Exporter
"""
import json
import pathlib
import sys

import pytest

# Make project root importable without installing as a package
PROJECT_ROOT = pathlib.Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def context_dir(tmp_path):
    """An empty NATS CLI context directory (<tmp>/nats/context)."""
    directory = tmp_path / "nats" / "context"
    directory.mkdir(parents=True)
    return directory


@pytest.fixture
def write_context(context_dir):
    """Save a named context as <name>.json and return its path."""

    def _write(name: str, **settings) -> pathlib.Path:
        path = context_dir / f"{name}.json"
        path.write_text(json.dumps(settings), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_config(tmp_path):
    """Write exporter YAML text to a file and return its path."""

    def _write(text: str) -> pathlib.Path:
        path = tmp_path / "exporter.yml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write
