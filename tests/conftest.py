"""Pytest bootstrap configuration."""
import json
from pathlib import Path

import pytest

from domain.schema.registry import Registry
from tests.factories import ECHO_PROTO, ECHO_SERVICE


@pytest.fixture
def echo_registry() -> Registry:
    return Registry([ECHO_SERVICE])


@pytest.fixture
def echo_proto(tmp_path: Path) -> Path:
    path = tmp_path / "protos" / "echo.proto"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ECHO_PROTO, encoding="utf-8")
    return path


@pytest.fixture
def write_rules(tmp_path: Path):
    """Write a rule document (list or {"rules": [...]}) and return its path."""

    def _write(document, name: str = "rules.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write
