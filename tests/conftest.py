"""Shared fixtures: temporary hooks/logs roots and a definition writer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


@pytest.fixture
def hooks_root(tmp_path: Path) -> Path:
    root = tmp_path / "hooks"
    root.mkdir()
    return root


@pytest.fixture
def logs_root(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def write_hook(hooks_root: Path):
    """Write a definition as hooks/<name>.json (or index.json / hook.json)."""

    def _write(name: str, definition: dict | str, layout: str = "flat") -> Path:
        if layout == "index":
            path = hooks_root / name / "index.json"
        elif layout == "hook":
            path = hooks_root / name / "hook.json"
        else:
            path = hooks_root / f"{name}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        text = definition if isinstance(definition, str) else json.dumps(definition)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
