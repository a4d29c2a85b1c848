from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

STAGES = ["format", "audit", "lint", "build", "test"]

# Appends the stage name to visits.log in the project root, then fails if a
# `fail-<stage>` marker file exists there.
STAGE_SCRIPT = (
    "import pathlib, sys\n"
    "name = sys.argv[1]\n"
    "with open('visits.log', 'a', encoding='utf-8') as f:\n"
    "    f.write(name + '\\n')\n"
    "if pathlib.Path('fail-' + name).exists():\n"
    "    print('checking ' + name)\n"
    "    print('problem in ' + name, file=sys.stderr)\n"
    "    sys.exit(1)\n"
    "print(name + ' ok')\n"
)


def stage_command(stage: str) -> list[str]:
    return [sys.executable, "-c", STAGE_SCRIPT, stage]


@pytest.fixture(autouse=True)
def _reset_buildgate_logger():
    yield
    logging.getLogger("buildgate").handlers.clear()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Repository checkout with `engine` and `cli` project directories."""
    (tmp_path / "engine").mkdir()
    (tmp_path / "cli").mkdir()
    return tmp_path


@pytest.fixture
def make_definition() -> Callable[..., dict[str, Any]]:
    """Pipeline definition whose stages all run the Python interpreter."""

    def _make(projects: tuple[str, ...] = ("engine", "cli"), **overrides: Any) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "name": "verify",
            "color": "never",
            "tools": {"python": {"executable": sys.executable}},
            "stages": {s: {"command": stage_command(s), "tools": ["python"]} for s in STAGES},
            "projects": [{"name": p, "path": p} for p in projects],
        }
        doc.update(overrides)
        return doc

    return _make


@pytest.fixture
def read_visits() -> Callable[[Path], list[str]]:
    def _read(project_root: Path) -> list[str]:
        log = project_root / "visits.log"
        if not log.exists():
            return []
        return log.read_text(encoding="utf-8").split()

    return _read
