from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from buildgate.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _outside_ci(monkeypatch) -> None:
    for var in ("GITHUB_EVENT_NAME", "GITHUB_REF_NAME", "GITHUB_BASE_REF", "BUILDGATE_CONFIG"):
        monkeypatch.delenv(var, raising=False)


def _write_definition(repo: Path, doc: dict) -> Path:
    path = repo / "buildgate.yaml"
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return path


def test_stages_list_and_describe() -> None:
    result = runner.invoke(app, ["stages", "list"])
    assert result.exit_code == 0
    assert "1. format" in result.stdout
    assert "cargo clippy -- -D warnings" in result.stdout

    result = runner.invoke(app, ["stages", "describe", "--stage", "audit"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["default_command"] == ["cargo", "audit"]

    result = runner.invoke(app, ["stages", "describe", "--stage", "deploy"])
    assert result.exit_code == 1


def test_init_then_validate(repo: Path) -> None:
    path = repo / "buildgate.yaml"
    result = runner.invoke(app, ["init", "--path", str(path)])
    assert result.exit_code == 0
    assert path.exists()

    result = runner.invoke(app, ["validate", "--config", str(path)])
    assert result.exit_code == 0
    assert "- engine (engine): format -> audit -> lint -> build -> test" in result.stdout

    result = runner.invoke(app, ["init", "--path", str(path)])
    assert result.exit_code == 1


def test_run_reports_failing_project_stage(repo: Path, make_definition) -> None:
    (repo / "engine" / "fail-format").touch()
    path = _write_definition(repo, make_definition())
    out = repo / "report.json"

    result = runner.invoke(app, ["run", "--config", str(path), "--report", str(out)])

    assert result.exit_code == 1
    assert "FAILED: engine/format" in result.output
    assert "## cli" in result.stdout
    assert json.loads(out.read_text(encoding="utf-8"))["failures"] == ["engine/format"]


def test_run_passes(repo: Path, make_definition) -> None:
    path = _write_definition(repo, make_definition())
    result = runner.invoke(app, ["run", "--config", str(path), "--event", "push", "--branch", "main"])
    assert result.exit_code == 0
    assert "# Pipeline `verify`: PASSED" in result.stdout


def test_run_skips_untriggered_branch(repo: Path, make_definition, read_visits) -> None:
    path = _write_definition(repo, make_definition())
    result = runner.invoke(app, ["run", "--config", str(path), "--event", "push", "--branch", "feature/x"])
    assert result.exit_code == 0
    assert "Skipping" in result.stdout
    assert read_visits(repo / "engine") == []


def test_run_with_invalid_definition_exits_2(repo: Path, make_definition) -> None:
    path = _write_definition(repo, make_definition(projects=("engine", "missing")))
    result = runner.invoke(app, ["run", "--config", str(path)])
    assert result.exit_code == 2
    assert "non-existent path" in result.output


def test_run_unknown_project_exits_2(repo: Path, make_definition) -> None:
    path = _write_definition(repo, make_definition())
    result = runner.invoke(app, ["run", "--config", str(path), "--project", "web"])
    assert result.exit_code == 2
