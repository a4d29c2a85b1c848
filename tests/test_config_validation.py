from __future__ import annotations

import json
from pathlib import Path

import pytest

from buildgate.config import load_configuration, starter_definition
from buildgate.errors import ConfigError
from buildgate.models import STAGE_ORDER, ColorMode, StageName
from buildgate.stage_registry import StageRegistry


def test_definition_resolves_projects_and_fixed_stage_order(repo: Path, make_definition) -> None:
    cfg = load_configuration(make_definition(), repo_root=repo)

    assert [p.name for p in cfg.projects] == ["engine", "cli"]
    assert cfg.projects[0].root == (repo / "engine").resolve()
    for p in cfg.projects:
        assert [s.name for s in p.stages] == list(STAGE_ORDER)
    assert cfg.color == ColorMode.NEVER
    assert cfg.timeout == 1800.0


def test_missing_project_path_is_rejected(repo: Path, make_definition) -> None:
    doc = make_definition(projects=("engine", "web"))
    with pytest.raises(ConfigError) as ei:
        load_configuration(doc, repo_root=repo)
    assert "non-existent path" in str(ei.value)


def test_unrecognized_stage_name_is_rejected(repo: Path, make_definition) -> None:
    doc = make_definition()
    doc["stages"]["deploy"] = {"command": "echo deploy"}
    with pytest.raises(ConfigError) as ei:
        load_configuration(doc, repo_root=repo)
    assert "unrecognized stage" in str(ei.value)


def test_project_selecting_unknown_stage_is_rejected(repo: Path, make_definition) -> None:
    doc = make_definition()
    doc["projects"][1]["stages"] = ["format", "package"]
    with pytest.raises(ConfigError):
        load_configuration(doc, repo_root=repo)


def test_project_stage_subset_keeps_fixed_order(repo: Path, make_definition) -> None:
    doc = make_definition()
    doc["projects"][1]["stages"] = ["test", "format", "lint"]
    cfg = load_configuration(doc, repo_root=repo)
    assert [s.name for s in cfg.project("cli").stages] == [StageName.FORMAT, StageName.LINT, StageName.TEST]


def test_duplicate_project_names_are_rejected(repo: Path, make_definition) -> None:
    doc = make_definition()
    doc["projects"].append({"name": "engine", "path": "cli"})
    with pytest.raises(ConfigError) as ei:
        load_configuration(doc, repo_root=repo)
    assert "duplicate" in str(ei.value)


def test_stage_referencing_undeclared_tool_is_rejected(repo: Path, make_definition) -> None:
    doc = make_definition()
    doc["stages"]["lint"]["tools"] = ["ruff"]
    with pytest.raises(ConfigError) as ei:
        load_configuration(doc, repo_root=repo)
    assert "undeclared tool" in str(ei.value)


def test_unknown_top_level_key_is_rejected(repo: Path, make_definition) -> None:
    doc = make_definition(jobs={"format": {}})
    with pytest.raises(ConfigError):
        load_configuration(doc, repo_root=repo)


def test_omitted_stages_use_catalog_defaults(repo: Path) -> None:
    cfg = load_configuration({"projects": ["engine"]}, repo_root=repo)
    lint = [s for s in cfg.project("engine").stages if s.name == StageName.LINT][0]
    assert lint.command == ["cargo", "clippy", "--", "-D", "warnings"]
    assert lint.tools == ["clippy"]
    assert cfg.tools["clippy"].install == ["rustup", "component", "add", "clippy"]


def test_yaml_file_with_bare_on_key(repo: Path) -> None:
    path = repo / "buildgate.yaml"
    path.write_text(
        "\n".join(
            [
                "name: rust",
                "on:",
                "  push:",
                "    branches: [main]",
                "  pull_request:",
                "    branches: [main, 'release/*']",
                "timeout: 600",
                "stages:",
                "  format: cargo fmt -- --check",
                "  test: cargo test --verbose",
                "projects:",
                "  - name: engine",
                "    path: engine",
                "",
            ]
        ),
        encoding="utf-8",
    )

    cfg = load_configuration(path)
    assert cfg.repo_root == repo.resolve()
    assert cfg.source == str(path.resolve())
    assert cfg.triggers.events == {"push": ["main"], "pull_request": ["main", "release/*"]}
    assert cfg.timeout == 600.0
    assert [s.name.value for s in cfg.project("engine").stages] == ["format", "test"]


def test_json_file_is_accepted(repo: Path, make_definition) -> None:
    path = repo / "buildgate.json"
    path.write_text(json.dumps(make_definition()), encoding="utf-8")
    cfg = load_configuration(path)
    assert len(cfg.projects) == 2


def test_invalid_yaml_is_a_config_error(repo: Path) -> None:
    path = repo / "buildgate.yaml"
    path.write_text("projects: [engine\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_configuration(path)


def test_missing_definition_file_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_configuration(tmp_path / "nope.yaml")


def test_starter_definition_loads(repo: Path) -> None:
    path = repo / "buildgate.yaml"
    path.write_text(starter_definition([("engine", "engine"), ("cli", "cli")]), encoding="utf-8")

    cfg = load_configuration(path)
    defaults = StageRegistry().default_stages()
    for p in cfg.projects:
        assert {s.name.value: s.command for s in p.stages} == {k: v["command"] for k, v in defaults.items()}
    assert set(cfg.triggers.events) == {"push", "pull_request"}
