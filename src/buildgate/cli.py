from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from .config import load_configuration, starter_definition
from .errors import ConfigError
from .logging_utils import configure_logging
from .models import PipelineConfig
from .paths import default_config_path
from .pipeline import RunContext, run_pipeline
from .report import failure_labels, render_report, write_report_json
from .stage_registry import StageRegistry
from .triggers import detect_event, should_run

app = typer.Typer(add_completion=False, help="buildgate: run format, audit, lint, build and test gates per project")

# ---- Stage catalog commands ----
stages_app = typer.Typer(help="Inspect the verification stages.")
app.add_typer(stages_app, name="stages")


@stages_app.command("list")
def list_stages() -> None:
    """
    List the stages in execution order with their default commands.
    """
    registry = StageRegistry()
    for name in registry.list_stages():
        meta = registry.describe_stage(name)
        command = " ".join(meta["default_command"])  # type: ignore[arg-type]
        typer.echo(f"{meta['order'] + 1}. {name:<7} {command}")  # type: ignore[operator]


@stages_app.command("describe")
def describe_stage(
    stage: str = typer.Option(..., "--stage", help="Stage name to describe")
) -> None:
    """
    Show metadata for one stage as JSON.
    """
    registry = StageRegistry()
    try:
        meta = registry.describe_stage(stage)
    except KeyError as exc:
        typer.echo(str(exc.args[0]), err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(meta, indent=2, sort_keys=True))


def _load(config: Optional[Path]) -> PipelineConfig:
    """Load the definition or exit with code 2."""
    try:
        path = config if config is not None else default_config_path()
        return load_configuration(path)
    except (ConfigError, FileNotFoundError) as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(code=2)


@app.command()
def init(
    path: Path = typer.Option(Path("buildgate.yaml"), "--path", help="Where to write the pipeline definition"),
    project: list[str] = typer.Option([], "--project", help="Project as name=path (repeatable)"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing definition"),
):
    """
    Write a starter pipeline definition (defaults: engine=engine, cli=cli).
    """
    projects: list[tuple[str, str]] = []
    for p in project:
        if "=" not in p:
            typer.echo(f"Invalid project format (expected name=path): {p}", err=True)
            raise typer.Exit(code=1)
        name, rel = (s.strip() for s in p.split("=", 1))
        if not name or not rel:
            typer.echo(f"Invalid project format (expected name=path): {p}", err=True)
            raise typer.Exit(code=1)
        projects.append((name, rel))
    if not projects:
        projects = [("engine", "engine"), ("cli", "cli")]

    if path.exists() and not force:
        typer.echo(f"ERROR: {path} already exists (use --force to overwrite).", err=True)
        raise typer.Exit(code=1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(starter_definition(projects), encoding="utf-8")
    typer.echo(f"Wrote {path}")
    typer.echo("Projects: " + ", ".join(f"{n} ({p})" for n, p in projects))


@app.command()
def validate(
    config: Optional[Path] = typer.Option(None, "--config", help="Pipeline definition (YAML or JSON)"),
):
    """
    Load the pipeline definition and list its projects and stages.
    """
    cfg = _load(config)
    typer.echo(f"Pipeline '{cfg.name}' is valid.")
    for p in cfg.projects:
        stages = " -> ".join(s.name.value for s in p.stages)
        typer.echo(f"- {p.name} ({p.path}): {stages}")


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", help="Pipeline definition (YAML or JSON)"),
    project: list[str] = typer.Option([], "--project", help="Only run this project (repeatable)"),
    color: Optional[bool] = typer.Option(None, "--color/--no-color", help="Force tool colors on or off"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Timeout in seconds for every stage (overrides the definition)"),
    jobs: Optional[int] = typer.Option(None, "--jobs", min=1, help="Projects verified concurrently"),
    install_tools: bool = typer.Option(False, "--install-tools", help="Install missing tools before running"),
    event: Optional[str] = typer.Option(None, "--event", help="Triggering event (push|pull_request)"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Pushed branch, or PR target branch"),
    report: Optional[Path] = typer.Option(None, "--report", help="Also write the report as JSON here"),
    output_lines: int = typer.Option(40, "--output-lines", min=0, help="Tool output lines shown per failure"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write a debug log here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
):
    """
    Run the verification stages for every project and report per stage.

    Exit codes: 0 all passed, 1 a stage failed, 2 invalid definition,
    3 only missing tools.
    """
    configure_logging(verbose=verbose, log_file=log_file)
    cfg = _load(config)

    if event is None and branch is None:
        event, branch = detect_event()
    if not should_run(cfg.triggers, event, branch):
        typer.echo(f"Skipping: pipeline '{cfg.name}' is not triggered by {event} on {branch}.")
        raise typer.Exit(code=0)

    ctx = RunContext.create(
        config=cfg,
        color=color,
        timeout=timeout,
        jobs=jobs,
        install_tools=install_tools,
    )
    try:
        result = run_pipeline(cfg, ctx, project_names=project or None)
    except KeyError as e:
        typer.echo(f"ERROR: {e.args[0]}", err=True)
        raise typer.Exit(code=2)

    typer.echo(render_report(result, max_output_lines=output_lines).rstrip())
    if report is not None:
        write_report_json(result, report)
        typer.echo(f"Report: {report}")

    if not result.passed:
        typer.echo("FAILED: " + ", ".join(failure_labels(result)), err=True)
        raise typer.Exit(code=result.exit_code)
