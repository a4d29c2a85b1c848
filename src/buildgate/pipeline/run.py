from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from typing import Iterable, Optional, Sequence, Union

from ..errors import StageFailure, StageTimeout, ToolMissingError
from ..models import (
    ACTIVE_STATE,
    AggregateReport,
    FailureKind,
    PipelineConfig,
    Project,
    ProjectReport,
    ProjectState,
    RunResult,
    Stage,
    StageStatus,
)
from ..tools import is_project_local, prepare_tools, tool_available
from ..utils import now_iso
from .context import RunContext

logger = logging.getLogger(__name__)


def _decode(out: Union[str, bytes, None]) -> str:
    # TimeoutExpired carries raw bytes even when text mode was requested.
    if out is None:
        return ""
    if isinstance(out, bytes):
        return out.decode("utf-8", errors="replace")
    return out


def _check_tools(project: Project, stage: Stage, ctx: RunContext) -> None:
    for name in stage.tools:
        tool = ctx.tool(name)
        if is_project_local(tool):
            ok = tool_available(tool, env=ctx.stage_env(), cwd=project.root)
        elif name in ctx.tool_status:
            ok = ctx.tool_status[name]
        else:
            ok = tool_available(tool, env=ctx.stage_env())
        if not ok:
            raise ToolMissingError(name, stage=stage.name, project=project.name)


def _unstarted(project: Project, stage: Stage, message: str, label: str) -> RunResult:
    logger.error("[%s] %s", label, message)
    return RunResult(
        project=project.name,
        stage=stage.name,
        status=StageStatus.FAILED,
        command=list(stage.command),
        message=message,
    )


def run_stage(project: Project, stage: Stage, ctx: RunContext) -> RunResult:
    """Run one stage's tool in the project's root and capture its output.

    Blocks until the process exits. Raises ToolMissingError if a required
    tool is absent, StageTimeout if the timeout elapses and StageFailure if
    the tool exits non-zero or cannot be started at all.
    """
    label = f"{project.name}/{stage.name.value}"
    if not project.root.is_dir():
        raise StageFailure(
            _unstarted(project, stage, f"project directory {project.root} does not exist", label)
        )

    _check_tools(project, stage, ctx)

    timeout = ctx.stage_timeout(stage)
    logger.info("[%s] $ %s", label, " ".join(stage.command))

    started = time.monotonic()
    try:
        proc = subprocess.run(
            stage.command,
            cwd=str(project.root),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=ctx.stage_env(),
            timeout=timeout,
        )
    except FileNotFoundError as e:
        if e.filename == str(project.root):
            raise StageFailure(
                _unstarted(project, stage, f"project directory {project.root} does not exist", label)
            ) from None
        raise ToolMissingError(stage.command[0], stage=stage.name, project=project.name) from None
    except subprocess.TimeoutExpired as e:
        result = RunResult(
            project=project.name,
            stage=stage.name,
            status=StageStatus.TIMED_OUT,
            command=list(stage.command),
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr),
            duration_s=round(time.monotonic() - started, 3),
            message=f"timed out after {timeout:g}s",
        )
        logger.error("[%s] timed out after %gs", label, timeout)
        raise StageTimeout(result, timeout) from None
    except OSError as e:
        # The command exists but could not be executed (no exec bit, bad interpreter).
        raise StageFailure(
            _unstarted(project, stage, f"could not start {stage.command[0]}: {e.strerror or e}", label)
        ) from None

    duration = round(time.monotonic() - started, 3)
    result = RunResult(
        project=project.name,
        stage=stage.name,
        status=StageStatus.PASSED if proc.returncode == 0 else StageStatus.FAILED,
        command=list(stage.command),
        exit_code=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
        duration_s=duration,
    )
    if proc.returncode != 0:
        logger.error("[%s] failed with exit code %d (%.1fs)", label, proc.returncode, duration)
        raise StageFailure(result)

    logger.info("[%s] passed (%.1fs)", label, duration)
    return result


def run_project(project: Project, ctx: RunContext) -> ProjectReport:
    """Run the project's stages in order, stopping at the first failure.

    Stages after a failure are recorded as skipped and never executed.
    """
    report = ProjectReport(project=project.name)
    stages = list(project.stages)

    for i, stage in enumerate(stages):
        report.state = ACTIVE_STATE[stage.name]
        try:
            result = run_stage(project, stage, ctx)
        except StageFailure as e:
            report.results.append(e.result)
            report.failure_kind = FailureKind.CODE
        except ToolMissingError as e:
            logger.error("[%s/%s] %s", project.name, stage.name.value, e)
            report.results.append(
                RunResult(
                    project=project.name,
                    stage=stage.name,
                    status=StageStatus.TOOL_MISSING,
                    command=list(stage.command),
                    message=str(e),
                )
            )
            report.failure_kind = FailureKind.ENVIRONMENT
        else:
            report.results.append(result)
            continue

        report.failed_stage = stage.name
        report.state = ProjectState.FAILED
        for skipped in stages[i + 1:]:
            logger.info("[%s/%s] skipped", project.name, skipped.name.value)
            report.results.append(
                RunResult(
                    project=project.name,
                    stage=skipped.name,
                    status=StageStatus.SKIPPED,
                    command=list(skipped.command),
                    message=f"skipped after {stage.name.value} failed",
                )
            )
        return report

    report.state = ProjectState.PASSED
    return report


async def _run_projects(projects: Sequence[Project], ctx: RunContext) -> list[ProjectReport]:
    semaphore = asyncio.Semaphore(max(1, ctx.jobs))

    async def _one(project: Project) -> ProjectReport:
        async with semaphore:
            return await asyncio.to_thread(run_project, project, ctx)

    results = await asyncio.gather(*(_one(p) for p in projects), return_exceptions=True)

    reports: list[ProjectReport] = []
    for project, result in zip(projects, results):
        if isinstance(result, BaseException):
            # Siblings have finished by now; a crash in one project is a bug, not a stage failure.
            logger.error("Project %s crashed: %s: %s", project.name, type(result).__name__, result)
            raise result
        reports.append(result)
    return reports


def run_all(projects: Iterable[Project], ctx: RunContext) -> AggregateReport:
    """Run every project independently and aggregate the outcome.

    Projects run concurrently (at most ctx.jobs at a time) and share no
    mutable state. Report order follows the input order.
    """
    project_list = list(projects)
    report = AggregateReport(pipeline=ctx.pipeline_name)
    logger.info("Running %d project(s) with up to %d job(s)", len(project_list), max(1, ctx.jobs))
    report.projects = asyncio.run(_run_projects(project_list, ctx))
    report.finished_at = now_iso()

    if report.passed:
        logger.info("Pipeline '%s' passed", ctx.pipeline_name)
    else:
        failed = [
            f"{p.project}/{p.failed_stage.value}" for p in report.projects if p.failed_stage is not None
        ]
        logger.error("Pipeline '%s' failed: %s", ctx.pipeline_name, ", ".join(failed))
    return report


def run_pipeline(
    config: PipelineConfig,
    ctx: RunContext,
    *,
    project_names: Optional[Sequence[str]] = None,
) -> AggregateReport:
    """Pipeline entrypoint: select projects, check tools once, then run them all.

    Raises KeyError for an unknown project name.
    """
    if project_names:
        projects = [config.project(name) for name in project_names]
    else:
        projects = list(config.projects)

    status = prepare_tools(projects, ctx)
    return run_all(projects, ctx.with_tool_status(status))
