from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping, Optional

from .models import Project, Tool
from .utils import tail_lines

if TYPE_CHECKING:
    from .pipeline.context import RunContext

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 60.0
INSTALL_TIMEOUT = 1800.0


def is_project_local(tool: Tool) -> bool:
    """True for executables given as a relative path, like `./gradlew`."""
    exe = tool.executable
    separators = [os.sep] + ([os.altsep] if os.altsep else [])
    return any(sep in exe for sep in separators) and not os.path.isabs(exe)


def tool_available(tool: Tool, *, env: Mapping[str, str], cwd: Optional[Path] = None) -> bool:
    """
    True if the tool's executable is on PATH and its probe (if any) exits 0.

    Project-local executables are looked up relative to `cwd` (the project
    root) and only need to exist; whether they can be executed is left to
    the stage run.
    """
    if is_project_local(tool):
        if not (Path(cwd or Path.cwd()) / tool.executable).is_file():
            return False
    elif shutil.which(tool.executable, path=env.get("PATH")) is None:
        return False
    if not tool.probe:
        return True
    try:
        proc = subprocess.run(
            tool.probe,
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=dict(env),
            timeout=PROBE_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Probe for %s failed: %s", tool.name, e)
        return False
    if proc.returncode != 0:
        logger.debug("Probe for %s exited %d: %s", tool.name, proc.returncode, proc.stderr.strip())
    return proc.returncode == 0


def required_tools(projects: Iterable[Project]) -> list[str]:
    """Tool names needed by the projects' stages, in first-use order."""
    names: list[str] = []
    for project in projects:
        for stage in project.stages:
            for name in stage.tools:
                if name not in names:
                    names.append(name)
    return names


def install_tool(tool: Tool, *, env: Mapping[str, str]) -> bool:
    if not tool.install:
        return False
    logger.info("Installing %s: %s", tool.name, " ".join(tool.install))
    try:
        proc = subprocess.run(
            tool.install,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=dict(env),
            timeout=INSTALL_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error("Install of %s failed: %s", tool.name, e)
        return False
    if proc.returncode != 0:
        logger.error(
            "Install of %s exited %d:\n%s",
            tool.name,
            proc.returncode,
            "\n".join(tail_lines(proc.stderr or proc.stdout, 20)),
        )
        return False
    return True


def prepare_tools(projects: Iterable[Project], ctx: RunContext) -> dict[str, bool]:
    """
    Process-wide tool check, run once before any project starts.

    Missing tools with an install command are installed when
    ctx.install_tools is set. Returns availability per tool name; stages that
    need an unavailable tool fail with ToolMissingError when they are reached.
    Project-local executables are left out and checked when their stage runs.
    """
    env = ctx.stage_env()
    status: dict[str, bool] = {}
    for name in required_tools(projects):
        tool = ctx.tool(name)
        if is_project_local(tool):
            continue
        ok = tool_available(tool, env=env)
        if not ok and ctx.install_tools and tool.install:
            ok = install_tool(tool, env=env) and tool_available(tool, env=env)
        if ok:
            logger.debug("Tool %s available (%s)", name, tool.executable)
        else:
            logger.warning("Tool %s is not available", name)
        status[name] = ok
    return status
