from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any, Mapping, Optional

from ..errors import ConfigError
from ..models import STAGE_ORDER, ColorMode, PipelineConfig, Project, Stage, StageName, Tool, Triggers
from ..stage_registry import StageRegistry, default_tools

ALLOWED_EVENTS: set[str] = {"push", "pull_request"}
ALLOWED_TOP_LEVEL_KEYS: set[str] = {"name", "on", "triggers", "color", "timeout", "env", "tools", "stages", "projects"}


def _as_command(value: Any, *, where: str) -> list[str]:
    if isinstance(value, str):
        try:
            parts = shlex.split(value)
        except ValueError as e:
            raise ConfigError(f"{where}: cannot parse command {value!r}: {e}") from e
    elif isinstance(value, (list, tuple)):
        parts = [str(p) for p in value]
    else:
        raise ConfigError(f"{where}: command must be a string or a list of strings.")
    return parts


def _as_timeout(value: Any, *, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{where}: timeout must be a positive number of seconds.")
    return float(value)


def _parse_color(value: Any) -> ColorMode:
    if value is None:
        return ColorMode.ALWAYS
    if isinstance(value, bool):
        return ColorMode.ALWAYS if value else ColorMode.NEVER
    try:
        return ColorMode(str(value).strip().lower())
    except ValueError:
        raise ConfigError(f"color must be one of {[c.value for c in ColorMode]}.") from None


def _parse_env(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError("env must be a mapping of variable names to values.")
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _parse_triggers(obj: Mapping[Any, Any]) -> Triggers:
    # YAML 1.1 loads a bare `on:` key as boolean True.
    raw = obj.get("triggers", obj.get("on", obj.get(True)))
    if raw is None:
        return Triggers()
    if not isinstance(raw, Mapping):
        raise ConfigError("on must be a mapping of event names to branch filters.")

    events: dict[str, list[str]] = {}
    for event, spec in raw.items():
        event = str(event)
        if event not in ALLOWED_EVENTS:
            raise ConfigError(f"on.{event}: unsupported event (expected one of {sorted(ALLOWED_EVENTS)}).")
        if spec is None:
            events[event] = ["*"]
            continue
        if not isinstance(spec, Mapping):
            raise ConfigError(f"on.{event} must be a mapping (e.g. {{branches: [main]}}).")
        branches = spec.get("branches", ["*"])
        if isinstance(branches, str):
            branches = [branches]
        if not isinstance(branches, list) or not all(isinstance(b, str) and b.strip() for b in branches):
            raise ConfigError(f"on.{event}.branches must be a list of branch names.")
        events[event] = [b.strip() for b in branches]
    return Triggers(events=events)


def _parse_tools(raw: Any) -> dict[str, Tool]:
    tools = default_tools()
    if raw is None:
        return tools
    if not isinstance(raw, Mapping):
        raise ConfigError("tools must be a mapping of tool names to definitions.")

    for name, spec in raw.items():
        name = str(name)
        where = f"tools.{name}"
        if spec is None:
            spec = {}
        if not isinstance(spec, Mapping):
            raise ConfigError(f"{where} must be a mapping.")
        executable = spec.get("executable", name)
        if not isinstance(executable, str) or not executable.strip():
            raise ConfigError(f"{where}.executable must be a non-empty string.")
        probe = spec.get("probe")
        install = spec.get("install")
        tools[name] = Tool(
            name=name,
            executable=executable.strip(),
            probe=_as_command(probe, where=f"{where}.probe") if probe else [],
            install=_as_command(install, where=f"{where}.install") if install else [],
        )
    return tools


def _parse_stages(raw: Any, tools: dict[str, Tool]) -> dict[StageName, Stage]:
    if raw is None:
        raw = StageRegistry().default_stages()
    if not isinstance(raw, Mapping) or not raw:
        raise ConfigError("stages must be a non-empty mapping of stage names to definitions.")

    stages: dict[StageName, Stage] = {}
    for key, spec in raw.items():
        try:
            name = StageName(str(key))
        except ValueError:
            raise ConfigError(
                f"stages.{key}: unrecognized stage (expected one of {[s.value for s in STAGE_ORDER]})."
            ) from None
        where = f"stages.{name.value}"

        if isinstance(spec, (str, list)):
            spec = {"command": spec}
        if not isinstance(spec, Mapping):
            raise ConfigError(f"{where} must be a command or a mapping.")

        command = _as_command(spec.get("command"), where=f"{where}.command")
        if not command:
            raise ConfigError(f"{where}.command must not be empty.")

        stage_tools = spec.get("tools")
        if stage_tools is None:
            # The command's executable is the implicit requirement.
            exe = command[0]
            if exe not in tools:
                tools[exe] = Tool(name=exe, executable=exe)
            stage_tools = [exe]
        if isinstance(stage_tools, str):
            stage_tools = [stage_tools]
        if not isinstance(stage_tools, list):
            raise ConfigError(f"{where}.tools must be a list of tool names.")
        unknown = [t for t in stage_tools if t not in tools]
        if unknown:
            raise ConfigError(f"{where}.tools references undeclared tool(s): {unknown}")

        timeout = spec.get("timeout")
        stages[name] = Stage(
            name=name,
            command=command,
            tools=[str(t) for t in stage_tools],
            timeout=_as_timeout(timeout, where=where) if timeout is not None else None,
        )
    return stages


def _parse_projects(raw: Any, stages: dict[StageName, Stage], *, repo_root: Path) -> list[Project]:
    if not isinstance(raw, list) or not raw:
        raise ConfigError("projects must be a non-empty list.")

    projects: list[Project] = []
    seen: set[str] = set()
    for i, entry in enumerate(raw):
        if isinstance(entry, str):
            entry = {"name": entry, "path": entry}
        if not isinstance(entry, Mapping):
            raise ConfigError(f"projects[{i}] must be a mapping with name and path.")

        name = entry.get("name") or entry.get("path")
        path = entry.get("path") or name
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"projects[{i}].name must be a non-empty string.")
        if not isinstance(path, str) or not path.strip():
            raise ConfigError(f"projects[{i}].path must be a non-empty string.")
        name = name.strip()
        if name in seen:
            raise ConfigError(f"projects[{i}]: duplicate project name '{name}'.")
        seen.add(name)

        root = (repo_root / path.strip()).resolve()
        if not root.is_dir():
            raise ConfigError(f"Project '{name}' references a non-existent path: {path} (resolved to {root}).")

        selected = entry.get("stages")
        if selected is None:
            wanted = set(stages)
        else:
            if not isinstance(selected, list) or not selected:
                raise ConfigError(f"projects[{i}].stages must be a non-empty list of stage names.")
            wanted = set()
            for s in selected:
                try:
                    stage_name = StageName(str(s))
                except ValueError:
                    raise ConfigError(f"Project '{name}' references unrecognized stage '{s}'.") from None
                if stage_name not in stages:
                    raise ConfigError(f"Project '{name}' selects stage '{s}' which the pipeline does not define.")
                wanted.add(stage_name)

        projects.append(
            Project(
                name=name,
                path=path.strip(),
                root=root,
                stages=[stages[s] for s in STAGE_ORDER if s in wanted],
            )
        )
    return projects


def validate_pipeline_obj(obj: Any, *, repo_root: Path, source: Optional[str] = None) -> PipelineConfig:
    """Validate a raw pipeline definition and resolve it against the repository root.

    Raises ConfigError on any violation; nothing is executed.
    """
    if not isinstance(obj, Mapping) or not obj:
        raise ConfigError("Pipeline definition must be a non-empty mapping.")

    unknown_keys = sorted(str(k) for k in obj.keys() if k is not True and str(k) not in ALLOWED_TOP_LEVEL_KEYS)
    if unknown_keys:
        raise ConfigError(f"Unknown top-level key(s) in pipeline definition: {unknown_keys}")

    name = obj.get("name", "verify")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError("name must be a non-empty string.")

    timeout = _as_timeout(obj["timeout"], where="timeout") if obj.get("timeout") is not None else 1800.0

    tools = _parse_tools(obj.get("tools"))
    stages = _parse_stages(obj.get("stages"), tools)
    projects = _parse_projects(obj.get("projects"), stages, repo_root=repo_root)

    return PipelineConfig(
        name=name.strip(),
        repo_root=repo_root,
        source=source,
        projects=projects,
        tools=tools,
        triggers=_parse_triggers(obj),
        color=_parse_color(obj.get("color")),
        timeout=timeout,
        env=_parse_env(obj.get("env")),
    )
