from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from ..models import ColorMode, PipelineConfig, Stage, Tool

_COLOR_ENV: dict[ColorMode, dict[str, str]] = {
    ColorMode.ALWAYS: {"CARGO_TERM_COLOR": "always", "CLICOLOR_FORCE": "1", "FORCE_COLOR": "1"},
    ColorMode.NEVER: {"CARGO_TERM_COLOR": "never", "NO_COLOR": "1"},
    ColorMode.AUTO: {"CARGO_TERM_COLOR": "auto"},
}


@dataclass(frozen=True)
class RunContext:
    """Settings shared by every stage of one pipeline invocation.

    Immutable once created; projects running concurrently read it but never
    write to it. `tool_status` is filled in by the process-wide tool check
    before any project starts (see `with_tool_status`).
    """

    pipeline_name: str
    repo_root: Path
    tools: Mapping[str, Tool]
    color: ColorMode = ColorMode.ALWAYS
    timeout: float = 1800.0
    timeout_override: Optional[float] = None
    jobs: int = 4
    install_tools: bool = False
    env: Mapping[str, str] = field(default_factory=dict)
    tool_status: Mapping[str, bool] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        config: PipelineConfig,
        color: Optional[bool] = None,
        timeout: Optional[float] = None,
        jobs: Optional[int] = None,
        install_tools: bool = False,
    ) -> "RunContext":
        if color is None:
            color_mode = config.color
        else:
            color_mode = ColorMode.ALWAYS if color else ColorMode.NEVER
        return cls(
            pipeline_name=config.name,
            repo_root=config.repo_root,
            tools=dict(config.tools),
            color=color_mode,
            timeout=config.timeout,
            timeout_override=timeout,
            jobs=jobs if jobs is not None else max(1, len(config.projects)),
            install_tools=install_tools,
            env=dict(config.env),
        )

    def with_tool_status(self, status: Mapping[str, bool]) -> "RunContext":
        return replace(self, tool_status=dict(status))

    def stage_timeout(self, stage: Stage) -> float:
        """--timeout wins over a per-stage timeout, which wins over the definition default."""
        if self.timeout_override is not None:
            return self.timeout_override
        return stage.timeout or self.timeout

    def tool(self, name: str) -> Tool:
        return self.tools.get(name) or Tool(name=name, executable=name)

    def stage_env(self) -> dict[str, str]:
        """Process environment for a stage: inherited, then definition env, then color."""
        env = dict(os.environ)
        env.update(self.env)
        if self.color != ColorMode.ALWAYS:
            for key in ("CLICOLOR_FORCE", "FORCE_COLOR"):
                env.pop(key, None)
        if self.color != ColorMode.NEVER:
            env.pop("NO_COLOR", None)
        env.update(_COLOR_ENV[self.color])
        return env
