from __future__ import annotations

from typing import Optional

from .models import RunResult, StageName


class PipelineError(Exception):
    """Base class for pipeline errors."""


class ConfigError(PipelineError, ValueError):
    """Raised when the pipeline definition is malformed or inconsistent."""


class ToolMissingError(PipelineError):
    """
    A required external tool is not installed.

    This is an environment problem, not a code defect.
    """

    def __init__(self, tool: str, *, stage: Optional[StageName] = None, project: Optional[str] = None) -> None:
        self.tool = tool
        self.stage = stage
        self.project = project
        where = f" (needed by {project}/{stage.value})" if project and stage else ""
        super().__init__(f"Required tool '{tool}' is not installed{where}.")


class StageFailure(PipelineError):
    """The stage's tool ran and reported a failure."""

    def __init__(self, result: RunResult) -> None:
        self.result = result
        code = result.exit_code if result.exit_code is not None else "n/a"
        super().__init__(f"Stage {result.label} failed (exit code {code}).")


class StageTimeout(StageFailure):
    def __init__(self, result: RunResult, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(result)
        self.args = (f"Stage {result.label} timed out after {timeout:g}s.",)
