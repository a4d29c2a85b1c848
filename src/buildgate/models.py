from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .utils import now_iso


class StageName(str, Enum):
    """
    Verification stages, declared in execution order.

    - FORMAT: formatter in check-only mode
    - AUDIT: dependency vulnerability scanner
    - LINT: static analysis with warnings treated as errors
    - BUILD: compiler / build tool
    - TEST: test runner
    """
    FORMAT = "format"
    AUDIT = "audit"
    LINT = "lint"
    BUILD = "build"
    TEST = "test"


STAGE_ORDER: tuple[StageName, ...] = (
    StageName.FORMAT,
    StageName.AUDIT,
    StageName.LINT,
    StageName.BUILD,
    StageName.TEST,
)


class StageStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    TOOL_MISSING = "tool_missing"
    SKIPPED = "skipped"


class ProjectState(str, Enum):
    """Per-project state machine; transitions are strictly sequential."""
    PENDING = "pending"
    FORMATTING = "formatting"
    AUDITING = "auditing"
    LINTING = "linting"
    BUILDING = "building"
    TESTING = "testing"
    PASSED = "passed"
    FAILED = "failed"


ACTIVE_STATE: dict[StageName, ProjectState] = {
    StageName.FORMAT: ProjectState.FORMATTING,
    StageName.AUDIT: ProjectState.AUDITING,
    StageName.LINT: ProjectState.LINTING,
    StageName.BUILD: ProjectState.BUILDING,
    StageName.TEST: ProjectState.TESTING,
}


class FailureKind(str, Enum):
    """
    Why a project failed.

    - CODE: the tool ran and reported a defect (StageFailure)
    - ENVIRONMENT: a required tool is not installed (ToolMissingError)
    """
    CODE = "code"
    ENVIRONMENT = "environment"


class ColorMode(str, Enum):
    ALWAYS = "always"
    NEVER = "never"
    AUTO = "auto"


class Tool(BaseModel):
    """
    An external program a stage depends on.

    executable: looked up on PATH
    probe: optional command that must exit 0 (e.g. `cargo clippy --version`)
    install: optional command run once per process when the tool is missing
    """
    name: str
    executable: str
    probe: list[str] = Field(default_factory=list)
    install: list[str] = Field(default_factory=list)


class Stage(BaseModel):
    name: StageName
    command: list[str]
    tools: list[str] = Field(default_factory=list)
    timeout: Optional[float] = None


class Project(BaseModel):
    """
    A buildable unit of the repository.

    path: as written in the pipeline definition (relative to the repo root)
    root: resolved absolute directory the stages run in
    stages: the stages to run, always in STAGE_ORDER
    """
    name: str
    path: str
    root: Path
    stages: list[Stage]


class Triggers(BaseModel):
    """Branches per event; an event missing from the mapping never triggers a run."""
    events: dict[str, list[str]] = Field(
        default_factory=lambda: {"push": ["main"], "pull_request": ["main"]}
    )


class PipelineConfig(BaseModel):
    """
    The loaded pipeline definition: one stage set applied over every project.
    """
    name: str = "verify"
    repo_root: Path
    source: Optional[str] = None
    projects: list[Project]
    tools: dict[str, Tool] = Field(default_factory=dict)
    triggers: Triggers = Field(default_factory=Triggers)
    color: ColorMode = ColorMode.ALWAYS
    timeout: float = 1800.0
    env: dict[str, str] = Field(default_factory=dict)

    def project(self, name: str) -> Project:
        for p in self.projects:
            if p.name == name:
                return p
        raise KeyError(f"Unknown project '{name}'. Available: {[p.name for p in self.projects]}")


class RunResult(BaseModel):
    """
    Outcome of one stage against one project.

    exit_code is None when the process never ran (skipped, tool missing)
    or was killed by the timeout.
    """
    project: str
    stage: StageName
    status: StageStatus
    command: list[str] = Field(default_factory=list)
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    message: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.project}/{self.stage.value}"


class ProjectReport(BaseModel):
    project: str
    state: ProjectState = ProjectState.PENDING
    results: list[RunResult] = Field(default_factory=list)
    failed_stage: Optional[StageName] = None
    failure_kind: Optional[FailureKind] = None

    @property
    def passed(self) -> bool:
        return self.state == ProjectState.PASSED

    def executed_stages(self) -> list[StageName]:
        return [r.stage for r in self.results if r.status != StageStatus.SKIPPED]


class AggregateReport(BaseModel):
    """
    Combined outcome of one pipeline invocation.

    exit_code: 0 when every project passed, 1 when any stage failed,
    3 when the only failures are missing tools.
    """
    pipeline: str
    started_at: str = Field(default_factory=now_iso)
    finished_at: Optional[str] = None
    projects: list[ProjectReport] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(p.passed for p in self.projects)

    @property
    def exit_code(self) -> int:
        if self.passed:
            return 0
        kinds = {p.failure_kind for p in self.projects if not p.passed}
        if kinds == {FailureKind.ENVIRONMENT}:
            return 3
        return 1

    def project(self, name: str) -> ProjectReport:
        for p in self.projects:
            if p.project == name:
                return p
        raise KeyError(name)
