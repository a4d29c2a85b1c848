"""Build-verification pipeline: format, audit, lint, build and test gates per project."""

from .config import load_configuration
from .errors import ConfigError, PipelineError, StageFailure, StageTimeout, ToolMissingError
from .models import STAGE_ORDER, AggregateReport, Project, ProjectReport, RunResult, Stage, StageName
from .pipeline import RunContext, run_all, run_pipeline, run_project, run_stage

__all__ = [
    "STAGE_ORDER",
    "AggregateReport",
    "ConfigError",
    "PipelineError",
    "Project",
    "ProjectReport",
    "RunContext",
    "RunResult",
    "Stage",
    "StageFailure",
    "StageName",
    "StageTimeout",
    "ToolMissingError",
    "load_configuration",
    "run_all",
    "run_pipeline",
    "run_project",
    "run_stage",
]
