"""Pipeline orchestration layer.

Runs the fixed verification stage sequence against each configured project
and aggregates the outcome.
"""

from .context import RunContext
from .run import run_all, run_pipeline, run_project, run_stage

__all__ = ["RunContext", "run_all", "run_pipeline", "run_project", "run_stage"]
