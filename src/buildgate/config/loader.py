from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from ..errors import ConfigError
from ..models import PipelineConfig
from ..stage_registry import DEFAULT_TOOLS, StageRegistry
from .schema import validate_pipeline_obj

logger = logging.getLogger(__name__)

Source = Union[str, Path, Mapping[Any, Any]]


def _read_definition(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Pipeline definition not found: {path}") from None
    except OSError as e:
        raise ConfigError(f"Cannot read pipeline definition {path}: {e}") from e

    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path.name} is not valid JSON: {e}") from e

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def load_configuration(source: Source, *, repo_root: Optional[Path] = None) -> PipelineConfig:
    """
    Parse and validate a pipeline definition.

    source: a path to a YAML/JSON file, or an already-parsed mapping.
    repo_root: directory project paths are resolved against. Defaults to the
    directory holding the definition file (or the working directory for
    mappings).

    Raises ConfigError before anything runs if the definition is malformed,
    references a missing project path, or names an unrecognized stage.
    """
    if isinstance(source, Mapping):
        root = (repo_root or Path.cwd()).resolve()
        cfg = validate_pipeline_obj(source, repo_root=root)
    else:
        path = Path(source).expanduser().resolve()
        raw = _read_definition(path)
        root = (repo_root or path.parent).resolve()
        cfg = validate_pipeline_obj(raw, repo_root=root, source=str(path))

    logger.info(
        "Loaded pipeline '%s' with %d project(s): %s",
        cfg.name,
        len(cfg.projects),
        ", ".join(p.name for p in cfg.projects),
    )
    for p in cfg.projects:
        logger.debug("Project %s -> %s stages=%s", p.name, p.root, [s.name.value for s in p.stages])
    return cfg


def starter_definition(projects: list[tuple[str, str]]) -> str:
    """YAML text for `buildgate init`: the default Rust stage set over `projects`."""
    doc: dict[str, Any] = {
        "name": "verify",
        "on": {
            "push": {"branches": ["main"]},
            "pull_request": {"branches": ["main"]},
        },
        "color": "always",
        "timeout": 1800,
        "tools": {name: dict(spec) for name, spec in DEFAULT_TOOLS.items()},
        "stages": {
            name: {"command": " ".join(spec["command"]), "tools": spec["tools"]}
            for name, spec in StageRegistry().default_stages().items()
        },
        "projects": [{"name": n, "path": p} for n, p in projects],
    }
    return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)
