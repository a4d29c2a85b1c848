from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

CONFIG_ENV_VAR = "BUILDGATE_CONFIG"
CONFIG_FILENAMES: tuple[str, ...] = ("buildgate.yaml", "buildgate.yml", "buildgate.json")


def find_repo_root(start: Optional[Path] = None) -> Path:
    """
    Nearest ancestor holding `.git` or `pyproject.toml`.

    Falls back to the start directory when no marker is found.
    """
    start_path = (start or Path.cwd()).resolve()
    if start_path.is_file():
        start_path = start_path.parent

    for candidate in (start_path, *start_path.parents):
        if (candidate / ".git").exists():
            return candidate
        if (candidate / "pyproject.toml").is_file():
            return candidate
    return start_path


def default_config_path(start: Optional[Path] = None) -> Path:
    """
    Resolve the pipeline definition: $BUILDGATE_CONFIG, else the first
    buildgate.{yaml,yml,json} at the repository root.
    """
    raw_env = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if raw_env:
        return Path(os.path.expandvars(os.path.expanduser(raw_env))).resolve()

    root = find_repo_root(start)
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    raise FileNotFoundError(
        f"No pipeline definition found in {root} (looked for {', '.join(CONFIG_FILENAMES)}). "
        "Run: buildgate init"
    )
