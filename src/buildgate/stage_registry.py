from __future__ import annotations

import shlex
from typing import Any

from .models import STAGE_ORDER, StageName, Tool


DEFAULT_TOOLS: dict[str, dict[str, Any]] = {
    "cargo": {"executable": "cargo"},
    "cargo-audit": {
        "executable": "cargo-audit",
        "install": "cargo install cargo-audit",
    },
    "clippy": {
        "executable": "cargo",
        "probe": "cargo clippy --version",
        "install": "rustup component add clippy",
    },
}


class StageRegistry:
    """
    Catalog of the verification stages.

    The order is fixed; stages cannot be registered or reordered. The
    registry only carries deterministic metadata for CLI inspection and the
    default commands used when a pipeline definition omits `stages`.
    """

    def __init__(self) -> None:
        self._metadata: dict[StageName, dict[str, object]] = {}
        self._register_builtin()

    def _register_builtin(self) -> None:
        self._add(
            StageName.FORMAT,
            description="Source formatter in check-only mode.",
            success_criterion="no formatting diffs",
            command="cargo fmt -- --check",
            tools=["cargo"],
        )
        self._add(
            StageName.AUDIT,
            description="Dependency vulnerability scanner.",
            success_criterion="no known vulnerabilities",
            command="cargo audit",
            tools=["cargo-audit"],
        )
        self._add(
            StageName.LINT,
            description="Static-analysis linter with warnings treated as errors.",
            success_criterion="zero warnings",
            command="cargo clippy -- -D warnings",
            tools=["clippy"],
        )
        self._add(
            StageName.BUILD,
            description="Compiler / build tool.",
            success_criterion="successful compilation",
            command="cargo build --verbose",
            tools=["cargo"],
        )
        self._add(
            StageName.TEST,
            description="Test runner.",
            success_criterion="all tests pass",
            command="cargo test --verbose",
            tools=["cargo"],
        )

    def _add(
        self,
        name: StageName,
        *,
        description: str,
        success_criterion: str,
        command: str,
        tools: list[str],
    ) -> None:
        self._metadata[name] = {
            "name": name.value,
            "order": STAGE_ORDER.index(name),
            "description": description,
            "success_criterion": success_criterion,
            "default_command": shlex.split(command),
            "default_tools": list(tools),
        }

    def list_stages(self) -> list[str]:
        return [s.value for s in STAGE_ORDER]

    def describe_stage(self, name: str) -> dict[str, object]:
        try:
            key = StageName(name)
        except ValueError:
            raise KeyError(f"Unknown stage '{name}'. Available: {self.list_stages()}") from None
        meta = self._metadata[key]
        return {
            **meta,
            "default_command": list(meta["default_command"]),  # type: ignore[arg-type]
            "default_tools": list(meta["default_tools"]),  # type: ignore[arg-type]
        }

    def default_stages(self) -> dict[str, dict[str, Any]]:
        """Stage definitions in the raw shape accepted by the config schema."""
        return {
            s.value: {
                "command": list(self._metadata[s]["default_command"]),  # type: ignore[arg-type]
                "tools": list(self._metadata[s]["default_tools"]),  # type: ignore[arg-type]
            }
            for s in STAGE_ORDER
        }


def default_tools() -> dict[str, Tool]:
    return {
        name: Tool(
            name=name,
            executable=spec["executable"],
            probe=shlex.split(spec.get("probe", "")),
            install=shlex.split(spec.get("install", "")),
        )
        for name, spec in DEFAULT_TOOLS.items()
    }
