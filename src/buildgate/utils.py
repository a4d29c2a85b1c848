from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False) + "\n", encoding="utf-8")


def tail_lines(text: str, max_lines: int) -> list[str]:
    """Last `max_lines` non-trailing lines of captured output."""
    lines = text.rstrip().splitlines()
    if max_lines <= 0:
        return []
    return lines[-max_lines:]
