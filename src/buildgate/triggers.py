from __future__ import annotations

import fnmatch
import os
from typing import Mapping, Optional

from .config import ALLOWED_EVENTS
from .models import Triggers


def should_run(triggers: Triggers, event: Optional[str], branch: Optional[str]) -> bool:
    """
    Decide whether an event runs the pipeline.

    No event, or an event outside push/pull_request (manual dispatch, local
    runs), always runs. For push the branch is the pushed branch; for
    pull_request it is the target branch. Branch filters accept glob patterns.
    """
    if not event or event not in ALLOWED_EVENTS:
        return True
    patterns = triggers.events.get(event)
    if patterns is None:
        return False
    if not branch:
        return True
    return any(fnmatch.fnmatchcase(branch, pattern) for pattern in patterns)


def detect_event(environ: Optional[Mapping[str, str]] = None) -> tuple[Optional[str], Optional[str]]:
    """
    Read the triggering event and branch from a GitHub Actions environment.

    Returns (None, None) outside a runner.
    """
    env = os.environ if environ is None else environ
    event = env.get("GITHUB_EVENT_NAME") or None
    if event is None:
        return None, None
    if event.startswith("pull_request"):
        return "pull_request", env.get("GITHUB_BASE_REF") or None
    return event, env.get("GITHUB_REF_NAME") or None
