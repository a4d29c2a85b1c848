from __future__ import annotations

from pathlib import Path

from .models import AggregateReport, FailureKind, ProjectReport, RunResult, StageStatus
from .utils import tail_lines, write_json

_STATUS_MARK: dict[StageStatus, str] = {
    StageStatus.PASSED: "ok",
    StageStatus.FAILED: "FAILED",
    StageStatus.TIMED_OUT: "TIMED OUT",
    StageStatus.TOOL_MISSING: "TOOL MISSING",
    StageStatus.SKIPPED: "skipped",
}


def failure_labels(report: AggregateReport) -> list[str]:
    """`project/stage` for every failed project, in report order."""
    return [
        f"{p.project}/{p.failed_stage.value}"
        for p in report.projects
        if p.failed_stage is not None
    ]


def _failure_line(p: ProjectReport) -> str:
    if p.failed_stage is None:
        return "- Result: passed"
    stage = p.failed_stage.value
    if p.failure_kind == FailureKind.ENVIRONMENT:
        return f"- Result: failed at `{stage}` (environment problem: required tool missing, not a code defect)"
    return f"- Result: failed at `{stage}` (code defect reported by the tool)"


def _output_block(r: RunResult, *, max_lines: int) -> list[str]:
    text = "\n".join(part for part in (r.stdout.rstrip(), r.stderr.rstrip()) if part)
    lines = tail_lines(text, max_lines)
    if not lines:
        return []
    total = len(text.splitlines())
    header = f"Output ({r.label}, last {len(lines)} of {total} lines):" if total > len(lines) else f"Output ({r.label}):"
    return ["", header, "", "```", *lines, "```"]


def render_report(report: AggregateReport, *, max_output_lines: int = 40) -> str:
    """Markdown summary of one pipeline run.

    Every stage of every project is listed; captured output is included only
    for the stage that failed.
    """
    status = "PASSED" if report.passed else "FAILED"
    lines: list[str] = [f"# Pipeline `{report.pipeline}`: {status}", ""]

    failures = failure_labels(report)
    if failures:
        lines.append("Failed: " + ", ".join(failures))
        lines.append("")

    for p in report.projects:
        lines.append(f"## {p.project}")
        lines.append("")
        for r in p.results:
            mark = _STATUS_MARK[r.status]
            detail = ""
            if r.exit_code is not None and r.status != StageStatus.PASSED:
                detail = f" (exit {r.exit_code})"
            elif r.message and r.status in (StageStatus.TOOL_MISSING, StageStatus.TIMED_OUT, StageStatus.FAILED):
                detail = f" ({r.message})"
            timing = f" [{r.duration_s:.1f}s]" if r.status in (StageStatus.PASSED, StageStatus.FAILED) else ""
            lines.append(f"- {r.stage.value}: {mark}{detail}{timing}")
        lines.append(_failure_line(p))

        for r in p.results:
            if r.status in (StageStatus.FAILED, StageStatus.TIMED_OUT):
                lines.extend(_output_block(r, max_lines=max_output_lines))
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def report_payload(report: AggregateReport) -> dict[str, object]:
    payload = report.model_dump(mode="json")
    payload["passed"] = report.passed
    payload["exit_code"] = report.exit_code
    payload["failures"] = failure_labels(report)
    return payload


def write_report_json(report: AggregateReport, path: Path) -> None:
    write_json(path, report_payload(report))
