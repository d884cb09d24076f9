"""Sync run report formatting.

- ``format_run_report`` -- human-readable summary of one run.
- ``format_run_history`` -- one line per run, newest first.
- ``run_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from .models import SyncRun, SyncStatus

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _timestamp(value: datetime | None) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


def format_run_report(run: SyncRun) -> str:
    """Format one sync run as human-readable text.

    Args:
        run: The run record.

    Returns:
        Multi-line formatted string.
    """
    lines = [
        f"Sync run {run.id} ({run.trigger_type.value}): {run.status.value}",
        f"Started: {_timestamp(run.started_at)}",
    ]
    if run.completed_at:
        lines.append(f"Completed: {_timestamp(run.completed_at)}")
    lines.append("")

    lines.append(
        f"Processed {run.files_processed} files: "
        f"{run.documents_created} documents created, "
        f"{run.documents_updated} updated"
    )
    if run.input_tokens or run.output_tokens:
        lines.append(
            f"Tokens: {run.input_tokens} in, {run.output_tokens} out "
            f"(cost ${run.cost:.4f})"
        )

    if run.error_message:
        lines.append("")
        label = "Error" if run.status == SyncStatus.FAILED else "Warnings"
        lines.append(f"{label}:")
        for part in run.error_message.split(" | "):
            lines.append(f"  {part}")

    return "\n".join(lines).rstrip()


def format_run_history(runs: Sequence[SyncRun]) -> str:
    if not runs:
        return "No sync runs yet."
    return "\n".join(
        f"#{r.id}  {r.status.value:<9}  {r.trigger_type.value:<9}  "
        f"{_timestamp(r.started_at)}  files={r.files_processed} "
        f"created={r.documents_created} updated={r.documents_updated}"
        for r in runs
    )


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def run_to_json(run: SyncRun) -> dict:
    """Convert a run to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        "id": run.id,
        "status": run.status.value,
        "trigger_type": run.trigger_type.value,
        "started_at": _timestamp(run.started_at),
        "completed_at": _timestamp(run.completed_at) if run.completed_at else None,
        "counts": {
            "files_processed": run.files_processed,
            "documents_created": run.documents_created,
            "documents_updated": run.documents_updated,
        },
        "usage": {
            "input_tokens": run.input_tokens,
            "output_tokens": run.output_tokens,
            "cost": run.cost,
        },
        "error_message": run.error_message,
    }
