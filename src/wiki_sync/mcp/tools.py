"""MCP tool handlers for repository-to-wiki synchronization.

Defines three tools:

- ``sync_run`` -- run a sync now.
- ``sync_run_scheduled`` -- run a sync only if the cron schedule is due.
- ``sync_status`` -- show the active run, recent runs and the schedule.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ..core.errors import ConfigurationError
from ..settings import resolve_sync_settings
from ..sync.engine import SyncEngine
from ..sync.models import TriggerType
from ..sync.reporter import format_run_history, format_run_report, run_to_json
from .errors import build_error_response

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 5
MAX_HISTORY_LIMIT = 50

# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_run",
        description=(
            "Synchronize the wiki with the configured source repository: "
            "detect changed files, let the AI pipeline create or update "
            "documents, and merge with human edits. Refused while another "
            "run is in progress."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="sync_run_scheduled",
        description=(
            "Run a sync only if the configured cron schedule "
            "(sync_cron_schedule) is due since the last completed run."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="sync_status",
        description=(
            "Show sync status -- the active run if any, recent runs with "
            "their counters and errors, and whether a scheduled run is due."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "default": DEFAULT_HISTORY_LIMIT,
                    "minimum": 1,
                    "maximum": MAX_HISTORY_LIMIT,
                    "description": "Number of recent runs to list",
                },
            },
            "required": [],
        },
    ),
]

TOOL_NAMES = frozenset(tool.name for tool in SYNC_TOOLS)


# ---------------------------------------------------------------------------
# Tool handler
# ---------------------------------------------------------------------------


async def handle_sync_tool(
    name: str,
    arguments: dict[str, Any] | None,
    engine: SyncEngine,
) -> types.CallToolResult:
    """Dispatch and execute a sync tool.

    Args:
        name: Tool name.
        arguments: Tool arguments dict.
        engine: Shared SyncEngine.

    Returns:
        ``CallToolResult`` with tool output or error details.
    """
    args = arguments or {}

    try:
        match name:
            case "sync_run":
                return await _handle_sync_run(engine, TriggerType.MANUAL)
            case "sync_run_scheduled":
                if not engine.is_due():
                    return _text_result(
                        "Scheduled sync is not due (or no schedule is configured).",
                        {"status": "not_due"},
                    )
                return await _handle_sync_run(engine, TriggerType.SCHEDULED)
            case "sync_status":
                return _handle_sync_status(args, engine)
            case _:
                raise ValueError(f"Unknown sync tool: {name}")

    except ConfigurationError as exc:
        return build_error_response(
            "configuration_error",
            str(exc),
            "Set the missing values with `wiki-sync settings set` or the "
            "environment, then retry.",
        )
    except ValueError as exc:
        return build_error_response(
            "validation_error",
            str(exc),
            "Check parameter values and retry.",
        )
    except Exception as exc:
        logger.exception("Sync tool error: %s", exc)
        return build_error_response(
            "server_error",
            str(exc),
            "Check the database path and repository configuration, then retry.",
        )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _text_result(text: str, structured: dict[str, Any]) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


async def _handle_sync_run(
    engine: SyncEngine, trigger: TriggerType
) -> types.CallToolResult:
    """Handle ``sync_run`` and a due ``sync_run_scheduled``."""
    progress: list[str] = []
    run = await engine.run(trigger, on_log=progress.append)
    if run is None:
        return build_error_response(
            "sync_in_progress",
            "A sync run is already in progress.",
            "Wait for it to finish and check sync_status. If its process "
            "died, clear the stale lock with `wiki-sync unlock`.",
        )

    text = format_run_report(run)
    if progress:
        text += "\n\nProgress:\n" + "\n".join(f"  {line}" for line in progress)
    structured = run_to_json(run)
    structured["log"] = progress
    return _text_result(text, structured)


def _handle_sync_status(
    args: dict[str, Any], engine: SyncEngine
) -> types.CallToolResult:
    """Handle the ``sync_status`` tool."""
    limit = args.get("limit", DEFAULT_HISTORY_LIMIT)
    if not isinstance(limit, int) or not 1 <= limit <= MAX_HISTORY_LIMIT:
        raise ValueError(
            f"limit must be an integer between 1 and {MAX_HISTORY_LIMIT}"
        )

    store = engine.store
    running = store.get_running_run()
    runs = store.list_runs(limit)
    schedule = resolve_sync_settings(store, engine.config).cron_schedule
    due = engine.is_due()

    active = (
        f"#{running.id} ({running.trigger_type.value})" if running else "none"
    )
    lines = [
        "Sync status",
        f"  Active run: {active}",
        f"  Schedule:   {schedule or 'not configured'}",
        f"  Due:        {'yes' if due else 'no'}",
        f"  Inclusions: {len(store.get_inclusion_patterns())} pattern(s)",
        "",
        "Recent runs:",
        format_run_history(runs),
    ]
    structured = {
        "running": run_to_json(running) if running else None,
        "schedule": schedule or None,
        "due": due,
        "recent_runs": [run_to_json(r) for r in runs],
    }
    return _text_result("\n".join(lines), structured)
