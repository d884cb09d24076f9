"""Tests for the MCP sync tools and server dispatch.

Covers:
- sync_run (completed and refused runs)
- sync_run_scheduled (not due)
- sync_status (active run, history, validation of limit)
- Structured error responses and unknown tools
"""

import pytest

from wiki_sync.config import Config
from wiki_sync.mcp import server
from wiki_sync.mcp.errors import build_error_response
from wiki_sync.mcp.tools import SYNC_TOOLS, TOOL_NAMES, handle_sync_tool
from wiki_sync.sync.engine import SyncEngine
from wiki_sync.sync.models import RunStats, SyncStatus, TriggerType


def _text(result):
    return result.content[0].text


class TestToolDefinitions:
    def test_names(self):
        assert TOOL_NAMES == {"sync_run", "sync_run_scheduled", "sync_status"}

    def test_status_is_read_only(self):
        status = next(t for t in SYNC_TOOLS if t.name == "sync_status")
        assert status.annotations.readOnlyHint is True


# ---------------------------------------------------------------------------
# sync_run
# ---------------------------------------------------------------------------


class TestSyncRun:
    """Tests for the sync_run and sync_run_scheduled tools."""

    async def test_completed_run_reports_progress(self, engine):
        result = await handle_sync_tool("sync_run", {}, engine)

        assert not result.isError
        structured = result.structuredContent
        assert structured["status"] == "completed"
        assert structured["trigger_type"] == "manual"
        assert structured["log"][0].startswith("Started manual sync run")
        assert "Progress:" in _text(result)

    async def test_refused_while_running(self, store, engine):
        store.try_acquire_run(TriggerType.SCHEDULED)

        result = await handle_sync_tool("sync_run", None, engine)

        assert result.isError
        assert "Error (sync_in_progress)" in _text(result)
        assert "wiki-sync unlock" in _text(result)

    async def test_scheduled_not_due(self, engine):
        result = await handle_sync_tool("sync_run_scheduled", {}, engine)

        assert not result.isError
        assert result.structuredContent == {"status": "not_due"}
        assert engine.store.list_runs() == []


# ---------------------------------------------------------------------------
# sync_status
# ---------------------------------------------------------------------------


class TestSyncStatus:
    """Tests for the sync_status tool."""

    async def test_idle(self, engine):
        result = await handle_sync_tool("sync_status", {}, engine)

        assert "Active run: none" in _text(result)
        assert "Schedule:   not configured" in _text(result)
        assert result.structuredContent["running"] is None
        assert result.structuredContent["due"] is False

    async def test_active_and_history(self, store, engine):
        first = store.try_acquire_run(TriggerType.MANUAL)
        store.finish_run(first, SyncStatus.COMPLETED, RunStats(files_processed=3))
        second = store.try_acquire_run(TriggerType.SCHEDULED)

        result = await handle_sync_tool("sync_status", {"limit": 1}, engine)

        assert f"Active run: #{second} (scheduled)" in _text(result)
        structured = result.structuredContent
        assert structured["running"]["id"] == second
        assert [r["id"] for r in structured["recent_runs"]] == [second]

    @pytest.mark.parametrize("limit", [0, 51, "5"])
    async def test_invalid_limit(self, engine, limit):
        result = await handle_sync_tool("sync_status", {"limit": limit}, engine)
        assert result.isError
        assert "Error (validation_error)" in _text(result)


# ---------------------------------------------------------------------------
# Errors and dispatch
# ---------------------------------------------------------------------------


class TestErrors:
    def test_build_error_response(self):
        result = build_error_response("server_error", "boom", "Retry.")
        assert result.isError
        assert _text(result) == "Error (server_error): boom\n\nAction: Retry."

    async def test_unknown_tool_in_handler(self, engine):
        result = await handle_sync_tool("sync_nope", {}, engine)
        assert "Unknown sync tool" in _text(result)

    async def test_server_rejects_unknown_tool(self):
        result = await server.handle_call_tool("ticket_get", {})
        assert "Error (unknown_tool)" in _text(result)

    async def test_server_dispatches_to_engine(self, engine):
        server.set_engine(engine)
        try:
            result = await server.handle_call_tool("sync_status", None)
        finally:
            server.set_engine(None)
        assert not result.isError

    def test_engine_required(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            server.get_engine()

    async def test_missing_configuration(self, store, tmp_path):
        """A run without credentials fails with a configuration message."""
        engine = SyncEngine(store, Config(db_path=str(tmp_path / "wiki.db")))

        result = await handle_sync_tool("sync_run", {}, engine)

        assert result.structuredContent["status"] == "failed"
        assert result.structuredContent["error_message"].startswith(
            "Missing configuration"
        )
