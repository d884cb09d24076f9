"""MCP server for wiki-sync using stdio transport.

Exposes the sync engine as MCP tools so that AI agents and schedulers
can trigger runs and inspect their status.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import setup_logging
from ..sync.engine import SyncEngine
from .errors import build_error_response
from .lifespan import server_lifespan
from .tools import SYNC_TOOLS, TOOL_NAMES, handle_sync_tool

logger = logging.getLogger(__name__)

server = Server("wiki-sync")

# Global engine instance (initialized in main)
_engine: SyncEngine | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If the engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    global _engine
    _engine = engine


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    return SYNC_TOOLS


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Dispatch a tool call to the sync tool handlers.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    if name not in TOOL_NAMES:
        return build_error_response(
            "unknown_tool",
            f"Unknown tool: {name}",
            "Use list_tools to see available tools.",
        )
    return await handle_sync_tool(name, arguments, get_engine())


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), loads the
    configuration and opens the store via the lifespan manager, then
    serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (db_path, repo_url, branch, debug, log_file)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # Must run before stdio_server so nothing reaches stdout.
    setup_logging(
        mode="mcp", debug=overrides.get("debug", False), log_file=log_file
    )

    async with server_lifespan(config_overrides=overrides) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="wiki-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_engine(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="wiki-sync MCP server - trigger and inspect documentation sync runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .wiki_sync/config.yml)
  wiki-sync-mcp

  # Use a specific database
  wiki-sync-mcp --db /srv/wiki/wiki.db

  # Custom log file location
  wiki-sync-mcp --log-file /var/log/wiki-sync-mcp.log

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--db",
        help="SQLite database path (takes precedence over WIKI_SYNC_DB and config files)",
    )
    parser.add_argument(
        "--repo-url",
        help="Repository URL or owner/repo (takes precedence over GITHUB_REPO_URL)",
    )
    parser.add_argument("--branch", help="Branch to sync (default: main)")
    parser.add_argument(
        "--log-file",
        default="/tmp/wiki-sync-mcp.log",
        help="Log file path (default: /tmp/wiki-sync-mcp.log)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"wiki-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.db:
        config_overrides["db_path"] = args.db
    if args.repo_url:
        config_overrides["repo_url"] = args.repo_url
    if args.branch:
        config_overrides["branch"] = args.branch
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
