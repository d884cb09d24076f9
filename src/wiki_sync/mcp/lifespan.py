"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..config_loader import load_runtime_config
from ..storage import SqliteStore
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load configuration: CLI > env vars (.env loaded first) > YAML > defaults
    - Open the document store (creating the schema if needed)
    - Build the SyncEngine shared by all tool calls

    Credentials are not checked here: they may live in the store's
    settings table, and every run validates them after taking the lock.

    Args:
        config_overrides: Optional dict with config values from CLI
            (db_path, repo_url, branch, debug)

    Yields:
        Dict with 'engine', 'store' and 'config' keys

    Raises:
        RuntimeError: If configuration is invalid or the store cannot be opened.
    """
    logger.info("MCP server starting...")
    _stderr_print("wiki-sync MCP server starting...")

    try:
        config, sources = load_runtime_config(config_overrides)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    source_desc = ", ".join(sources)
    logger.info("Configuration loaded from: %s", source_desc)
    _stderr_print(f"  Configuration loaded from: {source_desc}")

    try:
        store = SqliteStore(config.db_path)
    except Exception as e:
        logger.error("Failed to open document store %s: %s", config.db_path, e)
        _stderr_print(f"ERROR: Cannot open database {config.db_path}: {e}")
        raise RuntimeError(f"Cannot open database {config.db_path}: {e}") from e

    logger.info("Document store: %s", config.db_path)
    _stderr_print(f"  Database: {config.db_path}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {
        "engine": SyncEngine(store, config),
        "store": store,
        "config": config,
    }

    logger.info("MCP server shutting down")
    _stderr_print("wiki-sync MCP server shutting down.")
