"""Unified configuration schema for wiki_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for storage, source repository, LLM access, and logging, plus an
adapter that flattens it into the fallback dict ``load_config`` consumes.

Usage:
    from wiki_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StorageConfig(BaseModel):
    """Document store location."""

    path: str | None = Field(
        default=None, description="SQLite database path"
    )

    model_config = {"frozen": True}


class SourceConfig(BaseModel):
    """Source repository settings.

    All fields are optional to support zero-config: env vars, CLI args and
    the settings table can supply them at runtime instead.
    """

    repo_url: str | None = Field(
        default=None, description="GitHub repository URL or owner/repo"
    )
    branch: str | None = Field(default=None, description="Branch to sync")
    token: str | None = Field(default=None, description="GitHub API token")
    max_parallel_fetches: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum concurrent file fetches (1-50)",
    )

    model_config = {"frozen": True}


class LLMConfig(BaseModel):
    """Completion service settings (OpenRouter-compatible)."""

    api_key: str | None = Field(default=None, description="API key")
    base_url: str | None = Field(
        default=None, description="Chat completions base URL"
    )
    model: str | None = Field(
        default=None, description="Primary model identifier"
    )
    summary_model: str | None = Field(
        default=None, description="Model for per-file summaries"
    )
    consolidation_model: str | None = Field(
        default=None, description="Model for consolidation review"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        debug: Force DEBUG level.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` (zero-config)
    is always valid.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config fallbacks
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the keys ``load_config`` reads.

    Unset (None) values are omitted so that built-in defaults still apply.

    Args:
        unified: The unified config produced by ``build_config()``.

    Returns:
        Flat dict suitable for ``load_config(yaml_fallbacks=...)``.
    """
    flat = {
        "db_path": unified.storage.path,
        "repo_url": unified.source.repo_url,
        "branch": unified.source.branch,
        "github_token": unified.source.token,
        "max_parallel_fetches": unified.source.max_parallel_fetches,
        "openrouter_api_key": unified.llm.api_key,
        "openrouter_url": unified.llm.base_url,
        "model": unified.llm.model,
        "summary_model": unified.llm.summary_model,
        "consolidation_model": unified.llm.consolidation_model,
        "debug": unified.logging.debug,
    }
    return {k: v for k, v in flat.items() if v is not None}
