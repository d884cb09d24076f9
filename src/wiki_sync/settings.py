"""Per-installation settings stored in the document store.

Operators change these at run time (CLI ``wiki-sync settings set``), so
they win over the process ``Config`` that comes from the environment and
YAML files. Everything a run needs is resolved once into ``SyncSettings``
right after the sync lock is taken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .config import Config
from .core.errors import ConfigurationError
from .llm.prompts import (
    DEFAULT_ANALYSIS_PROMPT,
    DEFAULT_ARTICLE_STYLE_PROMPT,
    DEFAULT_CONSOLIDATION_PROMPT,
    DEFAULT_FILE_SUMMARY_PROMPT,
)
from .storage.base import DocumentStore

logger = logging.getLogger(__name__)


class SettingKey(str, Enum):
    GITHUB_REPO_URL = "github_repo_url"
    GITHUB_BRANCH = "github_branch"
    GITHUB_API_KEY = "github_api_key"
    OPENROUTER_API_KEY = "openrouter_api_key"
    OPENROUTER_MODEL = "openrouter_model"
    OPENROUTER_SUMMARY_MODEL = "openrouter_summary_model"
    CONSOLIDATION_MODEL = "consolidation_model"
    ANALYSIS_PROMPT = "analysis_prompt"
    ARTICLE_STYLE_PROMPT = "article_style_prompt"
    FILE_SUMMARY_PROMPT = "file_summary_prompt"
    CONSOLIDATION_PROMPT = "consolidation_prompt"
    SYNC_CRON_SCHEDULE = "sync_cron_schedule"


SECRET_KEYS = frozenset(
    {SettingKey.GITHUB_API_KEY, SettingKey.OPENROUTER_API_KEY}
)

DEFAULT_PROMPTS: dict[SettingKey, str] = {
    SettingKey.ANALYSIS_PROMPT: DEFAULT_ANALYSIS_PROMPT,
    SettingKey.ARTICLE_STYLE_PROMPT: DEFAULT_ARTICLE_STYLE_PROMPT,
    SettingKey.FILE_SUMMARY_PROMPT: DEFAULT_FILE_SUMMARY_PROMPT,
    SettingKey.CONSOLIDATION_PROMPT: DEFAULT_CONSOLIDATION_PROMPT,
}


@dataclass
class SyncSettings:
    """Everything one run needs, with store values layered over ``Config``.

    Prompt fields are empty when unset; prompt builders then use their
    defaults.
    """

    repo_url: str | None = None
    branch: str = "main"
    github_token: str | None = None
    openrouter_api_key: str | None = None
    openrouter_url: str = ""
    model: str | None = None
    summary_model: str | None = None
    consolidation_model: str | None = None
    analysis_prompt: str = ""
    article_style_prompt: str = ""
    file_summary_prompt: str = ""
    consolidation_prompt: str = ""
    cron_schedule: str = ""
    max_parallel_fetches: int = 5

    def validate(self) -> None:
        """Fail fast on missing credentials, model, or repository.

        Raises:
            ConfigurationError: Naming every missing value.
        """
        missing = []
        if not self.github_token:
            missing.append("GitHub API key (github_api_key / GITHUB_TOKEN)")
        if not self.repo_url:
            missing.append("repository URL (github_repo_url / GITHUB_REPO_URL)")
        if not self.openrouter_api_key:
            missing.append(
                "OpenRouter API key (openrouter_api_key / OPENROUTER_API_KEY)"
            )
        if not self.model:
            missing.append("AI model (openrouter_model / OPENROUTER_MODEL)")
        if missing:
            raise ConfigurationError(
                "Missing configuration: " + "; ".join(missing)
            )


def resolve_sync_settings(store: DocumentStore, config: Config) -> SyncSettings:
    """Merge store settings over the process config.

    Args:
        store: Document store holding the settings table.
        config: Process configuration (env, .env, YAML, defaults).

    Returns:
        Resolved settings; not validated.
    """

    def get(key: SettingKey) -> str | None:
        value = store.get_setting(key.value)
        if value is None:
            return None
        return value.strip() or None

    model = get(SettingKey.OPENROUTER_MODEL) or config.model
    return SyncSettings(
        repo_url=get(SettingKey.GITHUB_REPO_URL) or config.repo_url,
        branch=get(SettingKey.GITHUB_BRANCH) or config.branch or "main",
        github_token=get(SettingKey.GITHUB_API_KEY) or config.github_token,
        openrouter_api_key=get(SettingKey.OPENROUTER_API_KEY)
        or config.openrouter_api_key,
        openrouter_url=config.openrouter_url,
        model=model,
        summary_model=get(SettingKey.OPENROUTER_SUMMARY_MODEL)
        or config.summary_model,
        consolidation_model=get(SettingKey.CONSOLIDATION_MODEL)
        or config.consolidation_model,
        analysis_prompt=get(SettingKey.ANALYSIS_PROMPT) or "",
        article_style_prompt=get(SettingKey.ARTICLE_STYLE_PROMPT) or "",
        file_summary_prompt=get(SettingKey.FILE_SUMMARY_PROMPT) or "",
        consolidation_prompt=get(SettingKey.CONSOLIDATION_PROMPT) or "",
        cron_schedule=get(SettingKey.SYNC_CRON_SCHEDULE) or "",
        max_parallel_fetches=config.max_parallel_fetches,
    )


def seed_default_prompts(store: DocumentStore, overwrite: bool = False) -> list[str]:
    """Write the default prompts into the settings table.

    Args:
        store: Target store.
        overwrite: Replace prompts that are already set.

    Returns:
        Keys that were written.
    """
    written = []
    for key, prompt in DEFAULT_PROMPTS.items():
        if not overwrite and store.get_setting(key.value) is not None:
            continue
        store.set_setting(key.value, prompt)
        written.append(key.value)
    logger.info("Seeded %d prompt setting(s)", len(written))
    return written


def mask_secret(key: str, value: str) -> str:
    """Hide all but the last four characters of secret settings."""
    if key in {k.value for k in SECRET_KEYS} and value:
        return "*" * max(0, len(value) - 4) + value[-4:]
    return value
