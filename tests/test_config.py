"""Tests for wiki_sync.config — env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the process
bootstrap path: validate_config() and load_config().
"""

import pytest

from wiki_sync.config import (
    DEFAULT_DB_PATH,
    DEFAULT_OPENROUTER_URL,
    Config,
    load_config,
    validate_config,
)

ENV_KEYS = [
    "WIKI_SYNC_DB",
    "GITHUB_TOKEN",
    "GITHUB_REPO_URL",
    "GITHUB_BRANCH",
    "OPENROUTER_API_KEY",
    "OPENROUTER_BASE_URL",
    "OPENROUTER_MODEL",
    "OPENROUTER_SUMMARY_MODEL",
    "WIKI_SYNC_CONSOLIDATION_MODEL",
    "WIKI_SYNC_MAX_PARALLEL_FETCHES",
    "WIKI_SYNC_DEBUG",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove config env vars a developer .env may have set."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config() — path, URL and parallelism checks."""

    def test_defaults_valid(self):
        validate_config(Config())  # should not raise

    def test_empty_db_path(self):
        with pytest.raises(ValueError, match="Database path cannot be empty"):
            validate_config(Config(db_path="   "))

    def test_db_path_stripped(self):
        config = Config(db_path="  wiki.db ")
        validate_config(config)
        assert config.db_path == "wiki.db"

    def test_invalid_url_scheme(self):
        with pytest.raises(
            ValueError, match="must start with http:// or https://"
        ):
            validate_config(Config(openrouter_url="ftp://example.com"))

    def test_url_without_host(self):
        with pytest.raises(ValueError, match="must include a hostname"):
            validate_config(Config(openrouter_url="https://"))

    def test_trailing_slash_removed(self):
        config = Config(openrouter_url="https://llm.example.com/api/v1/")
        validate_config(config)
        assert config.openrouter_url == "https://llm.example.com/api/v1"

    @pytest.mark.parametrize("value", [0, 51])
    def test_parallelism_out_of_range(self, value):
        with pytest.raises(ValueError, match="between 1 and 50"):
            validate_config(Config(max_parallel_fetches=value))

    def test_missing_credentials_allowed(self):
        """Credentials may still come from the settings table."""
        config = Config(github_token=None, openrouter_api_key=None)
        validate_config(config)


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config() — CLI > env > YAML > defaults."""

    def test_defaults(self):
        config = load_config()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.branch == "main"
        assert config.openrouter_url == DEFAULT_OPENROUTER_URL
        assert config.max_parallel_fetches == 5
        assert config.debug is False
        assert config.github_token is None

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("WIKI_SYNC_DB", "/data/wiki.db")
        monkeypatch.setenv("GITHUB_TOKEN", " ghp_env ")
        monkeypatch.setenv("GITHUB_REPO_URL", "acme/billing")
        monkeypatch.setenv("GITHUB_BRANCH", "develop")
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-env")
        monkeypatch.setenv("OPENROUTER_MODEL", "vendor/big")
        monkeypatch.setenv("OPENROUTER_SUMMARY_MODEL", "vendor/small")
        monkeypatch.setenv("WIKI_SYNC_CONSOLIDATION_MODEL", "vendor/mid")
        monkeypatch.setenv("WIKI_SYNC_MAX_PARALLEL_FETCHES", "8")

        config = load_config()

        assert config.db_path == "/data/wiki.db"
        assert config.github_token == "ghp_env"
        assert config.repo_url == "acme/billing"
        assert config.branch == "develop"
        assert config.openrouter_api_key == "sk-env"
        assert config.model == "vendor/big"
        assert config.summary_model == "vendor/small"
        assert config.consolidation_model == "vendor/mid"
        assert config.max_parallel_fetches == 8

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("GITHUB_REPO_URL", "acme/env")
        monkeypatch.setenv("GITHUB_BRANCH", "env-branch")

        config = load_config(repo_url="acme/cli", branch="cli-branch")

        assert config.repo_url == "acme/cli"
        assert config.branch == "cli-branch"

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_MODEL", "env/model")
        config = load_config(
            yaml_fallbacks={"model": "yaml/model", "summary_model": "yaml/small"}
        )
        assert config.model == "env/model"
        assert config.summary_model == "yaml/small"

    def test_yaml_parallelism(self):
        config = load_config(yaml_fallbacks={"max_parallel_fetches": 12})
        assert config.max_parallel_fetches == 12

    def test_non_numeric_parallelism(self, monkeypatch):
        monkeypatch.setenv("WIKI_SYNC_MAX_PARALLEL_FETCHES", "lots")
        with pytest.raises(ValueError, match="must be a number"):
            load_config()

    @pytest.mark.parametrize(
        "value,expected",
        [("true", True), ("1", True), ("on", True), ("false", False), ("no", False)],
    )
    def test_debug_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("WIKI_SYNC_DEBUG", value)
        assert load_config().debug is expected

    def test_debug_flag_beats_env(self, monkeypatch):
        monkeypatch.setenv("WIKI_SYNC_DEBUG", "false")
        assert load_config(debug=True).debug is True

    def test_debug_from_yaml(self):
        assert load_config(yaml_fallbacks={"debug": True}).debug is True

    def test_invalid_base_url_rejected(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_BASE_URL", "llm.example.com")
        with pytest.raises(ValueError, match="Invalid OpenRouter URL"):
            load_config()
