"""Process configuration for the sync engine.

Reads storage, source and LLM settings from CLI args, environment
variables, .env files, and YAML config file fallbacks. Values kept in the
document store's settings table (see ``wiki_sync.settings``) take
precedence over these at run time.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    WIKI_SYNC_DB: SQLite database path (optional, default: .wiki_sync/wiki.db)
    GITHUB_TOKEN: GitHub API token
    GITHUB_REPO_URL: Repository URL or owner/repo
    GITHUB_BRANCH: Branch to sync (optional, default: main)
    OPENROUTER_API_KEY: OpenRouter API key
    OPENROUTER_BASE_URL: Chat completions base URL (optional)
    OPENROUTER_MODEL: Model for analysis, planning, generation and review
    OPENROUTER_SUMMARY_MODEL: Model for per-file summaries (optional)
    WIKI_SYNC_CONSOLIDATION_MODEL: Model for consolidation (optional)
    WIKI_SYNC_MAX_PARALLEL_FETCHES: Max parallel file fetches (optional, default: 5)
    WIKI_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".wiki_sync/wiki.db"
DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1"


@dataclass
class Config:
    db_path: str = DEFAULT_DB_PATH
    github_token: str | None = None
    repo_url: str | None = None
    branch: str = "main"
    openrouter_api_key: str | None = None
    openrouter_url: str = DEFAULT_OPENROUTER_URL
    model: str | None = None
    summary_model: str | None = None
    consolidation_model: str | None = None
    max_parallel_fetches: int = 5
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Credentials and the repository are not required here: they may still
    come from the settings table, and are checked when a run starts.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the database path is empty, the LLM base URL is
            malformed, or the parallelism is out of range.
    """
    config.db_path = config.db_path.strip()
    if not config.db_path:
        raise ValueError(
            "Database path cannot be empty. Set WIKI_SYNC_DB or pass --db."
        )

    config.openrouter_url = config.openrouter_url.strip()
    if not config.openrouter_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid OpenRouter URL '{config.openrouter_url}': must start with http:// or https://"
        )
    if not urlparse(config.openrouter_url).hostname:
        raise ValueError(
            f"Invalid OpenRouter URL '{config.openrouter_url}': URL must include a hostname"
        )
    config.openrouter_url = config.openrouter_url.removesuffix("/")

    if not (1 <= config.max_parallel_fetches <= 50):
        raise ValueError(
            f"Invalid max_parallel_fetches {config.max_parallel_fetches}: must be between 1 and 50"
        )


def load_config(
    db_path: str | None = None,
    repo_url: str | None = None,
    branch: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        db_path: Override database path.
        repo_url: Override repository URL.
        branch: Override branch.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file
            (see ``config_schema.to_fallbacks``). Used when CLI arg and env
            var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed.
    """
    fb = yaml_fallbacks or {}

    def pick(cli_value: str | None, env_key: str, fb_key: str) -> str | None:
        value = cli_value or os.getenv(env_key) or fb.get(fb_key)
        return value.strip() if isinstance(value, str) else value

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("WIKI_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    max_parallel_raw = os.getenv("WIKI_SYNC_MAX_PARALLEL_FETCHES")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid WIKI_SYNC_MAX_PARALLEL_FETCHES '{max_parallel_raw}': must be a number between 1 and 50"
            ) from None
    elif "max_parallel_fetches" in fb:
        final_max_parallel = int(fb["max_parallel_fetches"])
    else:
        final_max_parallel = 5

    config = Config(
        db_path=pick(db_path, "WIKI_SYNC_DB", "db_path") or DEFAULT_DB_PATH,
        github_token=pick(None, "GITHUB_TOKEN", "github_token"),
        repo_url=pick(repo_url, "GITHUB_REPO_URL", "repo_url"),
        branch=pick(branch, "GITHUB_BRANCH", "branch") or "main",
        openrouter_api_key=pick(
            None, "OPENROUTER_API_KEY", "openrouter_api_key"
        ),
        openrouter_url=pick(None, "OPENROUTER_BASE_URL", "openrouter_url")
        or DEFAULT_OPENROUTER_URL,
        model=pick(None, "OPENROUTER_MODEL", "model"),
        summary_model=pick(
            None, "OPENROUTER_SUMMARY_MODEL", "summary_model"
        ),
        consolidation_model=pick(
            None, "WIKI_SYNC_CONSOLIDATION_MODEL", "consolidation_model"
        ),
        max_parallel_fetches=final_max_parallel,
        debug=final_debug,
    )

    validate_config(config)

    return config
