"""
Hierarchical configuration loader for wiki_sync.

Discovers YAML config files by convention, resolves ``!include`` directives,
interpolates ``${VAR}`` / ``${VAR:-default}`` from the environment, and merges
the files section by section with "project wins" semantics.

Usage:
    from wiki_sync.config_loader import load_runtime_config

    config, sources = load_runtime_config({"db_path": "wiki.db"})
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .config import Config, load_config
from .config_schema import build_config, to_fallbacks

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "WIKI_SYNC_CONFIG"
PROJECT_DIR_NAME = ".wiki_sync"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    An unset or empty variable yields its default, or ``""`` without one.
    Text such as a lone ``${`` with no closing brace is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    match obj:
        case str():
            return interpolate_env_vars(obj)
        case dict():
            return {k: _interpolate_recursive(v) for k, v in obj.items()}
        case list():
            return [_interpolate_recursive(item) for item in obj]
        case _:
            return obj


# ---------------------------------------------------------------------------
# YAML !include support (dedicated SafeLoader subclass)
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    Each load carries an include stack to detect cycles.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml`` relative to the including file."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in [*stack, target])
        raise ValueError(f"Circular include detected: {chain}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(target, _include_stack=[*stack, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load one YAML file with ``ConfigLoader``."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths, highest precedence first.

    Search order:
        1. ``WIKI_SYNC_CONFIG`` env var (explicit single path)
        2. ``.wiki_sync/config.yml`` in CWD (project-level)
        3. ``.wiki_sync/config.yaml`` in CWD
        4. ``~/.config/wiki_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_DIR_NAME
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "wiki_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# wiki-sync configuration
#
# Secrets are best supplied through the environment (or a .env file):
#   GITHUB_TOKEN, OPENROUTER_API_KEY
#
# storage:
#   path: .wiki_sync/wiki.db
#
# source:
#   repo_url: https://github.com/owner/repo
#   branch: main
#   token: ${GITHUB_TOKEN}
#   max_parallel_fetches: 5
#
# llm:
#   api_key: ${OPENROUTER_API_KEY}
#   model: anthropic/claude-sonnet-4
#   summary_model: google/gemini-2.5-flash
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to create the starter file. Defaults to
            ``CWD / .wiki_sync / config.yml``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / PROJECT_DIR_NAME / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Hierarchical merge
# ---------------------------------------------------------------------------


def _merge_sections(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Merge ``override`` into ``base``, one level deep.

    Keys inside a section (``source``, ``llm``...) from the higher-precedence
    file replace those from lower ones; sections that only one file sets are
    kept intact.
    """
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = {**base[key], **value}
        else:
            base[key] = value


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest to highest precedence, so a project file
    overrides individual keys of the global one. Env var interpolation runs
    after merging.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            _merge_sections(merged, data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)


# ---------------------------------------------------------------------------
# Runtime config
# ---------------------------------------------------------------------------


def load_runtime_config(
    overrides: dict[str, Any] | None = None,
) -> tuple[Config, list[str]]:
    """Load the process ``Config`` from every source.

    Loads ``.env`` first so that both env var lookups and ``${VAR}``
    interpolation in YAML files can use its values, then merges
    CLI args > env vars > YAML > defaults via ``load_config``.

    Args:
        overrides: CLI values (``db_path``, ``repo_url``, ``branch``,
            ``debug``).

    Returns:
        ``(config, sources)`` where ``sources`` describes what contributed.

    Raises:
        ValueError: If a value is malformed.
    """
    load_dotenv()

    sources: list[str] = []
    yaml_fallbacks: dict[str, Any] | None = None
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        yaml_fallbacks = to_fallbacks(unified)
        sources.append(f"config file: {config_files[0]}")

    overrides = overrides or {}
    config = load_config(
        db_path=overrides.get("db_path"),
        repo_url=overrides.get("repo_url"),
        branch=overrides.get("branch"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )

    if any(v for v in overrides.values()):
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, sources
