"""Tests for wiki_sync.cli — the wiki-sync command line.

Covers:
- include add/remove/list against a real SQLite database
- settings set/get/list with secret masking
- seed-prompts, status, unlock and init-config
- run refused while another run holds the lock
"""

import pytest

from wiki_sync.cli import EXIT_FAILED, EXIT_OK, EXIT_REFUSED, build_parser, main
from wiki_sync.storage import SqliteStore
from wiki_sync.sync.models import SyncStatus, TriggerType


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Isolated CWD/HOME and a database path passed via --db."""
    for key in ("WIKI_SYNC_CONFIG", "WIKI_SYNC_DB", "GITHUB_REPO_URL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return str(tmp_path / "wiki.db")


def _cli(db, *argv):
    return main(["--db", db, *argv])


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_unknown_setting_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["settings", "set", "nope", "x"])

    def test_run_flags(self):
        args = build_parser().parse_args(["run", "--scheduled", "--stream"])
        assert args.scheduled and args.stream


# ---------------------------------------------------------------------------
# include
# ---------------------------------------------------------------------------


class TestInclude:
    """Tests for the include subcommands."""

    def test_add_and_list(self, db, capsys):
        assert _cli(db, "include", "add", "src/billing") == EXIT_OK
        assert _cli(db, "include", "add", "docs") == EXIT_OK
        capsys.readouterr()

        assert _cli(db, "include", "list") == EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["docs", "src/billing"]

    def test_invalid_pattern(self, db, capsys):
        assert _cli(db, "include", "add", "/src/") == EXIT_FAILED
        assert "Inclusion pattern" in capsys.readouterr().err
        assert SqliteStore(db).get_inclusion_patterns() == []

    def test_remove(self, db, capsys):
        _cli(db, "include", "add", "src")
        assert _cli(db, "include", "remove", "src") == EXIT_OK
        assert _cli(db, "include", "remove", "src") == EXIT_FAILED
        assert "Not included: src" in capsys.readouterr().err

    def test_empty_list(self, db, capsys):
        _cli(db, "include", "list")
        assert "nothing is synchronized" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# settings
# ---------------------------------------------------------------------------


class TestSettings:
    """Tests for the settings and seed-prompts subcommands."""

    def test_set_and_get(self, db, capsys):
        assert _cli(db, "settings", "set", "github_branch", "develop") == EXIT_OK
        capsys.readouterr()

        assert _cli(db, "settings", "get", "github_branch") == EXIT_OK
        assert capsys.readouterr().out.strip() == "develop"

    def test_secret_masked(self, db, capsys):
        _cli(db, "settings", "set", "openrouter_api_key", "sk-abcdef1234")
        capsys.readouterr()

        _cli(db, "settings", "list")
        out = capsys.readouterr().out
        assert "openrouter_api_key = *********1234" in out
        assert "sk-abc" not in out

    def test_get_missing(self, db, capsys):
        assert _cli(db, "settings", "get", "github_branch") == EXIT_FAILED
        assert "is not set" in capsys.readouterr().err

    def test_seed_prompts(self, db, capsys):
        assert _cli(db, "seed-prompts") == EXIT_OK
        assert "analysis_prompt" in capsys.readouterr().out

        _cli(db, "seed-prompts")
        assert "already set" in capsys.readouterr().out

        _cli(db, "settings", "list")
        assert "analysis_prompt = " in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


class TestRuns:
    """Tests for status, unlock and run."""

    def test_status_idle(self, db, capsys):
        assert _cli(db, "status") == EXIT_OK
        out = capsys.readouterr().out
        assert "Active run: none" in out
        assert "Schedule:   not configured" in out

    def test_unlock(self, db, capsys):
        store = SqliteStore(db)
        run_id = store.try_acquire_run(TriggerType.MANUAL)

        assert _cli(db, "unlock") == EXIT_OK
        assert f"Marked run #{run_id} as failed" in capsys.readouterr().out
        assert store.get_run(run_id).status == SyncStatus.FAILED
        assert store.get_running_run() is None

        _cli(db, "unlock")
        assert "No run is in progress." in capsys.readouterr().out

    def test_run_refused(self, db, capsys):
        SqliteStore(db).try_acquire_run(TriggerType.SCHEDULED)

        assert _cli(db, "run") == EXIT_REFUSED
        assert "already in progress" in capsys.readouterr().err

    def test_scheduled_not_due(self, db, capsys):
        assert _cli(db, "run", "--scheduled") == EXIT_OK
        assert "not due" in capsys.readouterr().out
        assert SqliteStore(db).list_runs() == []


class TestInitConfig:
    def test_writes_starter(self, db, tmp_path, capsys):
        assert main(["init-config"]) == EXIT_OK
        assert (tmp_path / ".wiki_sync" / "config.yml").exists()
        assert "Config file:" in capsys.readouterr().out
