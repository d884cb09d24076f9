"""Shared pytest fixtures for wiki-sync tests."""

import hashlib
import threading

import pytest
from dotenv import load_dotenv

from wiki_sync.config import Config
from wiki_sync.llm.client import Completion
from wiki_sync.llm.usage import Usage
from wiki_sync.source.tree import EntryType, TreeEntry
from wiki_sync.storage.sqlite import SqliteStore
from wiki_sync.sync.engine import SyncEngine

load_dotenv()

CALL_USAGE = Usage(input_tokens=10, output_tokens=5, cost=0.01)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require live GitHub and OpenRouter access",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring live GitHub/OpenRouter access"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCompletionService:
    """Scripted completion service; answers are looked up by schema.

    ``answer(schema, a, b)`` returns ``a`` on the first call for that
    schema and ``b`` on every later one. An answer may be an exception
    (raised) or a callable taking the prompt.
    """

    def __init__(self):
        self.answers = {}
        self.calls = []
        self._lock = threading.Lock()

    def answer(self, schema, *outputs):
        self.answers[schema] = list(outputs)

    def calls_for(self, schema):
        return [c for c in self.calls if c["schema"] is schema]

    def complete(
        self, prompt, schema=None, *, system=None, temperature=None, model=None
    ):
        with self._lock:
            self.calls.append(
                {
                    "prompt": prompt,
                    "schema": schema,
                    "system": system,
                    "temperature": temperature,
                    "model": model,
                }
            )
            queue = self.answers.get(schema)
            if not queue:
                output = None
            elif len(queue) > 1:
                output = queue.pop(0)
            else:
                output = queue[0]
        if isinstance(output, Exception):
            raise output
        if callable(output):
            output = output(prompt)
        return Completion(output=output, usage=CALL_USAGE)


class FakeSourceClient:
    """In-memory repository: file contents keyed by path."""

    def __init__(self, files=None, tree_error=None):
        self.files = dict(files or {})
        self.tree_error = tree_error
        self.fetched = []

    def fetch_tree(self):
        if self.tree_error is not None:
            raise self.tree_error
        dirs = set()
        entries = []
        for path, content in sorted(self.files.items()):
            parts = path.split("/")
            for depth in range(1, len(parts)):
                dirs.add("/".join(parts[:depth]))
            entries.append(
                TreeEntry(
                    path=path,
                    sha=hashlib.sha1(content.encode()).hexdigest(),
                    size=len(content),
                )
            )
        entries.extend(
            TreeEntry(path=d, sha=f"tree-{d}", type=EntryType.TREE)
            for d in sorted(dirs)
        )
        return entries

    def fetch_file_content(self, path):
        self.fetched.append(path)
        return self.files.get(path)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store in a temporary directory."""
    return SqliteStore(tmp_path / "wiki.db")


@pytest.fixture
def mock_config(tmp_path):
    """Config with every credential a run needs."""
    return Config(
        db_path=str(tmp_path / "wiki.db"),
        github_token="ghp_test",
        repo_url="owner/repo",
        openrouter_api_key="sk-test",
        model="test/model",
    )


@pytest.fixture
def llm():
    return FakeCompletionService()


@pytest.fixture
def source():
    return FakeSourceClient()


@pytest.fixture
def engine(store, mock_config, source, llm):
    """SyncEngine wired to the fake source and completion service."""
    return SyncEngine(
        store,
        mock_config,
        source_factory=lambda settings: source,
        llm_factory=lambda settings: llm,
    )
