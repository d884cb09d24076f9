"""Read-only GitHub REST client for repository trees and file contents."""

from __future__ import annotations

import base64
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import requests

from ..core.errors import ConfigurationError, SourceError
from .tree import EntryType, TreeEntry

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
DEFAULT_BRANCH = "main"
MAX_FILE_SIZE = 1_000_000

_REPO_URL_PATTERN = re.compile(
    r"(?:(?:https?://)?github\.com/)?([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)"
)


@dataclass(frozen=True, slots=True)
class RepoRef:
    """Repository coordinates: owner, name and branch."""

    owner: str
    repo: str
    branch: str = DEFAULT_BRANCH

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_repo_url(url: str, branch: str | None = None) -> RepoRef:
    """Parse a GitHub repository reference.

    Accepts ``https://github.com/owner/repo``, the same with a ``.git``
    suffix, ``github.com/owner/repo`` and bare ``owner/repo``.

    Args:
        url: Repository URL or ``owner/repo`` shorthand.
        branch: Branch name; defaults to ``main`` when empty.

    Returns:
        RepoRef for the repository.

    Raises:
        ConfigurationError: If the URL is empty or cannot be parsed.
    """
    trimmed = (url or "").strip()
    if not trimmed:
        raise ConfigurationError(
            "GitHub repository URL not configured. Set github_repo_url "
            "or GITHUB_REPO_URL."
        )

    match = _REPO_URL_PATTERN.search(trimmed)
    if not match:
        raise ConfigurationError(
            f"Unable to parse GitHub repository URL: '{trimmed}'. "
            "Expected format: owner/repo or https://github.com/owner/repo"
        )

    repo = match.group(2).removesuffix(".git")
    return RepoRef(
        owner=match.group(1),
        repo=repo,
        branch=(branch or "").strip() or DEFAULT_BRANCH,
    )


class SourceClient(Protocol):
    """Read-only access to a source repository."""

    def fetch_tree(self) -> list[TreeEntry]:
        """Return the full recursive tree (files and directories)."""
        ...

    def fetch_file_content(self, path: str) -> str | None:
        """Return decoded text of a file, or None when it cannot be used."""
        ...


class GitHubClient:
    """GitHub REST API client bound to one repository and branch.

    Sessions are thread-local so the client can be shared by the bounded
    fetch workers running in the default thread pool.
    """

    def __init__(
        self,
        token: str,
        repo: RepoRef,
        api_url: str = GITHUB_API_URL,
        max_file_size: int = MAX_FILE_SIZE,
    ):
        if not token or not token.strip():
            raise ConfigurationError(
                "GitHub API key not configured. Set github_api_key or GITHUB_TOKEN."
            )
        self.token = token.strip()
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.max_file_size = max_file_size
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        return session

    def _get(self, path: str, params: dict | None = None) -> Any:
        """GET an API path and return decoded JSON.

        Raises:
            SourceError: For non-2xx responses (with ``status_code``).
        """
        url = f"{self.api_url}/repos/{self.repo.full_name}/{path}"
        response = self._get_session().get(
            url, params=params, timeout=(10, 60)
        )
        if response.status_code >= 400:
            message = _error_message(response)
            raise SourceError(
                f"GitHub API {response.status_code} for {path}: {message}",
                status_code=response.status_code,
            )
        return response.json()

    def fetch_tree(self) -> list[TreeEntry]:
        """Fetch the recursive tree for the configured branch.

        Resolves the branch head to a commit sha first, then lists every
        blob and tree entry below it.
        """
        ref = self._get(f"git/ref/heads/{quote(self.repo.branch, safe='/')}")
        commit_sha = ref["object"]["sha"]

        tree = self._get(
            f"git/trees/{commit_sha}", params={"recursive": "1"}
        )
        if tree.get("truncated"):
            logger.warning(
                "GitHub tree response for %s was truncated; "
                "the repository may have more than 100,000 entries",
                self.repo.full_name,
            )

        entries: list[TreeEntry] = []
        for item in tree.get("tree", []):
            kind = item.get("type")
            if kind not in ("blob", "tree"):
                continue
            if not item.get("path") or not item.get("sha"):
                continue
            entries.append(
                TreeEntry(
                    path=item["path"],
                    sha=item["sha"],
                    size=item.get("size") or 0,
                    type=EntryType(kind),
                )
            )
        return entries

    def fetch_file_content(self, path: str) -> str | None:
        """Fetch and decode one file at the configured branch.

        Returns:
            Decoded text, or None when the path is missing (404), is not a
            regular file, or exceeds ``max_file_size``.

        Raises:
            SourceError: For other HTTP failures (retry decides what next).
        """
        try:
            data = self._get(
                f"contents/{quote(path)}", params={"ref": self.repo.branch}
            )
        except SourceError as exc:
            if exc.status_code == 404:
                logger.debug("File not found in repository: %s", path)
                return None
            raise

        if isinstance(data, list) or data.get("type") != "file":
            return None
        if (data.get("size") or 0) > self.max_file_size:
            logger.info(
                "Skipping %s: %d bytes exceeds limit of %d",
                path,
                data.get("size"),
                self.max_file_size,
            )
            return None

        raw = base64.b64decode(data.get("content") or "")
        return raw.decode("utf-8", errors="replace")


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("message", response.reason)
    except ValueError:
        return response.reason or "unknown error"
