"""Source repository access: tree listing, inclusion filtering, content fetch."""

from .client import GitHubClient, RepoRef, SourceClient, parse_repo_url
from .fetch import fetch_file_contents
from .tree import EntryType, TreeEntry, included_files, is_path_included

__all__ = [
    "EntryType",
    "GitHubClient",
    "RepoRef",
    "SourceClient",
    "TreeEntry",
    "fetch_file_contents",
    "included_files",
    "is_path_included",
    "parse_repo_url",
]
