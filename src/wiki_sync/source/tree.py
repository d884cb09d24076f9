"""Repository tree entries and inclusion-pattern filtering.

Inclusion patterns form an allow-list: with no patterns configured nothing
participates in synchronization.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum

from pydantic import BaseModel


class EntryType(str, Enum):
    BLOB = "blob"
    TREE = "tree"


class TreeEntry(BaseModel):
    """One item of a recursive repository tree listing.

    Attributes:
        path: Repository-relative path.
        sha: Content hash (blob sha for files).
        size: Size in bytes (0 for directories).
        type: ``blob`` for files, ``tree`` for directories.
    """

    path: str
    sha: str
    size: int = 0
    type: EntryType = EntryType.BLOB

    model_config = {"frozen": True}

    @property
    def is_file(self) -> bool:
        return self.type == EntryType.BLOB


def is_path_included(path: str, patterns: Sequence[str]) -> bool:
    """Check whether ``path`` is covered by the inclusion allow-list.

    A path is included when it:

    * exactly matches a pattern,
    * lies inside a pattern directory (``pattern + "/"`` prefix), or
    * is an ancestor directory of a pattern, so that parents stay visible
      when listing the tree.

    Args:
        path: Repository-relative path.
        patterns: Inclusion patterns (paths or directory prefixes).

    Returns:
        True when included; always False for an empty pattern list.
    """
    for pattern in patterns:
        if path == pattern:
            return True
        if path.startswith(pattern + "/"):
            return True
        if pattern.startswith(path + "/"):
            return True
    return False


def included_files(
    entries: Iterable[TreeEntry], patterns: Sequence[str]
) -> list[TreeEntry]:
    """Return the blob entries covered by ``patterns``.

    Directories are dropped even when included as ancestors: only files
    are ever classified as content changes.
    """
    return [
        e
        for e in entries
        if e.is_file and is_path_included(e.path, patterns)
    ]


def format_tree(
    entries: Iterable[TreeEntry], patterns: Sequence[str]
) -> str:
    """Render the included part of a tree as an indented listing.

    Directories come first, then files, each sorted by name.

    Args:
        entries: Full tree listing.
        patterns: Inclusion patterns.

    Returns:
        Multi-line string, one entry per line, directories suffixed ``/``.
    """
    visible = [e for e in entries if is_path_included(e.path, patterns)]

    def sort_key(entry: TreeEntry) -> tuple:
        parts = entry.path.split("/")
        # Directories sort before files at the same level.
        return tuple(
            (0 if (i < len(parts) - 1 or not entry.is_file) else 1, p)
            for i, p in enumerate(parts)
        )

    lines: list[str] = []
    for entry in sorted(visible, key=sort_key):
        depth = entry.path.count("/")
        name = entry.path.rsplit("/", 1)[-1]
        suffix = "" if entry.is_file else "/"
        lines.append(f"{'  ' * depth}{name}{suffix}")
    return "\n".join(lines)
