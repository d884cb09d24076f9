"""Classify a repository tree snapshot against the last synced state.

``detect_changes`` is pure; ``apply_changes`` persists its result so the
next run compares against this snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..source.tree import TreeEntry, included_files
from ..storage.base import DocumentStore
from .models import ChangeSet, SourceFile

logger = logging.getLogger(__name__)


def detect_changes(
    entries: Iterable[TreeEntry],
    stored: Iterable[SourceFile],
    patterns: Sequence[str],
) -> ChangeSet:
    """Compare the included blobs of a tree with the stored source files.

    Args:
        entries: Remote tree listing (files and directories).
        stored: Source files recorded by the previous run.
        patterns: Inclusion allow-list.

    Returns:
        Added, modified (hash differs) and removed (stored but no longer
        in the included remote set) paths, each sorted.
    """
    remote = {e.path: e.sha for e in included_files(entries, patterns)}
    known = {f.path: f.sha for f in stored}

    added = sorted(p for p in remote if p not in known)
    modified = sorted(
        p for p, sha in remote.items() if p in known and known[p] != sha
    )
    removed = sorted(p for p in known if p not in remote)
    return ChangeSet(added=added, modified=modified, removed=removed)


def apply_changes(
    store: DocumentStore, changes: ChangeSet, entries: Iterable[TreeEntry]
) -> int:
    """Record a change set in the store.

    Args:
        store: Document store holding the source files.
        changes: Result of ``detect_changes`` for ``entries``.
        entries: The same tree listing, for the new hashes.

    Returns:
        Number of files processed (added + modified + removed).
    """
    shas = {e.path: e.sha for e in entries if e.is_file}
    store.insert_source_files([(p, shas[p]) for p in changes.added])
    store.update_source_files([(p, shas[p]) for p in changes.modified])
    store.delete_source_files(changes.removed)
    logger.info(
        "Source files: %d added, %d modified, %d removed",
        len(changes.added),
        len(changes.modified),
        len(changes.removed),
    )
    return changes.total
