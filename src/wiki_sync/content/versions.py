"""Append-only document history.

Every change to a document's content is recorded as an immutable
``DocumentVersion`` tagged with what produced it. The last AI-produced
version (``ai_generated`` or ``ai_updated``) is the base of the next
three-way merge.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..merge.three_way import generate_diff
from ..storage.base import DocumentStore
from ..sync.models import (
    AI_BASE_SOURCES,
    ChangeSource,
    Document,
    DocumentVersion,
)

logger = logging.getLogger(__name__)


class VersionStore:
    """Version bookkeeping on top of a ``DocumentStore``."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def record(
        self,
        document_id: int,
        content: str,
        change_source: ChangeSource,
        change_summary: str | None = None,
        author: str | None = None,
    ) -> DocumentVersion:
        version = self.store.insert_version(
            document_id, content, change_source, change_summary, author
        )
        logger.debug(
            "Recorded %s version %d of document %d",
            version.change_source.value,
            version.id,
            document_id,
        )
        return version

    def merge_base(self, document_id: int) -> str:
        """Content of the last AI-produced version, or "" if there is none."""
        version = self.store.get_last_version(document_id, AI_BASE_SOURCES)
        return version.content if version else ""

    def history(self, document_id: int) -> list[DocumentVersion]:
        return self.store.list_versions(document_id)

    def record_human_edit(
        self,
        document: Document,
        content: str,
        editor_id: str,
        change_summary: str | None = None,
    ) -> Document:
        """Apply a person's edit to the live content and record it.

        Marks the document as human-edited for good and remembers the
        editor as the recipient of later AI update notifications.
        """
        version = self.record(
            document.id,
            content,
            ChangeSource.HUMAN_EDITED,
            change_summary,
            author=editor_id,
        )
        return self.store.update_document(
            document.id,
            content=content,
            has_human_edits=True,
            last_human_edited_at=version.created_at,
            last_human_editor_id=editor_id,
        )

    def save_draft(
        self, document_id: int, content: str, author: str | None = None
    ) -> DocumentVersion:
        """Keep unpublished work; the live content is not touched."""
        return self.record(
            document_id, content, ChangeSource.DRAFT, "Draft", author
        )

    def diff(self, older: DocumentVersion, newer: DocumentVersion) -> str:
        return generate_diff(
            older.content,
            newer.content,
            label_old=f"v{older.id} ({older.change_source.value})",
            label_new=f"v{newer.id} ({newer.change_source.value})",
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
