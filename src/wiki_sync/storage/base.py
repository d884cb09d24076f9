"""Read/write contract the sync pipeline needs from document storage.

The pipeline depends only on this protocol; ``SqliteStore`` is the bundled
implementation.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from ..sync.models import (
    Category,
    ChangeSource,
    Document,
    DocumentVersion,
    FileLink,
    ReviewAnnotation,
    RunStats,
    Severity,
    SourceFile,
    SyncRun,
    SyncStatus,
    TableLink,
    TriggerType,
)


class DocumentStore(Protocol):
    """Persistence operations used by the sync engine and pipeline."""

    # -- settings -------------------------------------------------------

    def get_setting(self, key: str) -> str | None: ...

    def set_setting(self, key: str, value: str) -> None: ...

    def get_inclusion_patterns(self) -> list[str]: ...

    def add_inclusion_pattern(self, pattern: str) -> None: ...

    def remove_inclusion_pattern(self, pattern: str) -> bool: ...

    # -- source files ---------------------------------------------------

    def list_source_files(self) -> list[SourceFile]: ...

    def insert_source_files(self, files: Sequence[tuple[str, str]]) -> None: ...

    def update_source_files(self, files: Sequence[tuple[str, str]]) -> None: ...

    def delete_source_files(self, paths: Sequence[str]) -> None: ...

    def set_file_summaries(self, summaries: Mapping[str, str]) -> None: ...

    # -- sync runs ------------------------------------------------------

    def try_acquire_run(self, trigger_type: TriggerType) -> int | None: ...

    def finish_run(
        self, run_id: int, status: SyncStatus, stats: RunStats
    ) -> None: ...

    def get_run(self, run_id: int) -> SyncRun | None: ...

    def get_running_run(self) -> SyncRun | None: ...

    def last_completed_run(self) -> SyncRun | None: ...

    def fail_running_run(self, message: str) -> int | None: ...

    def list_runs(self, limit: int = 20) -> list[SyncRun]: ...

    # -- categories -----------------------------------------------------

    def list_categories(self) -> list[Category]: ...

    def get_or_create_category(
        self, name: str, slug: str, parent_id: int | None = None
    ) -> Category: ...

    # -- documents ------------------------------------------------------

    def get_document(self, document_id: int) -> Document | None: ...

    def get_document_by_slug(self, slug: str) -> Document | None: ...

    def list_documents(self) -> list[Document]: ...

    def list_documents_for_files(
        self, paths: Sequence[str]
    ) -> dict[str, list[Document]]: ...

    def create_document(
        self,
        slug: str,
        title: str,
        content: str,
        category_id: int | None = None,
    ) -> Document: ...

    def update_document(self, document_id: int, **fields: Any) -> Document: ...

    def delete_document(self, document_id: int) -> bool: ...

    # -- versions -------------------------------------------------------

    def insert_version(
        self,
        document_id: int,
        content: str,
        change_source: ChangeSource,
        change_summary: str | None = None,
        author: str | None = None,
    ) -> DocumentVersion: ...

    def list_versions(self, document_id: int) -> list[DocumentVersion]: ...

    def get_last_version(
        self, document_id: int, sources: Sequence[ChangeSource]
    ) -> DocumentVersion | None: ...

    # -- links ----------------------------------------------------------

    def replace_file_links(
        self, document_id: int, links: Sequence[tuple[str, str | None]]
    ) -> None: ...

    def list_file_links(self, document_id: int) -> list[FileLink]: ...

    def replace_table_links(
        self,
        document_id: int,
        tables: Sequence[tuple[str, list[dict[str, str]] | None, str | None]],
    ) -> None: ...

    def list_table_links(self, document_id: int) -> list[TableLink]: ...

    # -- annotations ----------------------------------------------------

    def insert_annotation(
        self,
        document_id: int,
        section_heading: str,
        concern: str,
        severity: Severity,
        version_id: int | None = None,
    ) -> ReviewAnnotation: ...

    def list_annotations(self, document_id: int) -> list[ReviewAnnotation]: ...
