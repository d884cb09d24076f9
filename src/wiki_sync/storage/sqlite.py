"""SQLite implementation of the document store.

Every operation opens its own connection, so one store instance can be
shared across threads and processes. Connections run in WAL mode with a
busy timeout, enforce foreign keys, commit on clean exit and roll back on
error.

The sync lock is the single ``sync_runs`` row whose status is
``running``. Acquisition is a conditional insert inside an immediate
transaction, backed by a partial unique index so that even a concurrent
writer that slips past the existence check fails with an integrity error
instead of creating a second running row.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

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

logger = logging.getLogger(__name__)

DELETE_CHUNK_SIZE = 100

_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_inclusions (
    pattern TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS source_files (
    path TEXT PRIMARY KEY,
    sha TEXT NOT NULL,
    last_synced_at TEXT,
    ai_summary TEXT
);

CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    status TEXT NOT NULL,
    trigger_type TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    files_processed INTEGER NOT NULL DEFAULT 0,
    documents_created INTEGER NOT NULL DEFAULT 0,
    documents_updated INTEGER NOT NULL DEFAULT 0,
    input_tokens INTEGER NOT NULL DEFAULT 0,
    output_tokens INTEGER NOT NULL DEFAULT 0,
    cost REAL NOT NULL DEFAULT 0,
    error_message TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_runs_single_running
    ON sync_runs(status) WHERE status = 'running';

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    parent_id INTEGER REFERENCES categories(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL,
    has_human_edits INTEGER NOT NULL DEFAULT 0,
    needs_review INTEGER NOT NULL DEFAULT 0,
    last_ai_generated_at TEXT,
    last_human_edited_at TEXT,
    last_human_editor_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS document_versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    change_source TEXT NOT NULL,
    change_summary TEXT,
    author TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_document_versions_document
    ON document_versions(document_id, id);

CREATE TRIGGER IF NOT EXISTS document_versions_immutable
    BEFORE UPDATE ON document_versions
BEGIN
    SELECT RAISE(ABORT, 'document versions are immutable');
END;

CREATE TABLE IF NOT EXISTS document_file_links (
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    relevance_explanation TEXT,
    PRIMARY KEY (document_id, file_path)
);

CREATE TABLE IF NOT EXISTS document_table_links (
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    table_name TEXT NOT NULL,
    columns TEXT,
    relevance_explanation TEXT,
    PRIMARY KEY (document_id, table_name)
);

CREATE TABLE IF NOT EXISTS review_annotations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    version_id INTEGER REFERENCES document_versions(id) ON DELETE SET NULL,
    section_heading TEXT NOT NULL,
    concern TEXT NOT NULL,
    severity TEXT NOT NULL,
    dismissed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
"""

# Columns update_document() may change; slug is immutable.
_UPDATABLE_DOCUMENT_FIELDS = frozenset(
    {
        "title",
        "content",
        "category_id",
        "has_human_edits",
        "needs_review",
        "last_ai_generated_at",
        "last_human_edited_at",
        "last_human_editor_id",
    }
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(value: Any) -> Any:
    match value:
        case datetime() as dt:
            return dt.isoformat()
        case bool() as flag:
            return int(flag)
        case _:
            return value


class SqliteStore:
    """Document store backed by a single SQLite database file.

    Args:
        db_path: Path of the database file; parent directories are created.
        busy_timeout_ms: How long a writer waits for a competing lock.
    """

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = 30000):
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.initialize()

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection; commit on success, roll back on error."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create tables, indexes and triggers if they do not exist."""
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def get_inclusion_patterns(self) -> list[str]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT pattern FROM sync_inclusions ORDER BY pattern"
            ).fetchall()
        return [r["pattern"] for r in rows]

    def add_inclusion_pattern(self, pattern: str) -> None:
        with self._get_conn() as conn:
            try:
                conn.execute(
                    "INSERT INTO sync_inclusions (pattern) VALUES (?)",
                    (pattern,),
                )
            except sqlite3.IntegrityError:
                logger.debug("Inclusion pattern already present: %s", pattern)

    def remove_inclusion_pattern(self, pattern: str) -> bool:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM sync_inclusions WHERE pattern = ?", (pattern,)
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Source files
    # ------------------------------------------------------------------

    def list_source_files(self) -> list[SourceFile]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT path, sha, last_synced_at, ai_summary FROM source_files"
            ).fetchall()
        return [SourceFile.model_validate(dict(r)) for r in rows]

    def insert_source_files(self, files: Sequence[tuple[str, str]]) -> None:
        if not files:
            return
        now = _now()
        with self._get_conn() as conn:
            conn.executemany(
                "INSERT INTO source_files (path, sha, last_synced_at) "
                "VALUES (?, ?, ?)",
                [(path, sha, now) for path, sha in files],
            )

    def update_source_files(self, files: Sequence[tuple[str, str]]) -> None:
        if not files:
            return
        now = _now()
        with self._get_conn() as conn:
            conn.executemany(
                "UPDATE source_files SET sha = ?, last_synced_at = ? "
                "WHERE path = ?",
                [(sha, now, path) for path, sha in files],
            )

    def delete_source_files(self, paths: Sequence[str]) -> None:
        """Delete tracked paths in chunks to stay under SQLite's variable limit."""
        if not paths:
            return
        with self._get_conn() as conn:
            for start in range(0, len(paths), DELETE_CHUNK_SIZE):
                chunk = list(paths[start : start + DELETE_CHUNK_SIZE])
                placeholders = ", ".join("?" for _ in chunk)
                conn.execute(
                    f"DELETE FROM source_files WHERE path IN ({placeholders})",
                    chunk,
                )

    def set_file_summaries(self, summaries: Mapping[str, str]) -> None:
        """Store per-file AI summaries on tracked source files."""
        if not summaries:
            return
        with self._get_conn() as conn:
            conn.executemany(
                "UPDATE source_files SET ai_summary = ? WHERE path = ?",
                [(summary, path) for path, summary in summaries.items()],
            )

    # ------------------------------------------------------------------
    # Sync runs (the sync lock)
    # ------------------------------------------------------------------

    def try_acquire_run(self, trigger_type: TriggerType) -> int | None:
        """Insert a running sync run unless one is already running.

        Returns:
            The new run id, or None when another run holds the lock.
        """
        with self._get_conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    "INSERT INTO sync_runs (status, trigger_type, started_at) "
                    "SELECT ?, ?, ? WHERE NOT EXISTS "
                    "(SELECT 1 FROM sync_runs WHERE status = ?)",
                    (
                        SyncStatus.RUNNING.value,
                        TriggerType(trigger_type).value,
                        _now(),
                        SyncStatus.RUNNING.value,
                    ),
                )
            except sqlite3.IntegrityError:
                return None
            if cursor.rowcount == 0:
                return None
            return cursor.lastrowid

    def finish_run(
        self, run_id: int, status: SyncStatus, stats: RunStats
    ) -> None:
        """Move a running run to its terminal status and record its counters."""
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE sync_runs SET status = ?, completed_at = ?, "
                "files_processed = ?, documents_created = ?, "
                "documents_updated = ?, input_tokens = ?, output_tokens = ?, "
                "cost = ?, error_message = ? "
                "WHERE id = ? AND status = ?",
                (
                    SyncStatus(status).value,
                    _now(),
                    stats.files_processed,
                    stats.documents_created,
                    stats.documents_updated,
                    stats.input_tokens,
                    stats.output_tokens,
                    stats.cost,
                    stats.error_message,
                    run_id,
                    SyncStatus.RUNNING.value,
                ),
            )

    def get_run(self, run_id: int) -> SyncRun | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM sync_runs WHERE id = ?", (run_id,)
            ).fetchone()
        return SyncRun.model_validate(dict(row)) if row else None

    def get_running_run(self) -> SyncRun | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM sync_runs WHERE status = ?",
                (SyncStatus.RUNNING.value,),
            ).fetchone()
        return SyncRun.model_validate(dict(row)) if row else None

    def last_completed_run(self) -> SyncRun | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM sync_runs WHERE status = ? "
                "ORDER BY completed_at DESC, id DESC LIMIT 1",
                (SyncStatus.COMPLETED.value,),
            ).fetchone()
        return SyncRun.model_validate(dict(row)) if row else None

    def fail_running_run(self, message: str) -> int | None:
        """Mark the currently running run as failed, releasing the lock.

        Operator escape hatch for a run whose process died mid-flight;
        never called automatically.

        Returns:
            Id of the run that was released, or None if none was running.
        """
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT id FROM sync_runs WHERE status = ?",
                (SyncStatus.RUNNING.value,),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                "UPDATE sync_runs SET status = ?, completed_at = ?, "
                "error_message = ? WHERE id = ?",
                (SyncStatus.FAILED.value, _now(), message, row["id"]),
            )
        return row["id"]

    def list_runs(self, limit: int = 20) -> list[SyncRun]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [SyncRun.model_validate(dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self) -> list[Category]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT id, name, slug, parent_id FROM categories ORDER BY id"
            ).fetchall()
        return [Category.model_validate(dict(r)) for r in rows]

    def get_or_create_category(
        self, name: str, slug: str, parent_id: int | None = None
    ) -> Category:
        """Insert a category if its slug is free, else return the existing one."""
        with self._get_conn() as conn:
            try:
                conn.execute(
                    "INSERT INTO categories (name, slug, parent_id) "
                    "VALUES (?, ?, ?)",
                    (name, slug, parent_id),
                )
            except sqlite3.IntegrityError:
                logger.debug("Category %s already exists, fetching", slug)
            row = conn.execute(
                "SELECT id, name, slug, parent_id FROM categories "
                "WHERE slug = ?",
                (slug,),
            ).fetchone()
        return Category.model_validate(dict(row))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def get_document(self, document_id: int) -> Document | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
        return Document.model_validate(dict(row)) if row else None

    def get_document_by_slug(self, slug: str) -> Document | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE slug = ?", (slug,)
            ).fetchone()
        return Document.model_validate(dict(row)) if row else None

    def list_documents(self) -> list[Document]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM documents ORDER BY slug"
            ).fetchall()
        return [Document.model_validate(dict(r)) for r in rows]

    def list_documents_for_files(
        self, paths: Sequence[str]
    ) -> dict[str, list[Document]]:
        """Map each path to the documents currently linked to it."""
        if not paths:
            return {}
        linked: dict[str, list[Document]] = {}
        with self._get_conn() as conn:
            for start in range(0, len(paths), DELETE_CHUNK_SIZE):
                chunk = list(paths[start : start + DELETE_CHUNK_SIZE])
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    "SELECT l.file_path AS link_path, d.* "
                    "FROM document_file_links l "
                    "JOIN documents d ON d.id = l.document_id "
                    f"WHERE l.file_path IN ({placeholders})",
                    chunk,
                ).fetchall()
                for row in rows:
                    data = dict(row)
                    path = data.pop("link_path")
                    linked.setdefault(path, []).append(
                        Document.model_validate(data)
                    )
        return linked

    def create_document(
        self,
        slug: str,
        title: str,
        content: str,
        category_id: int | None = None,
    ) -> Document:
        now = _now()
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO documents (slug, title, content, category_id, "
                "last_ai_generated_at, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (slug, title, content, category_id, now, now, now),
            )
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return Document.model_validate(dict(row))

    def update_document(self, document_id: int, **fields: Any) -> Document:
        """Update selected document columns and return the fresh record.

        Raises:
            ValueError: For unknown or immutable columns (such as ``slug``).
            KeyError: If the document does not exist.
        """
        unknown = set(fields) - _UPDATABLE_DOCUMENT_FIELDS
        if unknown:
            raise ValueError(
                f"Cannot update document fields: {', '.join(sorted(unknown))}"
            )
        assignments = [f"{name} = ?" for name in fields] + ["updated_at = ?"]
        values = [_to_db(v) for v in fields.values()] + [_now(), document_id]
        with self._get_conn() as conn:
            conn.execute(
                f"UPDATE documents SET {', '.join(assignments)} WHERE id = ?",
                values,
            )
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
        if row is None:
            raise KeyError(f"Document {document_id} not found")
        return Document.model_validate(dict(row))

    def delete_document(self, document_id: int) -> bool:
        """Delete a document; versions, links and annotations cascade."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE id = ?", (document_id,)
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def insert_version(
        self,
        document_id: int,
        content: str,
        change_source: ChangeSource,
        change_summary: str | None = None,
        author: str | None = None,
    ) -> DocumentVersion:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO document_versions (document_id, content, "
                "change_source, change_summary, author, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    document_id,
                    content,
                    ChangeSource(change_source).value,
                    change_summary,
                    author,
                    _now(),
                ),
            )
            row = conn.execute(
                "SELECT * FROM document_versions WHERE id = ?",
                (cursor.lastrowid,),
            ).fetchone()
        return DocumentVersion.model_validate(dict(row))

    def list_versions(self, document_id: int) -> list[DocumentVersion]:
        """Return a document's versions, oldest first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM document_versions WHERE document_id = ? "
                "ORDER BY id",
                (document_id,),
            ).fetchall()
        return [DocumentVersion.model_validate(dict(r)) for r in rows]

    def get_last_version(
        self, document_id: int, sources: Sequence[ChangeSource]
    ) -> DocumentVersion | None:
        if not sources:
            return None
        placeholders = ", ".join("?" for _ in sources)
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM document_versions WHERE document_id = ? "
                f"AND change_source IN ({placeholders}) "
                "ORDER BY id DESC LIMIT 1",
                (document_id, *(ChangeSource(s).value for s in sources)),
            ).fetchone()
        return DocumentVersion.model_validate(dict(row)) if row else None

    # ------------------------------------------------------------------
    # File / table links
    # ------------------------------------------------------------------

    def replace_file_links(
        self, document_id: int, links: Sequence[tuple[str, str | None]]
    ) -> None:
        """Replace all file links of a document (delete, then reinsert).

        A duplicate path on reinsert is an idempotent no-op.
        """
        with self._get_conn() as conn:
            conn.execute(
                "DELETE FROM document_file_links WHERE document_id = ?",
                (document_id,),
            )
            for file_path, relevance in links:
                try:
                    conn.execute(
                        "INSERT INTO document_file_links "
                        "(document_id, file_path, relevance_explanation) "
                        "VALUES (?, ?, ?)",
                        (document_id, file_path, relevance),
                    )
                except sqlite3.IntegrityError:
                    logger.debug(
                        "File link %s already present for document %d",
                        file_path,
                        document_id,
                    )

    def list_file_links(self, document_id: int) -> list[FileLink]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM document_file_links WHERE document_id = ? "
                "ORDER BY file_path",
                (document_id,),
            ).fetchall()
        return [FileLink.model_validate(dict(r)) for r in rows]

    def replace_table_links(
        self,
        document_id: int,
        tables: Sequence[tuple[str, list[dict[str, str]] | None, str | None]],
    ) -> None:
        """Replace all table links of a document (delete, then reinsert)."""
        with self._get_conn() as conn:
            conn.execute(
                "DELETE FROM document_table_links WHERE document_id = ?",
                (document_id,),
            )
            for table_name, columns, relevance in tables:
                try:
                    conn.execute(
                        "INSERT INTO document_table_links "
                        "(document_id, table_name, columns, "
                        "relevance_explanation) VALUES (?, ?, ?, ?)",
                        (
                            document_id,
                            table_name,
                            json.dumps(columns) if columns is not None else None,
                            relevance,
                        ),
                    )
                except sqlite3.IntegrityError:
                    logger.debug(
                        "Table link %s already present for document %d",
                        table_name,
                        document_id,
                    )

    def list_table_links(self, document_id: int) -> list[TableLink]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM document_table_links WHERE document_id = ? "
                "ORDER BY table_name",
                (document_id,),
            ).fetchall()
        links = []
        for row in rows:
            data = dict(row)
            if data["columns"] is not None:
                data["columns"] = json.loads(data["columns"])
            links.append(TableLink.model_validate(data))
        return links

    # ------------------------------------------------------------------
    # Review annotations
    # ------------------------------------------------------------------

    def insert_annotation(
        self,
        document_id: int,
        section_heading: str,
        concern: str,
        severity: Severity,
        version_id: int | None = None,
    ) -> ReviewAnnotation:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO review_annotations (document_id, version_id, "
                "section_heading, concern, severity, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    document_id,
                    version_id,
                    section_heading,
                    concern,
                    Severity(severity).value,
                    _now(),
                ),
            )
            row = conn.execute(
                "SELECT * FROM review_annotations WHERE id = ?",
                (cursor.lastrowid,),
            ).fetchone()
        return ReviewAnnotation.model_validate(dict(row))

    def list_annotations(
        self, document_id: int, include_dismissed: bool = False
    ) -> list[ReviewAnnotation]:
        query = "SELECT * FROM review_annotations WHERE document_id = ?"
        if not include_dismissed:
            query += " AND dismissed = 0"
        with self._get_conn() as conn:
            rows = conn.execute(query + " ORDER BY id", (document_id,)).fetchall()
        return [ReviewAnnotation.model_validate(dict(r)) for r in rows]
