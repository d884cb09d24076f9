"""Pydantic models for the documentation sync pipeline.

Defines the persisted data contracts shared by the store, the sync engine,
and the reconciliation engine:

- ``SyncStatus``, ``TriggerType``: run lifecycle enums.
- ``SourceFile``: last-synced state of one repository file.
- ``ChangeSet``: added/modified/removed classification of a tree snapshot.
- ``SyncRun``: one synchronization run (also the persisted sync lock).
- ``RunStats``: counters written when a run is released.
- ``ChangeSource``, ``Document``, ``DocumentVersion``: documents and their
  append-only history.
- ``Category``, ``FileLink``, ``TableLink``: document metadata.
- ``Severity``, ``ReviewAnnotation``: advisory notes on merged content.

All persisted records are frozen (immutable); updates go through the store
and return fresh instances.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    """Lifecycle states of a sync run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerType(str, Enum):
    """What started a sync run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ChangeSource(str, Enum):
    """Producer of a document version."""

    AI_GENERATED = "ai_generated"
    AI_UPDATED = "ai_updated"
    HUMAN_EDITED = "human_edited"
    AI_MERGED = "ai_merged"
    DRAFT = "draft"


AI_BASE_SOURCES = (ChangeSource.AI_GENERATED, ChangeSource.AI_UPDATED)
"""Change sources whose content can serve as the merge base."""


class Severity(str, Enum):
    """Severity of a review annotation."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ------------------------------------------------------------------
# Source tracking
# ------------------------------------------------------------------


class SourceFile(BaseModel):
    """Stored metadata for one tracked repository file.

    Attributes:
        path: Repository-relative path (unique).
        sha: Content hash reported by the source provider.
        last_synced_at: When the hash was last recorded.
        ai_summary: Short AI description of the file, if generated.
    """

    path: str
    sha: str
    last_synced_at: datetime | None = None
    ai_summary: str | None = None

    model_config = {"frozen": True}


class ChangeSet(BaseModel):
    """Classification of a remote tree against stored source files."""

    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def changed(self) -> list[str]:
        """Paths whose content must be (re)analyzed."""
        return [*self.added, *self.modified]

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.removed)

    def is_empty(self) -> bool:
        return self.total == 0


# ------------------------------------------------------------------
# Sync runs
# ------------------------------------------------------------------


class RunStats(BaseModel):
    """Counters recorded on a run when its lock is released."""

    files_processed: int = 0
    documents_created: int = 0
    documents_updated: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    error_message: str | None = None

    model_config = {"frozen": True}


class SyncRun(BaseModel):
    """One synchronization run.

    The row with ``status == RUNNING`` is the process-wide sync lock: at
    most one may exist at any time.
    """

    id: int
    status: SyncStatus
    trigger_type: TriggerType
    started_at: datetime
    completed_at: datetime | None = None
    files_processed: int = 0
    documents_created: int = 0
    documents_updated: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    error_message: str | None = None

    model_config = {"frozen": True}


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------


class Category(BaseModel):
    """A node of the document category tree."""

    id: int
    name: str
    slug: str
    parent_id: int | None = None

    model_config = {"frozen": True}


class Document(BaseModel):
    """A wiki document and its review/edit flags.

    Attributes:
        slug: Stable unique identifier; never changes after creation.
        content: Live Markdown shown to readers.
        has_human_edits: Set once a human_edited version is recorded;
            never cleared automatically.
        needs_review: Set when an AI update conflicted with human edits.
        last_human_editor_id: Recipient for AI update/conflict notifications.
    """

    id: int
    slug: str
    title: str
    content: str = ""
    category_id: int | None = None
    has_human_edits: bool = False
    needs_review: bool = False
    last_ai_generated_at: datetime | None = None
    last_human_edited_at: datetime | None = None
    last_human_editor_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True}


class DocumentVersion(BaseModel):
    """Immutable snapshot of a document's content."""

    id: int
    document_id: int
    content: str
    change_source: ChangeSource
    change_summary: str | None = None
    author: str | None = None
    created_at: datetime

    model_config = {"frozen": True}


class FileLink(BaseModel):
    """Association between a document and a source file it describes."""

    document_id: int
    file_path: str
    relevance_explanation: str | None = None

    model_config = {"frozen": True}


class TableLink(BaseModel):
    """Association between a document and a database table it describes."""

    document_id: int
    table_name: str
    columns: list[dict[str, str]] | None = None
    relevance_explanation: str | None = None

    model_config = {"frozen": True}


class ReviewAnnotation(BaseModel):
    """Advisory note about merged content; never changes the content itself."""

    id: int
    document_id: int
    version_id: int | None = None
    section_heading: str
    concern: str
    severity: Severity
    dismissed: bool = False
    created_at: datetime

    model_config = {"frozen": True}
