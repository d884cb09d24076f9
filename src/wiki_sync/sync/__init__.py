"""Repository-to-wiki synchronization runs.

A run takes the sync lock, lists the repository tree, classifies files
against the last synced state, and feeds the changed files through the
document pipeline (``wiki_sync.pipeline``).

Modules:

- ``engine``    -- ``SyncEngine``: orchestrates one run end to end.
- ``detector``  -- ``detect_changes`` / ``apply_changes``: tree vs. stored
  source files.
- ``lock``      -- ``SyncLock``: the single-active-run guarantee.
- ``schedule``  -- ``is_sync_due``: cron gate for scheduled runs.
- ``models``    -- persisted data contracts (runs, documents, versions).
- ``reporter``  -- human-readable and JSON run reports.

Only the models are re-exported here; import the other modules directly.

Usage example
-------------
::

    from wiki_sync.config import load_config
    from wiki_sync.storage import SqliteStore
    from wiki_sync.sync.engine import SyncEngine
    from wiki_sync.sync.reporter import format_run_report

    config = load_config()
    store = SqliteStore(config.db_path)

    run = await SyncEngine(store, config).run()
    print(format_run_report(run))
"""

from .models import (
    Category,
    ChangeSet,
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

__all__ = [
    "Category",
    "ChangeSet",
    "ChangeSource",
    "Document",
    "DocumentVersion",
    "FileLink",
    "ReviewAnnotation",
    "RunStats",
    "Severity",
    "SourceFile",
    "SyncRun",
    "SyncStatus",
    "TableLink",
    "TriggerType",
]
