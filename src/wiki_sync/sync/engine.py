"""Sync engine that runs one repository-to-wiki synchronization.

The ``SyncEngine`` ties together the sync lock, the source client, the
change detector and the document pipeline. A run:

1. Acquires the sync lock (a second concurrent run is refused).
2. Resolves and validates settings; missing credentials fail the run.
3. Lists the repository tree and filters it by the inclusion patterns.
4. Classifies files against the stored state and records the new state.
5. Fetches the changed files and runs the document pipeline on them.
6. Releases the lock with counters, usage and errors, on every path.

Failures of individual documents are collected on the run; anything that
stops the run marks it failed. Callers always get the run record back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import Config
from ..core.async_utils import run_sync
from ..core.retry import with_retry
from ..llm.client import (
    OPENROUTER_API_URL,
    CompletionService,
    OpenRouterClient,
)
from ..llm.usage import UsageTracker
from ..notifications import LoggingDispatcher, NotificationDispatcher
from ..pipeline.orchestrator import DocumentPipeline, PipelineResult
from ..settings import SyncSettings, resolve_sync_settings
from ..source.client import GitHubClient, SourceClient, parse_repo_url
from ..source.fetch import fetch_file_contents
from ..storage.base import DocumentStore
from .detector import apply_changes, detect_changes
from .lock import SyncLock
from .models import RunStats, SyncRun, SyncStatus, TriggerType
from .schedule import is_sync_due

logger = logging.getLogger(__name__)

LogSink = Callable[[str], None]
SourceFactory = Callable[[SyncSettings], SourceClient]
LLMFactory = Callable[[SyncSettings], CompletionService]


def default_source_factory(settings: SyncSettings) -> SourceClient:
    return GitHubClient(
        settings.github_token or "",
        parse_repo_url(settings.repo_url or "", settings.branch),
    )


def default_llm_factory(settings: SyncSettings) -> CompletionService:
    return OpenRouterClient(
        settings.openrouter_api_key or "",
        settings.model or "",
        base_url=settings.openrouter_url or OPENROUTER_API_URL,
    )


class SyncEngine:
    """Run synchronizations against one document store.

    Args:
        store: Document store (also holds settings and the sync lock).
        config: Process configuration; store settings override it.
        source_factory: Builds the source client from resolved settings.
        llm_factory: Builds the completion service from resolved settings.
        dispatcher: Notification sink for AI changes to edited documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Config,
        source_factory: SourceFactory = default_source_factory,
        llm_factory: LLMFactory = default_llm_factory,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.source_factory = source_factory
        self.llm_factory = llm_factory
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.lock = SyncLock(store)

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def is_due(self) -> bool:
        """Check the configured cron schedule against the last completed run."""
        settings = resolve_sync_settings(self.store, self.config)
        last = self.store.last_completed_run()
        return is_sync_due(
            settings.cron_schedule, last.completed_at if last else None
        )

    async def run(
        self,
        trigger: TriggerType = TriggerType.MANUAL,
        on_log: LogSink | None = None,
    ) -> SyncRun | None:
        """Execute one sync run.

        Args:
            trigger: What started the run.
            on_log: Optional sink receiving progress lines in order.

        Returns:
            The finished run record (completed or failed), or None when
            another run holds the sync lock. When the lock itself cannot be
            taken, the failed record is returned without being stored.
        """
        emit = _Progress(on_log)
        try:
            run_id = self.lock.acquire(trigger)
        except Exception as exc:
            logger.error("Could not acquire the sync lock: %s", exc)
            reason = str(exc) or type(exc).__name__
            error = f"Could not acquire the sync lock: {reason}"
            emit(f"Sync failed: {error}")
            now = datetime.now(timezone.utc)
            # id 0: the store could not record this run.
            return SyncRun(
                id=0,
                status=SyncStatus.FAILED,
                trigger_type=trigger,
                started_at=now,
                completed_at=now,
                error_message=error,
            )
        if run_id is None:
            emit("Sync already in progress; run refused")
            return None

        emit(f"Started {trigger.value} sync run {run_id}")
        usage = UsageTracker()
        status = SyncStatus.FAILED
        files_processed = 0
        result: PipelineResult | None = None
        error: str | None = None
        try:
            files_processed, result = await self._execute(usage, emit)
            status = SyncStatus.COMPLETED
        except Exception as exc:
            logger.error("Sync run %d failed: %s", run_id, exc)
            error = str(exc) or type(exc).__name__
            emit(f"Sync failed: {error}")
        finally:
            total = usage.total
            messages = [error, result.error_message if result else None]
            self.lock.release(
                run_id,
                status,
                RunStats(
                    files_processed=files_processed,
                    documents_created=result.documents_created if result else 0,
                    documents_updated=result.documents_updated if result else 0,
                    input_tokens=total.input_tokens,
                    output_tokens=total.output_tokens,
                    cost=total.cost,
                    error_message=" | ".join(m for m in messages if m) or None,
                ),
            )

        emit(f"Sync run {run_id} {status.value}")
        return self.store.get_run(run_id)

    # ------------------------------------------------------------------
    # Run body
    # ------------------------------------------------------------------

    async def _execute(
        self, usage: UsageTracker, emit: _Progress
    ) -> tuple[int, PipelineResult | None]:
        settings = resolve_sync_settings(self.store, self.config)
        settings.validate()
        source = self.source_factory(settings)
        llm = self.llm_factory(settings)

        emit("Fetching repository tree")
        entries = await run_sync(with_retry, source.fetch_tree)
        patterns = self.store.get_inclusion_patterns()
        if not patterns:
            emit("No inclusion patterns configured; nothing is synchronized")

        changes = detect_changes(entries, self.store.list_source_files(), patterns)
        emit(
            f"Detected {len(changes.added)} added, {len(changes.modified)} "
            f"modified, {len(changes.removed)} removed file(s)"
        )
        files_processed = apply_changes(self.store, changes, entries)
        if not changes.changed:
            emit("No content changes to analyze")
            return files_processed, None

        contents = await fetch_file_contents(
            source, changes.changed, settings.max_parallel_fetches
        )
        emit(f"Fetched {len(contents)} of {len(changes.changed)} changed file(s)")

        pipeline = DocumentPipeline(
            self.store, llm, settings, self.dispatcher, usage
        )
        result = await pipeline.run(contents)
        emit(
            f"Documents: {result.documents_created} created, "
            f"{result.documents_updated} updated, {len(result.errors)} error(s)"
        )
        if result.summary:
            emit(f"Summary: {result.summary}")
        return files_processed, result


class _Progress:
    """Writes progress lines to the log and to an optional caller sink."""

    def __init__(self, sink: LogSink | None):
        self.sink = sink

    def __call__(self, message: str) -> None:
        logger.info(message)
        if self.sink is None:
            return
        try:
            self.sink(message)
        except Exception as e:
            logger.warning("Progress sink failed, detaching it: %s", e)
            self.sink = None
