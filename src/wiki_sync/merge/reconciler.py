"""Apply an AI proposal to an existing document without losing human edits.

Policy:

* Documents nobody edited by hand are simply overwritten (``ai_updated``).
* Human-edited documents are three-way merged against the last AI-produced
  version. A clean merge is published (``ai_merged``) and reviewed; a
  conflicting merge leaves the live content untouched, stores the proposal
  as an ``ai_merged`` version and flags the document for review.

Base, current and incoming are normalized first so formatting differences
never register as edits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..content.normalize import normalize_markdown
from ..content.versions import VersionStore, utcnow
from ..llm.client import CompletionService
from ..llm.usage import UsageTracker
from ..notifications import (
    NotificationDispatcher,
    NotificationEvent,
    notify_safely,
)
from ..pipeline.review import generate_review_annotations
from ..storage.base import DocumentStore
from ..sync.models import ChangeSource, Document, DocumentVersion
from .three_way import CleanMerge, ConflictingMerge, three_way_merge

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    OVERWRITTEN = "overwritten"
    MERGED = "merged"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class Reconciliation:
    """What happened to one document."""

    outcome: Outcome
    document: Document
    version: DocumentVersion
    conflict_count: int = 0


def conflict_summary(change_summary: str, conflict_count: int) -> str:
    return (
        f"[Conflict] {change_summary} ({conflict_count} conflict(s) detected "
        "-- human version kept as document content)"
    )


class Reconciler:
    """Reconciles AI proposals with live documents.

    Args:
        store: Document store.
        llm: Completion service for post-merge review; no review if None.
        dispatcher: Notification sink; nothing is sent if None.
        usage: Optional run usage tracker for review calls.
    """

    def __init__(
        self,
        store: DocumentStore,
        llm: CompletionService | None = None,
        dispatcher: NotificationDispatcher | None = None,
        usage: UsageTracker | None = None,
    ):
        self.store = store
        self.versions = VersionStore(store)
        self.llm = llm
        self.dispatcher = dispatcher
        self.usage = usage

    async def reconcile(
        self, document: Document, proposed: str, change_summary: str
    ) -> Reconciliation:
        """Apply ``proposed`` content to ``document`` under the merge policy.

        Args:
            document: Current state of the document.
            proposed: AI-proposed Markdown (normalized here).
            change_summary: Why the AI changed the document.

        Returns:
            The outcome with the refreshed document and the recorded version.
        """
        incoming = normalize_markdown(proposed)

        if not document.has_human_edits:
            updated = self.store.update_document(
                document.id, content=incoming, last_ai_generated_at=utcnow()
            )
            version = self.versions.record(
                document.id, incoming, ChangeSource.AI_UPDATED, change_summary
            )
            return Reconciliation(Outcome.OVERWRITTEN, updated, version)

        base = normalize_markdown(self.versions.merge_base(document.id))
        current = normalize_markdown(document.content)

        match three_way_merge(base, current, incoming):
            case CleanMerge(text=merged):
                updated = self.store.update_document(
                    document.id,
                    content=merged,
                    needs_review=False,
                    last_ai_generated_at=utcnow(),
                )
                version = self.versions.record(
                    document.id, merged, ChangeSource.AI_MERGED, change_summary
                )
                result = Reconciliation(Outcome.MERGED, updated, version)
                await self._review(result, incoming, current, change_summary)
            case ConflictingMerge(conflict_count=count):
                logger.warning(
                    "Merge of document %s produced %d conflict(s); "
                    "keeping human content",
                    document.slug,
                    count,
                )
                version = self.versions.record(
                    document.id,
                    incoming,
                    ChangeSource.AI_MERGED,
                    conflict_summary(change_summary, count),
                )
                updated = self.store.update_document(
                    document.id,
                    needs_review=True,
                    last_ai_generated_at=utcnow(),
                )
                result = Reconciliation(
                    Outcome.CONFLICT, updated, version, conflict_count=count
                )
                self._notify(
                    NotificationEvent.AI_CONFLICT, updated, change_summary
                )

        self._notify(
            NotificationEvent.AI_SYNC_UPDATE, result.document, change_summary
        )
        return result

    async def _review(
        self,
        result: Reconciliation,
        proposed: str,
        human: str,
        change_summary: str,
    ) -> None:
        if self.llm is None:
            return
        try:
            await generate_review_annotations(
                self.llm,
                self.store,
                document_id=result.document.id,
                version_id=result.version.id,
                merged_markdown=result.document.content,
                proposed_markdown=proposed,
                human_markdown=human,
                change_summary=change_summary,
                usage=self.usage,
            )
        except Exception as e:
            logger.error(
                "Review of merged document %s failed: %s",
                result.document.slug,
                e,
            )

    def _notify(
        self, event: NotificationEvent, document: Document, summary: str
    ) -> None:
        notify_safely(
            self.dispatcher,
            event,
            document.last_human_editor_id,
            {
                "document_id": document.id,
                "slug": document.slug,
                "title": document.title,
                "change_summary": summary,
            },
        )
