"""Run the document pipeline over one change set.

Analysis runs in a single pass for small change sets and in three stages
(summarize, plan, analyze per group) for large ones. Proposals are then
consolidated and applied to the wiki one at a time: new documents are
created, existing ones go through the ``Reconciler``.

A failing document never stops the others; its error is collected on
the ``PipelineResult`` and ends up on the sync run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from ..content.normalize import normalize_markdown
from ..content.slugs import ensure_unique_slug, generate_slug
from ..content.versions import VersionStore
from ..core.async_utils import gather_bounded
from ..llm.client import CompletionService
from ..llm.prompts import GroupScope, build_document_index
from ..llm.schemas import (
    AnalysisResponse,
    DocumentPlan,
    Group,
    GroupPlan,
    PlanAction,
)
from ..llm.usage import UsageTracker
from ..merge.reconciler import Reconciler
from ..notifications import NotificationDispatcher
from ..settings import SyncSettings
from ..storage.base import DocumentStore
from ..sync.models import Category, ChangeSource, Document
from .analyzer import (
    NO_CHANGES_SUMMARY,
    AnalysisContext,
    analyze_changes,
    exceeds_single_pass,
    merge_responses,
)
from .consolidator import consolidate_proposals
from .generator import generate_content
from .planner import FileSummary, LinkedDocument, plan_groups
from .summarizer import summarize_files

logger = logging.getLogger(__name__)

GROUP_CONCURRENCY = 2
ERROR_PREFIX = "[AI Pipeline] "
NO_RESULTS_SUMMARY = "Multi-stage pipeline produced no results."
DEFAULT_FILE_RELEVANCE = "Related source file"
DEFAULT_TABLE_RELEVANCE = "Related database table"


@dataclass
class PipelineResult:
    """Counters and errors of one pipeline pass."""

    documents_created: int = 0
    documents_updated: int = 0
    errors: list[str] = field(default_factory=list)
    summary: str = ""

    @property
    def error_message(self) -> str | None:
        if not self.errors:
            return None
        return ERROR_PREFIX + "; ".join(self.errors)


class DocumentPipeline:
    """Analysis, consolidation and application of document proposals.

    Args:
        store: Document store.
        llm: Completion service for every stage.
        settings: Resolved run settings (models and prompts).
        dispatcher: Notification sink for updates to human-edited documents.
        usage: Run usage tracker.
    """

    def __init__(
        self,
        store: DocumentStore,
        llm: CompletionService,
        settings: SyncSettings,
        dispatcher: NotificationDispatcher | None = None,
        usage: UsageTracker | None = None,
    ):
        self.store = store
        self.llm = llm
        self.settings = settings
        self.usage = usage or UsageTracker()
        self.versions = VersionStore(store)
        self.reconciler = Reconciler(store, llm, dispatcher, self.usage)

    async def run(self, files: Mapping[str, str]) -> PipelineResult:
        """Analyze changed files and apply the resulting documents.

        Args:
            files: Contents of the added and modified files, keyed by path.

        Returns:
            Created/updated counts and per-document errors.
        """
        result = PipelineResult()
        if not files:
            result.summary = NO_CHANGES_SUMMARY
            return result

        categories = self.store.list_categories()
        context = AnalysisContext(
            categories=categories,
            document_index=build_document_index(
                self.store.list_documents(), categories
            ),
            analysis_prompt=self.settings.analysis_prompt,
            style_prompt=self.settings.article_style_prompt,
        )

        if exceeds_single_pass(files):
            logger.info(
                "Running multi-stage analysis over %d file(s)", len(files)
            )
            analysis = await self._analyze_multi_stage(files, context)
        else:
            analysis = await analyze_changes(
                self.llm, files, context, usage=self.usage
            )
            await self._refresh_summaries(files)
        result.summary = analysis.summary

        plans = await consolidate_proposals(
            self.llm,
            analysis.documents,
            style_prompt=self.settings.article_style_prompt,
            consolidation_prompt=self.settings.consolidation_prompt,
            model=self.settings.consolidation_model or self.settings.model,
            usage=self.usage,
        )
        logger.info("Applying %d document proposal(s)", len(plans))

        known_paths = {f.path for f in self.store.list_source_files()}
        run_categories = list(categories)
        for plan in plans:
            try:
                await self.apply(plan, run_categories, known_paths, result)
            except Exception as e:
                logger.error("Failed to apply document %s: %s", plan.slug, e)
                result.errors.append(f"{plan.slug}: {e}")
        return result

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def _summarize(self, files: Mapping[str, str]) -> dict[str, str]:
        summary_model = self.settings.summary_model
        return await summarize_files(
            self.llm if summary_model else None,
            files,
            prompt=self.settings.file_summary_prompt,
            model=summary_model,
            usage=self.usage,
        )

    def _store_summaries(self, summaries: Mapping[str, str]) -> None:
        try:
            self.store.set_file_summaries(summaries)
        except Exception as e:
            logger.warning("Failed to store file summaries: %s", e)

    async def _refresh_summaries(self, files: Mapping[str, str]) -> None:
        if not self.settings.summary_model:
            return
        try:
            summaries = await self._summarize(files)
        except Exception as e:
            logger.warning("Failed to summarize changed files: %s", e)
            return
        self._store_summaries(summaries)

    async def _analyze_multi_stage(
        self, files: Mapping[str, str], context: AnalysisContext
    ) -> AnalysisResponse:
        summaries = await self._summarize(files)
        self._store_summaries(summaries)

        links = {
            path: [LinkedDocument(d.slug, d.title) for d in docs]
            for path, docs in self.store.list_documents_for_files(
                list(files)
            ).items()
        }
        plan = await plan_groups(
            self.llm,
            [FileSummary(path, text) for path, text in summaries.items()],
            context.categories,
            context.document_index,
            links,
            self.usage,
        )
        if plan.is_empty():
            logger.warning(
                "Planning produced no groups, falling back to single pass"
            )
            return await analyze_changes(
                self.llm, files, context, usage=self.usage
            )

        shared = {
            p: summaries[p] for p in plan.shared_context_files if p in summaries
        }
        results = await gather_bounded(
            [
                lambda g=group: self._analyze_group(
                    g, plan, files, shared, links, context
                )
                for group in plan.groups
            ],
            GROUP_CONCURRENCY,
        )

        responses: list[AnalysisResponse] = []
        for group, outcome in zip(plan.groups, results):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Analysis of group %s failed: %s", group.id, outcome
                )
            else:
                responses.append(outcome)
        if not responses:
            return AnalysisResponse(summary=NO_RESULTS_SUMMARY)
        return merge_responses(responses)

    async def _analyze_group(
        self,
        group: Group,
        plan: GroupPlan,
        files: Mapping[str, str],
        shared: Mapping[str, str],
        links: Mapping[str, Sequence[LinkedDocument]],
        context: AnalysisContext,
    ) -> AnalysisResponse:
        group_files = {p: files[p] for p in group.files if p in files}
        if not group_files:
            return AnalysisResponse(
                summary=f"Group {group.id} had no resolvable files."
            )
        scope = GroupScope(
            group_id=group.id,
            description=group.description,
            proposed_documents=tuple(
                (d.slug, d.title, d.action.value)
                for d in group.proposed_documents
            ),
            shared_context=shared,
            linked_documents={
                p: [(d.slug, d.title) for d in links[p]]
                for p in group_files
                if p in links
            },
            sibling_groups=tuple(
                (g.id, g.description) for g in plan.groups if g.id != group.id
            ),
        )
        return await analyze_changes(
            self.llm, group_files, context, scope, self.usage
        )

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def resolve_category(
        self,
        suggestion: str | None,
        categories: list[Category],
        parent_id: int | None = None,
    ) -> Category | None:
        """Find or create the category named by ``suggestion``.

        Matches slug or name case-insensitively; creates the category
        otherwise and appends it to ``categories`` for the rest of the run.
        """
        name = (suggestion or "").strip()
        if not name:
            return None
        lowered = name.lower()
        for category in categories:
            if lowered in (category.slug.lower(), category.name.lower()):
                return category
        slug = generate_slug(name)
        if not slug:
            return None
        category = self.store.get_or_create_category(
            name[0].upper() + name[1:], slug, parent_id
        )
        logger.info("Using new category %s", category.slug)
        categories.append(category)
        return category

    async def apply(
        self,
        plan: DocumentPlan,
        categories: list[Category],
        known_paths: set[str],
        result: PipelineResult,
    ) -> Document:
        """Create or update the document described by ``plan``."""
        category = self.resolve_category(plan.category_suggestion, categories)
        if category is not None and plan.subcategory_suggestion:
            category = (
                self.resolve_category(
                    plan.subcategory_suggestion, categories, category.id
                )
                or category
            )
        category_id = category.id if category is not None else None

        for conflict in plan.conflicts_with_human_edits:
            logger.warning(
                "Human-edit conflict reported for %s: %s", plan.slug, conflict
            )

        existing = None
        if plan.action == PlanAction.UPDATE:
            existing = self.store.get_document_by_slug(plan.slug)
            if existing is None:
                logger.info("Document %s not found, creating it", plan.slug)

        if existing is None:
            document = await self._create(plan, category_id)
            result.documents_created += 1
        else:
            document = await self._update(existing, plan, category_id)
            result.documents_updated += 1
        self._write_links(document.id, plan, known_paths)
        return document

    async def _create(
        self, plan: DocumentPlan, category_id: int | None
    ) -> Document:
        content = normalize_markdown(
            await generate_content(
                self.llm, plan, self.settings.article_style_prompt, self.usage
            )
        )
        slug = ensure_unique_slug(
            generate_slug(plan.slug) or generate_slug(plan.title) or "document",
            lambda s: self.store.get_document_by_slug(s) is not None,
        )
        document = self.store.create_document(
            slug, plan.title, content, category_id
        )
        self.versions.record(
            document.id,
            content,
            ChangeSource.AI_GENERATED,
            plan.change_summary or "Initial AI-generated version",
        )
        logger.info("Created document %s", slug)
        return document

    async def _update(
        self, document: Document, plan: DocumentPlan, category_id: int | None
    ) -> Document:
        content = await generate_content(
            self.llm, plan, self.settings.article_style_prompt, self.usage
        )
        outcome = await self.reconciler.reconcile(
            document,
            content,
            plan.change_summary or "Updated from source changes",
        )
        updated = outcome.document
        if updated.category_id is None and category_id is not None:
            updated = self.store.update_document(
                updated.id, category_id=category_id
            )
        logger.info(
            "Updated document %s (%s)", document.slug, outcome.outcome.value
        )
        return updated

    def _write_links(
        self, document_id: int, plan: DocumentPlan, known_paths: set[str]
    ) -> None:
        relevance = plan.change_summary or DEFAULT_FILE_RELEVANCE
        self.store.replace_file_links(
            document_id,
            [
                (path, relevance)
                for path in dict.fromkeys(plan.related_files)
                if path in known_paths
            ],
        )
        self.store.replace_table_links(
            document_id,
            [
                (
                    table.table_name,
                    [c.model_dump() for c in table.columns]
                    if table.columns
                    else None,
                    table.relevance or DEFAULT_TABLE_RELEVANCE,
                )
                for table in plan.related_tables
            ],
        )
