"""Tests for pipeline.summarizer and pipeline.orchestrator.

Covers:
- File summaries with fallbacks and truncation
- Creating and updating documents from proposals
- Category resolution, including subcategories
- Per-document errors collected on the result
- The multi-stage path for large change sets
"""

import pytest

from wiki_sync.content.normalize import normalize_markdown
from wiki_sync.llm.schemas import (
    AnalysisResponse,
    DocumentPlan,
    PlanAction,
    RawGroup,
    RawPlan,
    RelatedTable,
)
from wiki_sync.pipeline.analyzer import NO_CHANGES_SUMMARY
from wiki_sync.pipeline.orchestrator import DocumentPipeline
from wiki_sync.pipeline.summarizer import (
    MAX_SUMMARY_CHARS,
    fallback_summary,
    summarize_files,
)
from wiki_sync.settings import SyncSettings
from wiki_sync.sync.models import ChangeSource

LONG = "Invoices are issued monthly and paid by card or transfer. " * 3


def _proposal(slug="billing-overview", **fields):
    fields.setdefault("title", "Billing Overview")
    fields.setdefault("action", PlanAction.CREATE)
    fields.setdefault("content_markdown", LONG)
    fields.setdefault("category_suggestion", "billing")
    return DocumentPlan(slug=slug, **fields)


@pytest.fixture
def pipeline(store, llm):
    return DocumentPipeline(store, llm, SyncSettings(model="test/model"))


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


class TestSummarizeFiles:
    """Tests for summarize_files()."""

    async def test_without_llm_uses_fallbacks(self):
        summaries = await summarize_files(None, {"a.ts": "x", "b.ts": "y"})
        assert summaries == {
            "a.ts": "Source file at a.ts",
            "b.ts": "Source file at b.ts",
        }

    async def test_failures_and_empty_answers_fall_back(self, llm):
        def answer(prompt):
            if "broken.ts" in prompt:
                raise RuntimeError("timeout")
            if "empty.ts" in prompt:
                return ""
            return "  Computes invoice totals.  "

        llm.answer(None, answer)

        summaries = await summarize_files(
            llm, {"ok.ts": "code", "broken.ts": "code", "empty.ts": "code"}
        )

        assert summaries == {
            "ok.ts": "Computes invoice totals.",
            "broken.ts": fallback_summary("broken.ts"),
            "empty.ts": fallback_summary("empty.ts"),
        }

    async def test_truncated(self, llm):
        llm.answer(None, "x" * (MAX_SUMMARY_CHARS + 50))
        summaries = await summarize_files(llm, {"a.ts": "code"}, model="small")
        assert len(summaries["a.ts"]) == MAX_SUMMARY_CHARS
        assert llm.calls[0]["model"] == "small"


# ---------------------------------------------------------------------------
# Single-pass pipeline
# ---------------------------------------------------------------------------


class TestPipelineCreate:
    """Creating documents from proposals."""

    async def test_no_files(self, pipeline, llm):
        result = await pipeline.run({})
        assert result.summary == NO_CHANGES_SUMMARY
        assert llm.calls == []

    async def test_creates_document_with_links(self, store, pipeline, llm):
        store.insert_source_files([("src/a.ts", "1")])
        llm.answer(
            AnalysisResponse,
            AnalysisResponse(
                documents=[
                    _proposal(
                        slug="Billing Overview",
                        subcategory_suggestion="invoices",
                        related_files=["src/a.ts", "src/gone.ts", "src/a.ts"],
                        related_tables=[RelatedTable(table_name="invoices")],
                    )
                ],
                summary="Billing added.",
            ),
        )

        result = await pipeline.run({"src/a.ts": "code"})

        assert result.documents_created == 1
        assert result.summary == "Billing added."
        document = store.get_document_by_slug("billing-overview")
        assert document.content == normalize_markdown(LONG)

        billing, invoices = store.list_categories()
        assert (billing.slug, billing.name) == ("billing", "Billing")
        assert invoices.parent_id == billing.id
        assert document.category_id == invoices.id

        (version,) = store.list_versions(document.id)
        assert version.change_source == ChangeSource.AI_GENERATED
        links = store.list_file_links(document.id)
        assert [link.file_path for link in links] == ["src/a.ts"]
        (table,) = store.list_table_links(document.id)
        assert table.relevance_explanation == "Related database table"

    async def test_existing_slug_gets_suffix(self, store, pipeline, llm):
        store.create_document("billing-overview", "Old", "")
        llm.answer(AnalysisResponse, AnalysisResponse(documents=[_proposal()]))

        await pipeline.run({"src/a.ts": "code"})

        assert store.get_document_by_slug("billing-overview-2") is not None

    async def test_update_of_missing_document_creates_it(self, store, pipeline, llm):
        llm.answer(
            AnalysisResponse,
            AnalysisResponse(documents=[_proposal(action=PlanAction.UPDATE)]),
        )

        result = await pipeline.run({"src/a.ts": "code"})

        assert result.documents_created == 1
        assert result.documents_updated == 0

    async def test_summaries_refreshed_when_model_set(self, store, llm):
        store.insert_source_files([("src/a.ts", "1")])
        llm.answer(AnalysisResponse, AnalysisResponse())
        llm.answer(None, "Payment helpers")
        pipeline = DocumentPipeline(
            store, llm, SyncSettings(model="m", summary_model="small")
        )

        await pipeline.run({"src/a.ts": "code"})

        assert store.list_source_files()[0].ai_summary == "Payment helpers"


class TestPipelineUpdate:
    """Updating existing documents through the reconciler."""

    async def test_overwrites_unedited_document(self, store, pipeline, llm):
        existing = store.create_document("billing-overview", "Billing", "Old")
        llm.answer(
            AnalysisResponse,
            AnalysisResponse(
                documents=[
                    _proposal(action=PlanAction.UPDATE, change_summary="Refresh")
                ]
            ),
        )

        result = await pipeline.run({"src/a.ts": "code"})

        assert result.documents_updated == 1
        document = store.get_document(existing.id)
        assert document.content == normalize_markdown(LONG)
        assert document.category_id == store.list_categories()[0].id
        (version,) = store.list_versions(existing.id)
        assert version.change_source == ChangeSource.AI_UPDATED
        assert version.change_summary == "Refresh"

    async def test_existing_category_kept(self, store, pipeline, llm):
        guides = store.get_or_create_category("Guides", "guides")
        existing = store.create_document(
            "billing-overview", "Billing", "Old", guides.id
        )
        llm.answer(
            AnalysisResponse,
            AnalysisResponse(documents=[_proposal(action=PlanAction.UPDATE)]),
        )

        await pipeline.run({"src/a.ts": "code"})

        assert store.get_document(existing.id).category_id == guides.id


class TestPipelineErrors:
    """A failing document does not stop the others."""

    async def test_error_collected(self, store, pipeline, llm):
        llm.answer(
            AnalysisResponse,
            AnalysisResponse(
                documents=[
                    _proposal("broken", content_markdown="", category_suggestion="a"),
                    _proposal("fine", category_suggestion="b"),
                ]
            ),
        )

        result = await pipeline.run({"src/a.ts": "code"})

        assert result.documents_created == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("broken: ")
        assert result.error_message.startswith("[AI Pipeline] broken: ")
        assert store.get_document_by_slug("fine") is not None


class TestResolveCategory:
    """Tests for DocumentPipeline.resolve_category()."""

    def test_blank(self, pipeline):
        assert pipeline.resolve_category("  ", []) is None

    def test_matches_name_or_slug(self, store, pipeline):
        category = store.get_or_create_category("Billing Ops", "billing-ops")
        categories = [category]
        assert pipeline.resolve_category("BILLING OPS", categories) == category
        assert pipeline.resolve_category("billing-ops", categories) == category

    def test_creates_and_remembers(self, store, pipeline):
        categories = []
        created = pipeline.resolve_category("reporting", categories)
        assert created.name == "Reporting"
        assert categories == [created]
        assert pipeline.resolve_category("Reporting", categories) == created


# ---------------------------------------------------------------------------
# Multi-stage pipeline
# ---------------------------------------------------------------------------


def _large_change_set():
    files = {f"src/a/f{i}.ts": "code" for i in range(13)}
    files.update({f"src/b/f{i}.ts": "code" for i in range(13)})
    return files


def _answer_per_group(prompt):
    group = "alpha" if "group `alpha`" in prompt else "beta"
    return AnalysisResponse(
        documents=[_proposal(group, title=group.title(), category_suggestion=group)],
        summary=f"{group} done.",
    )


class TestMultiStage:
    """Large change sets are summarized, planned and analyzed per group."""

    async def test_groups_analyzed_separately(self, store, pipeline, llm):
        llm.answer(
            RawPlan,
            RawPlan(
                groups=[
                    RawGroup(id="alpha", description="A", directory_patterns=["src/a/"]),
                    RawGroup(id="beta", description="B", directory_patterns=["src/b/"]),
                ]
            ),
        )
        llm.answer(AnalysisResponse, _answer_per_group)

        result = await pipeline.run(_large_change_set())

        assert result.documents_created == 2
        assert store.get_document_by_slug("alpha") is not None
        assert store.get_document_by_slug("beta") is not None
        prompts = [c["prompt"] for c in llm.calls_for(AnalysisResponse)]
        assert len(prompts) == 2
        assert all("Other groups handled separately" in p for p in prompts)
        # Without a summary model the planner sees path-only summaries.
        (plan_call,) = llm.calls_for(RawPlan)
        assert "Source file at src/a/f0.ts" in plan_call["prompt"]

    async def test_empty_plan_falls_back_to_single_pass(self, store, pipeline, llm):
        llm.answer(AnalysisResponse, AnalysisResponse(summary="Batch."))

        result = await pipeline.run(_large_change_set())

        assert len(llm.calls_for(RawPlan)) == 1
        assert len(llm.calls_for(AnalysisResponse)) == 2
        assert result.summary == "Batch. Batch."
