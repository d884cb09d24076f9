"""Structured output schemas for LLM calls.

Each model doubles as the JSON schema sent to the completion service and
as the validator for its answer. Fields carry descriptions because they
end up in the schema the model sees.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from ..sync.models import Severity


class PlanAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class TableColumn(BaseModel):
    name: str
    description: str = ""


class RelatedTable(BaseModel):
    """A database table a document describes."""

    table_name: str
    columns: list[TableColumn] | None = Field(
        default=None, description="Key columns and what they hold, or null"
    )
    relevance: str = Field(
        default="", description="Why the table matters to the document"
    )


class DocumentPlan(BaseModel):
    """One document the analysis wants created or updated."""

    slug: str = Field(description="URL-safe slug, existing or new")
    title: str = Field(description="Human-readable title")
    action: PlanAction = Field(description="create a new document or update one")
    content_markdown: str = Field(
        default="",
        description="Full document body in Markdown, business-focused",
    )
    change_summary: str = Field(
        default="", description="What changed and why, in one or two sentences"
    )
    related_files: list[str] = Field(
        default_factory=list, description="Source file paths the document covers"
    )
    related_tables: list[RelatedTable] = Field(
        default_factory=list, description="Database tables the document covers"
    )
    category_suggestion: str = Field(
        default="", description="Slug of the category; prefer existing ones"
    )
    subcategory_suggestion: str | None = Field(
        default=None, description="Optional subcategory slug"
    )
    conflicts_with_human_edits: list[str] = Field(
        default_factory=list,
        description="Conflicts between human-edited text and the code changes",
    )


class AnalysisResponse(BaseModel):
    documents: list[DocumentPlan] = Field(
        default_factory=list, description="Documents to create or update"
    )
    summary: str = Field(default="", description="Overall summary of the changes")


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class ProposedDocument(BaseModel):
    slug: str
    title: str
    action: PlanAction
    scope: str = Field(default="", description="What the document should cover")


class RawGroup(BaseModel):
    id: str = Field(description="Kebab-case group id")
    description: str = ""
    directory_patterns: list[str] = Field(
        default_factory=list, description="Directory prefixes, not file paths"
    )
    proposed_documents: list[ProposedDocument] = Field(default_factory=list)


class RawPlan(BaseModel):
    """Plan as returned by the model, in terms of directory patterns."""

    groups: list[RawGroup] = Field(default_factory=list)
    shared_context_patterns: list[str] = Field(default_factory=list)
    rationale: str = ""


class Group(BaseModel):
    """A planned group with its patterns resolved to concrete files."""

    id: str
    description: str = ""
    files: list[str] = Field(default_factory=list)
    proposed_documents: list[ProposedDocument] = Field(default_factory=list)


class GroupPlan(BaseModel):
    groups: list[Group] = Field(default_factory=list)
    shared_context_files: list[str] = Field(default_factory=list)
    rationale: str = ""

    def is_empty(self) -> bool:
        return not self.groups


# ---------------------------------------------------------------------------
# Consolidation and review
# ---------------------------------------------------------------------------


class ConsolidatedDocument(BaseModel):
    title: str
    content_markdown: str
    change_summary: str = ""


class ConsolidationReview(BaseModel):
    decision: Literal["merge", "keep_separate"] = Field(
        description="merge into one document, or keep them separate"
    )
    documents: list[ConsolidatedDocument] = Field(
        default_factory=list,
        description="One merged document, or one cleaned document per input in order",
    )
    reasoning: str = ""


class AnnotationItem(BaseModel):
    section_heading: str = Field(
        description="Exact section heading the concern refers to"
    )
    concern: str = Field(description="The concern about this section")
    severity: Severity = Field(
        description="info=minor note, warning=possible issue, error=likely wrong"
    )


class ReviewAnnotationsResponse(BaseModel):
    annotations: list[AnnotationItem] = Field(default_factory=list)
