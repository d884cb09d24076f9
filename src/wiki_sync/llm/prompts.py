"""Prompt templates and builders for every LLM call in the pipeline.

The four ``DEFAULT_*`` prompts are used whenever the settings table holds
no override for the matching key (see ``wiki_sync.settings``).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..sync.models import Category, Document

# ---------------------------------------------------------------------------
# Default prompts
# ---------------------------------------------------------------------------

DEFAULT_ANALYSIS_PROMPT = """\
You maintain the internal wiki of a software product. Recent commits changed \
the source files listed below; work out how the documentation has to follow.

## What to do

1. Read the changed files and identify behaviour that was added or changed.
2. Decide which existing documents must be updated and which new documents \
are needed.
3. For every affected document return its slug (existing or new), the full \
Markdown body, and a short change summary.

### Guidelines
- Document what matters to the business: features, settings, workflows, \
permissions.
- Skip changes that do not alter behaviour (refactors, formatting, internal \
fixes).
- Organise documents by functional area.
- List the related source files and database tables of every document.
- Keep the existing structure of a document where you can.

### Documents marked [HUMAN-EDITED]
People have written parts of these documents by hand. For them you must:
- keep every section a person wrote;
- change only the statements the code changes make wrong;
- put new information into new sections instead of rewriting existing text;
- describe any disagreement between the human text and the code in the \
change summary;
- remove human text only when the feature it describes is gone entirely."""

DEFAULT_ARTICLE_STYLE_PROMPT = """\
Write for an internal audience of developers, QA engineers and product \
managers. Explain how the product behaves: its business rules, flows and \
permissions.

### Rules for the document body
- No code, snippets, file paths, identifiers or line numbers.
- No API endpoints or table names; those belong in the related files and \
tables lists.
- Explain rules in plain English.
- Express business rules as "If ... then ..." flows.
- Name the user roles involved (Admin, User, ...).
- Use the human-readable names of settings.
- State the defaults that apply when nothing is configured."""

DEFAULT_FILE_SUMMARY_PROMPT = """\
Describe in one or two sentences what this source file does for the \
product. Mention the feature or workflow it belongs to, not its \
implementation details."""

DEFAULT_CONSOLIDATION_PROMPT = """\
The documents below were proposed for the same wiki category in one sync \
run. Decide whether they describe one topic that readers would expect on a \
single page, or separate topics that deserve their own pages.

- Choose "merge" when the documents overlap heavily or split one workflow \
into fragments. Return exactly one document that combines all of their \
information without repeating itself.
- Choose "keep_separate" when each document stands on its own. Return one \
cleaned-up document per input, in the same order, with overlap removed and \
cross-references where useful.
- Never drop facts that appear in any input."""

NO_CATEGORIES = "(No categories yet)"
NO_DOCUMENTS = "(No articles yet)"

ANALYSIS_SYSTEM = (
    "You turn source code changes into structured wiki document plans. "
    "Always answer with valid JSON that matches the requested schema."
)
PLANNING_SYSTEM = (
    "You are a planning assistant that organizes source directories into "
    "groups for wiki document generation. Always answer with valid JSON "
    "that matches the requested schema."
)
GENERATION_SYSTEM = (
    "You write clear, business-focused wiki documents that follow the "
    "given style guidelines. Answer with the Markdown body only."
)
CONSOLIDATION_SYSTEM = (
    "You review wiki documents proposed for the same category and decide "
    "whether they should be merged or kept separate."
)
REVIEW_SYSTEM = (
    "You review technical documentation after an automatic merge. Point "
    "out real semantic problems only."
)


@dataclass(frozen=True)
class IndexedDocument:
    """One line of the document index shown to the model."""

    slug: str
    title: str
    category_name: str
    has_human_edits: bool


def build_document_index(
    documents: Sequence[Document], categories: Sequence[Category]
) -> list[IndexedDocument]:
    names = {c.id: c.name for c in categories}
    return [
        IndexedDocument(
            slug=d.slug,
            title=d.title,
            category_name=names.get(d.category_id, "Uncategorized")
            if d.category_id is not None
            else "Uncategorized",
            has_human_edits=d.has_human_edits,
        )
        for d in documents
    ]


# ---------------------------------------------------------------------------
# Shared sections
# ---------------------------------------------------------------------------


def format_category_tree(categories: Sequence[Category]) -> str:
    """Render categories as a bullet list, subcategories under their parent."""
    if not categories:
        return NO_CATEGORIES
    by_id = {c.id: c for c in categories}
    roots = [c for c in categories if c.parent_id not in by_id]
    lines: list[str] = []
    for root in roots:
        lines.append(f"- {root.name} (slug: {root.slug})")
        for child in categories:
            if child.parent_id == root.id:
                lines.append(
                    f"  - {child.name} (slug: {child.slug}) "
                    f"[subcategory of {root.name}]"
                )
    return "\n".join(lines)


def format_document_index(index: Sequence[IndexedDocument]) -> str:
    if not index:
        return NO_DOCUMENTS
    return "\n".join(
        f'- [{d.category_name}] "{d.title}" (slug: {d.slug})'
        + (" [HUMAN-EDITED]" if d.has_human_edits else "")
        for d in index
    )


def _format_files(files: Mapping[str, str]) -> str:
    return "\n\n".join(
        f"### {path}\n```\n{content}\n```" for path, content in files.items()
    )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupScope:
    """Extra context for analyzing one planned group in multi-stage mode.

    Attributes:
        group_id: Kebab-case id of the group being analyzed.
        description: What the group covers.
        proposed_documents: ``(slug, title, action)`` suggestions from the plan.
        shared_context: ``path -> summary`` of read-only shared files.
        linked_documents: ``path -> [(slug, title)]`` of existing documents
            already describing files in this group.
        sibling_groups: ``(group_id, description)`` of the other groups.
    """

    group_id: str
    description: str
    proposed_documents: tuple[tuple[str, str, str], ...] = ()
    shared_context: Mapping[str, str] | None = None
    linked_documents: Mapping[str, Sequence[tuple[str, str]]] | None = None
    sibling_groups: tuple[tuple[str, str], ...] = ()


def _format_group_scope(scope: GroupScope) -> str:
    lines = [
        "## Group Scope",
        f"You are analyzing group `{scope.group_id}`: {scope.description}",
    ]
    if scope.proposed_documents:
        lines.append("")
        lines.append("Documents proposed for this group:")
        for slug, title, action in scope.proposed_documents:
            lines.append(f'- {action}: "{title}" ({slug})')
    if scope.linked_documents:
        lines.append("")
        lines.append("Existing documents linked to files in this group:")
        for path, docs in scope.linked_documents.items():
            joined = ", ".join(f'"{title}" ({slug})' for slug, title in docs)
            lines.append(f"- {path}: {joined}")
    if scope.shared_context:
        lines.append("")
        lines.append(
            "Shared context (read-only, do not write documents for these):"
        )
        for path, summary in scope.shared_context.items():
            lines.append(f"- {path}: {summary}")
    if scope.sibling_groups:
        lines.append("")
        lines.append(
            "Other groups handled separately (do not duplicate their topics):"
        )
        for group_id, description in scope.sibling_groups:
            lines.append(f"- {group_id}: {description}")
    return "\n".join(lines)


def build_analysis_prompt(
    files: Mapping[str, str],
    categories: Sequence[Category],
    document_index: Sequence[IndexedDocument],
    analysis_prompt: str = "",
    style_prompt: str = "",
    scope: GroupScope | None = None,
) -> str:
    """Assemble the prompt for one analysis batch.

    Args:
        files: Changed file contents keyed by path.
        categories: Current category tree.
        document_index: Existing documents.
        analysis_prompt: Configured analysis instructions; default if empty.
        style_prompt: Configured style instructions; default if empty.
        scope: Group context in multi-stage mode.

    Returns:
        The user message text.
    """
    parts = [
        analysis_prompt or DEFAULT_ANALYSIS_PROMPT,
        "## Existing Category Tree\n" + format_category_tree(categories),
        "IMPORTANT: Place documents in an existing category unless none "
        "fits. If you create a new category, justify it in the "
        "change_summary. Reusing categories keeps the wiki tidy.",
        "## Existing Articles Index\n" + format_document_index(document_index),
        "## Article Writing Style\n" + (style_prompt or DEFAULT_ARTICLE_STYLE_PROMPT),
    ]
    if scope is not None:
        parts.append(_format_group_scope(scope))
    parts.append("## Changed Files\n" + _format_files(files))
    return "\n\n".join(parts)


def build_generation_prompt(
    title: str,
    slug: str,
    action: str,
    change_summary: str,
    related_files: Sequence[str],
    style_prompt: str = "",
) -> str:
    return f"""\
Write a wiki document for the internal software documentation wiki.

## Document
- Title: {title}
- Slug: {slug}
- Action: {action}
- Change summary: {change_summary}
- Related files: {", ".join(related_files)}

## Article Writing Style
{style_prompt or DEFAULT_ARTICLE_STYLE_PROMPT}

Write the complete document in Markdown following the style above."""


# ---------------------------------------------------------------------------
# Multi-stage: summaries and planning
# ---------------------------------------------------------------------------


def build_file_summary_prompt(
    path: str, content: str, custom_prompt: str = ""
) -> str:
    return (
        f"{custom_prompt or DEFAULT_FILE_SUMMARY_PROMPT}\n\n"
        f"File: {path}\n```\n{content}\n```"
    )


PLANNING_RULES = """\
## Grouping Rules (follow exactly)

1. **Group by directory prefix.** Return `directory_patterns` such as \
"app/billing/" or "app/models/", never single file paths. Every file under \
a matched prefix belongs to the group.

2. **Prefer updates.** When a directory lists linked documents, propose \
`"action": "update"` for them instead of creating duplicates.

3. **Consolidate.** Aim for 5-15 groups overall. A few large groups beat \
many small ones; one group per module is better than splitting by code \
concern.

4. **At most 3 documents per group.** Propose 1-3 documents per group and \
split larger groups along user-facing workflows.

5. **Shared context.** Put infrastructure, utility and configuration \
directories used by many modules into `shared_context_patterns`. They are \
read-only context; no documents are written for them.

6. **Cover everything.** Every directory must be matched by one group's \
`directory_patterns` or by `shared_context_patterns`.

7. **One category per group.** Split a group whose documents would land in \
different categories.

8. **Kebab-case ids.** Group ids look like "user-authentication".

9. **Subcategories.** Use an existing subcategory when it fits. Do not \
invent subcategories here; analysis decides that later.

Return a JSON plan with groups, shared_context_patterns and a short \
rationale for the overall strategy."""


def build_planning_prompt(
    buckets_section: str,
    categories: Sequence[Category],
    document_index: Sequence[IndexedDocument],
) -> str:
    return "\n\n".join(
        [
            "You organize a large set of source directories into coherent "
            "groups so wiki documents can be written for each group.",
            "## Source Directories (compressed view)\n" + buckets_section,
            "## Existing Category Tree\n" + format_category_tree(categories),
            "## Existing Articles Index\n"
            + format_document_index(document_index),
            PLANNING_RULES,
        ]
    )


# ---------------------------------------------------------------------------
# Consolidation and review
# ---------------------------------------------------------------------------


def build_consolidation_prompt(
    documents: Sequence[tuple[str, str, str]],
    category: str,
    style_prompt: str = "",
    consolidation_prompt: str = "",
) -> str:
    """Render the consolidation review prompt.

    Args:
        documents: ``(title, content_markdown, change_summary)`` per proposal.
        category: Shared category suggestion.
        style_prompt: Style instructions; default if empty.
        consolidation_prompt: Decision instructions; default if empty.
    """
    blocks = []
    for number, (title, content, summary) in enumerate(documents, start=1):
        blocks.append(
            f"### Document {number}: {title}\n"
            f"Change summary: {summary}\n\n{content}"
        )
    return "\n\n".join(
        [
            consolidation_prompt or DEFAULT_CONSOLIDATION_PROMPT,
            f"## Category\n{category}",
            "## Article Writing Style\n"
            + (style_prompt or DEFAULT_ARTICLE_STYLE_PROMPT),
            "## Proposed Documents\n\n" + "\n\n".join(blocks),
        ]
    )


def build_review_prompt(
    human_markdown: str,
    proposed_markdown: str,
    merged_markdown: str,
    change_summary: str,
) -> str:
    return f"""\
A wiki document was just produced by an automatic three-way merge of \
AI-proposed content with a version a person had edited.

## Background
The code changed and the AI proposed new content for a document that a \
person had edited before. Both were merged line by line. Review the MERGED \
text for semantic problems.

## Change Summary
{change_summary}

## Human-Edited Version (before merge)
```markdown
{human_markdown}
```

## AI-Proposed Version
```markdown
{proposed_markdown}
```

## Merged Result (published)
```markdown
{merged_markdown}
```

## Look for
1. **Contradictions**: the human text and the AI text both survived but \
disagree.
2. **Stale statements**: human additions the described code change makes \
outdated.
3. **Broken flow**: sections where the merged pieces no longer read as one \
coherent text.

Rules:
- Flag real problems only, never style.
- Every annotation must name a section heading exactly as it appears in the \
merged text.
- Severity: "error" for likely wrong information, "warning" for possible \
problems, "info" for minor notes.
- Return an empty annotations list when nothing is wrong.
- Keep each concern short."""
