"""Merge overlapping document proposals before they reach the wiki.

Separate analysis batches and groups often propose several documents for
the same topic. Proposals are grouped by suggested category; every group
with at least two substantial proposals is reviewed by the model, which
either merges them into one document or returns cleaned-up separate ones.
Any failure falls back to the group's original proposals.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence

from ..core.async_utils import gather_bounded, run_sync
from ..llm.client import CompletionService
from ..llm.prompts import CONSOLIDATION_SYSTEM, build_consolidation_prompt
from ..llm.schemas import (
    ConsolidationReview,
    DocumentPlan,
    PlanAction,
    RelatedTable,
    TableColumn,
)
from ..llm.usage import UsageTracker

logger = logging.getLogger(__name__)

SUBSTANTIAL_CONTENT_CHARS = 100
MIN_GROUP_SIZE = 2
CONSOLIDATION_CONCURRENCY = 3
CONSOLIDATION_TEMPERATURE = 0.1


def is_substantial(plan: DocumentPlan) -> bool:
    return len(plan.content_markdown) >= SUBSTANTIAL_CONTENT_CHARS


def partition_proposals(
    plans: Sequence[DocumentPlan],
) -> tuple[list[DocumentPlan], dict[str, list[DocumentPlan]]]:
    """Split proposals into pass-through ones and per-category candidates.

    Returns:
        ``(passthrough, candidates)`` where ``candidates`` maps a lowercased
        category to its substantial proposals. Stubs and categories with
        fewer than two substantial proposals pass through.
    """
    by_category: dict[str, list[DocumentPlan]] = defaultdict(list)
    for plan in plans:
        by_category[plan.category_suggestion.lower()].append(plan)

    passthrough: list[DocumentPlan] = []
    candidates: dict[str, list[DocumentPlan]] = {}
    for category, members in by_category.items():
        substantial = [p for p in members if is_substantial(p)]
        if len(substantial) < MIN_GROUP_SIZE:
            passthrough.extend(members)
            continue
        passthrough.extend(p for p in members if not is_substantial(p))
        candidates[category] = substantial
    return passthrough, candidates


def _merge_tables(plans: Sequence[DocumentPlan]) -> list[RelatedTable]:
    tables: dict[str, RelatedTable] = {}
    for plan in plans:
        for table in plan.related_tables:
            existing = tables.get(table.table_name)
            if existing is None:
                tables[table.table_name] = table
                continue
            columns: dict[str, TableColumn] = {
                c.name: c for c in existing.columns or []
            }
            for column in table.columns or []:
                columns.setdefault(column.name, column)
            relevance = existing.relevance
            if table.relevance and table.relevance not in relevance:
                relevance = "; ".join(filter(None, [relevance, table.relevance]))
            tables[table.table_name] = RelatedTable(
                table_name=table.table_name,
                columns=list(columns.values()) or None,
                relevance=relevance,
            )
    return list(tables.values())


def merge_proposals(
    plans: Sequence[DocumentPlan],
    title: str,
    content_markdown: str,
    change_summary: str,
) -> DocumentPlan:
    """Fold several proposals into one, keeping all of their metadata.

    The slug is the shortest among ``update`` proposals (or among all of
    them), so a merge lands on an existing document when one was targeted.
    """
    updates = [p for p in plans if p.action == PlanAction.UPDATE]
    slug = min((p.slug for p in updates or plans), key=len)

    files: list[str] = []
    conflicts: list[str] = []
    for plan in plans:
        files.extend(f for f in plan.related_files if f not in files)
        conflicts.extend(
            c for c in plan.conflicts_with_human_edits if c not in conflicts
        )

    first = plans[0]
    return DocumentPlan(
        slug=slug,
        title=title,
        action=PlanAction.UPDATE if updates else PlanAction.CREATE,
        content_markdown=content_markdown,
        change_summary=change_summary,
        related_files=files,
        related_tables=_merge_tables(plans),
        category_suggestion=first.category_suggestion,
        subcategory_suggestion=first.subcategory_suggestion,
        conflicts_with_human_edits=conflicts,
    )


def apply_review(
    plans: Sequence[DocumentPlan], review: ConsolidationReview
) -> list[DocumentPlan]:
    """Apply the model's decision to one category group.

    Raises:
        ValueError: When the review does not fit the decision it names.
    """
    match review.decision:
        case "merge":
            if len(review.documents) != 1:
                raise ValueError(
                    f"merge decision returned {len(review.documents)} documents"
                )
            merged = review.documents[0]
            return [
                merge_proposals(
                    plans,
                    merged.title,
                    merged.content_markdown,
                    merged.change_summary,
                )
            ]
        case "keep_separate":
            cleaned = []
            for index, plan in enumerate(plans):
                if index >= len(review.documents):
                    cleaned.append(plan)
                    continue
                item = review.documents[index]
                cleaned.append(
                    plan.model_copy(
                        update={
                            "title": item.title or plan.title,
                            "content_markdown": item.content_markdown
                            or plan.content_markdown,
                            "change_summary": item.change_summary
                            or plan.change_summary,
                        }
                    )
                )
            return cleaned
    raise ValueError(f"Unknown consolidation decision: {review.decision}")


async def review_group(
    llm: CompletionService,
    category: str,
    plans: Sequence[DocumentPlan],
    style_prompt: str = "",
    consolidation_prompt: str = "",
    model: str | None = None,
    usage: UsageTracker | None = None,
) -> list[DocumentPlan]:
    prompt = build_consolidation_prompt(
        [(p.title, p.content_markdown, p.change_summary) for p in plans],
        category,
        style_prompt=style_prompt,
        consolidation_prompt=consolidation_prompt,
    )
    completion = await run_sync(
        llm.complete,
        prompt,
        ConsolidationReview,
        system=CONSOLIDATION_SYSTEM,
        temperature=CONSOLIDATION_TEMPERATURE,
        model=model,
    )
    if usage is not None:
        usage.add(completion.usage)
    if completion.output is None:
        raise ValueError("consolidation call returned no output")
    result = apply_review(plans, completion.output)
    logger.info(
        "Consolidated %d proposal(s) in category '%s' into %d (%s)",
        len(plans),
        category,
        len(result),
        completion.output.decision,
    )
    return result


async def consolidate_proposals(
    llm: CompletionService,
    plans: Sequence[DocumentPlan],
    style_prompt: str = "",
    consolidation_prompt: str = "",
    model: str | None = None,
    usage: UsageTracker | None = None,
) -> list[DocumentPlan]:
    """Review overlapping proposals per category.

    Args:
        llm: Completion service.
        plans: Proposals after analysis.
        style_prompt: Article style instructions.
        consolidation_prompt: Merge-or-separate instructions.
        model: Model override for the review calls.
        usage: Optional run usage tracker.

    Returns:
        Pass-through proposals followed by the consolidated groups.
    """
    passthrough, candidates = partition_proposals(plans)
    if not candidates:
        return passthrough

    categories = list(candidates)
    results = await gather_bounded(
        [
            lambda c=category: review_group(
                llm,
                c,
                candidates[c],
                style_prompt,
                consolidation_prompt,
                model,
                usage,
            )
            for category in categories
        ],
        CONSOLIDATION_CONCURRENCY,
    )

    consolidated: list[DocumentPlan] = []
    for category, result in zip(categories, results):
        if isinstance(result, BaseException):
            logger.error(
                "Consolidation of category '%s' failed, keeping originals: %s",
                category,
                result,
            )
            consolidated.extend(candidates[category])
        else:
            consolidated.extend(result)
    return passthrough + consolidated
