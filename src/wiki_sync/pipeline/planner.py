"""Stage 2 of the multi-stage pipeline: group changed files for analysis.

Large change sets do not fit one analysis prompt, and splitting them
arbitrarily scatters one feature over many documents. The planner shows
the model a compressed, directory-level view of the per-file summaries
and lets it propose groups as directory patterns; the patterns are then
expanded back to concrete files.

``compress_for_planning`` and ``expand_plan`` are pure; only
``plan_groups`` talks to the model.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..core.async_utils import run_sync
from ..llm.client import CompletionService
from ..llm.prompts import (
    PLANNING_SYSTEM,
    IndexedDocument,
    build_planning_prompt,
)
from ..llm.schemas import Group, GroupPlan, RawPlan
from ..llm.usage import UsageTracker
from ..sync.models import Category

logger = logging.getLogger(__name__)

MIN_BUCKET_FILES = 3
MAX_BUCKET_FILES = 30
KEY_FILES_PER_BUCKET = 5
PLANNING_TEMPERATURE = 0.2
EMPTY_PLAN_RATIONALE = "Planning call returned no output."


@dataclass(frozen=True)
class FileSummary:
    path: str
    summary: str


@dataclass(frozen=True)
class LinkedDocument:
    """An existing document already linked to a changed file."""

    slug: str
    title: str


@dataclass(frozen=True)
class DirectoryBucket:
    """Planning view of one directory.

    Attributes:
        prefix: Directory prefix ending in ``/``; ``""`` is the root.
        file_count: Number of changed files in the bucket.
        key_files: Up to five files with the richest summaries.
        linked_documents: Existing documents linked to any file in it.
    """

    prefix: str
    file_count: int
    key_files: tuple[FileSummary, ...]
    linked_documents: tuple[LinkedDocument, ...]

    @property
    def display_prefix(self) -> str:
        return self.prefix or "(root)"


def directory_prefix(path: str) -> str:
    """Path up to and including its last ``/``; ``""`` for root files."""
    cut = path.rfind("/")
    return path[: cut + 1] if cut >= 0 else ""


def parent_prefix(prefix: str) -> str:
    return directory_prefix(prefix.rstrip("/"))


# ---------------------------------------------------------------------------
# Compression
# ---------------------------------------------------------------------------


def compress_for_planning(
    files: Sequence[FileSummary],
    links: Mapping[str, Sequence[LinkedDocument]] | None = None,
) -> list[DirectoryBucket]:
    """Reduce per-file summaries to a directory-level view.

    1. Bucket files by directory prefix.
    2. Fold buckets with fewer than 3 files into their parent directory,
       deepest first, so folds can cascade.
    3. Split buckets with more than 30 files by their next path segment;
       files directly in the directory stay put.
    4. Keep the 5 richest (longest) summaries per bucket as key files.
    5. Attach linked documents, deduplicated by slug.

    Args:
        files: Per-file summaries.
        links: Existing documents linked to each path.

    Returns:
        Buckets sorted by prefix.
    """
    links = links or {}
    buckets: dict[str, list[FileSummary]] = defaultdict(list)
    for item in files:
        buckets[directory_prefix(item.path)].append(item)

    while True:
        small = [
            p for p in buckets if p and len(buckets[p]) < MIN_BUCKET_FILES
        ]
        if not small:
            break
        deepest = max(small, key=lambda p: (p.count("/"), p))
        buckets[parent_prefix(deepest)].extend(buckets.pop(deepest))

    split: dict[str, list[FileSummary]] = defaultdict(list)
    for prefix, members in buckets.items():
        if len(members) <= MAX_BUCKET_FILES:
            split[prefix].extend(members)
            continue
        for item in members:
            rest = item.path[len(prefix) :]
            if "/" in rest:
                split[prefix + rest.split("/", 1)[0] + "/"].append(item)
            else:
                split[prefix].append(item)

    result = []
    for prefix in sorted(split):
        members = split[prefix]
        key_files = sorted(members, key=lambda f: len(f.summary), reverse=True)
        seen: set[str] = set()
        linked: list[LinkedDocument] = []
        for item in members:
            for doc in links.get(item.path, ()):
                if doc.slug not in seen:
                    seen.add(doc.slug)
                    linked.append(doc)
        result.append(
            DirectoryBucket(
                prefix=prefix,
                file_count=len(members),
                key_files=tuple(key_files[:KEY_FILES_PER_BUCKET]),
                linked_documents=tuple(linked),
            )
        )
    return result


def format_buckets(buckets: Sequence[DirectoryBucket]) -> str:
    lines: list[str] = []
    for bucket in buckets:
        lines.append(
            f"- **{bucket.display_prefix}** ({bucket.file_count} files)"
        )
        if bucket.linked_documents:
            joined = ", ".join(
                f'"{d.title}" ({d.slug})' for d in bucket.linked_documents
            )
            lines.append(f"  Linked articles: {joined}")
        lines.append("  Key files:")
        for item in bucket.key_files:
            lines.append(f"    - {item.path}: {item.summary}")
        if bucket.file_count > len(bucket.key_files):
            lines.append(
                f"    ...and {bucket.file_count - len(bucket.key_files)} more"
            )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


def _matches(path: str, patterns: Sequence[str]) -> bool:
    return any(pattern and path.startswith(pattern) for pattern in patterns)


def expand_plan(raw: RawPlan, paths: Sequence[str]) -> GroupPlan:
    """Resolve directory patterns to files.

    1. Files under a shared-context pattern become shared context.
    2. Each group, in order, claims the unassigned files under its patterns.
    3. Every remaining file joins the group holding the file with the
       longest common prefix, or the first group.

    Args:
        raw: Plan as returned by the model.
        paths: All changed file paths.
    """
    shared = [p for p in paths if _matches(p, raw.shared_context_patterns)]
    assigned = set(shared)

    members: list[list[str]] = []
    for raw_group in raw.groups:
        claimed = [
            p
            for p in paths
            if p not in assigned and _matches(p, raw_group.directory_patterns)
        ]
        assigned.update(claimed)
        members.append(claimed)

    if members:
        for path in paths:
            if path in assigned:
                continue
            best_index, best_length = 0, 0
            for index, group_files in enumerate(members):
                for other in group_files:
                    length = len(os.path.commonprefix([path, other]))
                    if length > best_length:
                        best_index, best_length = index, length
            members[best_index].append(path)
            assigned.add(path)

    groups = [
        Group(
            id=raw_group.id,
            description=raw_group.description,
            files=files,
            proposed_documents=raw_group.proposed_documents,
        )
        for raw_group, files in zip(raw.groups, members)
    ]
    return GroupPlan(
        groups=groups, shared_context_files=shared, rationale=raw.rationale
    )


# ---------------------------------------------------------------------------
# Planning call
# ---------------------------------------------------------------------------


async def plan_groups(
    llm: CompletionService,
    files: Sequence[FileSummary],
    categories: Sequence[Category],
    document_index: Sequence[IndexedDocument],
    links: Mapping[str, Sequence[LinkedDocument]] | None = None,
    usage: UsageTracker | None = None,
) -> GroupPlan:
    """Ask the model to group the changed files.

    Returns:
        The expanded plan, or an empty plan when the model gave no answer.
    """
    buckets = compress_for_planning(files, links)
    prompt = build_planning_prompt(
        format_buckets(buckets), categories, document_index
    )
    completion = await run_sync(
        llm.complete,
        prompt,
        RawPlan,
        system=PLANNING_SYSTEM,
        temperature=PLANNING_TEMPERATURE,
    )
    if usage is not None:
        usage.add(completion.usage)

    if completion.output is None:
        logger.warning("Planning call returned no output")
        return GroupPlan(rationale=EMPTY_PLAN_RATIONALE)

    plan = expand_plan(completion.output, [f.path for f in files])
    logger.info(
        "Planned %d group(s) from %d bucket(s): %s",
        len(plan.groups),
        len(buckets),
        plan.rationale,
    )
    return plan
