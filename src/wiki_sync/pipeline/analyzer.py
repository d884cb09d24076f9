"""Turn changed source files into document proposals.

Files are sent in size-bounded batches, one structured call per batch.
A batch that fails or comes back empty contributes nothing; it never
aborts the run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..core.async_utils import run_sync
from ..llm.client import CompletionService
from ..llm.prompts import (
    ANALYSIS_SYSTEM,
    GroupScope,
    IndexedDocument,
    build_analysis_prompt,
)
from ..llm.schemas import AnalysisResponse, DocumentPlan
from ..llm.usage import UsageTracker
from ..sync.models import Category

logger = logging.getLogger(__name__)

MAX_BATCH_CHARS = 50_000
MAX_BATCH_FILES = 25
ANALYSIS_TEMPERATURE = 0.2
NO_CHANGES_SUMMARY = "No changes analyzed."


@dataclass(frozen=True)
class AnalysisContext:
    """Wiki state and instructions shared by every analysis call of a run."""

    categories: Sequence[Category]
    document_index: Sequence[IndexedDocument]
    analysis_prompt: str = ""
    style_prompt: str = ""


def total_chars(files: Mapping[str, str]) -> int:
    return sum(len(content) for content in files.values())


def exceeds_single_pass(files: Mapping[str, str]) -> bool:
    """True when the change set is too large for one analysis batch."""
    return len(files) > MAX_BATCH_FILES or total_chars(files) > MAX_BATCH_CHARS


def batch_files(
    files: Mapping[str, str],
    max_chars: int = MAX_BATCH_CHARS,
    max_files: int = MAX_BATCH_FILES,
) -> list[dict[str, str]]:
    """Split file contents into batches, preserving order.

    A new batch starts when the current one is non-empty and adding the
    next file would exceed either limit. A single oversized file still
    gets a batch of its own.
    """
    batches: list[dict[str, str]] = []
    current: dict[str, str] = {}
    size = 0
    for path, content in files.items():
        if current and (
            size + len(content) > max_chars or len(current) + 1 > max_files
        ):
            batches.append(current)
            current, size = {}, 0
        current[path] = content
        size += len(content)
    if current:
        batches.append(current)
    return batches


def merge_responses(responses: Sequence[AnalysisResponse]) -> AnalysisResponse:
    """Combine batch responses; a later proposal for the same slug wins."""
    if not responses:
        return AnalysisResponse(summary=NO_CHANGES_SUMMARY)
    by_slug: dict[str, DocumentPlan] = {}
    for response in responses:
        for plan in response.documents:
            by_slug[plan.slug] = plan
    summary = " ".join(r.summary for r in responses if r.summary)
    return AnalysisResponse(documents=list(by_slug.values()), summary=summary)


async def analyze_batch(
    llm: CompletionService,
    files: Mapping[str, str],
    context: AnalysisContext,
    scope: GroupScope | None = None,
    usage: UsageTracker | None = None,
) -> AnalysisResponse | None:
    prompt = build_analysis_prompt(
        files,
        context.categories,
        context.document_index,
        analysis_prompt=context.analysis_prompt,
        style_prompt=context.style_prompt,
        scope=scope,
    )
    completion = await run_sync(
        llm.complete,
        prompt,
        AnalysisResponse,
        system=ANALYSIS_SYSTEM,
        temperature=ANALYSIS_TEMPERATURE,
    )
    if usage is not None:
        usage.add(completion.usage)
    return completion.output


async def analyze_changes(
    llm: CompletionService,
    files: Mapping[str, str],
    context: AnalysisContext,
    scope: GroupScope | None = None,
    usage: UsageTracker | None = None,
) -> AnalysisResponse:
    """Analyze all files batch by batch and merge the proposals.

    Args:
        llm: Completion service.
        files: Changed file contents keyed by path.
        context: Categories, document index and prompts.
        scope: Group context when analyzing one planned group.
        usage: Optional run usage tracker.

    Returns:
        Merged proposals; ``summary`` is "No changes analyzed." when no
        batch produced output.
    """
    batches = batch_files(files)
    responses: list[AnalysisResponse] = []
    for number, batch in enumerate(batches, start=1):
        try:
            response = await analyze_batch(llm, batch, context, scope, usage)
        except Exception as e:
            logger.error(
                "Analysis batch %d/%d failed: %s", number, len(batches), e
            )
            continue
        if response is None:
            logger.warning(
                "Analysis batch %d/%d returned no output", number, len(batches)
            )
            continue
        logger.info(
            "Analysis batch %d/%d proposed %d document(s)",
            number,
            len(batches),
            len(response.documents),
        )
        responses.append(response)
    return merge_responses(responses)
