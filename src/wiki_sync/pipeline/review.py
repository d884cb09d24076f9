"""Advisory review of cleanly merged documents.

A clean line merge can still combine statements that contradict each
other. After every clean merge of AI content into a human-edited document
the model reviews the result and leaves annotations per section; the
content itself is never changed here.
"""

from __future__ import annotations

import logging

from ..core.async_utils import run_sync
from ..llm.client import CompletionService
from ..llm.prompts import REVIEW_SYSTEM, build_review_prompt
from ..llm.schemas import ReviewAnnotationsResponse
from ..llm.usage import UsageTracker
from ..storage.base import DocumentStore
from ..sync.models import ReviewAnnotation

logger = logging.getLogger(__name__)

REVIEW_TEMPERATURE = 0.2


async def generate_review_annotations(
    llm: CompletionService,
    store: DocumentStore,
    *,
    document_id: int,
    version_id: int | None,
    merged_markdown: str,
    proposed_markdown: str,
    human_markdown: str,
    change_summary: str,
    usage: UsageTracker | None = None,
) -> list[ReviewAnnotation]:
    """Ask the model for concerns about a merged document and store them.

    Args:
        llm: Completion service.
        store: Where annotations are inserted.
        document_id: Document that was merged.
        version_id: The ``ai_merged`` version the annotations refer to.
        merged_markdown: Published merge result.
        proposed_markdown: What the AI proposed.
        human_markdown: Live content before the merge.
        change_summary: Why the AI proposed a change.
        usage: Optional run usage tracker.

    Returns:
        The stored annotations (possibly empty).
    """
    prompt = build_review_prompt(
        human_markdown, proposed_markdown, merged_markdown, change_summary
    )
    completion = await run_sync(
        llm.complete,
        prompt,
        ReviewAnnotationsResponse,
        system=REVIEW_SYSTEM,
        temperature=REVIEW_TEMPERATURE,
    )
    if usage is not None:
        usage.add(completion.usage)

    if completion.output is None or not completion.output.annotations:
        return []

    stored = [
        store.insert_annotation(
            document_id,
            item.section_heading,
            item.concern,
            item.severity,
            version_id=version_id,
        )
        for item in completion.output.annotations
    ]
    logger.info(
        "Stored %d review annotation(s) for document %d",
        len(stored),
        document_id,
    )
    return stored
