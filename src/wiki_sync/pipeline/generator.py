"""Final Markdown for a proposal.

Analysis usually returns the full body; short bodies are treated as a
scope description and expanded with one text completion.
"""

from __future__ import annotations

import logging

from ..core.async_utils import run_sync
from ..llm.client import CompletionService
from ..llm.prompts import GENERATION_SYSTEM, build_generation_prompt
from ..llm.schemas import DocumentPlan
from ..llm.usage import UsageTracker

logger = logging.getLogger(__name__)

MIN_VERBATIM_CHARS = 100
GENERATION_TEMPERATURE = 0.3


async def generate_content(
    llm: CompletionService,
    plan: DocumentPlan,
    style_prompt: str = "",
    usage: UsageTracker | None = None,
) -> str:
    """Return the document body for ``plan``.

    Content of 100 characters or more is used as is.

    Raises:
        ValueError: If the expansion call produced no text.
    """
    if len(plan.content_markdown) >= MIN_VERBATIM_CHARS:
        return plan.content_markdown

    logger.debug("Expanding short proposal for %s", plan.slug)
    prompt = build_generation_prompt(
        plan.title,
        plan.slug,
        plan.action.value,
        plan.change_summary or plan.content_markdown,
        plan.related_files,
        style_prompt=style_prompt,
    )
    completion = await run_sync(
        llm.complete,
        prompt,
        None,
        system=GENERATION_SYSTEM,
        temperature=GENERATION_TEMPERATURE,
    )
    if usage is not None:
        usage.add(completion.usage)
    if not completion.output:
        raise ValueError(f"content generation for {plan.slug} returned no text")
    return completion.output.strip()
