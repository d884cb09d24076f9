"""Stage 1 of the multi-stage pipeline: one short summary per file.

Summaries feed the planner and are stored on the source file so the
next run can show them without another call.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..core.async_utils import gather_bounded, run_sync
from ..llm.client import CompletionService
from ..llm.prompts import build_file_summary_prompt
from ..llm.usage import UsageTracker

logger = logging.getLogger(__name__)

SUMMARY_CONCURRENCY = 5
MAX_SUMMARY_CHARS = 500
# Leading characters of a file sent for summarizing.
MAX_SUMMARY_INPUT_CHARS = 8_000


def fallback_summary(path: str) -> str:
    return f"Source file at {path}"


async def summarize_file(
    llm: CompletionService,
    path: str,
    content: str,
    prompt: str = "",
    model: str | None = None,
    usage: UsageTracker | None = None,
) -> str:
    completion = await run_sync(
        llm.complete,
        build_file_summary_prompt(
            path, content[:MAX_SUMMARY_INPUT_CHARS], prompt
        ),
        None,
        model=model,
    )
    if usage is not None:
        usage.add(completion.usage)
    if not completion.output:
        return fallback_summary(path)
    return completion.output.strip()[:MAX_SUMMARY_CHARS]


async def summarize_files(
    llm: CompletionService | None,
    files: Mapping[str, str],
    prompt: str = "",
    model: str | None = None,
    usage: UsageTracker | None = None,
) -> dict[str, str]:
    """Summarize every file with bounded concurrency.

    Args:
        llm: Completion service; every file gets the fallback when None.
        files: File contents keyed by path.
        prompt: Configured summary instructions; default if empty.
        model: Summary model override.
        usage: Optional run usage tracker.

    Returns:
        ``path -> summary`` for every input file, in input order.
    """
    paths = list(files)
    if llm is None:
        return {path: fallback_summary(path) for path in paths}

    results = await gather_bounded(
        [
            lambda p=path: summarize_file(
                llm, p, files[p], prompt, model, usage
            )
            for path in paths
        ],
        SUMMARY_CONCURRENCY,
    )
    summaries: dict[str, str] = {}
    failed = 0
    for path, result in zip(paths, results):
        if isinstance(result, BaseException):
            failed += 1
            logger.warning("Summary of %s failed: %s", path, result)
            summaries[path] = fallback_summary(path)
        else:
            summaries[path] = result
    logger.info(
        "Summarized %d file(s), %d fell back to the path", len(paths), failed
    )
    return summaries
