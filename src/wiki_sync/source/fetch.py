"""Bounded, retrying bulk fetch of source file contents."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..core.async_utils import gather_bounded, run_sync
from ..core.retry import with_retry
from .client import SourceClient

logger = logging.getLogger(__name__)

FETCH_CONCURRENCY = 5


async def fetch_file_contents(
    client: SourceClient,
    paths: Sequence[str],
    concurrency: int = FETCH_CONCURRENCY,
) -> dict[str, str]:
    """Fetch many files with bounded fan-out.

    Each path is retried on transient errors. A path that is missing,
    oversized, not a file, or fails permanently is skipped and logged;
    it never aborts the batch.

    Args:
        client: Source client to read from.
        paths: Repository-relative file paths.
        concurrency: Maximum simultaneous requests.

    Returns:
        Mapping of path to decoded content for the files that were fetched.
    """

    def _fetcher(path: str):
        return lambda: run_sync(
            with_retry, lambda: client.fetch_file_content(path)
        )

    results = await gather_bounded(
        [_fetcher(p) for p in paths], concurrency
    )

    contents: dict[str, str] = {}
    for path, result in zip(paths, results):
        if isinstance(result, BaseException):
            logger.error("Failed to fetch %s: %s", path, result)
            continue
        if result is None:
            continue
        contents[path] = result
    return contents
