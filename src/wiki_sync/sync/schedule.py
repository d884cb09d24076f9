"""Cron gate for scheduled sync runs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from croniter import CroniterBadCronError, croniter

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_sync_due(
    cron_schedule: str | None,
    last_completed_at: datetime | None,
    now: datetime | None = None,
) -> bool:
    """Tell whether a scheduled run should start now.

    Args:
        cron_schedule: Five-field cron expression; empty disables scheduling.
        last_completed_at: Completion time of the last successful run.
        now: Current time (UTC when naive); defaults to the clock.

    Returns:
        True when the most recent cron tick at or before ``now`` is later
        than the last completion, or when no run has completed yet.
        False for an empty or invalid schedule.
    """
    expression = (cron_schedule or "").strip()
    if not expression:
        return False
    if not croniter.is_valid(expression):
        logger.warning("Invalid sync cron schedule: %r", expression)
        return False
    if last_completed_at is None:
        return True

    now = _aware(now or datetime.now(timezone.utc))
    try:
        # get_prev is strict, so step just past now to include a tick at now.
        previous = croniter(expression, now.timestamp() + 1).get_prev(datetime)
    except CroniterBadCronError as e:
        logger.warning("Invalid sync cron schedule %r: %s", expression, e)
        return False
    return _aware(previous) > _aware(last_completed_at)
