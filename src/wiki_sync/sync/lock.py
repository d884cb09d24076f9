"""The single-active-run guarantee.

The lock is the one ``sync_runs`` record in ``running`` state, created by
an atomic conditional insert in the store. Acquiring never waits for the
holder: a second caller is refused immediately.
"""

from __future__ import annotations

import logging

from ..storage.base import DocumentStore
from .models import RunStats, SyncStatus, TriggerType

logger = logging.getLogger(__name__)


class SyncLock:
    """Acquire and release sync runs on a ``DocumentStore``."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def acquire(self, trigger_type: TriggerType) -> int | None:
        """Start a run unless one is already running.

        Returns:
            The new run id, or None when another run holds the lock.
        """
        run_id = self.store.try_acquire_run(trigger_type)
        if run_id is None:
            logger.info("Sync already running; %s run refused", trigger_type.value)
        else:
            logger.info("Acquired sync lock for %s run %d", trigger_type.value, run_id)
        return run_id

    def release(
        self, run_id: int, status: SyncStatus, stats: RunStats | None = None
    ) -> None:
        """Move the run to ``completed`` or ``failed`` and record its counters.

        Raises:
            ValueError: If ``status`` is not terminal.
        """
        if status == SyncStatus.RUNNING:
            raise ValueError("A run can only be released as completed or failed")
        self.store.finish_run(run_id, status, stats or RunStats())
        logger.info("Released sync lock for run %d (%s)", run_id, status.value)

    def force_release(self, message: str) -> int | None:
        """Fail whatever run is marked running, for an operator clearing a
        lock left behind by a crashed process.

        Returns:
            Id of the released run, or None if nothing was running.
        """
        run_id = self.store.fail_running_run(message)
        if run_id is not None:
            logger.warning("Force-released sync lock of run %d", run_id)
        return run_id
