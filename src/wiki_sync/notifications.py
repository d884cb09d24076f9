"""Fire-and-forget notifications about AI changes to human-edited documents.

Delivery (email, in-app inbox, chat) lives outside this package behind
``NotificationDispatcher``. The pipeline only ever calls ``notify_safely``,
so a broken dispatcher can never fail a document update.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    MENTION = "mention"
    NEW_COMMENT = "new_comment"
    AI_SYNC_UPDATE = "ai_sync_update"
    AI_CONFLICT = "ai_conflict"


class NotificationDispatcher(Protocol):
    def emit(
        self,
        event: NotificationEvent,
        recipient_id: str,
        payload: dict[str, Any],
    ) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: writes each notification to the log."""

    def emit(
        self,
        event: NotificationEvent,
        recipient_id: str,
        payload: dict[str, Any],
    ) -> None:
        logger.info(
            "Notification %s for %s: %s", event.value, recipient_id, payload
        )


def notify_safely(
    dispatcher: NotificationDispatcher | None,
    event: NotificationEvent,
    recipient_id: str | None,
    payload: dict[str, Any],
) -> None:
    """Emit a notification, logging instead of raising on failure.

    Nothing is sent when there is no dispatcher or no recipient.
    """
    if dispatcher is None or not recipient_id:
        return
    try:
        dispatcher.emit(event, recipient_id, payload)
    except Exception as e:
        logger.error(
            "Failed to send %s notification to %s: %s",
            event.value,
            recipient_id,
            e,
        )
