"""Tests for wiki_sync.notifications — fire-and-forget delivery."""

import logging
from unittest.mock import MagicMock

from wiki_sync.notifications import (
    LoggingDispatcher,
    NotificationEvent,
    notify_safely,
)


class TestNotifySafely:
    """Tests for notify_safely()."""

    def test_emits(self):
        dispatcher = MagicMock()
        notify_safely(dispatcher, NotificationEvent.AI_CONFLICT, "u1", {"slug": "x"})
        dispatcher.emit.assert_called_once_with(
            NotificationEvent.AI_CONFLICT, "u1", {"slug": "x"}
        )

    def test_no_recipient_or_dispatcher(self):
        dispatcher = MagicMock()
        notify_safely(dispatcher, NotificationEvent.AI_SYNC_UPDATE, None, {})
        notify_safely(None, NotificationEvent.AI_SYNC_UPDATE, "u1", {})
        dispatcher.emit.assert_not_called()

    def test_failure_is_logged(self, caplog):
        dispatcher = MagicMock()
        dispatcher.emit.side_effect = RuntimeError("smtp down")

        with caplog.at_level(logging.ERROR, logger="wiki_sync.notifications"):
            notify_safely(dispatcher, NotificationEvent.AI_SYNC_UPDATE, "u1", {})

        assert "smtp down" in caplog.text


class TestLoggingDispatcher:
    def test_logs_event(self, caplog):
        with caplog.at_level(logging.INFO, logger="wiki_sync.notifications"):
            LoggingDispatcher().emit(NotificationEvent.MENTION, "u2", {"a": 1})
        assert "Notification mention for u2" in caplog.text
