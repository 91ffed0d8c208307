"""
Notification dispatcher adapters.

- LoggingNotificationDispatcher: default, emits structured log events only
- HttpNotificationDispatcher: POSTs JSON to an external notification service
"""
from __future__ import annotations

from core.settings import NotificationSettings
from application.ports.notifications import NotificationDispatcher
from .logging_dispatcher import LoggingNotificationDispatcher
from .http_dispatcher import HttpNotificationDispatcher


def get_notification_dispatcher(config: NotificationSettings) -> NotificationDispatcher:
    if config.endpoint:
        return HttpNotificationDispatcher(config)
    return LoggingNotificationDispatcher()


__all__ = [
    "LoggingNotificationDispatcher",
    "HttpNotificationDispatcher",
    "get_notification_dispatcher",
]
