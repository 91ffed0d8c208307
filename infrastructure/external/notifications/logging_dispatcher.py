"""Notification dispatcher that only records structured log events."""
from __future__ import annotations

from typing import Any, Optional

from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingNotificationDispatcher:
    async def notify_user(
        self,
        user_id: int,
        category: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
        related_entity_id: Optional[str] = None,
        related_entity_type: Optional[str] = None,
    ) -> None:
        logger.info(
            "notification_user",
            user_id=user_id,
            category=category,
            title=title,
            message=message,
            metadata=metadata,
            related_entity_id=related_entity_id,
            related_entity_type=related_entity_type,
        )

    async def notify_operators(
        self,
        category: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
        related_entity_id: Optional[str] = None,
        related_entity_type: Optional[str] = None,
    ) -> None:
        logger.info(
            "notification_operators",
            category=category,
            title=title,
            message=message,
            metadata=metadata,
            related_entity_id=related_entity_id,
            related_entity_type=related_entity_type,
        )

    async def aclose(self) -> None:
        return None
