"""
Notification dispatcher backed by an HTTP notification service.

Payload: {audience: "user"|"operators", user_id?, category, title, message,
metadata, related_entity_id, related_entity_type}
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from core.logging_config import get_logger
from core.settings import NotificationSettings


logger = get_logger(__name__)


class HttpNotificationDispatcher:
    def __init__(
        self,
        config: NotificationSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.endpoint:
            raise RuntimeError("NOTIFICATIONS__ENDPOINT not configured")
        headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else None
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout),
            headers=headers,
            transport=transport,
        )
        self._endpoint = config.endpoint

    async def _post(self, payload: dict[str, Any]) -> None:
        resp = await self._client.post(self._endpoint, json=payload)
        resp.raise_for_status()
        logger.debug(
            "notification_sent",
            audience=payload["audience"],
            category=payload["category"],
            status_code=resp.status_code,
        )

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
        await self._post({
            "audience": "user",
            "user_id": user_id,
            "category": category,
            "title": title,
            "message": message,
            "metadata": metadata,
            "related_entity_id": related_entity_id,
            "related_entity_type": related_entity_type,
        })

    async def notify_operators(
        self,
        category: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
        related_entity_id: Optional[str] = None,
        related_entity_type: Optional[str] = None,
    ) -> None:
        await self._post({
            "audience": "operators",
            "category": category,
            "title": title,
            "message": message,
            "metadata": metadata,
            "related_entity_id": related_entity_id,
            "related_entity_type": related_entity_type,
        })

    async def aclose(self) -> None:
        await self._client.aclose()
