"""
Notification dispatcher port.

Delivery failures must never surface to the caller of a refund operation;
the application treats every dispatch as best-effort.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def notify_user(
        self,
        user_id: int,
        category: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
        related_entity_id: Optional[str] = None,
        related_entity_type: Optional[str] = None,
    ) -> None: ...

    async def notify_operators(
        self,
        category: str,
        title: str,
        message: str,
        metadata: dict[str, Any],
        related_entity_id: Optional[str] = None,
        related_entity_type: Optional[str] = None,
    ) -> None: ...

    async def aclose(self) -> None: ...
