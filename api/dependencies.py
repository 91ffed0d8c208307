"""
API依赖项 - 服务注入与操作人身份
"""
from typing import Optional

from fastapi import Header, Request

from application.services.refund_service import RefundApplicationService
from core.exceptions import UnauthorizedException


ACTOR_HEADER = "X-Actor-ID"


def get_refund_service(request: Request) -> RefundApplicationService:
    """从应用状态获取退款服务（在 lifespan 中组装）"""
    service = getattr(request.app.state, "refund_service", None)
    if service is None:
        raise RuntimeError("Refund service is not initialised")
    return service


async def get_actor_id(
    actor_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER),
) -> str:
    """
    获取操作人ID

    认证由上游负责，这里只读取其传入的身份头。
    """
    if not actor_id or not actor_id.strip():
        raise UnauthorizedException(f"Missing {ACTOR_HEADER} header")
    return actor_id.strip()
