"""
退款相关API路由

路由层保持精简：参数解析 + 调用应用服务 + 包装统一响应。
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from api.dependencies import get_actor_id, get_refund_service
from application.dtos.refunds import (
    CancelRefundRequest,
    InitiateRefundCommand,
    InitiateRefundRequest,
    InitiateRefundResult,
    RefundDTO,
    RefundPage,
)
from application.services.refund_service import RefundApplicationService
from core.logging_config import get_logger
from core.response import Response, success_response
from domain.refund.entity import RefundStatus, TransactionType


router = APIRouter(prefix="/refunds", tags=["Refunds"])
logger = get_logger(__name__)


@router.post(
    "",
    response_model=Response[InitiateRefundResult],
    status_code=status.HTTP_201_CREATED,
    summary="发起退款",
)
async def initiate_refund(
    payload: InitiateRefundRequest,
    actor_id: str = Depends(get_actor_id),
    service: RefundApplicationService = Depends(get_refund_service),
):
    """
    针对已捕获的网关支付发起退款

    - **payment_id**: 网关支付ID
    - **amount**: 退款金额（最小货币单位），不填则退剩余全部
    - **reason**: 退款原因（必填）
    - **transaction_type / transaction_id / installment_year**: 可选，显式指定所属交易
    """
    cmd = InitiateRefundCommand(**payload.model_dump(), actor_id=actor_id)
    result = await service.initiate_refund(cmd)
    return success_response(data=result, message="Refund initiated")


@router.get("", response_model=Response[RefundPage], summary="退款列表")
async def list_refunds(
    status_filter: Optional[RefundStatus] = Query(None, alias="status", description="按状态过滤"),
    transaction_type: Optional[TransactionType] = Query(None, description="按交易类型过滤"),
    page: int = Query(1, ge=1, description="页码"),
    page_size: Optional[int] = Query(None, ge=1, description="每页数量"),
    service: RefundApplicationService = Depends(get_refund_service),
):
    result = await service.list_refunds(
        status=status_filter,
        transaction_type=transaction_type,
        page=page,
        page_size=page_size,
    )
    return success_response(data=result)


@router.get("/users/{user_id}", response_model=Response[RefundPage], summary="用户退款列表")
async def list_user_refunds(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    service: RefundApplicationService = Depends(get_refund_service),
):
    result = await service.list_user_refunds(user_id, page=page, page_size=page_size)
    return success_response(data=result)


@router.get("/{refund_id}", response_model=Response[RefundDTO], summary="退款详情")
async def get_refund(
    refund_id: str,
    service: RefundApplicationService = Depends(get_refund_service),
):
    result = await service.get_refund(refund_id)
    return success_response(data=result)


@router.post("/{refund_id}/cancel", response_model=Response[RefundDTO], summary="取消退款")
async def cancel_refund(
    refund_id: str,
    payload: Optional[CancelRefundRequest] = Body(default=None),
    actor_id: str = Depends(get_actor_id),
    service: RefundApplicationService = Depends(get_refund_service),
):
    """只能取消 initiated 状态的退款"""
    reason = payload.reason if payload else None
    logger.info("refund_cancel_request", refund_id=refund_id, actor_id=actor_id)
    result = await service.cancel_refund(refund_id, reason)
    return success_response(data=result, message="Refund cancelled")


@router.post("/{refund_id}/sync", response_model=Response[RefundDTO], summary="同步网关退款状态")
async def sync_refund(
    refund_id: str,
    actor_id: str = Depends(get_actor_id),
    service: RefundApplicationService = Depends(get_refund_service),
):
    """主动拉取网关退款状态并应用（webhook 丢失时的补偿入口）"""
    logger.info("refund_sync_request", refund_id=refund_id, actor_id=actor_id)
    result = await service.process_refund_outcome(refund_id)
    return success_response(data=result)

