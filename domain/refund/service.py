"""
退款领域服务 - 退款状态机的业务规则与领域事件
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from shared.codes.refund_codes import GATEWAY_REFUND_PENDING_STATUSES, GATEWAY_REFUND_STATUS_TO_LOCAL
from .entity import (
    ORPHAN_NOTE,
    RefundMethod,
    RefundRecord,
    RefundStatus,
    TransactionType,
)
from .events import RefundCancelled, RefundFailed, RefundInitiated, RefundProcessed
from .exceptions import (
    ActorRequired,
    AlreadyFullyRefunded,
    BelowMinimum,
    ExceedsAvailable,
    InvalidRefundAmount,
    NotCaptured,
    RefundAlreadyInProgress,
    RefundReasonRequired,
    RefundRecordNotFound,
)
from .repository import RefundRepository


def validate_request(reason: Optional[str], actor_id: Optional[str]) -> None:
    """前置条件：退款原因非空、操作人必填"""
    if not reason or not reason.strip():
        raise RefundReasonRequired()
    if not actor_id or not str(actor_id).strip():
        raise ActorRequired()


def select_refund_amount(
    *,
    payment_id: str,
    status: str,
    amount: int,
    amount_refunded: int,
    requested: Optional[int],
    minimum: int,
) -> int:
    """
    计算最终退款金额

    业务规则：
    1. 只有 captured 的支付可退款
    2. 可退金额 = amount - amount_refunded，必须大于 0
    3. 未指定金额时全额退剩余部分；指定金额不能超过可退金额
    4. 不能低于网关最小可退金额
    """
    if status != "captured":
        raise NotCaptured(status)

    available = amount - amount_refunded
    if available <= 0:
        raise AlreadyFullyRefunded(payment_id)

    if requested is not None and requested <= 0:
        raise InvalidRefundAmount(requested)

    final = requested if requested is not None else available
    if final > available:
        raise ExceedsAvailable(final, available)
    if final < minimum:
        raise BelowMinimum(final, minimum)
    return final


def is_final_gateway_status(gateway_status: str) -> bool:
    """网关仍在处理中（created/pending）时不产生本地结果"""
    return gateway_status not in GATEWAY_REFUND_PENDING_STATUSES


def local_status_for(gateway_status: str) -> RefundStatus:
    """网关终态 processed -> processed，其余终态一律视为 failed"""
    return RefundStatus(GATEWAY_REFUND_STATUS_TO_LOCAL.get(gateway_status, "failed"))


class RefundDomainService:
    """
    退款领域服务 - 编排退款记录的创建与状态迁移

    职责：
    1. 发起前的重复退款检查
    2. 创建 initiated 记录（完整或降级形态）
    3. 应用网关回执、取消退款
    4. 产生领域事件，由应用层在提交后消费
    """

    def __init__(self, refund_repository: RefundRepository):
        self.refund_repository = refund_repository
        self.events: List = []  # 领域事件收集

    async def ensure_no_open_refund(self, payment_id: str) -> None:
        if await self.refund_repository.exists_open_for_payment(payment_id):
            raise RefundAlreadyInProgress(payment_id)

    async def record_initiated(
        self,
        *,
        gateway_refund_id: str,
        payment_id: str,
        order_id: Optional[str],
        amount: int,
        currency: str,
        reason: str,
        refunded_by: str,
        gateway_status: Optional[str] = None,
        user_id: Optional[int] = None,
        transaction_type: TransactionType = TransactionType.UNKNOWN,
        transaction_id: Optional[int] = None,
        installment_year: Optional[int] = None,
        refund_method: RefundMethod = RefundMethod.ORIGINAL,
        notes: Optional[str] = None,
    ) -> RefundRecord:
        """持久化 initiated 退款记录并记录 RefundInitiated 事件"""
        now = datetime.now(timezone.utc)
        if transaction_type == TransactionType.UNKNOWN and notes is None:
            notes = ORPHAN_NOTE
        record = RefundRecord(
            id=None,
            refund_id=gateway_refund_id,
            gateway_refund_id=gateway_refund_id,
            original_payment_id=payment_id,
            original_order_id=order_id,
            refund_amount=amount,
            currency=currency,
            refund_status=RefundStatus.INITIATED,
            refund_reason=reason,
            refunded_by=refunded_by,
            user_id=user_id,
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            installment_year=installment_year,
            refund_method=refund_method,
            gateway_refund_status=gateway_status,
            notes=notes,
            initiated_at=now,
            created_at=now,
            updated_at=now,
        )
        created = await self.refund_repository.create(record)
        self.events.append(RefundInitiated(record=created))
        return created

    async def apply_gateway_outcome(self, gateway_refund_id: str, gateway_status: str) -> RefundRecord:
        """
        应用网关回执

        业务规则：
        1. 记录必须存在
        2. 相同状态重复应用为空操作（不写库），但仍产生事件用于重发通知
        3. 终态不可迁出
        """
        record = await self.refund_repository.get_by_gateway_refund_id(gateway_refund_id)
        if not record:
            raise RefundRecordNotFound(gateway_refund_id)

        target = local_status_for(gateway_status)
        if record.apply_gateway_outcome(target, gateway_status):
            record = await self.refund_repository.update(record)

        event_type = RefundProcessed if target == RefundStatus.PROCESSED else RefundFailed
        self.events.append(event_type(record=record))
        return record

    async def cancel(self, refund_id: str, reason: Optional[str] = None) -> RefundRecord:
        """取消退款：只能从 initiated 取消，原因写入备注"""
        record = await self.refund_repository.get_by_refund_id(refund_id)
        if not record:
            raise RefundRecordNotFound(refund_id)

        record.cancel(reason)
        updated = await self.refund_repository.update(record)
        self.events.append(RefundCancelled(record=updated))
        return updated

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
