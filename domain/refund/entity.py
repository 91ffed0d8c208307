"""
退款领域实体 - 退款记录聚合根
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.refund.exceptions import InvalidTransition


class RefundStatus(str, Enum):
    """退款状态枚举"""
    INITIATED = "initiated"      # 已发起，等待网关确认
    PROCESSED = "processed"      # 网关已处理，等待到账
    SUCCESSFUL = "successful"    # 已到账（终态）
    FAILED = "failed"            # 失败（终态）
    CANCELLED = "cancelled"      # 已取消（终态）


class TransactionType(str, Enum):
    """退款所属本地交易类型"""
    TOKEN = "token"
    RESERVATION_TOKEN = "reservation-token"
    INSTALLMENT_PLAN = "installment-plan"
    UNKNOWN = "unknown"          # 孤儿退款：本地记录已不存在


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"


TERMINAL_STATUSES = frozenset(
    {RefundStatus.SUCCESSFUL, RefundStatus.FAILED, RefundStatus.CANCELLED}
)

# 允许的状态迁移；终态没有出边
ALLOWED_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.INITIATED: frozenset(
        {RefundStatus.PROCESSED, RefundStatus.FAILED, RefundStatus.CANCELLED}
    ),
    RefundStatus.PROCESSED: frozenset({RefundStatus.SUCCESSFUL, RefundStatus.FAILED}),
    RefundStatus.SUCCESSFUL: frozenset(),
    RefundStatus.FAILED: frozenset(),
    RefundStatus.CANCELLED: frozenset(),
}

ORPHAN_NOTE = "Refund processed without local transaction record (record may have been deleted)"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def can_transition(current: RefundStatus, target: RefundStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class RefundRecord:
    """
    退款记录聚合根 - 本地跟踪网关退款的生命周期

    业务规则：
    1. 与网关退款创建同时产生，之后只能通过状态迁移修改，不删除
    2. 状态只能前进；cancelled 只能从 initiated 进入
    3. 终态（successful / failed / cancelled）不可再迁移
    4. 重复应用当前状态为空操作，不修改时间戳
    """

    id: Optional[int]
    refund_id: str                      # 全局唯一，取网关退款ID
    gateway_refund_id: str
    original_payment_id: str
    original_order_id: Optional[str]
    refund_amount: int                  # 最小货币单位
    currency: str
    refund_status: RefundStatus
    refund_reason: str
    refunded_by: str

    user_id: Optional[int] = None       # 孤儿退款为空
    transaction_type: TransactionType = TransactionType.UNKNOWN
    transaction_id: Optional[int] = None
    installment_year: Optional[int] = None
    refund_method: RefundMethod = RefundMethod.ORIGINAL
    gateway_refund_status: Optional[str] = None
    notes: Optional[str] = None

    initiated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.refund_status = RefundStatus(self.refund_status)
        self.transaction_type = TransactionType(self.transaction_type)
        self.refund_method = RefundMethod(self.refund_method)
        self.initiated_at = _ensure_utc(self.initiated_at)
        self.processed_at = _ensure_utc(self.processed_at)
        self.completed_at = _ensure_utc(self.completed_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_orphan(self) -> bool:
        return self.transaction_type == TransactionType.UNKNOWN

    def is_terminal(self) -> bool:
        return self.refund_status in TERMINAL_STATUSES

    def _transition(self, target: RefundStatus) -> None:
        if not can_transition(self.refund_status, target):
            raise InvalidTransition(self.refund_status.value, target.value)
        self.refund_status = target

    def apply_gateway_outcome(self, target: RefundStatus, gateway_status: str) -> bool:
        """
        应用网关回执结果（processed 或 failed）

        返回是否发生了状态变化；相同状态重复应用时不修改任何字段。
        """
        if self.refund_status == target:
            return False
        self._transition(target)
        now = datetime.now(timezone.utc)
        self.gateway_refund_status = gateway_status
        self.processed_at = now
        if target == RefundStatus.PROCESSED:
            self.completed_at = now
        elif target == RefundStatus.FAILED:
            self.completed_at = None
        self.updated_at = now
        return True

    def mark_successful(self) -> None:
        """标记到账（processed -> successful）"""
        self._transition(RefundStatus.SUCCESSFUL)
        now = datetime.now(timezone.utc)
        self.completed_at = self.completed_at or now
        self.updated_at = now

    def cancel(self, reason: Optional[str] = None) -> None:
        """
        取消退款

        业务规则：只能取消 initiated 状态的退款
        """
        if self.refund_status != RefundStatus.INITIATED:
            raise InvalidTransition(self.refund_status.value, RefundStatus.CANCELLED.value)
        self._transition(RefundStatus.CANCELLED)
        if reason:
            self.notes = reason
        self.updated_at = datetime.now(timezone.utc)
