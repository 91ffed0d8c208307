"""
本地账本实体 - 预付款令牌、预约令牌、年度维保分期计划

这些记录由外部账本维护，本服务只读取其网关支付ID并写入内嵌的退款子状态。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from domain.refund.entity import RefundRecord, TransactionType, _ensure_utc


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _parse(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return _ensure_utc(value)
    return _ensure_utc(datetime.fromisoformat(value))


@dataclass
class RefundSubState:
    """嵌入在所属交易上的退款子状态，始终是 RefundRecord 的完整快照"""

    refund_id: str
    refund_amount: int
    refund_status: str
    refund_reason: Optional[str] = None
    refunded_by: Optional[str] = None
    initiated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: RefundRecord) -> "RefundSubState":
        return cls(
            refund_id=record.refund_id,
            refund_amount=record.refund_amount,
            refund_status=record.refund_status.value,
            refund_reason=record.refund_reason,
            refunded_by=record.refunded_by,
            initiated_at=record.initiated_at,
            processed_at=record.processed_at,
            completed_at=record.completed_at,
        )

    def to_dict(self) -> dict:
        return {
            "refund_id": self.refund_id,
            "refund_amount": self.refund_amount,
            "refund_status": self.refund_status,
            "refund_reason": self.refund_reason,
            "refunded_by": self.refunded_by,
            "initiated_at": _iso(self.initiated_at),
            "processed_at": _iso(self.processed_at),
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["RefundSubState"]:
        if not data:
            return None
        return cls(
            refund_id=data["refund_id"],
            refund_amount=int(data["refund_amount"]),
            refund_status=data["refund_status"],
            refund_reason=data.get("refund_reason"),
            refunded_by=data.get("refunded_by"),
            initiated_at=_parse(data.get("initiated_at")),
            processed_at=_parse(data.get("processed_at")),
            completed_at=_parse(data.get("completed_at")),
        )


@dataclass
class Token:
    """令牌类交易（预付款 / 预约）公共字段"""

    id: Optional[int]
    user_id: Optional[int]
    custom_token_id: str
    amount_paid: int
    status: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    refund: Optional[RefundSubState] = None


@dataclass
class PrepaymentToken(Token):
    pass


@dataclass
class ReservationToken(Token):
    pass


@dataclass
class InstallmentEntry:
    """分期计划中的某一年度条目"""

    year: int
    amount: int
    paid: bool = False
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    refund: Optional[RefundSubState] = None


@dataclass
class InstallmentPlan:
    id: Optional[int]
    user_id: Optional[int]
    entries: list[InstallmentEntry] = field(default_factory=list)

    def entry_for_payment(self, gateway_payment_id: str) -> Optional[InstallmentEntry]:
        for entry in self.entries:
            if entry.gateway_payment_id == gateway_payment_id:
                return entry
        return None

    def entry_for_year(self, year: int) -> Optional[InstallmentEntry]:
        for entry in self.entries:
            if entry.year == year:
                return entry
        return None


@dataclass(frozen=True)
class TransactionRef:
    """Locator 结果：交易类型 + 交易ID（分期计划附带年度）"""

    transaction_type: TransactionType
    transaction_id: int
    installment_year: Optional[int] = None
