"""
退款记录数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Text, Index
from datetime import datetime, timezone

from .base import Base


class RefundRecordModel(Base):
    """
    退款记录数据库模型

    所有业务规则都在 domain.refund.entity.RefundRecord 中
    """
    __tablename__ = "refund_records"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 退款标识（取网关退款ID，全局唯一）
    refund_id = Column(String(100), unique=True, nullable=False, comment="退款ID")
    gateway_refund_id = Column(String(100), nullable=False, index=True, comment="网关退款ID")

    # 原支付
    original_payment_id = Column(String(100), nullable=False, index=True, comment="原网关支付ID")
    original_order_id = Column(String(100), nullable=True, comment="原网关订单ID")

    # 金额（最小货币单位）
    refund_amount = Column(BigInteger, nullable=False, comment="退款金额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码 ISO-4217")

    # 状态
    refund_status = Column(
        String(20),
        nullable=False,
        default="initiated",
        index=True,
        comment="退款状态: initiated/processed/successful/failed/cancelled"
    )
    gateway_refund_status = Column(String(50), nullable=True, comment="网关最近返回的退款状态")

    # 所属交易（孤儿退款为 unknown / 空）
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID")
    transaction_type = Column(
        String(30),
        nullable=False,
        default="unknown",
        comment="交易类型: token/reservation-token/installment-plan/unknown"
    )
    transaction_id = Column(Integer, nullable=True, comment="所属交易ID")
    installment_year = Column(Integer, nullable=True, comment="分期年度")

    # 操作信息
    refund_reason = Column(Text, nullable=False, comment="退款原因")
    refunded_by = Column(String(100), nullable=False, comment="操作人")
    refund_method = Column(String(30), nullable=False, default="original", comment="退款方式")
    notes = Column(Text, nullable=True, comment="备注（取消原因、降级/孤儿标记）")

    # 时间戳
    initiated_at = Column(DateTime(timezone=True), nullable=True, comment="发起时间")
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="网关处理时间")
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="完成时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 索引
    __table_args__ = (
        Index("ix_refund_records_payment_status", "original_payment_id", "refund_status"),
        Index("ix_refund_records_user_created", "user_id", "created_at"),
        Index("ix_refund_records_created_at", "created_at"),
        Index("ix_refund_records_transaction", "transaction_type", "transaction_id"),
    )

    def __repr__(self):
        return (
            f"<RefundRecordModel(id={self.id}, refund_id='{self.refund_id}', "
            f"amount={self.refund_amount}, status='{self.refund_status}')>"
        )
