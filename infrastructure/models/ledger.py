"""
本地账本数据库模型 - 预付款令牌、预约令牌、年度维保分期计划

退款子状态以 JSON 快照形式内嵌在所属记录上（refund_details）。
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Boolean, JSON,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class _TokenColumns:
    """令牌类表公共列"""

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID")
    custom_token_id = Column(String(100), nullable=False, unique=True, comment="业务令牌编号")
    amount_paid = Column(BigInteger, nullable=False, default=0, comment="已付金额（最小货币单位）")
    status = Column(String(30), nullable=False, default="active", comment="令牌状态")
    gateway_order_id = Column(String(100), nullable=True, comment="网关订单ID")
    gateway_payment_id = Column(String(100), nullable=True, index=True, comment="网关支付ID")
    refund_details = Column(JSON, nullable=True, comment="退款子状态快照")
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


class PrepaymentTokenModel(_TokenColumns, Base):
    __tablename__ = "prepayment_tokens"


class ReservationTokenModel(_TokenColumns, Base):
    __tablename__ = "reservation_tokens"


class InstallmentPlanModel(Base):
    """年度维保分期计划"""
    __tablename__ = "installment_plans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    entries = relationship(
        "InstallmentEntryModel",
        back_populates="plan",
        order_by="InstallmentEntryModel.year",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class InstallmentEntryModel(Base):
    """分期计划年度条目"""
    __tablename__ = "installment_entries"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(
        Integer,
        ForeignKey("installment_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="所属分期计划"
    )
    year = Column(Integer, nullable=False, comment="年度")
    amount = Column(BigInteger, nullable=False, comment="应付金额（最小货币单位）")
    paid = Column(Boolean, nullable=False, default=False, comment="是否已付")
    gateway_order_id = Column(String(100), nullable=True, comment="网关订单ID")
    gateway_payment_id = Column(String(100), nullable=True, comment="网关支付ID")
    refund_details = Column(JSON, nullable=True, comment="退款子状态快照")

    plan = relationship("InstallmentPlanModel", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("plan_id", "year", name="uq_installment_entries_plan_year"),
        Index("ix_installment_entries_gateway_payment_id", "gateway_payment_id"),
    )
