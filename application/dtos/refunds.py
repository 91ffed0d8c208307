"""
Refund DTOs (Pydantic v2) used at application boundaries.

Gateway payloads are normalised into GatewayPayment / GatewayRefund by the
adapter; amounts are always integer minor units.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from application.dtos.base import DTOBase
from domain.refund.entity import RefundMethod, RefundStatus, TransactionType


def _from_epoch(v: Any) -> Any:
    if isinstance(v, (int, float)):
        return datetime.fromtimestamp(v, tz=timezone.utc)
    return v


class GatewayPayment(BaseModel):
    id: str
    amount: int
    amount_refunded: int = 0
    status: str
    method: Optional[str] = None
    currency: str = "INR"
    order_id: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    vpa: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_from_epoch(cls, v):
        return _from_epoch(v)

    @property
    def available(self) -> int:
        return self.amount - self.amount_refunded


class GatewayRefund(DTOBase):
    id: str
    payment_id: str
    amount: int
    currency: str = "INR"
    status: str
    notes: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_from_epoch(cls, v):
        return _from_epoch(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_dict(cls, v):
        # the gateway returns an empty JSON array when no notes are set
        return v if isinstance(v, dict) else {}


class InitiateRefundRequest(BaseModel):
    """HTTP body for initiating a refund; the actor comes from the request context."""

    payment_id: str = Field(..., min_length=1)
    amount: Optional[int] = Field(default=None, description="Minor units; omit for full refund")
    reason: str
    transaction_type: Optional[TransactionType] = None
    transaction_id: Optional[int] = None
    installment_year: Optional[int] = None
    refund_method: RefundMethod = RefundMethod.ORIGINAL


class InitiateRefundCommand(InitiateRefundRequest):
    actor_id: str


class CancelRefundRequest(BaseModel):
    reason: Optional[str] = None


class VerifyPaymentSignatureRequest(BaseModel):
    order_id: str
    payment_id: str
    signature: str


class RefundDTO(DTOBase):
    id: Optional[int] = None
    refund_id: str
    gateway_refund_id: str
    original_payment_id: str
    original_order_id: Optional[str] = None
    refund_amount: int
    currency: str
    refund_status: RefundStatus
    refund_reason: str
    refunded_by: str
    user_id: Optional[int] = None
    transaction_type: TransactionType
    transaction_id: Optional[int] = None
    installment_year: Optional[int] = None
    refund_method: RefundMethod
    gateway_refund_status: Optional[str] = None
    notes: Optional[str] = None
    initiated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InitiateRefundResult(DTOBase):
    refund: RefundDTO
    gateway_refund: GatewayRefund
    warnings: list[str] = Field(default_factory=list)


class RefundPage(DTOBase):
    items: list[RefundDTO]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool


class WebhookEnvelope(BaseModel):
    """Inbound gateway event: {event, payload: {refund: {entity: {id}} | {id}}}"""

    event: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    def refund_id(self) -> Optional[str]:
        refund = self.payload.get("refund") or {}
        if not isinstance(refund, dict):
            return None
        entity = refund.get("entity")
        if isinstance(entity, dict) and entity.get("id"):
            return entity["id"]
        return refund.get("id")


class WebhookAck(DTOBase):
    event: str
    handled: bool
    refund_id: Optional[str] = None
    detail: Optional[str] = None
