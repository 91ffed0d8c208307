"""
退款领域异常 - 按 domain.common.exceptions 的分类细化
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    BusinessException,
    ConflictException,
    DomainValidationException,
    GatewayException,
    InfrastructureException,
    NotFoundException,
)
from shared.codes.refund_codes import RefundCode


class GatewayErrorKind(str, Enum):
    """网关拒绝原因分类（尽力而为，无法识别时为 unknown）"""
    STALE_PAYMENT = "stale-payment"
    INSUFFICIENT_BALANCE = "insufficient-balance"
    INVALID_AMOUNT = "invalid-amount"
    TEST_MODE_RESTRICTED = "test-mode-restricted"
    UNKNOWN = "unknown"


_GATEWAY_MESSAGES = {
    GatewayErrorKind.STALE_PAYMENT: (
        RefundCode.STALE_PAYMENT,
        "This payment is older than the gateway refund window (6 months) "
        "and cannot be refunded online. Arrange a manual refund instead.",
    ),
    GatewayErrorKind.INSUFFICIENT_BALANCE: (
        RefundCode.INSUFFICIENT_BALANCE,
        "The merchant gateway account has insufficient balance for this refund. "
        "Add funds to the account and retry.",
    ),
    GatewayErrorKind.INVALID_AMOUNT: (
        RefundCode.INVALID_AMOUNT,
        "The gateway rejected the refund amount. "
        "Check the amount against the payment's refundable balance.",
    ),
    GatewayErrorKind.TEST_MODE_RESTRICTED: (
        RefundCode.TEST_MODE_RESTRICTED,
        "Refunds are not supported for payments made with real bank instruments "
        "while the gateway account is in test mode. Use gateway test instruments "
        "or switch to live mode.",
    ),
    GatewayErrorKind.UNKNOWN: (
        RefundCode.GATEWAY_UNKNOWN,
        "The payment gateway could not process the refund. "
        "Retry later or contact support.",
    ),
}


class GatewayRefundRejected(GatewayException):
    """网关拒绝退款。原始网关文本仅进入日志/details，不直接作为提示。"""

    def __init__(self, kind: GatewayErrorKind, *, details: Optional[dict] = None):
        code, message = _GATEWAY_MESSAGES[kind]
        super().__init__(kind.value, message, code=code, details=details)
        self.kind = kind


# ---- Validation ----

class RefundReasonRequired(DomainValidationException):
    def __init__(self):
        super().__init__(
            "Refund reason is required",
            field="reason",
            code=RefundCode.REASON_REQUIRED,
            error_type="RefundReasonRequired",
        )


class ActorRequired(DomainValidationException):
    def __init__(self):
        super().__init__(
            "Acting operator is required",
            field="actor_id",
            code=RefundCode.ACTOR_REQUIRED,
            error_type="ActorRequired",
        )


class InvalidRefundAmount(DomainValidationException):
    def __init__(self, amount: int):
        super().__init__(
            f"Refund amount must be a positive number of minor units: {amount}",
            field="amount",
            details={"amount": amount},
            code=RefundCode.AMOUNT_INVALID,
            error_type="InvalidRefundAmount",
        )


class BelowMinimum(DomainValidationException):
    def __init__(self, amount: int, minimum: int):
        super().__init__(
            f"Refund amount {amount} is below the minimum refundable amount {minimum}",
            field="amount",
            details={"amount": amount, "minimum": minimum},
            code=RefundCode.BELOW_MINIMUM,
            error_type="BelowMinimum",
        )


class InstallmentYearRequired(DomainValidationException):
    def __init__(self, plan_id: str):
        super().__init__(
            "Installment year must be specified for this installment plan refund",
            field="installment_year",
            details={"transaction_id": plan_id},
            code=RefundCode.INSTALLMENT_YEAR_REQUIRED,
            error_type="InstallmentYearRequired",
        )


# ---- Not found ----

class PaymentNotFound(NotFoundException):
    def __init__(self, payment_id: str):
        super().__init__(
            f"Payment not found: {payment_id}",
            code=RefundCode.PAYMENT_NOT_FOUND,
            error_type="PaymentNotFound",
            details={"payment_id": payment_id},
        )


class RefundRecordNotFound(NotFoundException):
    def __init__(self, identifier: str):
        super().__init__(
            f"Refund record not found: {identifier}",
            code=RefundCode.REFUND_NOT_FOUND,
            error_type="RefundRecordNotFound",
            details={"refund_id": identifier},
        )


class RefundNotFoundAtGateway(NotFoundException):
    def __init__(self, gateway_refund_id: str):
        super().__init__(
            f"Refund not found at gateway: {gateway_refund_id}",
            code=RefundCode.REFUND_NOT_FOUND,
            error_type="GatewayRefundNotFound",
            details={"gateway_refund_id": gateway_refund_id},
        )


class TransactionNotFound(NotFoundException):
    def __init__(self, transaction_type: str, transaction_id: str):
        super().__init__(
            f"Transaction not found: {transaction_type}/{transaction_id}",
            code=RefundCode.TRANSACTION_NOT_FOUND,
            error_type="TransactionNotFound",
            details={"transaction_type": transaction_type, "transaction_id": transaction_id},
        )


class UserNotFound(NotFoundException):
    def __init__(self, transaction_type: str, transaction_id: Optional[str]):
        super().__init__(
            "User not found for the owning transaction",
            code=RefundCode.USER_NOT_FOUND,
            error_type="UserNotFound",
            details={"transaction_type": transaction_type, "transaction_id": transaction_id},
        )


# ---- Conflict ----

class NotCaptured(ConflictException):
    def __init__(self, status: str):
        super().__init__(
            f"Payment is not captured (current status: {status})",
            code=RefundCode.NOT_CAPTURED,
            error_type="NotCaptured",
            details={"status": status},
        )
        self.status = status


class AlreadyFullyRefunded(ConflictException):
    def __init__(self, payment_id: str):
        super().__init__(
            "Payment has already been fully refunded",
            code=RefundCode.ALREADY_FULLY_REFUNDED,
            error_type="AlreadyFullyRefunded",
            details={"payment_id": payment_id},
        )


class ExceedsAvailable(ConflictException):
    def __init__(self, amount: int, available: int):
        super().__init__(
            f"Refund amount {amount} exceeds available amount {available}",
            code=RefundCode.EXCEEDS_AVAILABLE,
            error_type="ExceedsAvailable",
            details={"amount": amount, "available": available},
            field="amount",
        )


class InvalidTransition(ConflictException):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move refund from {current} to {target}",
            code=RefundCode.INVALID_TRANSITION,
            error_type="InvalidTransition",
            details={"current": current, "target": target},
        )


class RefundAlreadyInProgress(ConflictException):
    def __init__(self, payment_id: str):
        super().__init__(
            "A refund for this payment is already in progress",
            code=RefundCode.REFUND_IN_PROGRESS,
            error_type="RefundAlreadyInProgress",
            details={"payment_id": payment_id},
        )


class DuplicateRefundRecord(ConflictException):
    def __init__(self, refund_id: str):
        super().__init__(
            f"Refund record already exists: {refund_id}",
            code=RefundCode.DUPLICATE_REFUND,
            error_type="DuplicateRefundRecord",
            details={"refund_id": refund_id},
        )


# ---- Infrastructure ----

class GatewayUnavailable(InfrastructureException):
    def __init__(self, operation: str):
        super().__init__(
            "Payment gateway is temporarily unavailable, please retry",
            code=RefundCode.GATEWAY_UNAVAILABLE,
            error_type="GatewayUnavailable",
            details={"operation": operation},
        )


class StoreUnavailable(InfrastructureException):
    def __init__(self, operation: str = "store"):
        super().__init__(
            "Refund store is temporarily unavailable, please retry",
            code=RefundCode.STORE_UNAVAILABLE,
            error_type="StoreUnavailable",
            details={"operation": operation},
        )


class RefundRecordPersistFailed(InfrastructureException):
    """网关退款已创建但本地记录无法落库，需要人工对账。"""

    def __init__(self, gateway_refund_id: str, payment_id: str):
        super().__init__(
            "Refund was created at the gateway but could not be recorded locally; "
            "it has been flagged for reconciliation",
            code=RefundCode.RECORD_PERSIST_FAILED,
            error_type="RefundRecordPersistFailed",
            details={"gateway_refund_id": gateway_refund_id, "payment_id": payment_id},
        )


class SignatureVerificationFailed(BusinessException):
    def __init__(self, subject: str = "webhook"):
        super().__init__(
            code=RefundCode.SIGNATURE_ERROR,
            message="Signature verification failed",
            error_type="SignatureVerificationFailed",
            details={"subject": subject},
        )
