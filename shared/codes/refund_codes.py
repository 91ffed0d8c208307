"""
Refund specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class RefundCode(IntEnum):
    # Validation (1011x)
    REASON_REQUIRED = 10110
    ACTOR_REQUIRED = 10111
    AMOUNT_INVALID = 10112
    BELOW_MINIMUM = 10113
    INSTALLMENT_YEAR_REQUIRED = 10114

    # Not found (201xx)
    PAYMENT_NOT_FOUND = 20101
    REFUND_NOT_FOUND = 20104
    TRANSACTION_NOT_FOUND = 20105
    USER_NOT_FOUND = 20106

    # Conflicts (2011x)
    NOT_CAPTURED = 20110
    ALREADY_FULLY_REFUNDED = 20111
    EXCEEDS_AVAILABLE = 20112
    INVALID_TRANSITION = 20113
    REFUND_IN_PROGRESS = 20114
    DUPLICATE_REFUND = 20115

    # Gateway errors (6xxxx)
    GATEWAY_ERROR = 60000
    SIGNATURE_ERROR = 60002
    STALE_PAYMENT = 60010
    INSUFFICIENT_BALANCE = 60011
    INVALID_AMOUNT = 60012
    TEST_MODE_RESTRICTED = 60013
    GATEWAY_UNKNOWN = 60019

    # Infrastructure (4xxxx range of BusinessCode, refund flavoured)
    GATEWAY_UNAVAILABLE = 40010
    STORE_UNAVAILABLE = 40011
    RECORD_PERSIST_FAILED = 40012


# Gateway refund status -> local outcome. Anything not listed maps to "failed".
GATEWAY_REFUND_STATUS_TO_LOCAL = {
    "processed": "processed",
}

# Gateway refund states that are not final yet; no local outcome is derived from them.
GATEWAY_REFUND_PENDING_STATUSES = frozenset({"created", "pending"})
