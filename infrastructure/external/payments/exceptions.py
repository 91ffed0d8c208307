"""
Gateway error normalisation.

The gateway's error strings are not a stable contract, so classification is
pattern based and best-effort; anything unrecognised maps to UNKNOWN.
"""
from __future__ import annotations

from typing import Any, Optional

from domain.refund.exceptions import GatewayErrorKind


BAD_REQUEST_ERROR = "BAD_REQUEST_ERROR"
NOT_FOUND_MARKERS = ("does not exist", "not found")


class GatewayAPIError(Exception):
    """Non-2xx gateway response carrying the structured error body."""

    def __init__(self, status_code: int, error: Optional[dict[str, Any]] = None, *, operation: str = ""):
        self.status_code = status_code
        self.error = error or {}
        self.operation = operation
        super().__init__(f"{operation}: HTTP {status_code} {self.code} {self.description}")

    @property
    def code(self) -> str:
        return str(self.error.get("code") or "")

    @property
    def description(self) -> str:
        return str(self.error.get("description") or "")

    @property
    def is_not_found(self) -> bool:
        if self.status_code == 404:
            return True
        desc = self.description.lower()
        return self.code == BAD_REQUEST_ERROR and any(m in desc for m in NOT_FOUND_MARKERS)


def classify_refund_error(
    error: GatewayAPIError,
    *,
    test_mode: bool,
    real_instrument: bool = False,
) -> GatewayErrorKind:
    """
    Map a rejected refund request to a GatewayErrorKind.

    ``real_instrument`` tells whether the payment was settled through a real
    bank instrument; combined with ``test_mode`` it explains the gateway's
    otherwise generic "invalid request sent" rejection.
    """
    if error.code != BAD_REQUEST_ERROR:
        return GatewayErrorKind.UNKNOWN

    desc = error.description.strip().lower()
    if "6 months" in desc:
        return GatewayErrorKind.STALE_PAYMENT
    if "balance" in desc:
        return GatewayErrorKind.INSUFFICIENT_BALANCE
    if "amount" in desc:
        return GatewayErrorKind.INVALID_AMOUNT
    if desc == "invalid request sent" and test_mode and real_instrument:
        return GatewayErrorKind.TEST_MODE_RESTRICTED
    return GatewayErrorKind.UNKNOWN
