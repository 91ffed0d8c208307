"""
Razorpay refunds adapter over the REST API (https://api.razorpay.com/v1).

Endpoints used:
- GET  /payments/{id}
- POST /payments/{id}/refund   body {amount, notes}
- GET  /refunds/{id}
- GET  /payments/{id}/refunds

Authentication is HTTP basic with key_id/key_secret. Amounts are minor units.
Payment signatures are HMAC-SHA256 over "order_id|payment_id" keyed with the
key secret; webhook signatures are HMAC-SHA256 over the raw body keyed with
the webhook secret (header X-Razorpay-Signature).
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

import httpx

from application.dtos.refunds import GatewayPayment, GatewayRefund
from core.logging_config import get_logger
from core.settings import PaymentRetry, PaymentTimeouts, RazorpaySettings
from domain.refund.exceptions import (
    GatewayErrorKind,
    GatewayRefundRejected,
    PaymentNotFound,
    RefundNotFoundAtGateway,
)
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import GatewayAPIError, classify_refund_error


logger = get_logger(__name__)

SIGNATURE_HEADER = "x-razorpay-signature"


def _hmac_hex(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        config: RazorpaySettings,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not config.configured:
            raise RuntimeError("RAZORPAY key_id/key_secret not configured")
        timeouts = timeouts or PaymentTimeouts()
        retry = retry or PaymentRetry()
        super().__init__(
            base_url=config.base_url.rstrip("/"),
            auth=(config.key_id, config.key_secret),
            timeouts=timeouts.model_dump(),
            retry={"max": retry.max, "base": retry.base_backoff},
            transport=transport,
        )
        self._config = config
        self.test_mode = config.is_test_mode

    @property
    def verifies_webhooks(self) -> bool:
        return bool(self._config.webhook_secret)

    def is_test_mode_restricted(self, payment: GatewayPayment) -> bool:
        """Sandbox account + UPI payment from a real bank VPA cannot be refunded."""
        if not self.test_mode:
            return False
        return bool(
            payment.method == "upi"
            and payment.vpa
            and self._config.sandbox_vpa_handle not in payment.vpa
        )

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        try:
            data = await self._request("GET", f"/payments/{payment_id}", operation="fetch_payment")
        except GatewayAPIError as exc:
            if exc.is_not_found:
                raise PaymentNotFound(payment_id) from exc
            logger.warning(
                "gateway_fetch_payment_failed",
                payment_id=payment_id,
                status_code=exc.status_code,
                gateway_code=exc.code,
                gateway_description=exc.description,
            )
            raise GatewayRefundRejected(GatewayErrorKind.UNKNOWN, details={"gateway_code": exc.code}) from exc
        return GatewayPayment.model_validate(data)

    async def create_refund(
        self,
        payment_id: str,
        amount: int,
        notes: Optional[dict[str, Any]] = None,
        *,
        payment: Optional[GatewayPayment] = None,
    ) -> GatewayRefund:
        body: dict[str, Any] = {"amount": amount}
        if notes:
            body["notes"] = notes
        self._log("gateway_refund_create_request", payment_id=payment_id, amount=amount)
        try:
            data = await self._request(
                "POST",
                f"/payments/{payment_id}/refund",
                operation="create_refund",
                json=body,
                idempotent=False,
            )
        except GatewayAPIError as exc:
            if exc.is_not_found:
                raise PaymentNotFound(payment_id) from exc
            kind = classify_refund_error(
                exc,
                test_mode=self.test_mode,
                real_instrument=payment is not None and self.is_test_mode_restricted(payment),
            )
            # raw gateway text goes to the log only
            logger.warning(
                "gateway_refund_create_failed",
                payment_id=payment_id,
                amount=amount,
                kind=kind.value,
                status_code=exc.status_code,
                gateway_code=exc.code,
                gateway_description=exc.description,
            )
            raise GatewayRefundRejected(
                kind, details={"payment_id": payment_id, "gateway_code": exc.code}
            ) from exc

        refund = GatewayRefund.model_validate(data)
        self._log("gateway_refund_created", payment_id=payment_id, refund_id=refund.id, status=refund.status)
        return refund

    async def fetch_refund(self, gateway_refund_id: str) -> GatewayRefund:
        try:
            data = await self._request("GET", f"/refunds/{gateway_refund_id}", operation="fetch_refund")
        except GatewayAPIError as exc:
            if exc.is_not_found:
                raise RefundNotFoundAtGateway(gateway_refund_id) from exc
            logger.warning(
                "gateway_fetch_refund_failed",
                refund_id=gateway_refund_id,
                status_code=exc.status_code,
                gateway_code=exc.code,
                gateway_description=exc.description,
            )
            raise GatewayRefundRejected(GatewayErrorKind.UNKNOWN, details={"gateway_code": exc.code}) from exc
        return GatewayRefund.model_validate(data)

    async def list_refunds(self, payment_id: str) -> list[GatewayRefund]:
        try:
            data = await self._request("GET", f"/payments/{payment_id}/refunds", operation="list_refunds")
        except GatewayAPIError as exc:
            if exc.is_not_found:
                raise PaymentNotFound(payment_id) from exc
            raise GatewayRefundRejected(GatewayErrorKind.UNKNOWN, details={"gateway_code": exc.code}) from exc
        return [GatewayRefund.model_validate(item) for item in data.get("items", [])]

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not signature:
            return False
        expected = _hmac_hex(self._config.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not self._config.webhook_secret or not signature:
            return False
        expected = _hmac_hex(self._config.webhook_secret, body)
        return hmac.compare_digest(expected, signature)
