"""
Refund gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Adapters normalise transport failures into domain exceptions:
PaymentNotFound, RefundNotFoundAtGateway, GatewayRefundRejected(kind),
GatewayUnavailable.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.refunds import GatewayPayment, GatewayRefund


@runtime_checkable
class RefundGateway(Protocol):
    """Gateway protocol for the payment processor that owns money movement.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str
    test_mode: bool

    async def fetch_payment(self, payment_id: str) -> GatewayPayment: ...

    async def create_refund(
        self,
        payment_id: str,
        amount: int,
        notes: Optional[dict[str, Any]] = None,
        *,
        payment: Optional[GatewayPayment] = None,
    ) -> GatewayRefund: ...

    async def fetch_refund(self, gateway_refund_id: str) -> GatewayRefund: ...

    async def list_refunds(self, payment_id: str) -> list[GatewayRefund]: ...

    @property
    def verifies_webhooks(self) -> bool: ...

    def is_test_mode_restricted(self, payment: GatewayPayment) -> bool: ...

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool: ...

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool: ...

    async def aclose(self) -> None: ...
