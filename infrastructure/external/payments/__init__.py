"""
Factory for payment gateway clients.

The client is built from an explicit PaymentSettings instance and injected
into the application service; there is no module-level client.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.settings import PaymentSettings
from application.ports.payment_gateway import RefundGateway


def get_payment_gateway(
    config: PaymentSettings,
    provider: Optional[str] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RefundGateway:
    name = (provider or config.default_provider).lower()
    if name in {"razorpay", "rzp"}:
        from .razorpay_client import RazorpayClient
        return RazorpayClient(
            config.razorpay,
            timeouts=config.timeouts,
            retry=config.retry,
            transport=transport,
        )
    raise ValueError(f"Unsupported payment provider: {name}")
