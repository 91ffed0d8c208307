"""
Payments API routes.

Inbound gateway webhook, payment signature verification and the gateway-side
refund listing for a payment. Keep this thin:
no gateway details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_refund_service
from application.dtos.refunds import GatewayRefund, VerifyPaymentSignatureRequest, WebhookAck
from application.services.refund_service import RefundApplicationService
from core.logging_config import get_logger
from core.response import Response, success_response


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhooks/razorpay", response_model=Response[WebhookAck])
async def razorpay_webhook(
    request: Request,
    service: RefundApplicationService = Depends(get_refund_service),
):
    # signature is computed over the raw body, so it must be read unparsed
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    ack = await service.handle_webhook(headers, raw_body)
    logger.info(
        "refund_webhook_handled",
        event_type=ack.event,
        handled=ack.handled,
        refund_id=ack.refund_id,
    )
    return success_response(data=ack, message="ok")


@router.post("/verify-signature", response_model=Response[dict])
async def verify_payment_signature(
    payload: VerifyPaymentSignatureRequest,
    service: RefundApplicationService = Depends(get_refund_service),
):
    service.verify_payment_signature(payload)
    return success_response(data={"verified": True}, message="Signature verified")


@router.get("/{payment_id}/refunds", response_model=Response[list[GatewayRefund]])
async def list_gateway_refunds(
    payment_id: str,
    service: RefundApplicationService = Depends(get_refund_service),
):
    """网关侧该支付的全部退款（含未在本地登记的）"""
    result = await service.list_gateway_refunds(payment_id)
    return success_response(data=result)
