"""
Application service orchestrating refund use-cases.

Depends on the RefundGateway and NotificationDispatcher ports plus a unit of
work factory; concrete adapters are injected from the composition root
(main.py lifespan). Flow of InitiateRefund:

    validate -> fetch payment -> amount policy -> advisory warnings
    -> test-mode pre-check -> duplicate guard + owning transaction resolution
    -> create gateway refund -> (shielded) persist record + post-commit effects

Nothing is written locally before the gateway refund exists; once it does,
local bookkeeping runs to completion even if the caller goes away.
"""
from __future__ import annotations

import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError

from application.dtos.refunds import (
    GatewayPayment,
    GatewayRefund,
    InitiateRefundCommand,
    InitiateRefundResult,
    RefundDTO,
    RefundPage,
    VerifyPaymentSignatureRequest,
    WebhookAck,
    WebhookEnvelope,
)
from application.ports.notifications import NotificationDispatcher
from application.ports.payment_gateway import RefundGateway
from application.services.refund_effects import RefundSideEffects
from core.logging_config import get_logger
from core.settings import RefundPolicy
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.service import ResolvedTransaction, TransactionLocator
from domain.refund.entity import RefundRecord, RefundStatus, TransactionType
from domain.refund.exceptions import (
    DuplicateRefundRecord,
    GatewayErrorKind,
    GatewayRefundRejected,
    InvalidTransition,
    RefundNotFoundAtGateway,
    RefundRecordNotFound,
    RefundRecordPersistFailed,
    SignatureVerificationFailed,
    StoreUnavailable,
)
from domain.refund.events import RefundInitiated
from domain.refund.repository import RefundFilter
from domain.refund.service import (
    RefundDomainService,
    is_final_gateway_status,
    select_refund_amount,
    validate_request,
)


logger = get_logger(__name__)

R = TypeVar("R")

REFUND_PROCESSED_EVENT = "refund.processed"
WEBHOOK_SIGNATURE_HEADER = "x-razorpay-signature"


class RefundApplicationService:
    """退款应用服务 - 编排网关、账本与通知"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: RefundGateway,
        notifier: NotificationDispatcher,
        policy: Optional[RefundPolicy] = None,
        *,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.notifier = notifier
        self._policy = policy or RefundPolicy()
        self._effects = RefundSideEffects(uow_factory, notifier, self._policy)
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        # shielded bookkeeping tasks that must outlive a cancelled caller
        self._inflight: set[asyncio.Task] = set()

    async def _bounded(self, coro: Awaitable[R], operation: str) -> R:
        """Bound a store phase by the configured timeout."""
        try:
            return await asyncio.wait_for(coro, timeout=self._policy.store_timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("refund_store_timeout", operation=operation)
            raise StoreUnavailable(operation) from exc

    # ---- InitiateRefund ----

    def _advisory_warnings(self, payment: GatewayPayment) -> list[str]:
        warnings: list[str] = []
        if payment.created_at is not None:
            age = datetime.now(timezone.utc) - payment.created_at
            if age > timedelta(days=self._policy.stale_after_days):
                logger.warning(
                    "refund_payment_stale",
                    payment_id=payment.id,
                    payment_created_at=payment.created_at.isoformat(),
                    age_days=age.days,
                )
                warnings.append(
                    f"Payment is {age.days} days old; the gateway may reject refunds "
                    f"older than {self._policy.stale_after_days} days."
                )
        if not self.gateway.test_mode and (
            payment.email in self._policy.sandbox_emails
            or payment.contact in self._policy.sandbox_contacts
        ):
            logger.warning(
                "refund_sandbox_customer_in_live_mode",
                payment_id=payment.id,
                email=payment.email,
                contact=payment.contact,
                method=payment.method,
            )
            warnings.append(
                "Payment carries sandbox customer details while the gateway is in live mode; "
                "the refund may fail."
            )
        return warnings

    async def _prepare(self, cmd: InitiateRefundCommand) -> Optional[ResolvedTransaction]:
        async with self._uow_factory(readonly=True) as uow:
            await RefundDomainService(uow.refund_repository).ensure_no_open_refund(cmd.payment_id)
            locator = TransactionLocator(uow.transaction_stores)
            return await locator.resolve(
                cmd.payment_id,
                transaction_type=cmd.transaction_type,
                transaction_id=cmd.transaction_id,
                installment_year=cmd.installment_year,
            )

    async def initiate_refund(self, cmd: InitiateRefundCommand) -> InitiateRefundResult:
        validate_request(cmd.reason, cmd.actor_id)
        logger.info(
            "refund_initiate_request",
            payment_id=cmd.payment_id,
            requested_amount=cmd.amount,
            actor_id=cmd.actor_id,
            transaction_type=cmd.transaction_type.value if cmd.transaction_type else None,
        )

        payment = await self.gateway.fetch_payment(cmd.payment_id)
        amount = select_refund_amount(
            payment_id=payment.id,
            status=payment.status,
            amount=payment.amount,
            amount_refunded=payment.amount_refunded,
            requested=cmd.amount,
            minimum=self._policy.minimum_amount,
        )
        warnings = self._advisory_warnings(payment)

        if self.gateway.is_test_mode_restricted(payment):
            logger.warning(
                "refund_test_mode_restricted",
                payment_id=payment.id,
                method=payment.method,
            )
            raise GatewayRefundRejected(
                GatewayErrorKind.TEST_MODE_RESTRICTED, details={"payment_id": payment.id}
            )

        resolved = await self._bounded(self._prepare(cmd), "resolve_transaction")
        if resolved is None:
            logger.info("refund_orphan_payment", payment_id=payment.id)

        gateway_refund = await self.gateway.create_refund(
            payment.id,
            amount,
            {"reason": cmd.reason, "refunded_by": cmd.actor_id},
            payment=payment,
        )

        fields: dict[str, Any] = {
            "gateway_refund_id": gateway_refund.id,
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "amount": gateway_refund.amount or amount,
            "currency": gateway_refund.currency or payment.currency,
            "reason": cmd.reason,
            "refunded_by": cmd.actor_id,
            "gateway_status": gateway_refund.status,
            "refund_method": cmd.refund_method,
        }
        if resolved is not None:
            fields.update(
                user_id=resolved.user_id,
                transaction_type=resolved.ref.transaction_type,
                transaction_id=resolved.ref.transaction_id,
                installment_year=resolved.ref.installment_year,
            )

        # the gateway refund exists; finish bookkeeping even if the caller is cancelled
        task = asyncio.ensure_future(self._complete_initiation(fields))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        record = await asyncio.shield(task)
        return InitiateRefundResult(
            refund=RefundDTO.model_validate(record),
            gateway_refund=gateway_refund,
            warnings=warnings,
        )

    async def _persist_initiated(self, fields: dict[str, Any]) -> tuple[RefundRecord, list]:
        async with self._uow_factory() as uow:
            domain_service = RefundDomainService(uow.refund_repository)
            record = await domain_service.record_initiated(**fields)
            events = domain_service.clear_events()
        return record, events

    async def _complete_initiation(self, fields: dict[str, Any]) -> RefundRecord:
        try:
            record, events = await self._bounded(self._persist_initiated(fields), "persist_refund")
        except DuplicateRefundRecord:
            record, events = await self._adopt_existing(fields)
        except Exception as exc:
            logger.error(
                "refund_record_persist_failed",
                gateway_refund_id=fields["gateway_refund_id"],
                payment_id=fields["payment_id"],
                error=str(exc),
                exc_info=True,
            )
            record, events = await self._persist_degraded(fields, exc)

        logger.info(
            "refund_initiated",
            refund_id=record.refund_id,
            payment_id=record.original_payment_id,
            amount=record.refund_amount,
            transaction_type=record.transaction_type.value,
            user_id=record.user_id,
        )
        await self._effects.dispatch(events)
        return record

    async def _persist_degraded(
        self, fields: dict[str, Any], cause: Exception
    ) -> tuple[RefundRecord, list]:
        link = fields.get("transaction_type")
        note = "Degraded record: local bookkeeping failed after gateway refund creation"
        if link is not None:
            note += (
                f"; owning transaction {link.value}/{fields.get('transaction_id')}"
                f" year={fields.get('installment_year')} not linked"
            )
        degraded = dict(
            fields,
            user_id=None,
            transaction_type=TransactionType.UNKNOWN,
            transaction_id=None,
            installment_year=None,
            notes=note,
        )
        try:
            return await self._bounded(self._persist_initiated(degraded), "persist_refund_degraded")
        except DuplicateRefundRecord:
            # the first attempt committed before failing
            return await self._adopt_existing(fields)
        except Exception as exc:
            logger.critical(
                "refund_reconciliation_candidate",
                gateway_refund_id=fields["gateway_refund_id"],
                payment_id=fields["payment_id"],
                amount=fields["amount"],
                refunded_by=fields["refunded_by"],
                first_error=str(cause),
                error=str(exc),
                exc_info=True,
            )
            raise RefundRecordPersistFailed(fields["gateway_refund_id"], fields["payment_id"]) from exc

    async def _adopt_existing(self, fields: dict[str, Any]) -> tuple[RefundRecord, list]:
        """记录已落库（唯一键冲突）：沿用已有记录并继续派发副作用"""
        gateway_refund_id = fields["gateway_refund_id"]

        async def _get() -> Optional[RefundRecord]:
            async with self._uow_factory(readonly=True) as uow:
                return await uow.refund_repository.get_by_gateway_refund_id(gateway_refund_id)

        record = await self._bounded(_get(), "find_refund")
        if record is None:
            logger.critical(
                "refund_reconciliation_candidate",
                gateway_refund_id=gateway_refund_id,
                payment_id=fields["payment_id"],
                amount=fields["amount"],
                refunded_by=fields["refunded_by"],
                error="duplicate refund record reported but not found",
            )
            raise RefundRecordPersistFailed(gateway_refund_id, fields["payment_id"])
        logger.warning(
            "refund_record_already_persisted",
            refund_id=record.refund_id,
            payment_id=record.original_payment_id,
            transaction_type=record.transaction_type.value,
        )
        return record, [RefundInitiated(record=record)]

    # ---- ProcessRefundOutcome ----

    async def _require_record(self, gateway_refund_id: str) -> RefundRecord:
        async with self._uow_factory(readonly=True) as uow:
            record = await uow.refund_repository.get_by_gateway_refund_id(gateway_refund_id)
        if record is None:
            raise RefundRecordNotFound(gateway_refund_id)
        return record

    async def _apply_outcome(self, gateway_refund_id: str, gateway_status: str) -> tuple[RefundRecord, list]:
        async with self._uow_factory() as uow:
            domain_service = RefundDomainService(uow.refund_repository)
            record = await domain_service.apply_gateway_outcome(gateway_refund_id, gateway_status)
            events = domain_service.clear_events()
        return record, events

    async def process_refund_outcome(self, gateway_refund_id: str) -> RefundDTO:
        current = await self._bounded(self._require_record(gateway_refund_id), "find_refund")
        gateway_refund = await self.gateway.fetch_refund(gateway_refund_id)
        if not is_final_gateway_status(gateway_refund.status):
            logger.info(
                "refund_outcome_pending",
                refund_id=current.refund_id,
                gateway_status=gateway_refund.status,
                status=current.refund_status.value,
            )
            return RefundDTO.model_validate(current)
        record, events = await self._bounded(
            self._apply_outcome(gateway_refund_id, gateway_refund.status), "update_refund"
        )
        logger.info(
            "refund_outcome_applied",
            refund_id=record.refund_id,
            gateway_status=gateway_refund.status,
            status=record.refund_status.value,
        )
        await self._effects.dispatch(events)
        return RefundDTO.model_validate(record)

    # ---- CancelRefund ----

    async def _cancel(self, refund_id: str, reason: Optional[str]) -> tuple[RefundRecord, list]:
        async with self._uow_factory() as uow:
            domain_service = RefundDomainService(uow.refund_repository)
            record = await domain_service.cancel(refund_id, reason)
            events = domain_service.clear_events()
        return record, events

    async def cancel_refund(self, refund_id: str, reason: Optional[str] = None) -> RefundDTO:
        record, events = await self._bounded(self._cancel(refund_id, reason), "cancel_refund")
        logger.info("refund_cancelled", refund_id=record.refund_id, reason=reason)
        await self._effects.dispatch(events)
        return RefundDTO.model_validate(record)

    # ---- Queries ----

    async def get_refund(self, refund_id: str) -> RefundDTO:
        async def _get() -> Optional[RefundRecord]:
            async with self._uow_factory(readonly=True) as uow:
                return await uow.refund_repository.get_by_refund_id(refund_id)

        record = await self._bounded(_get(), "get_refund")
        if record is None:
            raise RefundRecordNotFound(refund_id)
        return RefundDTO.model_validate(record)

    def _page_size(self, page_size: Optional[int]) -> int:
        size = page_size or self._default_page_size
        return max(1, min(size, self._max_page_size))

    async def _find_page(self, refund_filter: RefundFilter, page: int, page_size: Optional[int]) -> RefundPage:
        page = max(1, page)
        size = self._page_size(page_size)

        async def _find():
            async with self._uow_factory(readonly=True) as uow:
                return await uow.refund_repository.find_many(
                    refund_filter, skip=(page - 1) * size, limit=size
                )

        items, total = await self._bounded(_find(), "list_refunds")
        total_pages = math.ceil(total / size) if total else 0
        return RefundPage(
            items=[RefundDTO.model_validate(r) for r in items],
            total=total,
            page=page,
            page_size=size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    async def list_refunds(
        self,
        *,
        status: Optional[RefundStatus] = None,
        transaction_type: Optional[TransactionType] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> RefundPage:
        return await self._find_page(
            RefundFilter(status=status, transaction_type=transaction_type), page, page_size
        )

    async def list_user_refunds(
        self, user_id: int, *, page: int = 1, page_size: Optional[int] = None
    ) -> RefundPage:
        return await self._find_page(RefundFilter(user_id=user_id), page, page_size)

    async def list_gateway_refunds(self, payment_id: str) -> list[GatewayRefund]:
        logger.info("gateway_refunds_list_request", payment_id=payment_id)
        return await self.gateway.list_refunds(payment_id)

    # ---- Signatures & webhook ----

    def verify_payment_signature(self, req: VerifyPaymentSignatureRequest) -> bool:
        if not self.gateway.verify_payment_signature(req.order_id, req.payment_id, req.signature):
            logger.warning("payment_signature_invalid", order_id=req.order_id, payment_id=req.payment_id)
            raise SignatureVerificationFailed("payment")
        return True

    async def handle_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookAck:
        lowered = {str(k).lower(): v for k, v in headers.items()}
        if self.gateway.verifies_webhooks:
            signature = lowered.get(WEBHOOK_SIGNATURE_HEADER)
            if not self.gateway.verify_webhook_signature(body, signature):
                logger.warning("refund_webhook_signature_invalid", has_signature=bool(signature))
                raise SignatureVerificationFailed("webhook")

        try:
            envelope = WebhookEnvelope.model_validate_json(body)
        except ValidationError as exc:
            raise DomainValidationException("Invalid webhook payload", field="body") from exc

        if envelope.event != REFUND_PROCESSED_EVENT:
            logger.info("refund_webhook_ignored", event_type=envelope.event)
            return WebhookAck(event=envelope.event, handled=False, detail="ignored")

        refund_id = envelope.refund_id()
        if not refund_id:
            logger.warning("refund_webhook_missing_refund_id", event_type=envelope.event)
            return WebhookAck(event=envelope.event, handled=False, detail="missing refund id")

        try:
            await self.process_refund_outcome(refund_id)
        except (RefundRecordNotFound, RefundNotFoundAtGateway, InvalidTransition) as exc:
            # acknowledged so the gateway does not redeliver
            logger.warning(
                "refund_webhook_unapplied",
                refund_id=refund_id,
                error_type=exc.error_type,
                error=exc.message,
            )
            return WebhookAck(
                event=envelope.event, handled=False, refund_id=refund_id, detail=exc.error_type
            )
        return WebhookAck(event=envelope.event, handled=True, refund_id=refund_id)

    async def aclose(self) -> None:
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        await self.gateway.aclose()
        await self.notifier.aclose()
