"""
Post-commit side effects of refund state transitions.

Consumes domain events collected by RefundDomainService after the unit of work
has committed: mirrors the record onto the owning transaction's refund
sub-state, then notifies the user and the operators. Every effect is
best-effort: retried a bounded number of times, logged on failure and never
raised to the caller.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from application.ports.notifications import NotificationDispatcher
from core.logging_config import get_logger
from core.settings import RefundPolicy
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import RefundSubState
from domain.refund.entity import RefundRecord, RefundStatus
from domain.refund.events import RefundEvent


logger = get_logger(__name__)

USER_CATEGORY = "refund"
OPERATOR_CATEGORY = "refund_admin"
RELATED_ENTITY_TYPE = "Refund"

USER_MESSAGES = {
    RefundStatus.INITIATED: "Your refund has been initiated and is being processed.",
    RefundStatus.PROCESSED: "Your refund has been processed and will be credited to your account within 5-7 business days.",
    RefundStatus.SUCCESSFUL: "Your refund has been successfully processed and credited to your account.",
    RefundStatus.FAILED: "Your refund request failed. Please contact support for assistance.",
    RefundStatus.CANCELLED: "Your refund request has been cancelled.",
}

OPERATOR_MESSAGES = {
    RefundStatus.INITIATED: "A refund has been initiated",
    RefundStatus.PROCESSED: "A refund has been processed",
    RefundStatus.SUCCESSFUL: "A refund has been completed successfully",
    RefundStatus.FAILED: "A refund has failed",
    RefundStatus.CANCELLED: "A refund has been cancelled",
}


def format_amount(amount_minor: int, currency: str) -> str:
    return f"{currency} {amount_minor / 100:.2f}"


class RefundSideEffects:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: NotificationDispatcher,
        policy: Optional[RefundPolicy] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._policy = policy or RefundPolicy()

    async def dispatch(self, events: Iterable[RefundEvent]) -> None:
        for event in events:
            record = event.record
            log_ctx = {
                "event_type": type(event).__name__,
                "event_id": event.event_id,
                "refund_id": record.refund_id,
                "status": record.refund_status.value,
            }
            await self._best_effort("mirror_sub_state", lambda: self.mirror_sub_state(record), log_ctx)
            await self._best_effort("notify_user", lambda: self.notify_user(record), log_ctx)
            await self._best_effort("notify_operators", lambda: self.notify_operators(record), log_ctx)

    async def _best_effort(
        self,
        effect: str,
        fn: Callable[[], Awaitable[Any]],
        log_ctx: dict[str, Any],
    ) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(1, self._policy.effect_retry_attempts)),
                wait=wait_exponential(multiplier=self._policy.effect_retry_backoff, min=0, max=2.0),
                reraise=True,
            ):
                with attempt:
                    await fn()
        except Exception as exc:
            logger.warning(
                "refund_side_effect_failed",
                effect=effect,
                error=str(exc),
                exc_info=True,
                **log_ctx,
            )

    async def mirror_sub_state(self, record: RefundRecord) -> None:
        if record.is_orphan or record.transaction_id is None:
            return
        async with self._uow_factory() as uow:
            store = uow.transaction_stores[record.transaction_type]
            found = await store.update_refund_sub_state(
                record.transaction_id,
                RefundSubState.from_record(record),
                installment_year=record.installment_year,
            )
        if not found:
            logger.warning(
                "refund_sub_state_target_missing",
                refund_id=record.refund_id,
                transaction_type=record.transaction_type.value,
                transaction_id=record.transaction_id,
                installment_year=record.installment_year,
            )
            return
        logger.info(
            "refund_sub_state_mirrored",
            refund_id=record.refund_id,
            transaction_type=record.transaction_type.value,
            transaction_id=record.transaction_id,
            status=record.refund_status.value,
        )

    async def notify_user(self, record: RefundRecord) -> None:
        if record.user_id is None:
            logger.info("refund_user_notification_skipped", refund_id=record.refund_id, reason="no_user")
            return
        await self._notifier.notify_user(
            record.user_id,
            USER_CATEGORY,
            "Refund Update",
            USER_MESSAGES[record.refund_status],
            {
                "refundId": record.refund_id,
                "refundAmount": record.refund_amount,
                "status": record.refund_status.value,
            },
            related_entity_id=record.refund_id,
            related_entity_type=RELATED_ENTITY_TYPE,
        )

    async def notify_operators(self, record: RefundRecord) -> None:
        status = record.refund_status
        message = (
            f"{OPERATOR_MESSAGES[status]} for payment {record.original_payment_id}. "
            f"Amount: {format_amount(record.refund_amount, record.currency)}. "
            f"Processed by: {record.refunded_by}"
        )
        await self._notifier.notify_operators(
            OPERATOR_CATEGORY,
            f"Refund {status.value.capitalize()}",
            message,
            {
                "refundId": record.refund_id,
                "originalPaymentId": record.original_payment_id,
                "refundAmount": record.refund_amount,
                "status": status.value,
                "refundedBy": record.refunded_by,
                "transactionType": record.transaction_type.value,
            },
            related_entity_id=record.refund_id,
            related_entity_type=RELATED_ENTITY_TYPE,
        )
