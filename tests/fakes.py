"""In-memory doubles for the refund ports used across the test suite."""
from __future__ import annotations

import asyncio
import dataclasses
import itertools
from datetime import datetime, timezone
from typing import Any, Optional

from application.dtos.refunds import GatewayPayment, GatewayRefund
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import (
    InstallmentEntry,
    InstallmentPlan,
    PrepaymentToken,
    RefundSubState,
    ReservationToken,
)
from domain.ledger.repository import TransactionStore
from domain.refund.entity import RefundRecord, RefundStatus, TransactionType
from domain.refund.exceptions import (
    DuplicateRefundRecord,
    PaymentNotFound,
    RefundNotFoundAtGateway,
    RefundRecordNotFound,
)
from domain.refund.repository import RefundFilter, RefundRepository


def make_payment(**overrides: Any) -> GatewayPayment:
    data = {
        "id": "pay_1",
        "amount": 500000,
        "amount_refunded": 0,
        "status": "captured",
        "method": "card",
        "currency": "INR",
        "order_id": "order_1",
        "email": "buyer@shop.test",
        "contact": "+918888888888",
        "created_at": datetime.now(timezone.utc),
    }
    data.update(overrides)
    return GatewayPayment.model_validate(data)


class FakeGateway:
    provider = "fake"

    def __init__(self, *, test_mode: bool = False, webhook_secret: Optional[str] = None):
        self.test_mode = test_mode
        self.webhook_secret = webhook_secret
        self.payments: dict[str, GatewayPayment] = {}
        self.refunds: dict[str, GatewayRefund] = {}
        self.create_calls: list[dict[str, Any]] = []
        self.fetch_refund_calls: list[str] = []
        self.create_error: Optional[Exception] = None
        self.restricted = False
        self.closed = False
        self._ids = itertools.count(1)

    def add_payment(self, payment: GatewayPayment) -> None:
        self.payments[payment.id] = payment

    def set_refund_status(self, refund_id: str, status: str) -> None:
        self.refunds[refund_id] = self.refunds[refund_id].model_copy(update={"status": status})

    @property
    def verifies_webhooks(self) -> bool:
        return self.webhook_secret is not None

    def is_test_mode_restricted(self, payment: GatewayPayment) -> bool:
        return self.restricted

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        if payment_id not in self.payments:
            raise PaymentNotFound(payment_id)
        return self.payments[payment_id]

    async def create_refund(self, payment_id, amount, notes=None, *, payment=None) -> GatewayRefund:
        self.create_calls.append({"payment_id": payment_id, "amount": amount, "notes": notes})
        if self.create_error is not None:
            raise self.create_error
        refund = GatewayRefund(
            id=f"rfnd_{next(self._ids)}",
            payment_id=payment_id,
            amount=amount,
            currency=self.payments[payment_id].currency,
            status="pending",
            notes=notes or {},
        )
        self.refunds[refund.id] = refund
        return refund

    async def fetch_refund(self, gateway_refund_id: str) -> GatewayRefund:
        self.fetch_refund_calls.append(gateway_refund_id)
        if gateway_refund_id not in self.refunds:
            raise RefundNotFoundAtGateway(gateway_refund_id)
        return self.refunds[gateway_refund_id]

    async def list_refunds(self, payment_id: str) -> list[GatewayRefund]:
        return [r for r in self.refunds.values() if r.payment_id == payment_id]

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signature == f"{order_id}|{payment_id}"

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        return signature == self.webhook_secret

    async def aclose(self) -> None:
        self.closed = True


class RecordingNotifier:
    def __init__(self) -> None:
        self.user_messages: list[dict[str, Any]] = []
        self.operator_messages: list[dict[str, Any]] = []
        self.fail = False
        self.closed = False

    async def notify_user(self, user_id, category, title, message, metadata,
                          related_entity_id=None, related_entity_type=None) -> None:
        if self.fail:
            raise ConnectionError("notification service down")
        self.user_messages.append({
            "user_id": user_id,
            "category": category,
            "title": title,
            "message": message,
            "metadata": metadata,
            "related_entity_id": related_entity_id,
        })

    async def notify_operators(self, category, title, message, metadata,
                               related_entity_id=None, related_entity_type=None) -> None:
        if self.fail:
            raise ConnectionError("notification service down")
        self.operator_messages.append({
            "category": category,
            "title": title,
            "message": message,
            "metadata": metadata,
            "related_entity_id": related_entity_id,
        })

    async def aclose(self) -> None:
        self.closed = True


class InMemoryRefundRepository(RefundRepository):
    def __init__(self) -> None:
        self.records: dict[str, RefundRecord] = {}
        self.update_count = 0
        self.create_failures = 0
        # stores the row, then fails as if the connection dropped after COMMIT
        self.lost_create_acks = 0
        self.create_delay = 0.0
        self.create_attempts = 0
        self._ids = itertools.count(1)

    async def create(self, record: RefundRecord) -> RefundRecord:
        self.create_attempts += 1
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_failures > 0:
            self.create_failures -= 1
            raise ConnectionError("database unreachable")
        if record.refund_id in self.records:
            raise DuplicateRefundRecord(record.refund_id)
        stored = dataclasses.replace(record, id=next(self._ids))
        self.records[stored.refund_id] = stored
        if self.lost_create_acks > 0:
            self.lost_create_acks -= 1
            raise ConnectionError("connection lost after commit")
        return dataclasses.replace(stored)

    async def update(self, record: RefundRecord) -> RefundRecord:
        if record.refund_id not in self.records:
            raise RefundRecordNotFound(record.refund_id)
        self.update_count += 1
        self.records[record.refund_id] = dataclasses.replace(record)
        return dataclasses.replace(record)

    async def get_by_refund_id(self, refund_id: str) -> Optional[RefundRecord]:
        record = self.records.get(refund_id)
        return dataclasses.replace(record) if record else None

    async def get_by_gateway_refund_id(self, gateway_refund_id: str) -> Optional[RefundRecord]:
        for record in self.records.values():
            if record.gateway_refund_id == gateway_refund_id:
                return dataclasses.replace(record)
        return None

    async def find_many(self, refund_filter: RefundFilter, skip: int = 0, limit: int = 20):
        items = [
            r for r in self.records.values()
            if (refund_filter.status is None or r.refund_status == refund_filter.status)
            and (refund_filter.transaction_type is None or r.transaction_type == refund_filter.transaction_type)
            and (refund_filter.user_id is None or r.user_id == refund_filter.user_id)
            and (refund_filter.original_payment_id is None
                 or r.original_payment_id == refund_filter.original_payment_id)
        ]
        items.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [dataclasses.replace(r) for r in items[skip:skip + limit]], len(items)

    async def exists_open_for_payment(self, payment_id: str) -> bool:
        return any(
            r.original_payment_id == payment_id and r.refund_status == RefundStatus.INITIATED
            for r in self.records.values()
        )


class InMemoryTokenStore(TransactionStore):
    def __init__(self, transaction_type: TransactionType) -> None:
        self.transaction_type = transaction_type
        self.items: dict[int, Any] = {}
        self.fail_updates = False

    def add(self, token) -> None:
        self.items[token.id] = token

    async def find_by_gateway_payment_id(self, gateway_payment_id: str):
        for token in self.items.values():
            if token.gateway_payment_id == gateway_payment_id:
                return token
        return None

    async def get_by_id(self, transaction_id: int):
        return self.items.get(transaction_id)

    async def update_refund_sub_state(self, transaction_id, sub_state: RefundSubState, *, installment_year=None) -> bool:
        if self.fail_updates:
            raise ConnectionError("ledger store unreachable")
        token = self.items.get(transaction_id)
        if token is None:
            return False
        token.refund = sub_state
        return True


class InMemoryInstallmentStore(TransactionStore):
    transaction_type = TransactionType.INSTALLMENT_PLAN

    def __init__(self) -> None:
        self.items: dict[int, InstallmentPlan] = {}

    def add(self, plan: InstallmentPlan) -> None:
        self.items[plan.id] = plan

    async def find_by_gateway_payment_id(self, gateway_payment_id: str):
        for plan in self.items.values():
            if plan.entry_for_payment(gateway_payment_id):
                return plan
        return None

    async def get_by_id(self, transaction_id: int):
        return self.items.get(transaction_id)

    async def update_refund_sub_state(self, transaction_id, sub_state, *, installment_year=None) -> bool:
        plan = self.items.get(transaction_id)
        if plan is None or installment_year is None:
            return False
        entry = plan.entry_for_year(installment_year)
        if entry is None:
            return False
        entry.refund = sub_state
        return True


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, ledger: "FakeLedger", *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._ledger = ledger
        self.refund_repository = ledger.refunds
        self.transaction_stores = ledger.stores

    async def commit(self) -> None:
        self._committed = True
        self._ledger.commits += 1

    async def rollback(self) -> None:
        self._committed = False
        self._ledger.rollbacks += 1


class FakeLedger:
    """Shared in-memory state behind every unit of work created by ``uow_factory``."""

    def __init__(self) -> None:
        self.refunds = InMemoryRefundRepository()
        self.tokens = InMemoryTokenStore(TransactionType.TOKEN)
        self.reservations = InMemoryTokenStore(TransactionType.RESERVATION_TOKEN)
        self.plans = InMemoryInstallmentStore()
        self.stores = {
            TransactionType.TOKEN: self.tokens,
            TransactionType.RESERVATION_TOKEN: self.reservations,
            TransactionType.INSTALLMENT_PLAN: self.plans,
        }
        self.commits = 0
        self.rollbacks = 0

    def uow_factory(self, *, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self, readonly=readonly)

    def add_token(self, id: int = 1, user_id: Optional[int] = 7, payment_id: str = "pay_1") -> PrepaymentToken:
        token = PrepaymentToken(
            id=id,
            user_id=user_id,
            custom_token_id=f"TOK-{id}",
            amount_paid=500000,
            status="paid",
            gateway_order_id="order_1",
            gateway_payment_id=payment_id,
        )
        self.tokens.add(token)
        return token

    def add_reservation(self, id: int = 1, user_id: Optional[int] = 8, payment_id: str = "pay_1") -> ReservationToken:
        token = ReservationToken(
            id=id,
            user_id=user_id,
            custom_token_id=f"RES-{id}",
            amount_paid=500000,
            status="paid",
            gateway_payment_id=payment_id,
        )
        self.reservations.add(token)
        return token

    def add_plan(self, id: int = 1, user_id: Optional[int] = 9, payments: Optional[dict[int, str]] = None) -> InstallmentPlan:
        payments = payments if payments is not None else {2025: "pay_2025", 2026: "pay_2026"}
        plan = InstallmentPlan(
            id=id,
            user_id=user_id,
            entries=[
                InstallmentEntry(year=year, amount=250000, paid=True, gateway_payment_id=pid)
                for year, pid in sorted(payments.items())
            ],
        )
        self.plans.add(plan)
        return plan
