import functools
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.refunds import InitiateRefundCommand
from application.services.refund_service import RefundApplicationService
from core.settings import RefundPolicy
from domain.ledger.entity import RefundSubState
from domain.refund.entity import RefundRecord, RefundStatus, TransactionType
from domain.refund.exceptions import DuplicateRefundRecord, StoreUnavailable
from domain.refund.repository import RefundFilter
from fakes import FakeGateway, make_payment
from infrastructure.models import (
    Base,
    InstallmentEntryModel,
    InstallmentPlanModel,
    PrepaymentTokenModel,
    ReservationTokenModel,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        session.add_all([
            PrepaymentTokenModel(
                id=1, user_id=7, custom_token_id="TOK-1", amount_paid=500000,
                status="paid", gateway_payment_id="pay_tok",
            ),
            ReservationTokenModel(
                id=1, user_id=8, custom_token_id="RES-1", amount_paid=200000,
                status="paid", gateway_payment_id="pay_res",
            ),
            InstallmentPlanModel(id=5, user_id=9, entries=[
                InstallmentEntryModel(year=2025, amount=250000, paid=True, gateway_payment_id="pay_y25"),
                InstallmentEntryModel(year=2026, amount=250000, paid=True, gateway_payment_id="pay_y26"),
            ]),
        ])
        await session.commit()
    return session_factory


def _record(refund_id: str, *, payment_id: str = "pay_tok", created_at=None, **overrides) -> RefundRecord:
    now = created_at or datetime.now(timezone.utc)
    data = dict(
        id=None,
        refund_id=refund_id,
        gateway_refund_id=refund_id,
        original_payment_id=payment_id,
        original_order_id="order_1",
        refund_amount=1000,
        currency="INR",
        refund_status=RefundStatus.INITIATED,
        refund_reason="customer request",
        refunded_by="ops-1",
        user_id=7,
        transaction_type=TransactionType.TOKEN,
        transaction_id=1,
        initiated_at=now,
        created_at=now,
        updated_at=now,
    )
    data.update(overrides)
    return RefundRecord(**data)


@pytest.mark.asyncio
async def test_refund_create_and_get(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        created = await uow.refund_repository.create(_record("rfnd_1"))
    assert created.id is not None

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        fetched = await uow.refund_repository.get_by_refund_id("rfnd_1")
        by_gateway = await uow.refund_repository.get_by_gateway_refund_id("rfnd_1")

    assert fetched.refund_status == RefundStatus.INITIATED
    assert fetched.transaction_type == TransactionType.TOKEN
    assert fetched.initiated_at.tzinfo is not None
    assert by_gateway.id == created.id


@pytest.mark.asyncio
async def test_refund_id_is_unique(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        await uow.refund_repository.create(_record("rfnd_1"))

    with pytest.raises(DuplicateRefundRecord):
        async with SQLAlchemyUnitOfWork(session_factory) as uow:
            await uow.refund_repository.create(_record("rfnd_1"))


@pytest.mark.asyncio
async def test_refund_update_persists_transition(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        record = await uow.refund_repository.create(_record("rfnd_1"))

    record.apply_gateway_outcome(RefundStatus.PROCESSED, "processed")
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        await uow.refund_repository.update(record)

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_id("rfnd_1")
        assert not await uow.refund_repository.exists_open_for_payment("pay_tok")
    assert stored.refund_status == RefundStatus.PROCESSED
    assert stored.gateway_refund_status == "processed"
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_find_many_filters_and_orders(session_factory):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        repo = uow.refund_repository
        await repo.create(_record("rfnd_a", created_at=base))
        await repo.create(_record("rfnd_b", created_at=base + timedelta(hours=1), user_id=None,
                                  transaction_type=TransactionType.UNKNOWN, transaction_id=None))
        await repo.create(_record("rfnd_c", created_at=base + timedelta(hours=2),
                                  refund_status=RefundStatus.CANCELLED))

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        repo = uow.refund_repository
        items, total = await repo.find_many(RefundFilter(), skip=0, limit=2)
        assert total == 3
        assert [r.refund_id for r in items] == ["rfnd_c", "rfnd_b"]

        items, total = await repo.find_many(RefundFilter(user_id=7))
        assert total == 2
        assert {r.refund_id for r in items} == {"rfnd_a", "rfnd_c"}

        items, total = await repo.find_many(RefundFilter(status=RefundStatus.CANCELLED))
        assert [r.refund_id for r in items] == ["rfnd_c"]

        items, total = await repo.find_many(RefundFilter(transaction_type=TransactionType.UNKNOWN))
        assert [r.refund_id for r in items] == ["rfnd_b"]

        assert await repo.exists_open_for_payment("pay_tok")
        assert not await repo.exists_open_for_payment("pay_other")


@pytest.mark.asyncio
async def test_token_stores(seeded):
    sub_state = RefundSubState(refund_id="rfnd_1", refund_amount=1000, refund_status="initiated")
    async with SQLAlchemyUnitOfWork(seeded) as uow:
        tokens = uow.transaction_stores[TransactionType.TOKEN]
        token = await tokens.find_by_gateway_payment_id("pay_tok")
        assert token.user_id == 7
        assert await tokens.find_by_gateway_payment_id("pay_res") is None
        assert await tokens.update_refund_sub_state(1, sub_state)
        assert not await tokens.update_refund_sub_state(99, sub_state)

        reservations = uow.transaction_stores[TransactionType.RESERVATION_TOKEN]
        reservation = await reservations.find_by_gateway_payment_id("pay_res")
        assert reservation.custom_token_id == "RES-1"

    async with SQLAlchemyUnitOfWork(seeded, readonly=True) as uow:
        token = await uow.transaction_stores[TransactionType.TOKEN].get_by_id(1)
    assert token.refund == sub_state


@pytest.mark.asyncio
async def test_installment_store_targets_entry(seeded):
    sub_state = RefundSubState(refund_id="rfnd_9", refund_amount=250000, refund_status="processed")
    async with SQLAlchemyUnitOfWork(seeded) as uow:
        plans = uow.transaction_stores[TransactionType.INSTALLMENT_PLAN]
        plan = await plans.find_by_gateway_payment_id("pay_y26")
        assert plan.id == 5
        assert [e.year for e in plan.entries] == [2025, 2026]
        assert await plans.update_refund_sub_state(5, sub_state, installment_year=2026)
        assert not await plans.update_refund_sub_state(5, sub_state)
        assert not await plans.update_refund_sub_state(5, sub_state, installment_year=2031)

    async with SQLAlchemyUnitOfWork(seeded, readonly=True) as uow:
        plan = await uow.transaction_stores[TransactionType.INSTALLMENT_PLAN].get_by_id(5)
    assert plan.entry_for_year(2026).refund.refund_id == "rfnd_9"
    assert plan.entry_for_year(2025).refund is None


@pytest.mark.asyncio
async def test_uow_rolls_back_on_error(session_factory):
    with pytest.raises(RuntimeError):
        async with SQLAlchemyUnitOfWork(session_factory) as uow:
            await uow.refund_repository.create(_record("rfnd_1"))
            raise RuntimeError("boom")

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        assert await uow.refund_repository.get_by_refund_id("rfnd_1") is None


@pytest.mark.asyncio
async def test_uow_maps_database_errors(session_factory):
    with pytest.raises(StoreUnavailable):
        async with SQLAlchemyUnitOfWork(session_factory):
            raise OperationalError("SELECT 1", {}, ConnectionError("connection reset"))


@pytest.mark.asyncio
async def test_service_against_database(seeded, notifier):
    gateway = FakeGateway()
    gateway.add_payment(make_payment(id="pay_y26", amount=250000))
    service = RefundApplicationService(
        uow_factory=functools.partial(SQLAlchemyUnitOfWork, seeded),
        gateway=gateway,
        notifier=notifier,
        policy=RefundPolicy(effect_retry_backoff=0),
    )

    result = await service.initiate_refund(
        InitiateRefundCommand(payment_id="pay_y26", reason="plan cancelled", actor_id="ops-2")
    )
    assert result.refund.installment_year == 2026
    assert result.refund.user_id == 9

    gateway.set_refund_status(result.refund.refund_id, "processed")
    processed = await service.process_refund_outcome(result.refund.refund_id)
    assert processed.refund_status == RefundStatus.PROCESSED

    async with SQLAlchemyUnitOfWork(seeded, readonly=True) as uow:
        plan = await uow.transaction_stores[TransactionType.INSTALLMENT_PLAN].get_by_id(5)
    entry = plan.entry_for_year(2026)
    assert entry.refund.refund_status == "processed"
    assert entry.refund.refunded_by == "ops-2"
