import pytest

from domain.refund.entity import ORPHAN_NOTE, RefundStatus, TransactionType
from domain.refund.events import RefundCancelled, RefundFailed, RefundInitiated, RefundProcessed
from domain.refund.exceptions import (
    ActorRequired,
    AlreadyFullyRefunded,
    BelowMinimum,
    ExceedsAvailable,
    InvalidRefundAmount,
    InvalidTransition,
    NotCaptured,
    RefundAlreadyInProgress,
    RefundReasonRequired,
    RefundRecordNotFound,
)
from domain.refund.service import (
    RefundDomainService,
    is_final_gateway_status,
    local_status_for,
    select_refund_amount,
    validate_request,
)
from fakes import InMemoryRefundRepository


def _select(**overrides):
    kwargs = dict(
        payment_id="pay_1",
        status="captured",
        amount=500000,
        amount_refunded=0,
        requested=None,
        minimum=100,
    )
    kwargs.update(overrides)
    return select_refund_amount(**kwargs)


async def _initiated(service: RefundDomainService, refund_id: str = "rfnd_1", **overrides):
    kwargs = dict(
        gateway_refund_id=refund_id,
        payment_id="pay_1",
        order_id="order_1",
        amount=500000,
        currency="INR",
        reason="customer request",
        refunded_by="ops-1",
        user_id=7,
        transaction_type=TransactionType.TOKEN,
        transaction_id=1,
    )
    kwargs.update(overrides)
    return await service.record_initiated(**kwargs)


@pytest.mark.parametrize("reason,actor,exc", [
    ("", "ops-1", RefundReasonRequired),
    ("   ", "ops-1", RefundReasonRequired),
    (None, "ops-1", RefundReasonRequired),
    ("reason", "", ActorRequired),
    ("reason", None, ActorRequired),
])
def test_validate_request_rejects_missing_inputs(reason, actor, exc):
    with pytest.raises(exc):
        validate_request(reason, actor)


def test_full_refund_uses_remaining_amount():
    assert _select() == 500000
    assert _select(amount_refunded=200000) == 300000


def test_explicit_amount_within_available():
    assert _select(requested=1000) == 1000


@pytest.mark.parametrize("status", ["created", "authorized", "refunded", "failed"])
def test_not_captured(status):
    with pytest.raises(NotCaptured) as exc_info:
        _select(status=status)
    assert exc_info.value.details["status"] == status


def test_fully_refunded_rejected():
    with pytest.raises(AlreadyFullyRefunded):
        _select(amount_refunded=500000)


def test_exceeds_available_rejected():
    with pytest.raises(ExceedsAvailable):
        _select(amount_refunded=400000, requested=100001)


def test_below_minimum_rejected():
    with pytest.raises(BelowMinimum):
        _select(requested=50)
    with pytest.raises(BelowMinimum):
        _select(amount=500050, amount_refunded=500000)


@pytest.mark.parametrize("requested", [0, -100])
def test_non_positive_amount_rejected(requested):
    with pytest.raises(InvalidRefundAmount):
        _select(requested=requested)


@pytest.mark.parametrize("refunded,requested", [
    (0, None), (0, 500000), (123456, None), (123456, 376544), (499800, None), (250000, 100),
])
def test_final_amount_never_exceeds_available(refunded, requested):
    final = _select(amount_refunded=refunded, requested=requested)
    assert final <= 500000 - refunded


@pytest.mark.parametrize("gateway_status,local", [
    ("processed", RefundStatus.PROCESSED),
    ("failed", RefundStatus.FAILED),
    ("pending", RefundStatus.FAILED),
    ("anything-new", RefundStatus.FAILED),
])
def test_local_status_mapping(gateway_status, local):
    assert local_status_for(gateway_status) == local


@pytest.mark.parametrize("gateway_status,final", [
    ("created", False),
    ("pending", False),
    ("processed", True),
    ("failed", True),
])
def test_only_settled_gateway_states_are_final(gateway_status, final):
    assert is_final_gateway_status(gateway_status) is final


@pytest.mark.asyncio
async def test_record_initiated_emits_event():
    service = RefundDomainService(InMemoryRefundRepository())
    record = await _initiated(service)

    assert record.id is not None
    assert record.refund_id == record.gateway_refund_id == "rfnd_1"
    assert record.refund_status == RefundStatus.INITIATED
    assert record.initiated_at is not None
    events = service.clear_events()
    assert [type(e) for e in events] == [RefundInitiated]
    assert service.events == []


@pytest.mark.asyncio
async def test_orphan_record_gets_note():
    service = RefundDomainService(InMemoryRefundRepository())
    record = await _initiated(
        service, user_id=None, transaction_type=TransactionType.UNKNOWN, transaction_id=None
    )
    assert record.notes == ORPHAN_NOTE
    assert record.user_id is None


@pytest.mark.asyncio
async def test_open_refund_guard():
    repo = InMemoryRefundRepository()
    service = RefundDomainService(repo)
    await service.ensure_no_open_refund("pay_1")
    await _initiated(service)
    with pytest.raises(RefundAlreadyInProgress):
        await service.ensure_no_open_refund("pay_1")


@pytest.mark.asyncio
async def test_apply_outcome_is_idempotent_but_still_emits():
    repo = InMemoryRefundRepository()
    service = RefundDomainService(repo)
    await _initiated(service)
    service.clear_events()

    first = await service.apply_gateway_outcome("rfnd_1", "processed")
    second = await service.apply_gateway_outcome("rfnd_1", "processed")

    assert repo.update_count == 1
    assert first.processed_at == second.processed_at
    assert [type(e) for e in service.clear_events()] == [RefundProcessed, RefundProcessed]


@pytest.mark.asyncio
async def test_apply_outcome_failed_event():
    service = RefundDomainService(InMemoryRefundRepository())
    await _initiated(service)
    service.clear_events()
    record = await service.apply_gateway_outcome("rfnd_1", "failed")
    assert record.refund_status == RefundStatus.FAILED
    assert isinstance(service.clear_events()[0], RefundFailed)


@pytest.mark.asyncio
async def test_apply_outcome_conflicting_terminal_status():
    service = RefundDomainService(InMemoryRefundRepository())
    await _initiated(service)
    await service.apply_gateway_outcome("rfnd_1", "failed")
    with pytest.raises(InvalidTransition):
        await service.apply_gateway_outcome("rfnd_1", "processed")


@pytest.mark.asyncio
async def test_apply_outcome_unknown_record():
    service = RefundDomainService(InMemoryRefundRepository())
    with pytest.raises(RefundRecordNotFound):
        await service.apply_gateway_outcome("rfnd_missing", "processed")


@pytest.mark.asyncio
async def test_cancel_twice():
    service = RefundDomainService(InMemoryRefundRepository())
    await _initiated(service)
    service.clear_events()

    record = await service.cancel("rfnd_1", "entered by mistake")
    assert record.refund_status == RefundStatus.CANCELLED
    assert record.notes == "entered by mistake"
    assert isinstance(service.clear_events()[0], RefundCancelled)

    with pytest.raises(InvalidTransition):
        await service.cancel("rfnd_1")
