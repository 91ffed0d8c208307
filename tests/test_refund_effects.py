import pytest

from application.services.refund_effects import RefundSideEffects, USER_MESSAGES, format_amount
from core.settings import RefundPolicy
from domain.refund.entity import RefundRecord, RefundStatus, TransactionType
from domain.refund.events import RefundInitiated, RefundProcessed


def _record(**overrides) -> RefundRecord:
    data = dict(
        id=1,
        refund_id="rfnd_9",
        gateway_refund_id="rfnd_9",
        original_payment_id="pay_1",
        original_order_id="order_1",
        refund_amount=12345,
        currency="INR",
        refund_status=RefundStatus.INITIATED,
        refund_reason="customer request",
        refunded_by="ops-1",
        user_id=7,
        transaction_type=TransactionType.TOKEN,
        transaction_id=1,
    )
    data.update(overrides)
    return RefundRecord(**data)


def _effects(ledger, notifier, attempts: int = 3) -> RefundSideEffects:
    return RefundSideEffects(
        ledger.uow_factory,
        notifier,
        RefundPolicy(effect_retry_attempts=attempts, effect_retry_backoff=0),
    )


def test_format_amount():
    assert format_amount(500000, "INR") == "INR 5000.00"
    assert format_amount(5, "USD") == "USD 0.05"


@pytest.mark.asyncio
async def test_dispatch_mirrors_and_notifies(ledger, notifier):
    token = ledger.add_token(id=1)
    await _effects(ledger, notifier).dispatch([RefundInitiated(record=_record())])

    assert token.refund.refund_id == "rfnd_9"
    assert token.refund.refund_amount == 12345
    assert notifier.user_messages[0]["message"] == USER_MESSAGES[RefundStatus.INITIATED]
    assert notifier.user_messages[0]["metadata"] == {
        "refundId": "rfnd_9", "refundAmount": 12345, "status": "initiated",
    }
    operator = notifier.operator_messages[0]
    assert operator["category"] == "refund_admin"
    assert operator["message"] == (
        "A refund has been initiated for payment pay_1. Amount: INR 123.45. Processed by: ops-1"
    )
    assert operator["related_entity_id"] == "rfnd_9"


@pytest.mark.asyncio
async def test_event_snapshot_is_mirrored(ledger, notifier):
    token = ledger.add_token(id=1)
    record = _record()
    event = RefundProcessed(record=record)
    record.refund_status = RefundStatus.FAILED

    await _effects(ledger, notifier).dispatch([event])

    assert token.refund.refund_status == "initiated"


@pytest.mark.asyncio
async def test_orphan_record_skips_mirror_and_user(ledger, notifier):
    record = _record(user_id=None, transaction_type=TransactionType.UNKNOWN, transaction_id=None)
    await _effects(ledger, notifier).dispatch([RefundInitiated(record=record)])

    assert notifier.user_messages == []
    assert len(notifier.operator_messages) == 1


@pytest.mark.asyncio
async def test_installment_mirror_targets_year(ledger, notifier):
    plan = ledger.add_plan(id=2)
    record = _record(transaction_type=TransactionType.INSTALLMENT_PLAN, transaction_id=2, installment_year=2025)
    await _effects(ledger, notifier).dispatch([RefundInitiated(record=record)])

    assert plan.entry_for_year(2025).refund.refund_id == "rfnd_9"
    assert plan.entry_for_year(2026).refund is None


@pytest.mark.asyncio
async def test_missing_owner_is_logged_not_raised(ledger, notifier):
    await _effects(ledger, notifier).dispatch([RefundInitiated(record=_record(transaction_id=404))])
    assert len(notifier.operator_messages) == 1


@pytest.mark.asyncio
async def test_failures_are_retried_then_swallowed(ledger, notifier):
    calls = {"n": 0}

    async def _flaky(*args, **kwargs):
        calls["n"] += 1
        raise ConnectionError("down")

    notifier.notify_operators = _flaky
    await _effects(ledger, notifier, attempts=3).dispatch([RefundInitiated(record=_record())])

    assert calls["n"] == 3
    assert len(notifier.user_messages) == 1


@pytest.mark.asyncio
async def test_transient_failure_recovers(ledger, notifier):
    token = ledger.add_token(id=1)
    original = ledger.tokens.update_refund_sub_state
    calls = {"n": 0}

    async def _once_broken(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("blip")
        return await original(*args, **kwargs)

    ledger.tokens.update_refund_sub_state = _once_broken
    await _effects(ledger, notifier).dispatch([RefundInitiated(record=_record())])

    assert calls["n"] == 2
    assert token.refund is not None
