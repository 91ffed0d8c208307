import pytest
from datetime import datetime, timezone

from domain.refund.entity import (
    ALLOWED_TRANSITIONS,
    ORPHAN_NOTE,
    TERMINAL_STATUSES,
    RefundRecord,
    RefundStatus,
    TransactionType,
    can_transition,
)
from domain.refund.exceptions import InvalidTransition


def _record(status: RefundStatus = RefundStatus.INITIATED, **overrides) -> RefundRecord:
    data = dict(
        id=1,
        refund_id="rfnd_1",
        gateway_refund_id="rfnd_1",
        original_payment_id="pay_1",
        original_order_id="order_1",
        refund_amount=500000,
        currency="INR",
        refund_status=status,
        refund_reason="customer request",
        refunded_by="ops-1",
        transaction_type=TransactionType.TOKEN,
        transaction_id=1,
        user_id=7,
    )
    data.update(overrides)
    return RefundRecord(**data)


def test_terminal_states_have_no_outgoing_transitions():
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()
        for target in RefundStatus:
            assert not can_transition(status, target)


def test_cancelled_only_reachable_from_initiated():
    sources = [s for s in RefundStatus if can_transition(s, RefundStatus.CANCELLED)]
    assert sources == [RefundStatus.INITIATED]


def test_string_values_are_coerced_and_datetimes_normalised():
    naive = datetime(2026, 1, 2, 3, 4, 5)
    record = _record(status="processed", transaction_type="installment-plan", initiated_at=naive)
    assert record.refund_status is RefundStatus.PROCESSED
    assert record.transaction_type is TransactionType.INSTALLMENT_PLAN
    assert record.initiated_at.tzinfo == timezone.utc


def test_apply_processed_sets_processed_and_completed():
    record = _record()
    changed = record.apply_gateway_outcome(RefundStatus.PROCESSED, "processed")
    assert changed is True
    assert record.refund_status == RefundStatus.PROCESSED
    assert record.gateway_refund_status == "processed"
    assert record.processed_at is not None
    assert record.completed_at == record.processed_at


def test_apply_failed_sets_processed_only():
    record = _record()
    record.apply_gateway_outcome(RefundStatus.FAILED, "failed")
    assert record.refund_status == RefundStatus.FAILED
    assert record.processed_at is not None
    assert record.completed_at is None


def test_failure_after_processed_clears_completion():
    record = _record()
    record.apply_gateway_outcome(RefundStatus.PROCESSED, "processed")
    assert record.completed_at is not None

    record.apply_gateway_outcome(RefundStatus.FAILED, "failed")

    assert record.refund_status == RefundStatus.FAILED
    assert record.gateway_refund_status == "failed"
    assert record.processed_at is not None
    assert record.completed_at is None


def test_reapplying_same_outcome_does_not_touch_timestamps():
    record = _record()
    record.apply_gateway_outcome(RefundStatus.FAILED, "failed")
    processed_at, updated_at = record.processed_at, record.updated_at

    assert record.apply_gateway_outcome(RefundStatus.FAILED, "failed") is False
    assert record.processed_at == processed_at
    assert record.updated_at == updated_at


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_record_never_moves(terminal):
    record = _record(status=terminal)
    for target in (RefundStatus.PROCESSED, RefundStatus.FAILED, RefundStatus.SUCCESSFUL):
        if target == terminal:
            continue
        with pytest.raises(InvalidTransition):
            record.apply_gateway_outcome(target, target.value)
    with pytest.raises(InvalidTransition):
        record.cancel("too late")
    assert record.refund_status == terminal


def test_mark_successful_from_processed():
    record = _record(status=RefundStatus.PROCESSED)
    record.mark_successful()
    assert record.refund_status == RefundStatus.SUCCESSFUL
    assert record.completed_at is not None


def test_mark_successful_requires_processed():
    with pytest.raises(InvalidTransition):
        _record().mark_successful()


def test_cancel_stores_reason_in_notes():
    record = _record()
    record.cancel("duplicate request")
    assert record.refund_status == RefundStatus.CANCELLED
    assert record.notes == "duplicate request"


def test_cancel_from_processed_rejected():
    record = _record(status=RefundStatus.PROCESSED)
    with pytest.raises(InvalidTransition) as exc_info:
        record.cancel()
    assert exc_info.value.details["current"] == "processed"


def test_orphan_flag():
    assert _record(transaction_type=TransactionType.UNKNOWN, notes=ORPHAN_NOTE).is_orphan
    assert not _record().is_orphan
