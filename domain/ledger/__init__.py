"""Ledger (owning transaction) domain exports."""
from .entity import (
    RefundSubState,
    PrepaymentToken,
    ReservationToken,
    InstallmentEntry,
    InstallmentPlan,
    TransactionRef,
)
from .repository import TransactionStore

__all__ = [
    "RefundSubState",
    "PrepaymentToken",
    "ReservationToken",
    "InstallmentEntry",
    "InstallmentPlan",
    "TransactionRef",
    "TransactionStore",
]
