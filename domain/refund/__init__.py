"""Refund domain exports."""
from .entity import RefundRecord, RefundStatus, TransactionType, RefundMethod
from .repository import RefundRepository, RefundFilter

__all__ = [
    "RefundRecord",
    "RefundStatus",
    "TransactionType",
    "RefundMethod",
    "RefundRepository",
    "RefundFilter",
]
