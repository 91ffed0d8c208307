"""Infrastructure models package exports."""
from .base import Base, metadata
from .refund import RefundRecordModel
from .ledger import (
    PrepaymentTokenModel,
    ReservationTokenModel,
    InstallmentPlanModel,
    InstallmentEntryModel,
)

__all__ = [
    "Base",
    "metadata",
    "RefundRecordModel",
    "PrepaymentTokenModel",
    "ReservationTokenModel",
    "InstallmentPlanModel",
    "InstallmentEntryModel",
]
