"""
Refund domain events.

Events carry a snapshot of the RefundRecord at the time of the transition and
are consumed after commit by the side-effect dispatcher (sub-state mirroring,
notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
import uuid

from domain.refund.entity import RefundRecord


@dataclass
class RefundEvent:
    record: RefundRecord
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        # snapshot so later mutation of the aggregate does not leak into the event
        self.record = replace(self.record)


@dataclass
class RefundInitiated(RefundEvent):
    pass


@dataclass
class RefundProcessed(RefundEvent):
    pass


@dataclass
class RefundFailed(RefundEvent):
    pass


@dataclass
class RefundCancelled(RefundEvent):
    pass
