"""
退款记录仓储接口
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .entity import RefundRecord, RefundStatus, TransactionType


@dataclass
class RefundFilter:
    status: Optional[RefundStatus] = None
    transaction_type: Optional[TransactionType] = None
    user_id: Optional[int] = None
    original_payment_id: Optional[str] = None


class RefundRepository(ABC):
    """退款记录仓储抽象接口"""

    @abstractmethod
    async def create(self, record: RefundRecord) -> RefundRecord:
        """创建退款记录；refund_id 重复时抛出 DuplicateRefundRecord"""
        pass

    @abstractmethod
    async def update(self, record: RefundRecord) -> RefundRecord:
        """更新退款记录"""
        pass

    @abstractmethod
    async def get_by_refund_id(self, refund_id: str) -> Optional[RefundRecord]:
        pass

    @abstractmethod
    async def get_by_gateway_refund_id(self, gateway_refund_id: str) -> Optional[RefundRecord]:
        pass

    @abstractmethod
    async def find_many(
        self,
        refund_filter: RefundFilter,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[RefundRecord], int]:
        """按创建时间倒序分页查询，返回 (items, total)"""
        pass

    @abstractmethod
    async def exists_open_for_payment(self, payment_id: str) -> bool:
        """该支付是否存在 initiated 状态的退款"""
        pass
