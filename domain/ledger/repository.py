"""
所属交易存储接口（每种交易类型一个实现）
"""
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar, Union

from domain.refund.entity import TransactionType
from .entity import InstallmentPlan, PrepaymentToken, RefundSubState, ReservationToken

OwningTransaction = Union[PrepaymentToken, ReservationToken, InstallmentPlan]
T = TypeVar("T", PrepaymentToken, ReservationToken, InstallmentPlan)


class TransactionStore(ABC, Generic[T]):
    """所属交易存储抽象 - 查找 + 写入退款子状态"""

    transaction_type: TransactionType

    @abstractmethod
    async def find_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[T]:
        """按网关支付ID查找；不存在时返回 None（不是异常）"""
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int) -> Optional[T]:
        pass

    @abstractmethod
    async def update_refund_sub_state(
        self,
        transaction_id: int,
        sub_state: RefundSubState,
        *,
        installment_year: Optional[int] = None,
    ) -> bool:
        """写入退款子状态快照；目标记录不存在时返回 False"""
        pass
