"""
交易定位领域服务 - 根据网关支付ID找到所属的本地交易
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from domain.refund.entity import TransactionType
from domain.refund.exceptions import InstallmentYearRequired, TransactionNotFound, UserNotFound
from .entity import InstallmentPlan, TransactionRef
from .repository import OwningTransaction, TransactionStore


# 固定探测顺序，先匹配者胜出
LOOKUP_ORDER = (
    TransactionType.TOKEN,
    TransactionType.RESERVATION_TOKEN,
    TransactionType.INSTALLMENT_PLAN,
)


@dataclass(frozen=True)
class ResolvedTransaction:
    ref: TransactionRef
    user_id: int


class TransactionLocator:
    """
    多态交易定位器

    职责：
    1. locate: 按固定优先级探测各类交易存储，返回 TransactionRef 或 None
    2. resolve: 加载调用方指定的交易，确定用户与分期年度

    找不到交易是预期结果；只有存储层故障会向上抛出。
    """

    def __init__(self, stores: Mapping[TransactionType, TransactionStore]):
        self._stores = stores

    def _store(self, transaction_type: TransactionType) -> TransactionStore:
        return self._stores[transaction_type]

    @staticmethod
    def _ref_for(
        transaction_type: TransactionType,
        owner: OwningTransaction,
        gateway_payment_id: str,
    ) -> TransactionRef:
        year = None
        if isinstance(owner, InstallmentPlan):
            entry = owner.entry_for_payment(gateway_payment_id)
            year = entry.year if entry else None
        return TransactionRef(transaction_type, owner.id, year)

    async def locate(self, gateway_payment_id: str) -> Optional[TransactionRef]:
        found = await self._find(gateway_payment_id)
        return found[0] if found else None

    async def _find(self, gateway_payment_id: str):
        for transaction_type in LOOKUP_ORDER:
            store = self._stores.get(transaction_type)
            if store is None:
                continue
            owner = await store.find_by_gateway_payment_id(gateway_payment_id)
            if owner is not None:
                return self._ref_for(transaction_type, owner, gateway_payment_id), owner
        return None

    async def resolve(
        self,
        gateway_payment_id: str,
        transaction_type: Optional[TransactionType] = None,
        transaction_id: Optional[int] = None,
        installment_year: Optional[int] = None,
    ) -> Optional[ResolvedTransaction]:
        """
        确定所属交易及其用户

        业务规则：
        1. 未指定交易时走 locate；仍无结果返回 None（孤儿退款）
        2. 已确定交易但找不到记录或用户 -> UserNotFound
        3. 分期计划必须能确定年度（调用方指定或按支付ID匹配），不做"首个已付条目"推断
        """
        if transaction_type is None or transaction_type == TransactionType.UNKNOWN or transaction_id is None:
            found = await self._find(gateway_payment_id)
            if found is None:
                return None
            ref, owner = found
        else:
            owner = await self._store(transaction_type).get_by_id(transaction_id)
            if owner is None:
                raise UserNotFound(transaction_type.value, str(transaction_id))
            ref = self._ref_for(transaction_type, owner, gateway_payment_id)

        if isinstance(owner, InstallmentPlan):
            year = installment_year if installment_year is not None else ref.installment_year
            if year is None:
                raise InstallmentYearRequired(str(owner.id))
            if owner.entry_for_year(year) is None:
                raise TransactionNotFound(ref.transaction_type.value, f"{owner.id}/{year}")
            ref = TransactionRef(ref.transaction_type, ref.transaction_id, year)

        if owner.user_id is None:
            raise UserNotFound(ref.transaction_type.value, str(ref.transaction_id))
        return ResolvedTransaction(ref=ref, user_id=owner.user_id)
