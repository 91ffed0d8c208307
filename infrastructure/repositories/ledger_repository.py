"""
所属交易存储实现 - 预付款令牌 / 预约令牌 / 分期计划
"""
from typing import Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.logging_config import get_logger
from domain.ledger.entity import (
    InstallmentEntry,
    InstallmentPlan,
    PrepaymentToken,
    RefundSubState,
    ReservationToken,
)
from domain.ledger.repository import TransactionStore
from domain.refund.entity import TransactionType
from infrastructure.models.ledger import (
    InstallmentEntryModel,
    InstallmentPlanModel,
    PrepaymentTokenModel,
    ReservationTokenModel,
)


logger = get_logger(__name__)

TokenModel = Union[PrepaymentTokenModel, ReservationTokenModel]


class _SQLAlchemyTokenStore(TransactionStore):
    """令牌类交易存储公共实现"""

    model: Type[TokenModel]
    entity_cls: Type[Union[PrepaymentToken, ReservationToken]]

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TokenModel):
        return self.entity_cls(
            id=model.id,
            user_id=model.user_id,
            custom_token_id=model.custom_token_id,
            amount_paid=model.amount_paid,
            status=model.status,
            gateway_order_id=model.gateway_order_id,
            gateway_payment_id=model.gateway_payment_id,
            refund=RefundSubState.from_dict(model.refund_details),
        )

    async def find_by_gateway_payment_id(self, gateway_payment_id: str):
        result = await self.session.execute(
            select(self.model)
            .where(self.model.gateway_payment_id == gateway_payment_id)
            .order_by(self.model.id)
            .limit(1)
        )
        db_token = result.scalar_one_or_none()
        return self._to_entity(db_token) if db_token else None

    async def get_by_id(self, transaction_id: int):
        db_token = await self.session.get(self.model, transaction_id)
        return self._to_entity(db_token) if db_token else None

    async def update_refund_sub_state(
        self,
        transaction_id: int,
        sub_state: RefundSubState,
        *,
        installment_year: Optional[int] = None,
    ) -> bool:
        db_token = await self.session.get(self.model, transaction_id)
        if db_token is None:
            return False
        db_token.refund_details = sub_state.to_dict()
        await self.session.flush()
        return True


class SQLAlchemyPrepaymentTokenStore(_SQLAlchemyTokenStore):
    transaction_type = TransactionType.TOKEN
    model = PrepaymentTokenModel
    entity_cls = PrepaymentToken


class SQLAlchemyReservationTokenStore(_SQLAlchemyTokenStore):
    transaction_type = TransactionType.RESERVATION_TOKEN
    model = ReservationTokenModel
    entity_cls = ReservationToken


class SQLAlchemyInstallmentPlanStore(TransactionStore):
    """分期计划存储；子状态写入对应年度条目"""

    transaction_type = TransactionType.INSTALLMENT_PLAN

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _entry_to_entity(model: InstallmentEntryModel) -> InstallmentEntry:
        return InstallmentEntry(
            year=model.year,
            amount=model.amount,
            paid=bool(model.paid),
            gateway_order_id=model.gateway_order_id,
            gateway_payment_id=model.gateway_payment_id,
            refund=RefundSubState.from_dict(model.refund_details),
        )

    def _to_entity(self, model: InstallmentPlanModel) -> InstallmentPlan:
        return InstallmentPlan(
            id=model.id,
            user_id=model.user_id,
            entries=[self._entry_to_entity(e) for e in model.entries],
        )

    async def find_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[InstallmentPlan]:
        result = await self.session.execute(
            select(InstallmentPlanModel)
            .join(InstallmentEntryModel, InstallmentEntryModel.plan_id == InstallmentPlanModel.id)
            .where(InstallmentEntryModel.gateway_payment_id == gateway_payment_id)
            .options(selectinload(InstallmentPlanModel.entries))
            .order_by(InstallmentPlanModel.id)
            .limit(1)
        )
        db_plan = result.scalars().first()
        return self._to_entity(db_plan) if db_plan else None

    async def get_by_id(self, transaction_id: int) -> Optional[InstallmentPlan]:
        result = await self.session.execute(
            select(InstallmentPlanModel)
            .where(InstallmentPlanModel.id == transaction_id)
            .options(selectinload(InstallmentPlanModel.entries))
        )
        db_plan = result.scalar_one_or_none()
        return self._to_entity(db_plan) if db_plan else None

    async def update_refund_sub_state(
        self,
        transaction_id: int,
        sub_state: RefundSubState,
        *,
        installment_year: Optional[int] = None,
    ) -> bool:
        if installment_year is None:
            logger.warning(
                "installment_sub_state_without_year",
                plan_id=transaction_id,
                refund_id=sub_state.refund_id,
            )
            return False
        result = await self.session.execute(
            select(InstallmentEntryModel).where(
                InstallmentEntryModel.plan_id == transaction_id,
                InstallmentEntryModel.year == installment_year,
            )
        )
        db_entry = result.scalar_one_or_none()
        if db_entry is None:
            return False
        db_entry.refund_details = sub_state.to_dict()
        await self.session.flush()
        return True
