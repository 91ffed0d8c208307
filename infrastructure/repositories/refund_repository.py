"""
退款记录仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.refund.entity import RefundRecord, RefundStatus
from domain.refund.exceptions import DuplicateRefundRecord, RefundRecordNotFound
from domain.refund.repository import RefundFilter, RefundRepository
from infrastructure.models.refund import RefundRecordModel


logger = get_logger(__name__)

# 写回数据库的可变字段
_MUTABLE_FIELDS = (
    "refund_status",
    "gateway_refund_status",
    "notes",
    "processed_at",
    "completed_at",
    "updated_at",
)


class SQLAlchemyRefundRepository(RefundRepository):
    """退款记录仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundRecordModel) -> RefundRecord:
        """将数据库模型转换为领域实体"""
        return RefundRecord(
            id=model.id,
            refund_id=model.refund_id,
            gateway_refund_id=model.gateway_refund_id,
            original_payment_id=model.original_payment_id,
            original_order_id=model.original_order_id,
            refund_amount=model.refund_amount,
            currency=model.currency,
            refund_status=model.refund_status,
            refund_reason=model.refund_reason,
            refunded_by=model.refunded_by,
            user_id=model.user_id,
            transaction_type=model.transaction_type,
            transaction_id=model.transaction_id,
            installment_year=model.installment_year,
            refund_method=model.refund_method,
            gateway_refund_status=model.gateway_refund_status,
            notes=model.notes,
            initiated_at=model.initiated_at,
            processed_at=model.processed_at,
            completed_at=model.completed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: RefundRecord) -> RefundRecordModel:
        """将领域实体转换为数据库模型"""
        return RefundRecordModel(
            id=entity.id,
            refund_id=entity.refund_id,
            gateway_refund_id=entity.gateway_refund_id,
            original_payment_id=entity.original_payment_id,
            original_order_id=entity.original_order_id,
            refund_amount=entity.refund_amount,
            currency=entity.currency,
            refund_status=entity.refund_status.value,
            refund_reason=entity.refund_reason,
            refunded_by=entity.refunded_by,
            user_id=entity.user_id,
            transaction_type=entity.transaction_type.value,
            transaction_id=entity.transaction_id,
            installment_year=entity.installment_year,
            refund_method=entity.refund_method.value,
            gateway_refund_status=entity.gateway_refund_status,
            notes=entity.notes,
            initiated_at=entity.initiated_at,
            processed_at=entity.processed_at,
            completed_at=entity.completed_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, record: RefundRecord) -> RefundRecord:
        """创建退款记录"""
        db_record = self._to_model(record)
        self.session.add(db_record)
        try:
            await self.session.flush()
        except IntegrityError as e:
            if "refund_id" in str(e).lower():
                logger.warning("refund_record_create_conflict", refund_id=record.refund_id)
                raise DuplicateRefundRecord(record.refund_id) from e
            raise
        await self.session.refresh(db_record)
        logger.info(
            "refund_record_created",
            id=db_record.id,
            refund_id=db_record.refund_id,
            payment_id=db_record.original_payment_id,
            transaction_type=db_record.transaction_type,
        )
        return self._to_entity(db_record)

    async def update(self, record: RefundRecord) -> RefundRecord:
        """更新退款记录（仅状态、备注与时间戳可变）"""
        result = await self.session.execute(
            select(RefundRecordModel).where(RefundRecordModel.refund_id == record.refund_id)
        )
        db_record = result.scalar_one_or_none()
        if db_record is None:
            raise RefundRecordNotFound(record.refund_id)

        for name in _MUTABLE_FIELDS:
            value = getattr(record, name)
            if isinstance(value, RefundStatus):
                value = value.value
            setattr(db_record, name, value)

        await self.session.flush()
        await self.session.refresh(db_record)
        logger.info(
            "refund_record_updated",
            refund_id=db_record.refund_id,
            status=db_record.refund_status,
        )
        return self._to_entity(db_record)

    async def get_by_refund_id(self, refund_id: str) -> Optional[RefundRecord]:
        """根据退款ID获取"""
        result = await self.session.execute(
            select(RefundRecordModel).where(RefundRecordModel.refund_id == refund_id)
        )
        db_record = result.scalar_one_or_none()
        return self._to_entity(db_record) if db_record else None

    async def get_by_gateway_refund_id(self, gateway_refund_id: str) -> Optional[RefundRecord]:
        """根据网关退款ID获取"""
        result = await self.session.execute(
            select(RefundRecordModel).where(RefundRecordModel.gateway_refund_id == gateway_refund_id)
        )
        db_record = result.scalars().first()
        return self._to_entity(db_record) if db_record else None

    async def find_many(
        self,
        refund_filter: RefundFilter,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[RefundRecord], int]:
        """按条件分页查询，创建时间倒序"""
        conditions = []
        if refund_filter.status is not None:
            conditions.append(RefundRecordModel.refund_status == refund_filter.status.value)
        if refund_filter.transaction_type is not None:
            conditions.append(RefundRecordModel.transaction_type == refund_filter.transaction_type.value)
        if refund_filter.user_id is not None:
            conditions.append(RefundRecordModel.user_id == refund_filter.user_id)
        if refund_filter.original_payment_id is not None:
            conditions.append(RefundRecordModel.original_payment_id == refund_filter.original_payment_id)

        count_query = select(func.count()).select_from(RefundRecordModel).where(*conditions)
        total = (await self.session.execute(count_query)).scalar_one()

        query = (
            select(RefundRecordModel)
            .where(*conditions)
            .order_by(RefundRecordModel.created_at.desc(), RefundRecordModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        items = [self._to_entity(m) for m in result.scalars().all()]
        return items, total

    async def exists_open_for_payment(self, payment_id: str) -> bool:
        """该支付是否存在 initiated 状态的退款"""
        query = (
            select(RefundRecordModel.id)
            .where(
                RefundRecordModel.original_payment_id == payment_id,
                RefundRecordModel.refund_status == RefundStatus.INITIATED.value,
            )
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none() is not None
