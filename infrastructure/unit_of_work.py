"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.refund.entity import TransactionType
from domain.refund.exceptions import StoreUnavailable
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.refund_repository import SQLAlchemyRefundRepository
from infrastructure.repositories.ledger_repository import (
    SQLAlchemyInstallmentPlanStore,
    SQLAlchemyPrepaymentTokenStore,
    SQLAlchemyReservationTokenStore,
)


logger = get_logger(__name__)

# 连接不可用类错误，统一转换为 StoreUnavailable
_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, ConnectionError)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self) -> None:
        self.refund_repository = SQLAlchemyRefundRepository(self.session)
        self.transaction_stores = {
            TransactionType.TOKEN: SQLAlchemyPrepaymentTokenStore(self.session),
            TransactionType.RESERVATION_TOKEN: SQLAlchemyReservationTokenStore(self.session),
            TransactionType.INSTALLMENT_PLAN: SQLAlchemyInstallmentPlanStore(self.session),
        }

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._bind_repositories()
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            try:
                self._transaction = await self.session.begin()
            except _UNAVAILABLE_ERRORS as exc:
                await self._release()
                logger.warning("uow_begin_failed", error=str(exc))
                raise StoreUnavailable("begin") from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        except _UNAVAILABLE_ERRORS as commit_exc:
            logger.warning("uow_commit_failed", error=str(commit_exc))
            raise StoreUnavailable("commit") from commit_exc
        finally:
            await self._release()
        if isinstance(exc, _UNAVAILABLE_ERRORS):
            logger.warning("uow_store_error", error=str(exc))
            raise StoreUnavailable("query") from exc

    async def _release(self) -> None:
        # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
        tx = getattr(self, "_transaction", None)
        if tx is not None and getattr(tx, "is_active", False):
            close = getattr(tx, "close", None)
            if callable(close):
                res = close()
                if inspect.isawaitable(res):
                    await res
        if self._external_session is None and self.session is not None:
            await self.session.close()
            self.session = None
        self.refund_repository = None  # type: ignore[assignment]
        self.transaction_stores = {}

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
