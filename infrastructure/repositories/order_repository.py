"""
订单仓储实现 - 使用SQLAlchemy实现数据访问

每次调用使用一个短事务；transition 通过 version 列做乐观并发控制，
版本竞争失败时重新读取并重新判断 expected。
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderAlreadyExistsException,
    OrderNotFoundException,
    OrderStatusConflictException,
)
from domain.order.entity import Order, OrderPatch, OrderStatus, PayType
from domain.order.repository import OrderStore
from infrastructure.models.order import OrderModel


logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class SQLAlchemyOrderStore(OrderStore):
    """订单仓储的SQLAlchemy实现"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        engine: Optional[AsyncEngine] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        # 仅当 engine 由本仓储持有时才在 aclose 中释放
        self._engine = engine

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            order_id=model.order_id,
            platform_order_id=model.platform_order_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            pay_type=PayType(model.pay_type),
            status=OrderStatus(model.status),
            pay_url=model.pay_url,
            qr_payload=model.qr_payload,
            utr=model.utr,
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
            last_callback_payload=model.last_callback_payload,
            metadata=model.extra_metadata or {},
            version=model.version,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            order_id=entity.order_id,
            platform_order_id=entity.platform_order_id,
            amount=entity.amount,
            currency=entity.currency,
            pay_type=entity.pay_type.value,
            status=entity.status.value,
            pay_url=entity.pay_url,
            qr_payload=entity.qr_payload,
            utr=entity.utr,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            completed_at=entity.completed_at,
            last_callback_payload=entity.last_callback_payload,
            extra_metadata=entity.metadata,
            version=entity.version,
        )

    async def insert(self, order: Order) -> Order:
        """插入新订单"""
        now = datetime.now(timezone.utc)
        if order.created_at is None:
            order.created_at = now
        if order.updated_at is None:
            order.updated_at = order.created_at
        order.version = 0

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    db_order = self._to_model(order)
                    session.add(db_order)
                    await session.flush()
                    created = self._to_entity(db_order)
        except IntegrityError:
            logger.warning("order_create_conflict", order_id=order.order_id)
            raise OrderAlreadyExistsException(order.order_id)

        logger.info(
            "order_created",
            order_id=created.order_id,
            amount=str(created.amount),
            status=created.status.value,
        )
        return created

    async def _load(self, session: AsyncSession, order_id: str) -> Optional[OrderModel]:
        result = await session.execute(
            select(OrderModel).where(OrderModel.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def get(self, order_id: str) -> Optional[Order]:
        """根据订单号获取订单"""
        async with self._session_factory() as session:
            db_order = await self._load(session, order_id)
            return self._to_entity(db_order) if db_order else None

    async def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        next_status: Optional[OrderStatus],
        patch: Optional[OrderPatch] = None,
    ) -> Order:
        expected = frozenset(expected)
        current: Optional[Order] = None

        for attempt in range(1, self._max_attempts + 1):
            async with self._session_factory() as session:
                async with session.begin():
                    db_order = await self._load(session, order_id)
                    if db_order is None:
                        raise OrderNotFoundException(order_id)
                    current = self._to_entity(db_order)
                    if current.status not in expected:
                        raise OrderStatusConflictException(current, expected)

                    updated = current.apply(next_status, patch, now=datetime.now(timezone.utc))
                    result = await session.execute(
                        update(OrderModel)
                        .where(
                            OrderModel.order_id == order_id,
                            OrderModel.version == current.version,
                        )
                        .values(
                            status=updated.status.value,
                            platform_order_id=updated.platform_order_id,
                            pay_url=updated.pay_url,
                            qr_payload=updated.qr_payload,
                            utr=updated.utr,
                            completed_at=updated.completed_at,
                            last_callback_payload=updated.last_callback_payload,
                            updated_at=updated.updated_at,
                            version=current.version + 1,
                        )
                        .execution_options(synchronize_session=False)
                    )

            if result.rowcount == 1:
                updated.version = current.version + 1
                logger.info(
                    "order_transitioned",
                    order_id=order_id,
                    from_status=current.status.value,
                    to_status=updated.status.value,
                    version=updated.version,
                )
                return updated

            logger.warning("order_version_race", order_id=order_id, attempt=attempt)

        latest = await self.get(order_id) or current
        logger.error(
            "order_transition_attempts_exhausted",
            order_id=order_id,
            attempts=self._max_attempts,
        )
        raise OrderStatusConflictException(latest, expected)

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
