"""
内存订单仓储 - 单进程部署与测试使用

每个订单一把锁，不同订单之间互不阻塞；读写都做深拷贝，调用方拿到的永远是完整快照。
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderAlreadyExistsException,
    OrderNotFoundException,
    OrderStatusConflictException,
)
from domain.order.entity import Order, OrderPatch, OrderStatus
from domain.order.repository import OrderStore


logger = get_logger(__name__)


class InMemoryOrderStore(OrderStore):
    """订单仓储的内存实现"""

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, order_id: str) -> asyncio.Lock:
        return self._locks.setdefault(order_id, asyncio.Lock())

    async def insert(self, order: Order) -> Order:
        async with self._lock_for(order.order_id):
            if order.order_id in self._orders:
                logger.warning("order_create_conflict", order_id=order.order_id)
                raise OrderAlreadyExistsException(order.order_id)

            stored = order.snapshot()
            stored.created_at = stored.created_at or datetime.now(timezone.utc)
            stored.updated_at = stored.updated_at or stored.created_at
            stored.version = 0
            self._orders[order.order_id] = stored

        logger.info(
            "order_created",
            order_id=stored.order_id,
            amount=str(stored.amount),
            status=stored.status.value,
        )
        return stored.snapshot()

    async def get(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.snapshot() if order else None

    async def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        next_status: Optional[OrderStatus],
        patch: Optional[OrderPatch] = None,
    ) -> Order:
        expected = frozenset(expected)
        async with self._lock_for(order_id):
            current = self._orders.get(order_id)
            if current is None:
                raise OrderNotFoundException(order_id)
            if current.status not in expected:
                raise OrderStatusConflictException(current.snapshot(), expected)

            updated = current.apply(next_status, patch, now=datetime.now(timezone.utc))
            updated.version = current.version + 1
            self._orders[order_id] = updated

        logger.info(
            "order_transitioned",
            order_id=order_id,
            from_status=current.status.value,
            to_status=updated.status.value,
            version=updated.version,
        )
        return updated.snapshot()

    async def aclose(self) -> None:
        self._locks.clear()
