"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .entity import Order, OrderPatch, OrderStatus


class OrderStore(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做

    transition 是唯一的变更原语：当前状态属于 expected 时原子地写入新状态与补丁，
    否则抛出 OrderStatusConflictException（携带当前订单快照）且不做任何修改。
    """

    @abstractmethod
    async def insert(self, order: Order) -> Order:
        """插入新订单；order_id 重复时抛出 OrderAlreadyExistsException"""
        pass

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """根据订单号获取订单快照"""
        pass

    @abstractmethod
    async def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        next_status: Optional[OrderStatus],
        patch: Optional[OrderPatch] = None,
    ) -> Order:
        """比较并设置状态

        Raises:
            OrderNotFoundException: 订单不存在
            OrderStatusConflictException: 当前状态不在 expected 中
            OrderFieldImmutableException: 试图修改只写一次的字段
        """
        pass

    async def aclose(self) -> None:
        """释放底层资源"""
        return None
