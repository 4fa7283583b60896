import asyncio
from decimal import Decimal

import pytest

from domain.common.exceptions import (
    OrderAlreadyExistsException,
    OrderNotFoundException,
    OrderStatusConflictException,
)
from domain.order.entity import ALL_STATUSES, Order, OrderPatch, OrderStatus, PayType
from infrastructure.repositories.memory_order_repository import InMemoryOrderStore


def _order(order_id: str = "MB1") -> Order:
    return Order(order_id=order_id, amount=Decimal("500.00"), currency="INR", pay_type=PayType.UPI)


@pytest.mark.asyncio
async def test_insert_and_get(store: InMemoryOrderStore):
    created = await store.insert(_order())
    assert created.version == 0
    assert created.created_at is not None

    fetched = await store.get("MB1")
    assert fetched.order_id == "MB1"
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_duplicate_insert_rejected(store: InMemoryOrderStore):
    await store.insert(_order())
    with pytest.raises(OrderAlreadyExistsException):
        await store.insert(_order())


@pytest.mark.asyncio
async def test_returned_orders_are_copies(store: InMemoryOrderStore):
    await store.insert(_order())
    fetched = await store.get("MB1")
    fetched.status = OrderStatus.PAID
    fetched.metadata["x"] = 1
    again = await store.get("MB1")
    assert again.status == OrderStatus.CREATED
    assert again.metadata == {}


@pytest.mark.asyncio
async def test_transition_applies_status_and_patch(store: InMemoryOrderStore):
    await store.insert(_order())
    updated = await store.transition(
        "MB1", {OrderStatus.CREATED}, OrderStatus.PENDING, OrderPatch(platform_order_id="WP1")
    )
    assert updated.status == OrderStatus.PENDING
    assert updated.platform_order_id == "WP1"
    assert updated.version == 1


@pytest.mark.asyncio
async def test_transition_conflict_carries_current_and_does_not_mutate(store: InMemoryOrderStore):
    await store.insert(_order())
    await store.transition("MB1", {OrderStatus.CREATED}, OrderStatus.PAID)

    with pytest.raises(OrderStatusConflictException) as exc_info:
        await store.transition(
            "MB1", {OrderStatus.CREATED, OrderStatus.PENDING}, OrderStatus.FAILED,
            OrderPatch(platform_order_id="WP9"),
        )
    assert exc_info.value.current.status == OrderStatus.PAID
    stored = await store.get("MB1")
    assert stored.status == OrderStatus.PAID
    assert stored.platform_order_id is None


@pytest.mark.asyncio
async def test_transition_unknown_order(store: InMemoryOrderStore):
    with pytest.raises(OrderNotFoundException):
        await store.transition("nope", ALL_STATUSES, None)


@pytest.mark.asyncio
async def test_concurrent_terminal_transitions_have_single_winner(store: InMemoryOrderStore):
    await store.insert(_order())
    expected = {OrderStatus.CREATED, OrderStatus.PENDING}

    async def attempt(target: OrderStatus):
        try:
            await store.transition("MB1", expected, target)
            return target
        except OrderStatusConflictException:
            return None

    results = await asyncio.gather(*(attempt(OrderStatus.PAID if i % 2 else OrderStatus.FAILED) for i in range(20)))
    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert (await store.get("MB1")).status == winners[0]
