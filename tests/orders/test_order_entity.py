import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, OrderFieldImmutableException
from domain.order.entity import (
    Order,
    OrderPatch,
    OrderStatus,
    PayType,
    ReconcileStatus,
    generate_order_id,
    is_valid_utr,
    to_reconcile_status,
)


def _order(**overrides) -> Order:
    data = dict(order_id="MB1", amount=Decimal("500.00"), currency="inr", pay_type=PayType.UPI)
    data.update(overrides)
    return Order(**data)


def test_order_defaults_and_normalization():
    order = _order(created_at=datetime(2026, 1, 1, 12, 0))
    assert order.status == OrderStatus.CREATED
    assert order.currency == "INR"
    assert order.created_at.tzinfo == timezone.utc
    assert order.metadata == {}


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("1.005")])
def test_invalid_amount_rejected(amount):
    with pytest.raises(DomainValidationException):
        _order(amount=amount)


def test_invalid_currency_rejected():
    with pytest.raises(DomainValidationException):
        _order(currency="RUPEE")


def test_generate_order_id_format():
    now = datetime(2026, 10, 19, 9, 30, 5, tzinfo=timezone.utc)
    order_id = generate_order_id("MB", now)
    assert re.fullmatch(r"MB20261019093005[0-9A-F]{8}", order_id)
    assert generate_order_id("MB", now) != order_id


def test_apply_returns_new_order_and_keeps_original():
    order = _order()
    updated = order.apply(OrderStatus.PENDING, OrderPatch(platform_order_id="WP1"))
    assert updated.status == OrderStatus.PENDING
    assert updated.platform_order_id == "WP1"
    assert order.status == OrderStatus.CREATED
    assert order.platform_order_id is None


@pytest.mark.parametrize(
    "start,target",
    [
        (OrderStatus.PAID, OrderStatus.PENDING),
        (OrderStatus.PAID, OrderStatus.FAILED),
        (OrderStatus.FAILED, OrderStatus.PAID),
        (OrderStatus.PENDING, OrderStatus.CREATED),
    ],
)
def test_terminal_and_backward_transitions_rejected(start, target):
    with pytest.raises(DomainValidationException):
        _order(status=start).apply(target)


def test_none_status_only_annotates():
    order = _order(status=OrderStatus.PAID)
    updated = order.apply(None, OrderPatch(utr="123456789012"))
    assert updated.status == OrderStatus.PAID
    assert updated.utr == "123456789012"


def test_write_once_field_cannot_change():
    order = _order(platform_order_id="WP1")
    with pytest.raises(OrderFieldImmutableException):
        order.apply(None, OrderPatch(platform_order_id="WP2"))
    # same value is a no-op
    assert order.apply(None, OrderPatch(platform_order_id="WP1")).platform_order_id == "WP1"


def test_utr_validation():
    assert is_valid_utr("123456789012")
    assert not is_valid_utr("12345678901")
    assert not is_valid_utr("1234567890123")
    assert not is_valid_utr("12345678901a")
    assert not is_valid_utr("123456789012\n")
    assert not is_valid_utr("１２３４５６７８９０１２")


def test_reconcile_status_mapping():
    assert to_reconcile_status(OrderStatus.PAID) == ReconcileStatus.SUCCESS
    assert to_reconcile_status(OrderStatus.FAILED) == ReconcileStatus.FAILED
    assert to_reconcile_status(OrderStatus.CREATED) == ReconcileStatus.PENDING
    assert to_reconcile_status(OrderStatus.PENDING) == ReconcileStatus.PENDING
