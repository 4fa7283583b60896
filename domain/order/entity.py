"""
订单领域实体 - 订单聚合根与状态机
"""
from __future__ import annotations

import copy
import re
import secrets
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    OrderFieldImmutableException,
)


class OrderStatus(str, Enum):
    """订单状态枚举"""
    CREATED = "CREATED"   # 已创建，等待网关确认
    PENDING = "PENDING"   # 网关已受理，等待支付结果
    PAID = "PAID"         # 支付成功（终态）
    FAILED = "FAILED"     # 支付失败（终态）


class PayType(str, Enum):
    UPI = "UPI"
    PAYTM = "PAYTM"
    PHONEPE = "PHONEPE"
    GPAY = "GPAY"


class ReconcileStatus(str, Enum):
    """对客户端暴露的粗粒度状态"""
    SUCCESS = "SUCCESS"
    PENDING = "PENDING"
    FAILED = "FAILED"


ALL_STATUSES = frozenset(OrderStatus)
NON_TERMINAL_STATUSES = frozenset({OrderStatus.CREATED, OrderStatus.PENDING})
TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.FAILED})

# 允许的状态迁移；终态没有出边
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.FAILED}),
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset(),
    OrderStatus.FAILED: frozenset(),
}

# 只能写入一次的字段（相同值重复写入视为无操作）
WRITE_ONCE_FIELDS = ("platform_order_id", "pay_url", "qr_payload", "utr")

UTR_PATTERN = re.compile(r"[0-9]{12}")


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def generate_order_id(prefix: str = "MB", now: Optional[datetime] = None) -> str:
    """商户订单号：前缀 + UTC 时间(yyyymmddHHMMSS) + 8位随机十六进制"""
    ts = (_ensure_utc(now) or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")
    return f"{prefix}{ts}{secrets.token_hex(4).upper()}"


def is_valid_utr(utr: str) -> bool:
    return isinstance(utr, str) and UTR_PATTERN.fullmatch(utr) is not None


def to_reconcile_status(status: OrderStatus) -> ReconcileStatus:
    if status == OrderStatus.PAID:
        return ReconcileStatus.SUCCESS
    if status == OrderStatus.FAILED:
        return ReconcileStatus.FAILED
    return ReconcileStatus.PENDING


@dataclass
class OrderPatch:
    """transition 可以随状态一起写入的字段；None 表示不修改"""

    platform_order_id: Optional[str] = None
    pay_url: Optional[str] = None
    qr_payload: Optional[str] = None
    utr: Optional[str] = None
    completed_at: Optional[datetime] = None
    last_callback_payload: Optional[dict[str, str]] = None

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class Order:
    """
    订单聚合根 - 一笔商户发起的代收交易

    业务规则：
    1. order_id 创建后不可变且全局唯一
    2. 金额必须大于0，最多两位小数
    3. 状态迁移必须遵循状态机，终态不可回退
    4. platform_order_id / pay_url / qr_payload / utr 只能写入一次
    """

    order_id: str
    amount: Decimal
    currency: str
    pay_type: PayType
    status: OrderStatus = OrderStatus.CREATED
    platform_order_id: Optional[str] = None
    pay_url: Optional[str] = None
    qr_payload: Optional[str] = None
    utr: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_callback_payload: Optional[dict[str, str]] = None
    metadata: dict = field(default_factory=dict)
    version: int = 0

    def __post_init__(self):
        """初始化后验证"""
        if not self.order_id:
            raise DomainValidationException("order_id must not be empty", field="order_id")
        self._validate_amount()
        self._validate_currency()
        self.pay_type = PayType(self.pay_type)
        self.status = OrderStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.completed_at = _ensure_utc(self.completed_at)
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        """业务规则：金额必须大于0且最多两位小数"""
        if self.amount <= 0:
            raise DomainValidationException(
                f"amount must be greater than 0: {self.amount}",
                field="amount"
            )
        if self.amount.as_tuple().exponent < -2:
            raise DomainValidationException(
                f"amount supports at most 2 decimal places: {self.amount}",
                field="amount"
            )

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"invalid currency code: {self.currency}",
                field="currency"
            )
        self.currency = self.currency.upper()

    def is_final_status(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, next_status: OrderStatus) -> bool:
        return next_status in ALLOWED_TRANSITIONS[self.status]

    def apply(
        self,
        next_status: Optional[OrderStatus],
        patch: Optional[OrderPatch] = None,
        *,
        now: Optional[datetime] = None,
    ) -> "Order":
        """
        返回应用状态迁移与补丁后的新实体，自身不变

        next_status 为 None 时只写补丁，不改变状态。
        """
        changes = patch.changes() if patch else {}
        for name in WRITE_ONCE_FIELDS:
            if name in changes:
                stored = getattr(self, name)
                if stored is not None and stored != changes[name]:
                    raise OrderFieldImmutableException(self.order_id, name)

        if next_status is not None and next_status != self.status:
            if not self.can_transition_to(next_status):
                raise DomainValidationException(
                    f"cannot transition from {self.status.value} to {next_status.value}",
                    field="status"
                )
            changes["status"] = next_status

        if "last_callback_payload" in changes:
            changes["last_callback_payload"] = dict(changes["last_callback_payload"])
        changes["updated_at"] = _ensure_utc(now) or datetime.now(timezone.utc)
        return replace(self, metadata=copy.deepcopy(self.metadata), **changes)

    def snapshot(self) -> "Order":
        """深拷贝，供存储层对外返回"""
        return copy.deepcopy(self)
