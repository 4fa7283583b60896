"""
Order DTOs (Pydantic v2) used at application boundaries.

HTTP payloads are camelCase on the wire; Python code uses snake_case field
names (``populate_by_name``).
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.types import condecimal

from domain.order.entity import OrderStatus, PayType, ReconcileStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOrder(CamelModel):
    amount: condecimal(gt=0, max_digits=15, decimal_places=2)  # type: ignore[valid-type]
    pay_type: PayType = PayType.UPI
    currency: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        u = v.upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u


class CreatedOrder(CamelModel):
    order_id: str
    pay_url: Optional[str] = None
    qr_payload: Optional[str] = None
    status: OrderStatus


class ReconcileRequest(CamelModel):
    utr: Optional[str] = Field(default=None, description="12-digit UPI transaction reference")


class ReconcileResult(CamelModel):
    status: ReconcileStatus


class OrderView(CamelModel):
    order_id: str
    status: OrderStatus
    amount: Decimal
    currency: str
    pay_type: PayType
    platform_order_id: Optional[str] = None
    pay_url: Optional[str] = None
    qr_payload: Optional[str] = None
    utr: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class RefreshResult(CamelModel):
    order_id: str
    status: OrderStatus
    refreshed: bool


class GatewayOrder(BaseModel):
    """Gateway response to a create call."""
    platform_order_id: str
    pay_url: Optional[str] = None
    qr_payload: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


class GatewayQueryResult(BaseModel):
    """Gateway view of an order; ``status`` is the provider's raw status string."""
    order_id: str
    status: str
    platform_order_id: Optional[str] = None
    actual_amount: Optional[Decimal] = None
    completed_at: Optional[str] = None
    raw: Optional[dict[str, Any]] = None
