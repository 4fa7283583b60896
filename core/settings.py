"""
Payment gateway settings using pydantic-settings v2 with nested env keys.

Environment variables use the ``PAYMENT__`` prefix, e.g.
``PAYMENT__WPAY__SECRET_KEY`` or ``PAYMENT__WEBHOOK__IP_ALLOWLIST``.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = Field(default=10.0, gt=0, le=30.0)


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks

    @field_validator("ip_allowlist", mode="before")
    @classmethod
    def _split_allowlist(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()] or None
        return v


class WpaySettings(BaseModel):
    host: str = "https://api.wpay.one"
    mch_id: Optional[str] = None
    secret_key: Optional[str] = None
    create_path: str = "/pay/createOrder"
    query_path: str = "/pay/queryOrder"
    notify_url: str = "http://localhost:8000/api/v1/callbacks/payment"
    subject: str = "UPI Payment"
    currency: str = "INR"
    order_id_prefix: str = "MB"
    ack: str = "SUCCESS"


class PaymentSettings(BaseSettings):
    default_provider: str = "wpay"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    wpay: WpaySettings = Field(default_factory=WpaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
