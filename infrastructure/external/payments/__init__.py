"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import GatewayLink


def get_payment_gateway(provider: Optional[str] = None) -> GatewayLink:
    name = (provider or payment_settings.default_provider).lower()
    if name == "wpay":
        from .wpay_client import WpayClient
        return WpayClient()
    raise ValueError(f"Unsupported payment provider: {name}")
