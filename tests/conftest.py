"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ORDER_STORE", "memory")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./.pytest_orders.db")
os.environ.setdefault("PAYMENT__WPAY__MCH_ID", "1000")
os.environ.setdefault("PAYMENT__WPAY__SECRET_KEY", "test-secret")
os.environ.setdefault("PAYMENT__WPAY__HOST", "https://gateway.test")

from datetime import datetime, timezone
from typing import Mapping, Optional

import pytest

from application.dtos.orders import GatewayOrder, GatewayQueryResult
from application.services.order_service import OrderCoordinator, format_gateway_timestamp
from domain.order.signature import SignatureCodec
from infrastructure.repositories.memory_order_repository import InMemoryOrderStore


MERCHANT_ID = "1000"
SECRET = "test-secret"
NOW = datetime(2026, 10, 19, 9, 30, 0, tzinfo=timezone.utc)


class StubGateway:
    """In-process GatewayLink: records calls and returns canned results."""

    provider = "wpay"

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.queried: list[dict] = []
        self.create_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self.query_result: Optional[GatewayQueryResult] = None
        self.closed = False

    async def create_order(self, params: Mapping[str, str]) -> GatewayOrder:
        self.created.append(dict(params))
        if self.create_error is not None:
            raise self.create_error
        return GatewayOrder(
            platform_order_id=f"WP{len(self.created):06d}",
            pay_url=f"upi://pay?pa=merchant@upi&tr={params['orderId']}",
            qr_payload="iVBORw0KGgo=",
        )

    async def query_order(self, params: Mapping[str, str]) -> GatewayQueryResult:
        self.queried.append(dict(params))
        if self.query_error is not None:
            raise self.query_error
        return self.query_result

    def parse_callback(self, content_type: str, body: bytes) -> dict[str, str]:
        raise NotImplementedError

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def codec() -> SignatureCodec:
    return SignatureCodec(SECRET)


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def coordinator(store, gateway, codec, clock) -> OrderCoordinator:
    return OrderCoordinator(
        store,
        gateway,
        codec=codec,
        merchant_id=MERCHANT_ID,
        notify_url="https://merchant.test/api/v1/callbacks/payment",
        tolerance_seconds=300,
        clock=clock,
    )


@pytest.fixture
def make_callback(codec):
    """Build a signed callback payload for an order."""

    def _make(order_id: str, status: str = "SUCCESS", *, when: datetime = NOW, **extra) -> dict[str, str]:
        params = {
            "mchId": MERCHANT_ID,
            "orderId": order_id,
            "status": status,
            "timestamp": format_gateway_timestamp(when),
            **extra,
        }
        return codec.signed(params)

    return _make


def gateway_handler(request):
    """MockTransport handler standing in for the wpay HTTP API."""
    import json

    import httpx

    body = json.loads(request.content)
    if request.url.path == "/pay/createOrder":
        data = {
            "platformOrderId": f"WP-{body['orderId']}",
            "payUrl": f"upi://pay?pa=merchant@upi&tr={body['orderId']}",
            "qrPayload": "iVBORw0KGgo=",
        }
    else:
        data = {"orderId": body["orderId"], "status": "SUCCESS", "platformOrderId": f"WP-{body['orderId']}"}
    return httpx.Response(200, json={"code": "SUCCESS", "message": "ok", "data": data})


@pytest.fixture
def api_client():
    """TestClient with an in-memory store and a mocked gateway transport."""
    import httpx
    from fastapi.testclient import TestClient

    from api.dependencies import get_gateway_link, get_order_store
    from core.settings import WpaySettings
    from infrastructure.external.payments.wpay_client import WpayClient
    from main import app

    store = InMemoryOrderStore()
    wpay = WpayClient(
        config=WpaySettings(host="https://gateway.test", mch_id=MERCHANT_ID, secret_key=SECRET),
        transport=httpx.MockTransport(gateway_handler),
    )
    app.dependency_overrides[get_order_store] = lambda: store
    app.dependency_overrides[get_gateway_link] = lambda: wpay
    with TestClient(app) as client:
        client.store = store
        yield client
    app.dependency_overrides.clear()
