from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import pytest

from api.routes.callbacks import is_origin_allowed
from application.services.order_service import format_gateway_timestamp
from core.settings import payment_settings
from domain.order.signature import sign

from conftest import MERCHANT_ID, SECRET

CALLBACK_URL = "/api/v1/callbacks/payment"


def _signed(order_id: str, status: str = "SUCCESS", *, when=None, **extra) -> dict:
    params = {
        "mchId": MERCHANT_ID,
        "orderId": order_id,
        "status": status,
        "timestamp": format_gateway_timestamp(when or datetime.now(timezone.utc)),
        **extra,
    }
    params["sign"] = sign(params, SECRET)
    return params


def _new_order(api_client) -> str:
    return api_client.post("/api/v1/orders", json={"amount": "500.00"}).json()["data"]["orderId"]


def _status(api_client, order_id: str) -> str:
    return api_client.get(f"/api/v1/orders/{order_id}").json()["data"]["status"]


def test_json_callback_marks_order_paid(api_client):
    order_id = _new_order(api_client)

    resp = api_client.post(CALLBACK_URL, json=_signed(order_id, amount="500.00"))
    assert resp.status_code == 200
    assert resp.text == "SUCCESS"
    assert _status(api_client, order_id) == "PAID"

    # replay is acknowledged the same way
    assert api_client.post(CALLBACK_URL, json=_signed(order_id, amount="500.00")).text == "SUCCESS"
    assert _status(api_client, order_id) == "PAID"


def test_form_encoded_callback(api_client):
    order_id = _new_order(api_client)
    resp = api_client.post(
        CALLBACK_URL,
        content=urlencode(_signed(order_id, "FAILED")),
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert resp.text == "SUCCESS"
    assert _status(api_client, order_id) == "FAILED"


def test_bad_signature_is_rejected(api_client):
    order_id = _new_order(api_client)
    payload = _signed(order_id)
    payload["sign"] = "0" * 32

    resp = api_client.post(CALLBACK_URL, json=payload)
    assert resp.status_code == 400
    assert resp.text == "InvalidSignature"
    assert _status(api_client, order_id) == "PENDING"


def test_stale_callback_is_rejected(api_client):
    order_id = _new_order(api_client)
    old = datetime.now(timezone.utc) - timedelta(hours=1)
    resp = api_client.post(CALLBACK_URL, json=_signed(order_id, when=old))
    assert resp.status_code == 400
    assert resp.text == "StaleRequest"


def test_malformed_body_is_rejected(api_client):
    resp = api_client.post(CALLBACK_URL, content=b"{oops", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


def test_unknown_order_is_acknowledged(api_client):
    resp = api_client.post(CALLBACK_URL, json=_signed("MB_NOT_OURS"))
    assert resp.status_code == 200
    assert resp.text == "SUCCESS"


def test_allowlist_blocks_other_origins(api_client, monkeypatch):
    monkeypatch.setattr(payment_settings.webhook, "ip_allowlist", ["10.0.0.0/8"])
    resp = api_client.post(CALLBACK_URL, json=_signed("MB1"))
    assert resp.status_code == 403


@pytest.mark.parametrize(
    "remote_ip,allowlist,expected",
    [
        ("1.2.3.4", None, True),
        ("10.1.2.3", ["10.0.0.0/8"], True),
        ("192.168.1.5", ["10.0.0.0/8", "192.168.1.5"], True),
        ("192.168.1.6", ["10.0.0.0/8", "192.168.1.5"], False),
        (None, ["10.0.0.0/8"], False),
        ("testclient", ["10.0.0.0/8"], False),
        ("10.1.2.3", ["not-an-ip", "10.0.0.0/8"], True),
    ],
)
def test_is_origin_allowed(remote_ip, allowlist, expected):
    assert is_origin_allowed(remote_ip, allowlist) is expected


def test_callback_is_acknowledged_when_gateway_cannot_be_built(api_client):
    from api.dependencies import get_gateway_link
    from main import app

    def _broken_gateway():
        raise RuntimeError("WPAY configuration incomplete")

    app.dependency_overrides[get_gateway_link] = _broken_gateway
    resp = api_client.post(CALLBACK_URL, json=_signed("MB1"))
    assert resp.status_code == 200
    assert resp.text == "SUCCESS"


def test_callback_is_acknowledged_when_store_cannot_be_built(api_client):
    from api.dependencies import get_order_store
    from main import app

    async def _broken_store():
        raise ConnectionError("database unreachable")

    app.dependency_overrides[get_order_store] = _broken_store
    resp = api_client.post(CALLBACK_URL, json=_signed("MB1"))
    assert resp.status_code == 200
    assert resp.text == "SUCCESS"
