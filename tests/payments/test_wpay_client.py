import json
from decimal import Decimal

import httpx
import pytest

from core.settings import WpaySettings
from domain.common.exceptions import DomainValidationException
from domain.order.signature import sign
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.exceptions import (
    GatewayOutcomeUnknownError,
    PaymentProviderError,
    PaymentSignatureError,
)
from infrastructure.external.payments.wpay_client import (
    MalformedPayloadError,
    WpayClient,
    stringify_params,
)


SECRET = "test-secret"
CONFIG = WpaySettings(host="https://gateway.test", mch_id="1000", secret_key=SECRET)
CREATE_PARAMS = {"mchId": "1000", "orderId": "MB1", "amount": "500.00", "sign": "ABC"}


def _client(handler) -> WpayClient:
    return WpayClient(
        config=CONFIG,
        retry={"max": 2, "base": 0.01},
        transport=httpx.MockTransport(handler),
    )


def _ok(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"code": "SUCCESS", "message": "ok", "data": data})


@pytest.mark.asyncio
async def test_create_order_posts_signed_params_as_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return _ok({"platformOrderId": "WP1", "payUrl": "upi://pay?tr=MB1", "qrPayload": "iVBOR"})

    client = _client(handler)
    result = await client.create_order(CREATE_PARAMS)
    await client.aclose()

    assert seen["url"] == "https://gateway.test/pay/createOrder"
    assert seen["body"] == CREATE_PARAMS
    assert result.platform_order_id == "WP1"
    assert result.pay_url == "upi://pay?tr=MB1"
    assert result.qr_payload == "iVBOR"


@pytest.mark.asyncio
async def test_create_order_accepts_alternate_field_names():
    client = _client(lambda request: _ok({"platformOrderId": 42, "upiUrl": "upi://x", "qrCodeBase64": "QR"}))
    result = await client.create_order(CREATE_PARAMS)
    assert result.platform_order_id == "42"
    assert result.pay_url == "upi://x"
    assert result.qr_payload == "QR"


@pytest.mark.asyncio
async def test_gateway_rejection_is_provider_error():
    client = _client(lambda request: httpx.Response(200, json={"code": "PARAM_ERROR", "message": "bad amount"}))
    with pytest.raises(PaymentProviderError) as exc_info:
        await client.create_order(CREATE_PARAMS)
    assert exc_info.value.message == "bad amount"
    assert exc_info.value.details["provider_code"] == "PARAM_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json={"code": "SUCCESS", "data": {}}),
    ],
)
async def test_unusable_create_responses_are_provider_errors(response):
    client = _client(lambda request: response)
    with pytest.raises(PaymentProviderError):
        await client.create_order(CREATE_PARAMS)


@pytest.mark.asyncio
async def test_signed_response_must_verify():
    data = {"platformOrderId": "WP1", "payUrl": "upi://pay"}
    good = dict(data, sign=sign(data, SECRET))
    bad = dict(data, sign=sign(data, "other"))

    assert (await _client(lambda request: _ok(good)).create_order(CREATE_PARAMS)).platform_order_id == "WP1"
    with pytest.raises(PaymentSignatureError):
        await _client(lambda request: _ok(bad)).create_order(CREATE_PARAMS)


@pytest.mark.asyncio
async def test_read_timeout_on_create_is_outcome_unknown():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayOutcomeUnknownError) as exc_info:
        await _client(handler).create_order(CREATE_PARAMS)
    assert exc_info.value.details["order_id"] == "MB1"


@pytest.mark.asyncio
async def test_connect_error_on_create_is_provider_error_without_retry():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(PaymentProviderError) as exc_info:
        await _client(handler).create_order(CREATE_PARAMS)
    assert exc_info.value.details["provider_code"] == "CONNECT_ERROR"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_query_retries_connect_errors_then_parses_result():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 2:
            raise httpx.ConnectError("refused", request=request)
        assert request.url.path == "/pay/queryOrder"
        return _ok({
            "orderId": "MB1",
            "status": "success",
            "platformOrderId": "WP1",
            "actualAmount": 500.0,
            "completedAt": "20261019093100",
        })

    result = await _client(handler).query_order({"mchId": "1000", "orderId": "MB1", "sign": "X"})
    assert len(calls) == 2
    assert result.status == "SUCCESS"
    assert result.platform_order_id == "WP1"
    assert result.actual_amount == Decimal("500.0")
    assert result.completed_at == "20261019093100"


@pytest.mark.asyncio
async def test_query_gives_up_after_retry_budget():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(PaymentProviderError):
        await _client(handler).query_order({"orderId": "MB1"})
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_query_without_status_is_provider_error():
    with pytest.raises(PaymentProviderError):
        await _client(lambda request: _ok({"orderId": "MB1"})).query_order({"orderId": "MB1"})


def test_parse_json_callback_flattens_scalars():
    client = _client(lambda request: _ok({}))
    body = json.dumps({"orderId": "MB1", "amount": 500, "paid": True, "note": None}).encode()
    assert client.parse_callback("application/json; charset=utf-8", body) == {
        "orderId": "MB1",
        "amount": "500",
        "paid": "true",
        "note": "",
    }


def test_parse_form_callback():
    client = _client(lambda request: _ok({}))
    body = b"orderId=MB1&status=SUCCESS&sign=ABC&remark="
    assert client.parse_callback("application/x-www-form-urlencoded", body) == {
        "orderId": "MB1",
        "status": "SUCCESS",
        "sign": "ABC",
        "remark": "",
    }


@pytest.mark.parametrize(
    "content_type,body",
    [
        ("application/json", b'{"orderId": {"nested": 1}}'),
        ("application/json", b"[1, 2]"),
        ("application/json", b"{not json"),
        ("application/json", b"\xff\xfe"),
        ("text/plain", b"orderId=MB1"),
        ("", b"{}"),
    ],
)
def test_malformed_callbacks_are_rejected(content_type, body):
    client = _client(lambda request: _ok({}))
    with pytest.raises(DomainValidationException):
        client.parse_callback(content_type, body)


def test_stringify_params():
    assert stringify_params({"a": 1, "b": 1.0, "c": 1.5, "d": False, "e": "x"}) == {
        "a": "1", "b": "1", "c": "1.5", "d": "false", "e": "x",
    }
    with pytest.raises(MalformedPayloadError):
        stringify_params({"a": [1]})


def test_missing_credentials_refused():
    with pytest.raises(RuntimeError):
        WpayClient(config=WpaySettings(mch_id="1000"))


def test_gateway_factory():
    assert isinstance(get_payment_gateway("wpay"), WpayClient)
    with pytest.raises(ValueError):
        get_payment_gateway("stripe")
