"""
wpay adapter: MD5-signed JSON API for UPI pay-in orders.

Request bodies are already signed by the caller; this adapter only transports
them, unwraps ``{code, message, data}`` envelopes and verifies signed response
data. Callback bodies (JSON or form-encoded) are parsed into flat string maps.
"""
from __future__ import annotations

import asyncio
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl

import httpx

from application.dtos.orders import GatewayOrder, GatewayQueryResult
from core.logging_config import get_logger
from core.settings import WpaySettings, payment_settings
from domain.common.exceptions import DomainValidationException
from domain.order.signature import SIGN_FIELD, SignatureCodec
from infrastructure.external.payments.base import UNSENT_ERRORS, BasePaymentClient
from infrastructure.external.payments.exceptions import (
    GatewayOutcomeUnknownError,
    PaymentProviderError,
    PaymentSignatureError,
)


logger = get_logger(__name__)

SUCCESS_CODE = "SUCCESS"


class MalformedPayloadError(ValueError):
    pass


def stringify_value(key: str, value: Any) -> str:
    """Render a JSON scalar the way the gateway signs it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, str):
        return value
    raise MalformedPayloadError(f"field {key!r} must be a scalar, got {type(value).__name__}")


def stringify_params(params: Mapping[str, Any]) -> dict[str, str]:
    return {str(k): stringify_value(str(k), v) for k, v in params.items()}


class WpayClient(BasePaymentClient):
    provider = "wpay"

    def __init__(
        self,
        *,
        config: Optional[WpaySettings] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = config or payment_settings.wpay
        if not (cfg.mch_id and cfg.secret_key):
            raise RuntimeError("WPAY configuration incomplete: mch_id and secret_key are required")
        super().__init__(
            base_url=cfg.host,
            timeouts=timeouts or payment_settings.timeouts.model_dump(),
            retry=retry or {"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.config = cfg
        self.codec = SignatureCodec(cfg.secret_key)

    def _unwrap(self, response: httpx.Response, order_id: Optional[str]) -> dict[str, Any]:
        if response.status_code >= 400:
            raise PaymentProviderError(
                f"Gateway HTTP {response.status_code}",
                provider=self.provider,
                provider_code=str(response.status_code),
                details={"order_id": order_id},
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise PaymentProviderError(
                "Gateway returned a non-JSON body", provider=self.provider, details={"order_id": order_id}
            ) from exc
        if not isinstance(body, dict):
            raise PaymentProviderError("Gateway returned an unexpected body", provider=self.provider)

        code = str(body.get("code", ""))
        if code != SUCCESS_CODE:
            raise PaymentProviderError(
                str(body.get("message") or "Gateway rejected the request"),
                provider=self.provider,
                provider_code=code or None,
                details={"order_id": order_id},
            )

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise PaymentProviderError("Gateway data is not an object", provider=self.provider)
        if SIGN_FIELD in data:
            try:
                flat = stringify_params(data)
            except MalformedPayloadError as exc:
                raise PaymentProviderError(str(exc), provider=self.provider) from exc
            if not self.codec.verify(flat):
                raise PaymentSignatureError(
                    "Gateway response signature mismatch",
                    provider=self.provider,
                    details={"order_id": order_id},
                )
        return data

    async def create_order(self, params: Mapping[str, str]) -> GatewayOrder:
        order_id = params.get("orderId")
        self._log("wpay_create_request", order_id=order_id, amount=params.get("amount"))
        try:
            response = await self._post_json(self.config.create_path, params)
        except UNSENT_ERRORS as exc:
            logger.warning("wpay_create_unreachable", order_id=order_id, error=type(exc).__name__)
            raise PaymentProviderError(
                "Gateway unreachable",
                provider=self.provider,
                provider_code="CONNECT_ERROR",
                details={"order_id": order_id},
            ) from exc
        except (httpx.TransportError, asyncio.TimeoutError) as exc:
            # Sent but unanswered: the gateway may or may not hold this order.
            logger.error("wpay_create_outcome_unknown", order_id=order_id, error=type(exc).__name__)
            raise GatewayOutcomeUnknownError(
                provider=self.provider, order_id=order_id, reason=type(exc).__name__
            ) from exc

        data = self._unwrap(response, order_id)
        platform_order_id = data.get("platformOrderId")
        if not platform_order_id:
            raise PaymentProviderError(
                "Gateway response missing platformOrderId",
                provider=self.provider,
                details={"order_id": order_id},
            )
        result = GatewayOrder(
            platform_order_id=str(platform_order_id),
            pay_url=data.get("payUrl") or data.get("upiUrl"),
            qr_payload=data.get("qrPayload") or data.get("qrCodeBase64"),
            raw=data,
        )
        self._log("wpay_create_response", order_id=order_id, platform_order_id=result.platform_order_id)
        return result

    async def query_order(self, params: Mapping[str, str]) -> GatewayQueryResult:
        order_id = params.get("orderId") or ""
        self._log("wpay_query_request", order_id=order_id)

        async def _call() -> httpx.Response:
            return await self._post_json(self.config.query_path, params)

        try:
            response = await self._retry(_call)
        except (httpx.TransportError, asyncio.TimeoutError) as exc:
            raise PaymentProviderError(
                "Gateway query failed",
                provider=self.provider,
                provider_code=type(exc).__name__,
                details={"order_id": order_id},
            ) from exc

        data = self._unwrap(response, order_id)
        status = data.get("status")
        if not status:
            raise PaymentProviderError("Gateway response missing status", provider=self.provider)

        actual_amount = None
        if data.get("actualAmount") not in (None, ""):
            try:
                actual_amount = Decimal(str(data["actualAmount"]))
            except InvalidOperation as exc:
                raise PaymentProviderError("Gateway returned an invalid amount", provider=self.provider) from exc

        completed_at = data.get("completedAt")
        return GatewayQueryResult(
            order_id=order_id,
            status=str(status).upper(),
            platform_order_id=str(data["platformOrderId"]) if data.get("platformOrderId") else None,
            actual_amount=actual_amount,
            completed_at=str(completed_at) if completed_at not in (None, "") else None,
            raw=data,
        )

    def parse_callback(self, content_type: str, body: bytes) -> dict[str, str]:
        """Decode a callback body into a flat string map for verification."""
        ctype = (content_type or "").split(";")[0].strip().lower()
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DomainValidationException("Callback body is not valid UTF-8") from exc

        if ctype == "application/json" or ctype.endswith("+json"):
            try:
                payload = json.loads(text)
            except ValueError as exc:
                raise DomainValidationException("Callback body is not valid JSON") from exc
        elif ctype == "application/x-www-form-urlencoded":
            payload = dict(parse_qsl(text, keep_blank_values=True))
        else:
            raise DomainValidationException(
                f"Unsupported callback content type: {ctype or 'missing'}",
                field="content-type",
            )

        if not isinstance(payload, dict):
            raise DomainValidationException("Callback body must be an object")
        try:
            return stringify_params(payload)
        except MalformedPayloadError as exc:
            raise DomainValidationException(str(exc)) from exc
