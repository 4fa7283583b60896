"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable

from application.dtos.orders import GatewayOrder, GatewayQueryResult


@runtime_checkable
class GatewayLink(Protocol):
    """Outbound link to the pay-in gateway.

    Request parameters arrive already signed; implementations only transport
    them. ``create_order`` raises ``PaymentProviderError`` when the gateway
    rejects the call and ``GatewayOutcomeUnknownError`` when the request may
    have been accepted but the response was lost.
    """

    provider: str

    async def create_order(self, params: Mapping[str, str]) -> GatewayOrder: ...

    async def query_order(self, params: Mapping[str, str]) -> GatewayQueryResult: ...

    def parse_callback(self, content_type: str, body: bytes) -> dict[str, str]: ...

    async def aclose(self) -> None: ...
