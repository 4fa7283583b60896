"""
Gateway callback route.

The gateway retries on anything but the plain-text acknowledgment, so this
route answers ``SUCCESS`` on every outcome except requests that must be
rejected: malformed body, bad signature or merchant, stale timestamp, unknown
status (400) and origins outside the allow-list (403). Internal failures are
logged and acknowledged.
"""
from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse

from api.dependencies import resolve_order_coordinator
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    DomainValidationException,
    InvalidSignatureException,
    StaleRequestException,
)


router = APIRouter(prefix="/callbacks", tags=["Callbacks"])
logger = get_logger(__name__)


def is_origin_allowed(remote_ip: str | None, allowlist: list[str] | None) -> bool:
    """Check the socket peer against configured IPs/CIDRs; no allow-list means allow all."""
    if not allowlist:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("callback_allowlist_entry_invalid", entry=entry)
    return False


@router.post("/payment", response_class=PlainTextResponse, summary="Gateway payment callback")
async def payment_callback(request: Request):
    remote_ip = request.client.host if request.client else None
    if not is_origin_allowed(remote_ip, payment_settings.webhook.ip_allowlist):
        logger.warning("callback_rejected", reason="origin_not_allowed", remote_ip=remote_ip)
        return PlainTextResponse("forbidden", status_code=status.HTTP_403_FORBIDDEN)

    try:
        coordinator = await resolve_order_coordinator(request)
        payload = coordinator.gateway.parse_callback(
            request.headers.get("content-type", ""), await request.body()
        )
        return PlainTextResponse(await coordinator.handle_callback(payload))
    except (InvalidSignatureException, StaleRequestException, DomainValidationException) as exc:
        return PlainTextResponse(exc.error_type, status_code=status.HTTP_400_BAD_REQUEST)
    except Exception as exc:
        logger.error("callback_internal_error", error=str(exc), error_type=type(exc).__name__, exc_info=True)
        return PlainTextResponse(payment_settings.wpay.ack)
