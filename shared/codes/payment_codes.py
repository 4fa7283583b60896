"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    STALE_REQUEST = 60005
    OUTCOME_UNKNOWN = 60006


# Gateway trade status -> internal order status (values of OrderStatus)
PROVIDER_STATUS_TO_INTERNAL = {
    "wpay": {
        "SUCCESS": "PAID",
        "PAID": "PAID",
        "FAILED": "FAILED",
        "FAIL": "FAILED",
        "CLOSED": "FAILED",
        "EXPIRED": "FAILED",
        "CANCELLED": "FAILED",
        "PENDING": "PENDING",
        "PROCESSING": "PENDING",
        "WAITING": "PENDING",
    },
}


def map_provider_status(provider: str, provider_status: str | None) -> str | None:
    """Return the internal status for a gateway status string, or None if unknown."""
    if not provider_status:
        return None
    mapping = PROVIDER_STATUS_TO_INTERNAL.get(provider, {})
    return mapping.get(provider_status.strip().upper())
