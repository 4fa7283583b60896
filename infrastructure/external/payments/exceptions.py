"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    """The gateway answered and rejected the call (or answered with garbage)."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )


GatewayError = PaymentProviderError


class GatewayOutcomeUnknownError(BusinessException):
    """The request may have been accepted but no response arrived.

    Query the gateway for ``order_id`` before retrying creation.
    """

    def __init__(self, *, provider: str, order_id: str | None, reason: str):
        super().__init__(
            code=PaymentCode.OUTCOME_UNKNOWN,
            message="Gateway outcome unknown; query order status before retrying",
            error_type="GatewayOutcomeUnknown",
            details={"provider": provider, "order_id": order_id, "reason": reason},
        )


class PaymentSignatureError(PaymentProviderError):
    """Gateway response carried a signature that does not verify."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(message, provider=provider, provider_code="SIGN_MISMATCH", details=details)
        self.error_type = "PaymentSignatureError"
