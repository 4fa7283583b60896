"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode

if TYPE_CHECKING:  # pragma: no cover
    from domain.order.entity import Order


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else None
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )


class OrderAlreadyExistsException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_ALREADY_EXISTS,
            message=f"Order {order_id} already exists",
            error_type="OrderAlreadyExists",
            details={"order_id": order_id},
            field="order_id",
        )


class OrderStatusConflictException(BusinessException):
    """状态前置条件不满足；`current` 为冲突发生时的订单快照"""

    def __init__(self, current: "Order", expected: Optional[set] = None):
        self.current = current
        details = {
            "order_id": current.order_id,
            "status": current.status.value,
        }
        if expected is not None:
            details["expected"] = sorted(s.value for s in expected)
        super().__init__(
            code=BusinessCode.ORDER_STATUS_CONFLICT,
            message=f"Order {current.order_id} is in status {current.status.value}",
            error_type="OrderStatusConflict",
            details=details,
        )


class OrderFieldImmutableException(BusinessException):
    def __init__(self, order_id: str, field_name: str):
        super().__init__(
            code=BusinessCode.ORDER_FIELD_IMMUTABLE,
            message=f"Field {field_name} of order {order_id} is already set",
            error_type="OrderFieldImmutable",
            details={"order_id": order_id, "field": field_name},
            field=field_name,
        )


class InvalidSignatureException(BusinessException):
    def __init__(self, reason: str = "signature mismatch", *, order_id: Optional[str] = None):
        details = {"reason": reason}
        if order_id:
            details["order_id"] = order_id
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message="Invalid signature",
            error_type="InvalidSignature",
            details=details,
        )


class StaleRequestException(BusinessException):
    def __init__(self, timestamp: str, tolerance_seconds: int):
        super().__init__(
            code=PaymentCode.STALE_REQUEST,
            message="Request timestamp outside of accepted window",
            error_type="StaleRequest",
            details={"timestamp": timestamp, "tolerance_seconds": tolerance_seconds},
            field="timestamp",
        )
