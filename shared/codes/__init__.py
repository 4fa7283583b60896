"""
Business codes shared by domain, core and API layers.

Order lifecycle errors live in the 201xx block; gateway and signature
errors are in ``shared.codes.payment_codes``.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006

    # Order lifecycle (201xx)
    ORDER_NOT_FOUND = 20100
    ORDER_ALREADY_EXISTS = 20101
    ORDER_STATUS_CONFLICT = 20102
    ORDER_FIELD_IMMUTABLE = 20103

    # Access (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
