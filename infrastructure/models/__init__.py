"""Infrastructure models package exports."""
from .base import Base, TimestampMixin, metadata
from .order import OrderModel

__all__ = [
    "Base",
    "metadata",
    "TimestampMixin",
    "OrderModel",
]
