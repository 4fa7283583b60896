"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, JSON, Index

from .base import Base, TimestampMixin


class OrderModel(TimestampMixin, Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中；
    version 用于乐观并发控制，每次成功的 transition 加一
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)

    order_id = Column(String(64), unique=True, index=True, nullable=False, comment="商户订单号")
    platform_order_id = Column(String(128), nullable=True, index=True, comment="网关订单号")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="订单金额")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码 ISO-4217")
    pay_type = Column(String(20), nullable=False, default="UPI", comment="支付方式: UPI/PAYTM/PHONEPE/GPAY")

    status = Column(
        String(20),
        nullable=False,
        default="CREATED",
        index=True,
        comment="订单状态: CREATED/PENDING/PAID/FAILED"
    )

    pay_url = Column(Text, nullable=True, comment="UPI 支付链接")
    qr_payload = Column(Text, nullable=True, comment="二维码内容")
    utr = Column(String(12), nullable=True, comment="用户提交的银行流水号")

    completed_at = Column(DateTime(timezone=True), nullable=True, comment="终态时间")

    last_callback_payload = Column(JSON, nullable=True, comment="最近一次验签通过的回调")
    # 使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突
    extra_metadata = Column("metadata", JSON, nullable=True, comment="客户端元数据")

    version = Column(Integer, nullable=False, default=0, comment="乐观锁版本号")

    __table_args__ = (
        Index("ix_orders_status_created_at", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(order_id='{self.order_id}', amount={self.amount}, "
            f"status='{self.status}', version={self.version})>"
        )
