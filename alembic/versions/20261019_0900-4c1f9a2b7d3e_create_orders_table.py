"""create_orders_table

Revision ID: 4c1f9a2b7d3e
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1f9a2b7d3e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='商户订单号'),
        sa.Column('platform_order_id', sa.String(length=128), nullable=True, comment='网关订单号'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='订单金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码 ISO-4217'),
        sa.Column('pay_type', sa.String(length=20), nullable=False, server_default='UPI', comment='支付方式: UPI/PAYTM/PHONEPE/GPAY'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='CREATED', comment='订单状态: CREATED/PENDING/PAID/FAILED'),
        sa.Column('pay_url', sa.Text(), nullable=True, comment='UPI 支付链接'),
        sa.Column('qr_payload', sa.Text(), nullable=True, comment='二维码内容'),
        sa.Column('utr', sa.String(length=12), nullable=True, comment='用户提交的银行流水号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='更新时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='终态时间'),
        sa.Column('last_callback_payload', sa.JSON(), nullable=True, comment='最近一次验签通过的回调'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='客户端元数据'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.PrimaryKeyConstraint('id'),
        comment='代收订单表'
    )

    op.create_index('ix_orders_order_id', 'orders', ['order_id'], unique=True)
    op.create_index('ix_orders_platform_order_id', 'orders', ['platform_order_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_status_created_at', 'orders', ['status', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_orders_status_created_at', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_platform_order_id', table_name='orders')
    op.drop_index('ix_orders_order_id', table_name='orders')
    op.drop_table('orders')
