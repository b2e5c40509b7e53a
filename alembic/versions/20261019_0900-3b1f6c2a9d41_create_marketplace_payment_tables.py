"""create_marketplace_payment_tables

Revision ID: 3b1f6c2a9d41
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b1f6c2a9d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
    ]


def upgrade() -> None:
    # Vendors (read model)
    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=4), nullable=True, comment='佣金比例，空则使用默认值'),
        sa.Column('preferred_payment_method', sa.String(length=50), nullable=True),
        sa.Column('preferred_payout_method', sa.String(length=50), nullable=True),
        sa.Column('payout_account', sa.String(length=200), nullable=True, comment='打款账户引用'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vendors_id', 'vendors', ['id'], unique=False)

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='下单用户ID'),
        sa.Column('order_number', sa.String(length=32), nullable=False, comment='订单号'),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True, comment='软删除时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'], unique=False)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)

    op.create_table(
        'vendor_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('vendor_order_number', sa.String(length=32), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('commission_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('fulfillment_type', sa.String(length=50), nullable=True),
        sa.Column('vendor_notes', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vendor_order_number'),
    )
    op.create_index('ix_vendor_orders_id', 'vendor_orders', ['id'], unique=False)
    op.create_index('ix_vendor_orders_order_id', 'vendor_orders', ['order_id'], unique=False)
    op.create_index('ix_vendor_orders_vendor_id', 'vendor_orders', ['vendor_id'], unique=False)
    op.create_index('ix_vendor_orders_status', 'vendor_orders', ['status'], unique=False)
    op.create_index('ix_vendor_orders_order_vendor', 'vendor_orders', ['order_id', 'vendor_id'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variation_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('is_digital', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('download_url', sa.String(length=500), nullable=True),
        sa.Column('download_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_returnable', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('return_by_date', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['vendor_order_id'], ['vendor_orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'], unique=False)
    op.create_index('ix_order_items_vendor_order_id', 'order_items', ['vendor_order_id'], unique=False)
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'], unique=False)

    op.create_table(
        'order_taxes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_order_id', sa.Integer(), nullable=True),
        sa.Column('tax_name', sa.String(length=100), nullable=False),
        sa.Column('tax_rate', sa.Numeric(precision=7, scale=4), nullable=False),
        sa.Column('tax_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('is_inclusive', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('tax_type', sa.String(length=50), nullable=True),
        sa.Column('tax_id', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['vendor_order_id'], ['vendor_orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_taxes_id', 'order_taxes', ['id'], unique=False)
    op.create_index('ix_order_taxes_order_id', 'order_taxes', ['order_id'], unique=False)
    op.create_index('ix_order_taxes_vendor_order_id', 'order_taxes', ['vendor_order_id'], unique=False)

    op.create_table(
        'order_commissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor_order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('rate', sa.Numeric(precision=7, scale=4), nullable=False),
        sa.Column('commission_type', sa.String(length=20), nullable=False, server_default='percentage'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('paid_date', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['vendor_order_id'], ['vendor_orders.id']),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vendor_order_id'),
    )
    op.create_index('ix_order_commissions_id', 'order_commissions', ['id'], unique=False)
    op.create_index('ix_order_commissions_vendor_id', 'order_commissions', ['vendor_id'], unique=False)

    # Payments: standalone, parent and child rows share one table
    op.create_table(
        'order_payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('vendor_id', sa.Integer(), nullable=True, comment='供应商ID，父支付为空'),
        sa.Column('parent_payment_id', sa.Integer(), nullable=True, comment='父支付ID，仅子支付设置'),
        sa.Column('method', sa.String(length=30), nullable=False),
        sa.Column('payment_type', sa.String(length=20), nullable=False, server_default='standalone'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('vendor_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('platform_fee', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=4), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('is_split_payment', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('split_details', sa.JSON(), nullable=True),
        sa.Column('transaction_id', sa.String(length=200), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['parent_payment_id'], ['order_payments.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_payments_id', 'order_payments', ['id'], unique=False)
    op.create_index('ix_order_payments_order_id', 'order_payments', ['order_id'], unique=False)
    op.create_index('ix_order_payments_vendor_id', 'order_payments', ['vendor_id'], unique=False)
    op.create_index('ix_order_payments_parent_payment_id', 'order_payments', ['parent_payment_id'], unique=False)
    op.create_index('ix_order_payments_status', 'order_payments', ['status'], unique=False)
    op.create_index('ix_order_payments_transaction_id', 'order_payments', ['transaction_id'], unique=False)
    op.create_index('ix_order_payments_created_at', 'order_payments', ['created_at'], unique=False)
    op.create_index('ix_order_payments_order_status', 'order_payments', ['order_id', 'status'], unique=False)
    op.create_index('ix_order_payments_type_status', 'order_payments', ['payment_type', 'status'], unique=False)

    op.create_table(
        'payment_refunds',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('transaction_id', sa.String(length=200), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['payment_id'], ['order_payments.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_refunds_id', 'payment_refunds', ['id'], unique=False)
    op.create_index('ix_payment_refunds_payment_id', 'payment_refunds', ['payment_id'], unique=False)
    op.create_index('ix_payment_refunds_status', 'payment_refunds', ['status'], unique=False)
    op.create_index('ix_payment_refunds_created_at', 'payment_refunds', ['created_at'], unique=False)
    op.create_index('ix_payment_refunds_payment_status', 'payment_refunds', ['payment_id', 'status'], unique=False)

    # Settlements: unique(payment_id) arbitrates concurrent settlement runs
    op.create_table(
        'vendor_settlements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('method', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('transaction_id', sa.String(length=200), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id']),
        sa.ForeignKeyConstraint(['payment_id'], ['order_payments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id', name='uq_vendor_settlements_payment_id'),
    )
    op.create_index('ix_vendor_settlements_id', 'vendor_settlements', ['id'], unique=False)
    op.create_index('ix_vendor_settlements_vendor_id', 'vendor_settlements', ['vendor_id'], unique=False)
    op.create_index('ix_vendor_settlements_status', 'vendor_settlements', ['status'], unique=False)


def downgrade() -> None:
    op.drop_table('vendor_settlements')
    op.drop_table('payment_refunds')
    op.drop_table('order_payments')
    op.drop_table('order_commissions')
    op.drop_table('order_taxes')
    op.drop_table('order_items')
    op.drop_table('vendor_orders')
    op.drop_table('orders')
    op.drop_table('vendors')
