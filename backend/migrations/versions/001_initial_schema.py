"""
Alembic migration: Initial schema for products, orders and tracking events.

Creates the products catalog table, the orders table with its product
snapshot, payment and approval columns, and the append-only tracking_events
ledger. The unique constraint on orders.transaction_id is what makes card
order creation idempotent.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUS = ('pending', 'approved', 'rejected')
PAYMENT_METHOD = ('card_payment', 'cash_on_delivery')
PAYMENT_STATUS = ('paid', 'cod')


def upgrade() -> None:
    """
    Create products, orders and tracking_events tables.
    """
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('title', sa.String(255), nullable=False, comment='Product display name'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            'available_quantity',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Units in stock; negative values record oversell',
        ),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('show_on_home_page', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        comment='Marketplace products referenced by orders',
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_home_created', 'products', ['show_on_home_page', 'created_at'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('tracking_id', sa.String(32), nullable=False),
        sa.Column(
            'product_id',
            sa.Uuid(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_category', sa.String(100), nullable=True),
        sa.Column('product_image', sa.String(1000), nullable=True),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('buyer_name', sa.String(255), nullable=False),
        sa.Column('buyer_email', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            'payment_method',
            sa.Enum(*PAYMENT_METHOD, name='payment_method', create_constraint=True),
            nullable=False,
        ),
        sa.Column(
            'payment_status',
            sa.Enum(*PAYMENT_STATUS, name='payment_status', create_constraint=True),
            nullable=False,
        ),
        sa.Column(
            'transaction_id',
            sa.String(255),
            nullable=True,
            comment='External payment reference, idempotency key for card orders',
        ),
        sa.Column(
            'status',
            sa.Enum(*ORDER_STATUS, name='order_status', create_constraint=True),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('approved_by', sa.String(255), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('tracking_id', name='uq_orders_tracking_id'),
        sa.UniqueConstraint('transaction_id', name='uq_orders_transaction_id'),
        sa.CheckConstraint('quantity >= 1', name='ck_orders_quantity_positive'),
        sa.CheckConstraint('total_price >= 0', name='ck_orders_total_price_non_negative'),
        comment='Customer orders with approval state',
    )
    op.create_index('ix_orders_product_id', 'orders', ['product_id'])
    op.create_index('ix_orders_buyer_email', 'orders', ['buyer_email'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_orders_buyer_created', 'orders', ['buyer_email', 'created_at'])

    # No foreign key to orders: history outlives removed orders
    op.create_table(
        'tracking_events',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('tracking_id', sa.String(32), nullable=False),
        sa.Column('status', sa.String(100), nullable=False),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        comment='Append-only order tracking ledger',
    )
    op.create_index('ix_tracking_events_order_id', 'tracking_events', ['order_id'])
    op.create_index('ix_tracking_events_tracking_id', 'tracking_events', ['tracking_id'])
    op.create_index(
        'ix_tracking_events_tracking_created',
        'tracking_events',
        ['tracking_id', 'created_at'],
    )
    op.create_index(
        'ix_tracking_events_order_created',
        'tracking_events',
        ['order_id', 'created_at'],
    )


def downgrade() -> None:
    """
    Drop tracking_events, orders and products tables and enum types.
    """
    op.drop_table('tracking_events')
    op.drop_table('orders')
    op.drop_table('products')

    bind = op.get_bind()
    for enum_name in ('order_status', 'payment_status', 'payment_method'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
