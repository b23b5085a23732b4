"""delivery core tables

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    cols = [sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp())]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()))
    return cols


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False, server_default=''),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(16), nullable=False, server_default='COURIER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(updated=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('delivery_slots',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('default_max_orders', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('display_order_limit', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('threshold_high', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('threshold_medium', sa.Integer(), nullable=False, server_default='85'),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
    )

    op.create_table('delivery_slot_availability',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slot_id', sa.Integer(), sa.ForeignKey('delivery_slots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('available_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_orders', sa.Integer(), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        sa.UniqueConstraint('slot_id', 'delivery_date', name='uq_slot_availability_slot_date'),
        sa.CheckConstraint('available_orders >= 0', name='ck_slot_availability_non_negative'),
    )
    op.create_index('ix_delivery_slot_availability_delivery_date', 'delivery_slot_availability', ['delivery_date'])

    op.create_table('orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(64), nullable=True, unique=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(32), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('delivery_time', sa.String(20), nullable=True),
        sa.Column('delivery_slot_id', sa.Integer(),
                  sa.ForeignKey('delivery_slots.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        *_timestamps(updated=False),
    )
    op.create_index('ix_orders_delivery_slot_id', 'orders', ['delivery_slot_id'])

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table('delivery_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('courier_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='assigned'),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('customer_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('customer_phone', sa.String(32), nullable=False, server_default=''),
        sa.Column('customer_address', sa.Text(), nullable=False, server_default=''),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('delivery_time', sa.String(20), nullable=True),
        sa.Column('special_instructions', sa.Text(), nullable=True),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('items_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_photo_url', sa.String(500), nullable=True),
        sa.Column('delivery_latitude', sa.Float(), nullable=True),
        sa.Column('delivery_longitude', sa.Float(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('assigned','picked_up','in_transit','delivered','cancelled')",
            name='ck_delivery_orders_status',
        ),
    )
    op.create_index('ix_delivery_orders_courier_id', 'delivery_orders', ['courier_id'])
    op.create_index('ix_delivery_orders_status', 'delivery_orders', ['status'])
    op.create_index('ix_delivery_orders_courier_status', 'delivery_orders', ['courier_id', 'status'])

    op.create_table('delivery_assignment_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('old_courier_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('new_courier_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reason', sa.String(255), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_delivery_assignment_history_order_id', 'delivery_assignment_history', ['order_id'])

    op.create_table('delivery_tracking',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('assignment_id', sa.Integer(),
                  sa.ForeignKey('delivery_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('accuracy', sa.Float(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_delivery_tracking_assignment_id', 'delivery_tracking', ['assignment_id'])

    op.create_table('delivery_wallet_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('courier_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('dedupe_key', sa.String(120), nullable=True, unique=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("type IN ('earning','bonus')", name='ck_wallet_tx_type'),
        sa.CheckConstraint('amount >= 0', name='ck_wallet_tx_amount'),
    )
    op.create_index('ix_delivery_wallet_transactions_courier_id', 'delivery_wallet_transactions', ['courier_id'])
    op.create_index('ix_delivery_wallet_transactions_order_id', 'delivery_wallet_transactions', ['order_id'])
    op.create_index('ix_delivery_wallet_transactions_business_date', 'delivery_wallet_transactions', ['business_date'])
    op.create_index('ix_wallet_tx_courier_day_type', 'delivery_wallet_transactions',
                    ['courier_id', 'business_date', 'type'])

    op.create_table('delivery_target_tiers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('min_orders', sa.Integer(), nullable=False),
        sa.Column('max_orders', sa.Integer(), nullable=True),
        sa.Column('bonus_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('tier_name', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )


def downgrade():
    op.drop_table('delivery_target_tiers')
    op.drop_index('ix_wallet_tx_courier_day_type', table_name='delivery_wallet_transactions')
    op.drop_index('ix_delivery_wallet_transactions_business_date', table_name='delivery_wallet_transactions')
    op.drop_index('ix_delivery_wallet_transactions_order_id', table_name='delivery_wallet_transactions')
    op.drop_index('ix_delivery_wallet_transactions_courier_id', table_name='delivery_wallet_transactions')
    op.drop_table('delivery_wallet_transactions')
    op.drop_index('ix_delivery_tracking_assignment_id', table_name='delivery_tracking')
    op.drop_table('delivery_tracking')
    op.drop_index('ix_delivery_assignment_history_order_id', table_name='delivery_assignment_history')
    op.drop_table('delivery_assignment_history')
    op.drop_index('ix_delivery_orders_courier_status', table_name='delivery_orders')
    op.drop_index('ix_delivery_orders_status', table_name='delivery_orders')
    op.drop_index('ix_delivery_orders_courier_id', table_name='delivery_orders')
    op.drop_table('delivery_orders')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_delivery_slot_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_delivery_slot_availability_delivery_date', table_name='delivery_slot_availability')
    op.drop_table('delivery_slot_availability')
    op.drop_table('delivery_slots')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
