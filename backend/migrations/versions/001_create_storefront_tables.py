"""Create storefront tables: orders, order_items, game_completions, webhook_events

Revision ID: 001
Revises: 
Create Date: 2026-01-15 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=50), nullable=True),
        sa.Column('shipping_address_line1', sa.String(length=255), nullable=False),
        sa.Column('shipping_address_line2', sa.String(length=255), nullable=True),
        sa.Column('shipping_city', sa.String(length=100), nullable=False),
        sa.Column('shipping_state', sa.String(length=100), nullable=False),
        sa.Column('shipping_zip', sa.String(length=20), nullable=False),
        sa.Column('shipping_country', sa.String(length=2), nullable=False, server_default='US'),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('discount_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('shipping_cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('external_fulfillment_order_id', sa.Integer(), nullable=True),
        sa.Column('external_fulfillment_status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('payment_session_id', sa.String(length=255), nullable=True),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('tracking_url', sa.String(length=512), nullable=True),
        sa.Column('tracking_carrier', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('total >= 0 AND subtotal >= 0', name='ck_orders_valid_totals'),
    )
    op.create_index('ix_orders_customer_email', 'orders', ['customer_email'])
    op.create_index('ix_orders_external_fulfillment_order_id', 'orders', ['external_fulfillment_order_id'])
    op.create_index('ix_orders_external_fulfillment_status', 'orders', ['external_fulfillment_status'])
    op.create_index('ix_orders_payment_session_id', 'orders', ['payment_session_id'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.String(length=64), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(length=100), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('variant_id', sa.String(length=100), nullable=False),
        sa.Column('variant_size', sa.String(length=20), nullable=False),
        sa.Column('variant_color', sa.String(length=50), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Float(), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('external_variant_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity'),
        sa.CheckConstraint('discount_percent >= 0 AND discount_percent <= 15', name='ck_order_items_discount'),
        sa.CheckConstraint('subtotal >= 0 AND unit_price >= 0', name='ck_order_items_valid_pricing'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'game_completions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_token', sa.String(length=64), nullable=False),
        sa.Column('game_type', sa.String(length=50), nullable=False),
        sa.Column('product_id', sa.String(length=100), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('discount_earned', sa.Float(), nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('score >= 0', name='ck_game_completions_score'),
        sa.CheckConstraint('discount_earned >= 0 AND discount_earned <= 15', name='ck_game_completions_discount'),
    )
    op.create_index('ix_game_completions_id', 'game_completions', ['id'])
    op.create_index('ix_game_completions_session_token', 'game_completions', ['session_token'])
    op.create_index('ix_game_completions_session_completed', 'game_completions', ['session_token', 'completed_at'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_webhook_events_id', 'webhook_events', ['id'])
    op.create_index('ix_webhook_events_event_id', 'webhook_events', ['event_id'])
    op.create_index('ix_webhook_events_event_type', 'webhook_events', ['event_type'])
    op.create_index('ix_webhook_events_order_id', 'webhook_events', ['order_id'])
    op.create_index('ix_webhook_events_provider_created', 'webhook_events', ['provider', 'created_at'])


def downgrade() -> None:
    op.drop_table('webhook_events')
    op.drop_table('game_completions')
    op.drop_table('order_items')
    op.drop_table('orders')
