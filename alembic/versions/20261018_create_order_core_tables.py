"""Create order core tables: catalog, vendors, flash sales, coupons, orders

Revision ID: 20261018_create_order_core_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = '20261018_create_order_core_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Catalog
    op.create_table(
        'products',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(50), nullable=True),
        sa.Column('vendor_name', sa.String(200), nullable=False, index=True,
                  comment='Store name of the selling vendor'),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('promotion_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('promotion_start_date', sa.Date, nullable=True),
        sa.Column('promotion_end_date', sa.Date, nullable=True),
        sa.Column('variants', JSONB, nullable=True),
        sa.Column('variant_details', JSONB, nullable=True),
        sa.Column('additional_shipping_fee', sa.Numeric(12, 2), nullable=True,
                  comment='Declared shipping cost for one shipment of this product'),
        sa.Column('stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('status', sa.String(50), nullable=False, server_default='draft',
                  comment='draft, published, archived'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index('ix_product_vendor_status', 'products', ['vendor_name', 'status'])

    op.create_table(
        'vendors',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('seller_id', UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True, index=True),
        sa.Column('city', sa.String(100), nullable=False,
                  comment='City the store ships from'),
        sa.Column('free_shipping_threshold', sa.Numeric(12, 2), nullable=True),
        sa.Column('custom_rate_local', sa.Numeric(12, 2), nullable=True,
                  comment='Replaces the intra-urban zone fee'),
        sa.Column('custom_rate_national', sa.Numeric(12, 2), nullable=True,
                  comment='Replaces the inter-urban zone fee'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    # Flash sales
    op.create_table(
        'flash_sales',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_table(
        'flash_sale_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('flash_sale_id', UUID(as_uuid=True),
                  sa.ForeignKey('flash_sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('seller_shop_name', sa.String(200), nullable=False),
        sa.Column('flash_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                  comment='pending, approved, rejected'),
        sa.UniqueConstraint('flash_sale_id', 'product_id', name='uq_flash_sale_product'),
    )

    # Coupons
    op.create_table(
        'coupons',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(50), unique=True, nullable=False, index=True,
                  comment='Unique coupon code, stored uppercase'),
        sa.Column('discount_type', sa.String(20), nullable=False, server_default='percentage',
                  comment='percentage, fixed'),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('minimum_purchase', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_uses', sa.Integer, nullable=True),
        sa.Column('used_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True,
                  comment='Expiry (null = never expires)'),
        sa.Column('seller_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tracking_number', sa.String(30), nullable=False, unique=True, index=True),
        sa.Column('customer_id', UUID(as_uuid=True), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='confirmed', index=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('applied_promo_code', sa.String(50), nullable=True),
        sa.Column('delivery_method', sa.String(20), nullable=False, server_default='home-delivery',
                  comment='home-delivery, pickup'),
        sa.Column('shipping_address', JSONB, nullable=True),
        sa.Column('pickup_point_id', sa.String(100), nullable=True, index=True),
        sa.Column('agent_id', UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('storage_location_id', sa.String(100), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('checked_in_by', UUID(as_uuid=True), nullable=True),
        sa.Column('discrepancy', JSONB, nullable=True),
        sa.Column('departure_processed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('processed_for_departure_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pickup_recipient_name', sa.String(200), nullable=True),
        sa.Column('pickup_recipient_id', sa.String(100), nullable=True),
        sa.Column('delivery_failure_reason', JSONB, nullable=True),
        sa.Column('refund_reason', sa.Text, nullable=True),
        sa.Column('refund_evidence_urls', JSONB, nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1',
                  comment='Optimistic lock counter'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index('ix_order_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_order_customer_created', 'orders', ['customer_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('vendor_name', sa.String(200), nullable=False),
        sa.Column('selected_variant', JSONB, nullable=True),
        sa.Column('additional_shipping_fee', sa.Numeric(12, 2), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False,
                  comment='Price actually charged per unit'),
        sa.Column('price_source', sa.String(20), nullable=False,
                  comment='variant, flash_sale, promotion, base'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
    )

    op.create_table(
        'order_status_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('changed_by', sa.String(255), nullable=False),
        sa.Column('changed_by_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    op.create_table(
        'order_tracking_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('details', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint('order_id', 'status', name='uq_tracking_order_status'),
    )

    op.create_table(
        'order_dispute_messages',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('author', sa.String(20), nullable=False, comment='customer, seller, admin'),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('attachment_urls', JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('order_dispute_messages')
    op.drop_table('order_tracking_events')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_index('ix_order_customer_created', table_name='orders')
    op.drop_index('ix_order_status_created', table_name='orders')
    op.drop_table('orders')
    op.drop_table('coupons')
    op.drop_table('flash_sale_entries')
    op.drop_table('flash_sales')
    op.drop_table('vendors')
    op.drop_index('ix_product_vendor_status', table_name='products')
    op.drop_table('products')
