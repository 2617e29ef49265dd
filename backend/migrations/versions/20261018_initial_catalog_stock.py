"""Initial schema: users, products, warehouse stock, stock batches, direct pricing

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. users (actor identity for attribution)
2. products (stock, stock_source, mirrored tier prices, optimistic lock)
3. warehouse_stocks (manual override / batch-derived figures, one per product)
4. stock_batches and stock_batch_movements
5. direct_pricing, direct_pricing_tier_updates, direct_pricing_history
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _price_column(name):
    return sa.Column(name, sa.Numeric(precision=12, scale=2, asdecimal=False), nullable=False, server_default='0')


def upgrade():
    # ==========================================================================
    # 1. USERS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('sub_role', sa.String(length=32), nullable=False, server_default='STAFF'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_source', sa.String(length=32), nullable=False, server_default='PRODUCT_DEFAULT'),
        _price_column('sale_price'),
        _price_column('btb_price'),
        _price_column('btc_price'),
        _price_column('price_3weeks_delivery'),
        _price_column('price_5weeks_delivery'),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_stock_source', ['stock_source'], unique=False)

    # ==========================================================================
    # 3. WAREHOUSE STOCK
    # ==========================================================================
    op.create_table('warehouse_stocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('stock_on_arrival', sa.Integer(), nullable=True),
        sa.Column('damaged_qty', sa.Integer(), nullable=True),
        sa.Column('expired_qty', sa.Integer(), nullable=True),
        sa.Column('refurbished_qty', sa.Integer(), nullable=True),
        sa.Column('final_stock', sa.Integer(), nullable=True),
        sa.Column('online_stock', sa.Integer(), nullable=True),
        sa.Column('offline_stock', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id')
    )
    with op.batch_alter_table('warehouse_stocks', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_warehouse_stocks_enabled'), ['enabled'], unique=False)
        batch_op.create_index(batch_op.f('ix_warehouse_stocks_last_updated'), ['last_updated'], unique=False)

    # ==========================================================================
    # 4. STOCK BATCHES
    # ==========================================================================
    op.create_table('stock_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('purchase_order_ref', sa.String(length=64), nullable=True),
        sa.Column('original_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quality_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('quality_notes', sa.Text(), nullable=True),
        sa.Column('good_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('refurbished_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('damaged_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('online_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('offline_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='RECEIVED'),
        sa.Column('unit_cost', sa.Numeric(precision=12, scale=2, asdecimal=False), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(precision=14, scale=2, asdecimal=False), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('received_date', sa.DateTime(), nullable=False),
        sa.Column('expiry_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_number', name='uq_stock_batches_batch_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_batches', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_batches_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_batches_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_batches_expiry_date'), ['expiry_date'], unique=False)
        batch_op.create_index('ix_stock_batches_product_status', ['product_id', 'status'], unique=False)

    op.create_table('stock_batch_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('from_location', sa.String(length=64), nullable=True),
        sa.Column('to_location', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['stock_batches.id'], ),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('stock_batch_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_batch_movements_batch_id'), ['batch_id'], unique=False)

    # ==========================================================================
    # 5. DIRECT PRICING
    # ==========================================================================
    op.create_table('direct_pricing',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        _price_column('sale_price'),
        _price_column('btb_price'),
        _price_column('btc_price'),
        _price_column('price_3weeks_delivery'),
        _price_column('price_5weeks_delivery'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('last_updated_by_user_id', sa.Integer(), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(), nullable=False),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('pricing_source', sa.String(length=32), nullable=False, server_default='DIRECT_PRICING'),
        sa.Column('override_config_pricing', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['last_updated_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', name='uq_direct_pricing_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('direct_pricing', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_direct_pricing_is_active'), ['is_active'], unique=False)
        batch_op.create_index('ix_direct_pricing_active_updated', ['is_active', 'last_updated_at'], unique=False)

    op.create_table('direct_pricing_tier_updates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pricing_id', sa.Integer(), nullable=False),
        sa.Column('price_type', sa.String(length=32), nullable=False),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['pricing_id'], ['direct_pricing.id'], ),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pricing_id', 'price_type', name='uq_direct_pricing_tier_updates')
    )
    with op.batch_alter_table('direct_pricing_tier_updates', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_direct_pricing_tier_updates_pricing_id'), ['pricing_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_direct_pricing_tier_updates_updated_by_user_id'), ['updated_by_user_id'], unique=False)

    op.create_table('direct_pricing_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pricing_id', sa.Integer(), nullable=False),
        sa.Column('prices', sa.JSON(), nullable=False),
        sa.Column('price_type', sa.String(length=32), nullable=False),
        sa.Column('previous_value', sa.Numeric(precision=12, scale=2, asdecimal=False), nullable=True),
        sa.Column('new_value', sa.Numeric(precision=12, scale=2, asdecimal=False), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('update_source', sa.String(length=32), nullable=False, server_default='DIRECT_ENTRY'),
        sa.ForeignKeyConstraint(['pricing_id'], ['direct_pricing.id'], ),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('direct_pricing_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_direct_pricing_history_pricing_id'), ['pricing_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_direct_pricing_history_updated_at'), ['updated_at'], unique=False)


def downgrade():
    op.drop_table('direct_pricing_history')
    op.drop_table('direct_pricing_tier_updates')
    op.drop_table('direct_pricing')
    op.drop_table('stock_batch_movements')
    op.drop_table('stock_batches')
    op.drop_table('warehouse_stocks')
    op.drop_table('products')
    op.drop_table('users')
