"""initial inventory ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the complete stockledger schema:
- stores, products (+ tire_products / bale_products variant tables)
- users, session_tokens, refresh_tokens
- inventory_records: current quantity per (product, store), version counter
- inventory_history: append-only ledger, one row per quantity change
- sales, sale_items, voided_sales
- product_transfers
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_main_store', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_stores_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('base_price_cents', sa.Integer(), nullable=False),
        sa.Column('grade', sa.String(length=1), nullable=False, server_default='A'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_type', 'products', ['type'])
    op.create_index('ix_products_type_name', 'products', ['type', 'name'])

    op.create_table(
        'tire_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tire_category', sa.String(length=16), nullable=False, server_default='NEW'),
        sa.Column('tire_usage', sa.String(length=16), nullable=False, server_default='REGULAR'),
        sa.Column('tire_size', sa.String(length=32), nullable=True),
        sa.Column('load_index', sa.String(length=16), nullable=True),
        sa.Column('speed_rating', sa.String(length=8), nullable=True),
        sa.Column('warranty_period', sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(['id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'bale_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bale_weight_kg', sa.Float(), nullable=True),
        sa.Column('bale_category', sa.String(length=64), nullable=True),
        sa.Column('origin_country', sa.String(length=64), nullable=True),
        sa.Column('import_date', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    # ============================================================================
    # Identity
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='CASHIER'),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_store_id', 'users', ['store_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    # Single-use refresh tokens; replaced_by_id points at the successor
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('replaced_by_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['replaced_by_id'], ['refresh_tokens.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'])
    op.create_index('ix_refresh_tokens_token_hash', 'refresh_tokens', ['token_hash'], unique=True)
    op.create_index('ix_refresh_tokens_user_revoked', 'refresh_tokens', ['user_id', 'revoked'])

    # ============================================================================
    # inventory_records: current quantity per (product, store)
    # ============================================================================
    op.create_table(
        'inventory_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=True),
        sa.Column('optimal_level', sa.Integer(), nullable=True),
        sa.Column('store_price_cents', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'store_id', name='uq_inventory_product_store'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_records_product_id', 'inventory_records', ['product_id'])
    op.create_index('ix_inventory_records_store_id', 'inventory_records', ['store_id'])
    op.create_index('ix_inventory_store_quantity', 'inventory_records', ['store_id', 'quantity'])

    # ============================================================================
    # inventory_history: append-only ledger
    # ============================================================================
    op.create_table(
        'inventory_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            'new_quantity = previous_quantity + quantity_change',
            name='ck_invhist_quantity_arithmetic',
        ),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory_records.id'], ),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_history_inventory_id', 'inventory_history', ['inventory_id'])
    op.create_index('ix_inventory_history_change_type', 'inventory_history', ['change_type'])
    op.create_index('ix_inventory_history_actor_id', 'inventory_history', ['actor_id'])
    op.create_index('ix_inventory_history_created_at', 'inventory_history', ['created_at'])
    op.create_index('ix_invhist_inventory_created', 'inventory_history', ['inventory_id', 'created_at', 'id'])
    op.create_index('ix_invhist_reference', 'inventory_history', ['reference_type', 'reference_id'])

    # ============================================================================
    # Sales
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_store_id', 'sales', ['store_id'])
    op.create_index('ix_sales_actor_id', 'sales', ['actor_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_store_status_created', 'sales', ['store_id', 'status', 'created_at'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('history_entry_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['history_entry_id'], ['inventory_history.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])

    op.create_table(
        'voided_sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('original_total_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', name='uq_voided_sales_sale'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # Transfers
    # ============================================================================
    op.create_table(
        'product_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('from_store_id', sa.Integer(), nullable=False),
        sa.Column('to_store_id', sa.Integer(), nullable=False),
        sa.Column('from_inventory_id', sa.Integer(), nullable=False),
        sa.Column('to_inventory_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('initiated_by_user_id', sa.Integer(), nullable=False),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('closed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('close_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['from_store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['to_store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['from_inventory_id'], ['inventory_records.id'], ),
        sa.ForeignKeyConstraint(['to_inventory_id'], ['inventory_records.id'], ),
        sa.ForeignKeyConstraint(['initiated_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['closed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_transfers_product_id', 'product_transfers', ['product_id'])
    op.create_index('ix_product_transfers_status', 'product_transfers', ['status'])
    op.create_index('ix_transfers_from_status', 'product_transfers', ['from_store_id', 'status'])
    op.create_index('ix_transfers_to_status', 'product_transfers', ['to_store_id', 'status'])


def downgrade():
    op.drop_table('product_transfers')
    op.drop_table('voided_sales')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('inventory_history')
    op.drop_table('inventory_records')
    op.drop_table('refresh_tokens')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('bale_products')
    op.drop_table('tire_products')
    op.drop_table('products')
    op.drop_table('stores')
