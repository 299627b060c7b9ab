"""
Initial shop schema: users, shop_items and orders.

Generic collections written through /api/query are created at runtime by the
SQL provider and are not managed here.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'shop_initial_20261019'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='user'),
        sa.Column('wallet_address', sa.String(), nullable=True),
        sa.Column('wallet_type', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'shop_items',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('image', sa.String(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.String(), nullable=True),
    )
    op.create_index('ix_shop_items_category', 'shop_items', ['category'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('uid', sa.String(), nullable=False),
        sa.Column('cst_email', sa.String(), nullable=True),
        sa.Column('cst_name', sa.String(), nullable=True),
        sa.Column('tx', sa.String(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=True),
        sa.Column('shipping', sa.Float(), nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('method', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(), nullable=True),
        sa.Column('tracking', sa.String(), nullable=True),
        sa.Column('delivery_notes', sa.Text(), nullable=True),
        sa.Column('ref', sa.String(), nullable=True),
        sa.Column('items', sa.Text(), nullable=True),
        sa.Column('shipping_address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_orders_uid', 'orders', ['uid'])
    op.create_index('ix_orders_cst_email', 'orders', ['cst_email'])
    op.create_index('ix_orders_tx', 'orders', ['tx'])


def downgrade() -> None:
    op.drop_index('ix_orders_tx', table_name='orders')
    op.drop_index('ix_orders_cst_email', table_name='orders')
    op.drop_index('ix_orders_uid', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_shop_items_category', table_name='shop_items')
    op.drop_table('shop_items')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
