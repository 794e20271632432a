
from alembic import op
import sqlalchemy as sa

revision = "20251016101500"
down_revision = None

def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('price', sa.BigInteger(), nullable=False),
        sa.Column('sale_price', sa.BigInteger(), nullable=True),
        sa.Column('sold_items', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cart_id', sa.String(length=64), nullable=False, index=True),
        sa.Column('product_id', sa.String(length=64), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('selected_color', sa.String(length=64), nullable=True),
        sa.Column('selected_size', sa.String(length=64), nullable=True),
        sa.Column('delivery_option', sa.String(length=64), nullable=True),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=64), index=True, nullable=False),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('stripe_session_id', name='uq_orders_stripe_session_id'),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.String(length=36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.BigInteger(), nullable=False),
        sa.Column('selected_color', sa.String(length=64), nullable=True),
        sa.Column('selected_size', sa.String(length=64), nullable=True),
        sa.Column('delivery_option', sa.String(length=64), nullable=False, server_default='pay_on_website'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

def downgrade():
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('products')
