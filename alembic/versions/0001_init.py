from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'clients',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('company_name', sa.String(200), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('slug', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'sub_groups',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
    )
    op.create_table(
        'user_sub_groups',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('sub_group_id', sa.Integer, sa.ForeignKey('sub_groups.id'), nullable=False),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('reference_number', sa.String(100), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('mobile', sa.String(20), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('address', sa.Text, nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=False),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('pincode', sa.String(20), nullable=False),
        sa.Column('courier_service', sa.String(50), nullable=False),
        sa.Column('pickup_location', sa.String(200), nullable=False),
        sa.Column('package_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('weight', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_items', sa.Integer, nullable=False),
        sa.Column('is_cod', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('cod_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('reseller_name', sa.String(200), nullable=True),
        sa.Column('reseller_mobile', sa.String(20), nullable=True),
        sa.Column('tracking_id', sa.String(100), nullable=True, index=True),
        sa.Column('delhivery_waybill_number', sa.String(100), nullable=True),
        sa.Column('delhivery_order_id', sa.String(100), nullable=True),
        sa.Column('delhivery_api_status', sa.String(30), nullable=True),
        sa.Column('tracking_status', sa.String(50), nullable=True),
        sa.Column('last_delhivery_attempt', sa.DateTime, nullable=True),
        sa.Column('created_by', sa.String(64), nullable=False),
        sa.Column('sub_group', sa.String(100), nullable=True),
        sa.Column('products', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_orders_client_reference', 'orders', ['client_id', 'reference_number'])
    op.create_index('idx_orders_client_created', 'orders', ['client_id', 'created_at'])

    op.create_table(
        'client_order_configs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, unique=True),
        sa.Column('enable_reference_prefix', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('reference_prefix', sa.String(20), nullable=True),
    )
    op.create_table(
        'pickup_locations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('value', sa.String(200), nullable=False),
        sa.Column('label', sa.String(200), nullable=True),
        sa.Column('delhivery_api_key', sa.String(200), nullable=True),
        sa.Column('product_description', sa.String(200), nullable=True),
        sa.Column('hsn_code', sa.String(50), nullable=True),
        sa.Column('return_address', sa.Text, nullable=True),
        sa.Column('return_pincode', sa.String(20), nullable=True),
        sa.Column('seller_name', sa.String(200), nullable=True),
        sa.Column('seller_address', sa.Text, nullable=True),
        sa.Column('seller_gst', sa.String(50), nullable=True),
        sa.Column('invoice_number', sa.String(100), nullable=True),
        sa.Column('shipment_length', sa.Integer, nullable=False, server_default='10'),
        sa.Column('shipment_breadth', sa.Integer, nullable=False, server_default='10'),
        sa.Column('shipment_height', sa.Integer, nullable=False, server_default='10'),
        sa.Column('fragile_shipment', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('client_id', 'value', name='uq_pickup_locations_client_value'),
    )
    op.create_table(
        'cross_app_mappings',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('catalog_client_id', sa.String(100), nullable=False),
        sa.Column('catalog_api_key', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'client_credits',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, unique=True),
        sa.Column('balance', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_added', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_used', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('balance >= 0', name='ck_client_credits_balance_non_negative'),
    )
    op.create_table(
        'client_credit_costs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False),
        sa.Column('feature', sa.String(30), nullable=False),
        sa.Column('cost', sa.Integer, nullable=False),
        sa.UniqueConstraint('client_id', 'feature', name='uq_client_credit_costs_feature'),
    )
    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('balance', sa.Integer, nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('feature', sa.String(30), nullable=True),
        sa.Column('order_id', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'owed_credit_debits',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('order_id', sa.Integer, nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending', index=True),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('settled_at', sa.DateTime, nullable=True),
    )
    op.create_table(
        'webhooks',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('url', sa.String(500), nullable=False),
        sa.Column('events', sa.JSON, nullable=False),
        sa.Column('secret', sa.String(200), nullable=True),
        sa.Column('headers', sa.JSON, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('timeout_ms', sa.Integer, nullable=False, server_default='5000'),
    )
    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('webhook_id', sa.Integer, sa.ForeignKey('webhooks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('order_id', sa.Integer, nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('response_code', sa.Integer, nullable=True),
        sa.Column('response_body', sa.Text, nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'order_analytics',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.Integer, nullable=False),
        sa.Column('client_id', sa.String(64), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('creation_pattern', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'analytics_events',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_type', sa.String(50), nullable=False, index=True),
        sa.Column('client_id', sa.String(64), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('event_data', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

def downgrade():
    op.drop_table('analytics_events')
    op.drop_table('order_analytics')
    op.drop_table('webhook_logs')
    op.drop_table('webhooks')
    op.drop_table('owed_credit_debits')
    op.drop_table('credit_transactions')
    op.drop_table('client_credit_costs')
    op.drop_table('client_credits')
    op.drop_table('cross_app_mappings')
    op.drop_table('pickup_locations')
    op.drop_table('client_order_configs')
    op.drop_index('idx_orders_client_created', table_name='orders')
    op.drop_index('idx_orders_client_reference', table_name='orders')
    op.drop_table('orders')
    op.drop_table('user_sub_groups')
    op.drop_table('sub_groups')
    op.drop_table('clients')
