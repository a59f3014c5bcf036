"""Add loyalty points, discount codes, webhook event log and GDPR requests

Revision ID: f7a8b9c0d1e2
Revises: e1f2a3b4c5d6
Create Date: 2026-10-19 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'f7a8b9c0d1e2'
down_revision = 'e1f2a3b4c5d6'
branch_labels = None
depends_on = None


def upgrade():
    """Create points tables and extend rewards and vouchers."""
    with op.batch_alter_table('rewards', schema=None) as batch_op:
        batch_op.add_column(sa.Column('discount_type', sa.String(20), nullable=True))
        batch_op.add_column(sa.Column('min_purchase_amount', sa.Numeric(10, 2), nullable=True))
        batch_op.add_column(sa.Column('points_cost', sa.Integer(), nullable=True))

    with op.batch_alter_table('vouchers', schema=None) as batch_op:
        batch_op.add_column(sa.Column('coupon_code', sa.String(100), nullable=True))
        batch_op.add_column(sa.Column('shopify_price_rule_id', sa.String(50), nullable=True))
        batch_op.add_column(sa.Column('shopify_discount_code_id', sa.String(50), nullable=True))
        batch_op.add_column(sa.Column('shopify_synced', sa.Boolean(), nullable=True))

    op.create_table(
        'loyalty_programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('points_name', sa.String(50), nullable=True),
        sa.Column('points_name_singular', sa.String(50), nullable=True),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('allow_redemption', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loyalty_programs_client_id', 'loyalty_programs', ['client_id'], unique=False)

    op.create_table(
        'loyalty_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('tier_name', sa.String(100), nullable=False),
        sa.Column('tier_level', sa.Integer(), nullable=False),
        sa.Column('min_points', sa.Integer(), nullable=False),
        sa.Column('points_earn_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('points_earn_divisor', sa.Numeric(10, 2), nullable=False),
        sa.Column('points_value', sa.Numeric(10, 4), nullable=False),
        sa.Column('max_redemption_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('max_redemption_points', sa.Integer(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=True),
        sa.Column('color_code', sa.String(20), nullable=True),
        sa.Column('benefits_description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['program_id'], ['loyalty_programs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('program_id', 'tier_level', name='uq_program_tier_level')
    )
    op.create_index('ix_loyalty_tiers_program_id', 'loyalty_tiers', ['program_id'], unique=False)

    op.create_table(
        'member_loyalty_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('current_tier_id', sa.Integer(), nullable=True),
        sa.Column('points_balance', sa.Integer(), nullable=False),
        sa.Column('lifetime_points_earned', sa.Integer(), nullable=False),
        sa.Column('lifetime_points_redeemed', sa.Integer(), nullable=False),
        sa.Column('total_orders', sa.Integer(), nullable=False),
        sa.Column('total_spend', sa.Numeric(12, 2), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['program_id'], ['loyalty_programs.id'], ),
        sa.ForeignKeyConstraint(['current_tier_id'], ['loyalty_tiers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id', 'program_id', name='uq_member_loyalty_program'),
        sa.UniqueConstraint('referral_code'),
        sa.CheckConstraint('points_balance >= 0', name='ck_points_balance_non_negative')
    )
    op.create_index('ix_member_loyalty_status_member_id', 'member_loyalty_status', ['member_id'], unique=False)

    op.create_table(
        'loyalty_points_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loyalty_status_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('points_amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('order_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('reference_id', sa.String(100), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('transaction_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['loyalty_status_id'], ['member_loyalty_status.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loyalty_points_transactions_loyalty_status_id',
                    'loyalty_points_transactions', ['loyalty_status_id'], unique=False)
    op.create_index('ix_loyalty_points_transactions_member_id',
                    'loyalty_points_transactions', ['member_id'], unique=False)
    op.create_index('ix_loyalty_points_transactions_reference_id',
                    'loyalty_points_transactions', ['reference_id'], unique=False)

    op.create_table(
        'loyalty_discount_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('points_redeemed', sa.Integer(), nullable=False),
        sa.Column('minimum_order_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_used', sa.Boolean(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('shop_domain', sa.String(255), nullable=True),
        sa.Column('shopify_price_rule_id', sa.String(50), nullable=True),
        sa.Column('shopify_discount_code_id', sa.String(50), nullable=True),
        sa.Column('shopify_synced', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index('ix_loyalty_discount_codes_member_id', 'loyalty_discount_codes', ['member_id'], unique=False)

    op.create_table(
        'shopify_webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_installation_id', sa.Integer(), nullable=True),
        sa.Column('shop_domain', sa.String(255), nullable=False),
        sa.Column('topic', sa.String(100), nullable=False),
        sa.Column('webhook_id', sa.String(100), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_installation_id'], ['store_installations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shopify_webhook_events_shop_domain', 'shopify_webhook_events', ['shop_domain'], unique=False)

    op.create_table(
        'shopify_gdpr_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_domain', sa.String(255), nullable=False),
        sa.Column('topic', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(30), nullable=True),
        sa.Column('collected_data', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shopify_gdpr_requests_shop_domain', 'shopify_gdpr_requests', ['shop_domain'], unique=False)


def downgrade():
    """Drop points tables and the added reward and voucher columns."""
    op.drop_index('ix_shopify_gdpr_requests_shop_domain', table_name='shopify_gdpr_requests')
    op.drop_table('shopify_gdpr_requests')
    op.drop_index('ix_shopify_webhook_events_shop_domain', table_name='shopify_webhook_events')
    op.drop_table('shopify_webhook_events')
    op.drop_index('ix_loyalty_discount_codes_member_id', table_name='loyalty_discount_codes')
    op.drop_table('loyalty_discount_codes')
    op.drop_index('ix_loyalty_points_transactions_reference_id', table_name='loyalty_points_transactions')
    op.drop_index('ix_loyalty_points_transactions_member_id', table_name='loyalty_points_transactions')
    op.drop_index('ix_loyalty_points_transactions_loyalty_status_id', table_name='loyalty_points_transactions')
    op.drop_table('loyalty_points_transactions')
    op.drop_index('ix_member_loyalty_status_member_id', table_name='member_loyalty_status')
    op.drop_table('member_loyalty_status')
    op.drop_index('ix_loyalty_tiers_program_id', table_name='loyalty_tiers')
    op.drop_table('loyalty_tiers')
    op.drop_index('ix_loyalty_programs_client_id', table_name='loyalty_programs')
    op.drop_table('loyalty_programs')

    with op.batch_alter_table('vouchers', schema=None) as batch_op:
        batch_op.drop_column('shopify_synced')
        batch_op.drop_column('shopify_discount_code_id')
        batch_op.drop_column('shopify_price_rule_id')
        batch_op.drop_column('coupon_code')

    with op.batch_alter_table('rewards', schema=None) as batch_op:
        batch_op.drop_column('points_cost')
        batch_op.drop_column('min_purchase_amount')
        batch_op.drop_column('discount_type')
