"""Initial loyalty schema: clients, programs, campaigns, members, stores

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1f2a3b4c5d6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create all loyalty tables."""
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('client_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'brands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('logo_url', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table(
        'rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reward_type', sa.String(30), nullable=True),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('coupon_type', sa.String(20), nullable=True),
        sa.Column('generic_coupon_code', sa.String(100), nullable=True),
        sa.Column('redemption_link', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'membership_programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('validity_days', sa.Integer(), nullable=False),
        sa.Column('enrollment_type', sa.String(20), nullable=True),
        sa.Column('fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_rewards_total', sa.Integer(), nullable=True),
        sa.Column('max_rewards_per_brand', sa.Integer(), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=True),
        sa.Column('eligibility_criteria', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'membership_program_rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('quantity_limit', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('added_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['program_id'], ['membership_programs.id'], ),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('program_id', 'reward_id', name='uq_program_reward')
    )

    op.create_table(
        'campaign_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(30), nullable=False),
        sa.Column('trigger_conditions', sa.JSON(), nullable=True),
        sa.Column('exclusion_rules', sa.JSON(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('max_enrollments', sa.Integer(), nullable=True),
        sa.Column('current_enrollments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['program_id'], ['membership_programs.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_campaign_rules_client_id', 'campaign_rules', ['client_id'])

    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('external_id', sa.String(50), nullable=True),
        sa.Column('birthday', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'email', name='uq_client_member_email')
    )
    op.create_index('ix_members_client_id', 'members', ['client_id'])

    op.create_table(
        'member_memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('campaign_rule_id', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(30), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('enrollment_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['program_id'], ['membership_programs.id'], ),
        sa.ForeignKeyConstraint(['campaign_rule_id'], ['campaign_rules.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_member_memberships_member_id', 'member_memberships', ['member_id'])
    op.create_index('ix_member_memberships_program_id', 'member_memberships', ['program_id'])

    op.create_table(
        'member_rewards_allocation',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('enrollment_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('quantity_allocated', sa.Integer(), nullable=False),
        sa.Column('quantity_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['enrollment_id'], ['member_memberships.id'], ),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('enrollment_id', 'reward_id', name='uq_enrollment_reward'),
        sa.CheckConstraint('quantity_redeemed <= quantity_allocated', name='ck_allocation_quantity')
    )
    op.create_index('ix_member_rewards_allocation_member_id', 'member_rewards_allocation', ['member_id'])

    op.create_table(
        'vouchers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('allocation_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['allocation_id'], ['member_rewards_allocation.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index('ix_vouchers_member_id', 'vouchers', ['member_id'])

    op.create_table(
        'redemptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('voucher_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('redemption_channel', sa.String(30), nullable=True),
        sa.Column('redemption_location', sa.String(255), nullable=True),
        sa.Column('redemption_metadata', sa.JSON(), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['voucher_id'], ['vouchers.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('voucher_id')
    )

    op.create_table(
        'campaign_trigger_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('campaign_rule_id', sa.Integer(), nullable=True),
        sa.Column('member_id', sa.Integer(), nullable=True),
        sa.Column('enrollment_id', sa.Integer(), nullable=True),
        sa.Column('trigger_type', sa.String(30), nullable=True),
        sa.Column('order_id', sa.String(100), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('log_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['campaign_rule_id'], ['campaign_rules.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['enrollment_id'], ['member_memberships.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_campaign_trigger_logs_client_id', 'campaign_trigger_logs', ['client_id'])
    op.create_index('ix_campaign_trigger_logs_campaign_rule_id', 'campaign_trigger_logs', ['campaign_rule_id'])

    op.create_table(
        'member_redemption_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(64), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('campaign_rule_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.String(100), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('redemption_url', sa.String(500), nullable=True),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['campaign_rule_id'], ['campaign_rules.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_member_redemption_tokens_token', 'member_redemption_tokens', ['token'], unique=True)
    op.create_index('ix_member_redemption_tokens_order_id', 'member_redemption_tokens', ['order_id'])

    op.create_table(
        'store_installations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('platform', sa.String(30), nullable=True),
        sa.Column('shop_domain', sa.String(255), nullable=False),
        sa.Column('shop_name', sa.String(255), nullable=True),
        sa.Column('shop_email', sa.String(255), nullable=True),
        sa.Column('shop_currency', sa.String(10), nullable=True),
        sa.Column('shop_plan', sa.String(50), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('scopes', sa.Text(), nullable=True),
        sa.Column('api_version', sa.String(20), nullable=True),
        sa.Column('installation_status', sa.String(20), nullable=True),
        sa.Column('webhooks_registered', sa.Boolean(), nullable=True),
        sa.Column('webhook_health_status', sa.String(20), nullable=True),
        sa.Column('billing_plan', sa.String(30), nullable=True),
        sa.Column('app_settings', sa.JSON(), nullable=True),
        sa.Column('installation_metadata', sa.JSON(), nullable=True),
        sa.Column('installed_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'shop_domain', name='uq_client_shop_domain')
    )
    op.create_index('ix_store_installations_shop_domain', 'store_installations', ['shop_domain'])

    op.create_table(
        'store_webhooks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_installation_id', sa.Integer(), nullable=False),
        sa.Column('webhook_topic', sa.String(100), nullable=False),
        sa.Column('webhook_id', sa.String(50), nullable=True),
        sa.Column('webhook_address', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_installation_id'], ['store_installations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_installation_id', 'webhook_topic', name='uq_installation_webhook_topic')
    )

    op.create_table(
        'store_plugins',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_installation_id', sa.Integer(), nullable=False),
        sa.Column('plugin_type', sa.String(50), nullable=False),
        sa.Column('plugin_name', sa.String(255), nullable=True),
        sa.Column('plugin_version', sa.String(20), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=True),
        sa.Column('configuration', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_installation_id'], ['store_installations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_installation_id', 'plugin_type', name='uq_installation_plugin_type')
    )

    op.create_table(
        'store_users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_installation_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(30), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_installation_id'], ['store_installations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_installation_id', 'email', name='uq_installation_user_email')
    )

    op.create_table(
        'shopify_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('store_installation_id', sa.Integer(), nullable=True),
        sa.Column('member_id', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.String(50), nullable=False),
        sa.Column('order_number', sa.String(50), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('financial_status', sa.String(30), nullable=True),
        sa.Column('fulfillment_status', sa.String(30), nullable=True),
        sa.Column('raw_payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['store_installation_id'], ['store_installations.id'], ),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'order_id', name='uq_client_order')
    )


def downgrade():
    """Drop all loyalty tables."""
    op.drop_table('shopify_orders')
    op.drop_table('store_users')
    op.drop_table('store_plugins')
    op.drop_table('store_webhooks')
    op.drop_index('ix_store_installations_shop_domain', table_name='store_installations')
    op.drop_table('store_installations')
    op.drop_index('ix_member_redemption_tokens_order_id', table_name='member_redemption_tokens')
    op.drop_index('ix_member_redemption_tokens_token', table_name='member_redemption_tokens')
    op.drop_table('member_redemption_tokens')
    op.drop_index('ix_campaign_trigger_logs_campaign_rule_id', table_name='campaign_trigger_logs')
    op.drop_index('ix_campaign_trigger_logs_client_id', table_name='campaign_trigger_logs')
    op.drop_table('campaign_trigger_logs')
    op.drop_table('redemptions')
    op.drop_index('ix_vouchers_member_id', table_name='vouchers')
    op.drop_table('vouchers')
    op.drop_index('ix_member_rewards_allocation_member_id', table_name='member_rewards_allocation')
    op.drop_table('member_rewards_allocation')
    op.drop_index('ix_member_memberships_program_id', table_name='member_memberships')
    op.drop_index('ix_member_memberships_member_id', table_name='member_memberships')
    op.drop_table('member_memberships')
    op.drop_index('ix_members_client_id', table_name='members')
    op.drop_table('members')
    op.drop_index('ix_campaign_rules_client_id', table_name='campaign_rules')
    op.drop_table('campaign_rules')
    op.drop_table('membership_program_rewards')
    op.drop_table('membership_programs')
    op.drop_table('rewards')
    op.drop_table('users')
    op.drop_table('brands')
    op.drop_table('clients')
