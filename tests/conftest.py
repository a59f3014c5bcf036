"""
Shared pytest fixtures.

Every test gets a fresh app on in-memory SQLite with a small loyalty
setup available on demand: one client with a shop installation, a program
with two rewards, an order_value campaign rule and a member.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from rewardhub import create_app
from rewardhub.extensions import db as _db
from rewardhub.middleware.auth import issue_auth_token
from rewardhub.models import (
    Brand,
    CampaignRule,
    Client,
    LoyaltyProgram,
    LoyaltyTier,
    Member,
    MembershipProgram,
    ProgramReward,
    Reward,
    StoreInstallation,
    User,
    UserRole,
)


@pytest.fixture
def app():
    """Application with a clean schema per test."""
    app = create_app('testing')
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def sample_client(db):
    tenant = Client(name='Acme Outfitters', email='owner@acme.test', status='active')
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture
def other_client(db):
    tenant = Client(name='Other Co', email='owner@other.test', status='active')
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture
def sample_brand(db):
    brand = Brand(name='Trail Snacks', contact_email='hello@trailsnacks.test', status='approved')
    db.session.add(brand)
    db.session.commit()
    return brand


@pytest.fixture
def sample_installation(db, sample_client):
    installation = StoreInstallation(
        client_id=sample_client.id,
        platform='shopify',
        shop_domain='acme.myshopify.com',
        shop_name='Acme',
        access_token='shpat_test',
        installation_status='active',
    )
    db.session.add(installation)
    db.session.commit()
    return installation


@pytest.fixture
def sample_rewards(db, sample_client, sample_brand):
    coffee = Reward(
        client_id=sample_client.id,
        title='Free Coffee',
        reward_type='free_product',
        coupon_type='unique',
        status='active',
    )
    snack = Reward(
        client_id=sample_client.id,
        brand_id=sample_brand.id,
        title='10% off snacks',
        reward_type='discount',
        discount_value=Decimal('10'),
        coupon_type='generic',
        generic_coupon_code='SNACK10',
        status='active',
    )
    db.session.add_all([coffee, snack])
    db.session.commit()
    return [coffee, snack]


@pytest.fixture
def sample_program(db, sample_client, sample_rewards):
    program = MembershipProgram(
        client_id=sample_client.id,
        name='VIP Club',
        description='Perks for our best customers',
        validity_days=365,
        is_active=True,
    )
    db.session.add(program)
    db.session.flush()
    db.session.add_all([
        ProgramReward(program_id=program.id, reward_id=sample_rewards[0].id, quantity_limit=2, is_active=True),
        ProgramReward(program_id=program.id, reward_id=sample_rewards[1].id, is_active=True),
    ])
    db.session.commit()
    return program


@pytest.fixture
def sample_rule(db, sample_client, sample_program):
    rule = CampaignRule(
        client_id=sample_client.id,
        program_id=sample_program.id,
        name='Big spenders',
        description='Spend 100 and join the VIP Club',
        trigger_type='order_value',
        trigger_conditions={'min_order_value': 100},
        exclusion_rules={},
        priority=10,
        current_enrollments=0,
        is_active=True,
        created_at=datetime.utcnow() - timedelta(days=1),
    )
    db.session.add(rule)
    db.session.commit()
    return rule


@pytest.fixture
def sample_member(db, sample_client):
    member = Member(
        client_id=sample_client.id,
        email='jane@example.com',
        phone='+15551234567',
        full_name='Jane Doe',
        is_active=True,
    )
    db.session.add(member)
    db.session.commit()
    return member


@pytest.fixture
def loyalty_program(db, sample_client):
    """Points program: Bronze earns 1 per unit, Gold (1000 lifetime points) earns 2."""
    program = LoyaltyProgram(
        client_id=sample_client.id,
        name='Acme Rewards',
        points_name='Points',
        currency='USD',
        allow_redemption=True,
        is_active=True,
    )
    db.session.add(program)
    db.session.flush()
    db.session.add_all([
        LoyaltyTier(
            program_id=program.id,
            tier_name='Bronze',
            tier_level=1,
            min_points=0,
            points_earn_rate=Decimal('1'),
            points_earn_divisor=Decimal('1'),
            points_value=Decimal('0.01'),
            max_redemption_percent=Decimal('50'),
            is_default=True,
        ),
        LoyaltyTier(
            program_id=program.id,
            tier_name='Gold',
            tier_level=2,
            min_points=1000,
            points_earn_rate=Decimal('2'),
            points_earn_divisor=Decimal('1'),
            points_value=Decimal('0.02'),
            max_redemption_percent=Decimal('50'),
            max_redemption_points=5000,
        ),
    ])
    db.session.commit()
    return program


@pytest.fixture
def admin_user(db):
    user = User(email='admin@rewardhub.test', full_name='Platform Admin', role=UserRole.ADMIN.value)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def client_user(db, sample_client):
    user = User(
        email='manager@acme.test',
        full_name='Acme Manager',
        role=UserRole.CLIENT.value,
        client_id=sample_client.id,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def brand_user(db, sample_brand):
    user = User(
        email='rep@trailsnacks.test',
        full_name='Brand Rep',
        role=UserRole.BRAND.value,
        brand_id=sample_brand.id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def bearer(user):
    return {
        'Authorization': f'Bearer {issue_auth_token(user)}',
        'Content-Type': 'application/json',
    }


@pytest.fixture
def auth_headers(client_user):
    """Headers for a client-scoped dashboard user."""
    return bearer(client_user)


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
def brand_headers(brand_user):
    return bearer(brand_user)
