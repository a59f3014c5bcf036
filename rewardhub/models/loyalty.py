"""
Loyalty points models: program configuration, tiers, per-member balances,
the points ledger and discount codes bought with points.

Also holds the Shopify audit tables: every webhook received and every
GDPR compliance request.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from ..extensions import db


class PointsTransactionType(str, Enum):
    EARNED = 'earned'
    REDEEMED = 'redeemed'
    ADJUSTMENT = 'adjustment'


class LoyaltyProgram(db.Model):
    """Points program of a client. At most one is active per client."""
    __tablename__ = 'loyalty_programs'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    points_name = db.Column(db.String(50), default='Points')
    points_name_singular = db.Column(db.String(50), default='Point')
    currency = db.Column(db.String(10), default='USD')
    allow_redemption = db.Column(db.Boolean, default=True)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tiers = db.relationship('LoyaltyTier', backref='program', lazy='dynamic',
                            order_by='LoyaltyTier.tier_level', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<LoyaltyProgram {self.name}>'

    def to_dict(self, include_tiers=False):
        data = {
            'id': self.id,
            'client_id': self.client_id,
            'name': self.name,
            'points_name': self.points_name,
            'points_name_singular': self.points_name_singular,
            'currency': self.currency,
            'allow_redemption': self.allow_redemption,
            'is_active': self.is_active,
        }
        if include_tiers:
            data['tiers'] = [t.to_dict() for t in self.tiers]
        return data


class LoyaltyTier(db.Model):
    """
    Earning and redemption settings for members above min_points lifetime points.

    points = floor(order_amount * points_earn_rate / points_earn_divisor)
    discount = points * points_value
    """
    __tablename__ = 'loyalty_tiers'

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('loyalty_programs.id'), nullable=False, index=True)

    tier_name = db.Column(db.String(100), nullable=False)
    tier_level = db.Column(db.Integer, nullable=False, default=1)
    min_points = db.Column(db.Integer, nullable=False, default=0)

    points_earn_rate = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('1'))
    points_earn_divisor = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('1'))
    points_value = db.Column(db.Numeric(10, 4), nullable=False, default=Decimal('0.01'))
    max_redemption_percent = db.Column(db.Numeric(5, 2))  # of order amount; null = no cap
    max_redemption_points = db.Column(db.Integer)          # null = no cap

    is_default = db.Column(db.Boolean, default=False)
    color_code = db.Column(db.String(20))
    benefits_description = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('program_id', 'tier_level', name='uq_program_tier_level'),
    )

    def __repr__(self):
        return f'<LoyaltyTier {self.tier_name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'program_id': self.program_id,
            'tier_name': self.tier_name,
            'tier_level': self.tier_level,
            'min_points': self.min_points,
            'points_earn_rate': float(self.points_earn_rate),
            'points_earn_divisor': float(self.points_earn_divisor),
            'points_value': float(self.points_value),
            'max_redemption_percent': (
                float(self.max_redemption_percent) if self.max_redemption_percent is not None else None
            ),
            'max_redemption_points': self.max_redemption_points,
            'is_default': self.is_default,
            'color_code': self.color_code,
            'benefits_description': self.benefits_description,
        }


class MemberLoyaltyStatus(db.Model):
    """
    A member's standing in a loyalty program.

    points_balance is only changed through guarded UPDATEs in the points
    service and never goes negative.
    """
    __tablename__ = 'member_loyalty_status'

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('loyalty_programs.id'), nullable=False)
    current_tier_id = db.Column(db.Integer, db.ForeignKey('loyalty_tiers.id'))

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_earned = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spend = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))
    referral_code = db.Column(db.String(20), unique=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    member = db.relationship('Member')
    program = db.relationship('LoyaltyProgram')
    current_tier = db.relationship('LoyaltyTier')

    __table_args__ = (
        db.UniqueConstraint('member_id', 'program_id', name='uq_member_loyalty_program'),
        db.CheckConstraint('points_balance >= 0', name='ck_points_balance_non_negative'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'member_id': self.member_id,
            'program_id': self.program_id,
            'current_tier': self.current_tier.to_dict() if self.current_tier else None,
            'points_balance': self.points_balance,
            'lifetime_points_earned': self.lifetime_points_earned,
            'lifetime_points_redeemed': self.lifetime_points_redeemed,
            'total_orders': self.total_orders,
            'total_spend': float(self.total_spend or 0),
            'referral_code': self.referral_code,
        }


class PointsTransaction(db.Model):
    """Append-only points ledger. points_amount is signed; balance_after is the balance it left."""
    __tablename__ = 'loyalty_points_transactions'

    id = db.Column(db.Integer, primary_key=True)
    loyalty_status_id = db.Column(db.Integer, db.ForeignKey('member_loyalty_status.id'), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)

    transaction_type = db.Column(db.String(20), nullable=False)
    points_amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    order_amount = db.Column(db.Numeric(12, 2))
    reference_id = db.Column(db.String(100), index=True)  # Shopify order ID or discount code
    description = db.Column(db.String(500))
    transaction_metadata = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'member_id': self.member_id,
            'transaction_type': self.transaction_type,
            'points_amount': self.points_amount,
            'balance_after': self.balance_after,
            'order_amount': float(self.order_amount) if self.order_amount is not None else None,
            'reference_id': self.reference_id,
            'description': self.description,
            'metadata': self.transaction_metadata or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class LoyaltyDiscountCode(db.Model):
    """
    Single-use checkout code bought with points.
    shopify_synced is set once the matching price rule exists in the store.
    """
    __tablename__ = 'loyalty_discount_codes'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'))

    code = db.Column(db.String(50), unique=True, nullable=False)
    discount_type = db.Column(db.String(20), nullable=False, default='fixed_amount')  # fixed_amount, percentage
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    points_redeemed = db.Column(db.Integer, nullable=False)
    minimum_order_value = db.Column(db.Numeric(10, 2), default=Decimal('0'))
    is_used = db.Column(db.Boolean, default=False)
    expires_at = db.Column(db.DateTime)

    shop_domain = db.Column(db.String(255))
    shopify_price_rule_id = db.Column(db.String(50))
    shopify_discount_code_id = db.Column(db.String(50))
    shopify_synced = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reward = db.relationship('Reward')

    def __repr__(self):
        return f'<LoyaltyDiscountCode {self.code}>'

    def to_dict(self):
        return {
            'id': self.id,
            'member_id': self.member_id,
            'reward_id': self.reward_id,
            'code': self.code,
            'discount_type': self.discount_type,
            'discount_value': float(self.discount_value),
            'points_redeemed': self.points_redeemed,
            'minimum_order_value': float(self.minimum_order_value or 0),
            'is_used': self.is_used,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'shop_domain': self.shop_domain,
            'shopify_synced': self.shopify_synced,
        }


class ShopifyWebhookEvent(db.Model):
    """Audit row for every webhook delivery accepted by the receiver."""
    __tablename__ = 'shopify_webhook_events'

    id = db.Column(db.Integer, primary_key=True)
    store_installation_id = db.Column(db.Integer, db.ForeignKey('store_installations.id'))
    shop_domain = db.Column(db.String(255), nullable=False, index=True)
    topic = db.Column(db.String(100), nullable=False)
    webhook_id = db.Column(db.String(100))  # X-Shopify-Webhook-Id
    payload = db.Column(db.JSON, default=dict)

    processed = db.Column(db.Boolean, default=False)
    processed_at = db.Column(db.DateTime)
    error = db.Column(db.Text)
    received_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'shop_domain': self.shop_domain,
            'topic': self.topic,
            'webhook_id': self.webhook_id,
            'processed': self.processed,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'error': self.error,
            'received_at': self.received_at.isoformat() if self.received_at else None,
        }


class GdprRequest(db.Model):
    """Shopify compliance webhook (data request, customer redact, shop redact) and its outcome."""
    __tablename__ = 'shopify_gdpr_requests'

    id = db.Column(db.Integer, primary_key=True)
    shop_domain = db.Column(db.String(255), nullable=False, index=True)
    topic = db.Column(db.String(50), nullable=False)
    payload = db.Column(db.JSON, default=dict)
    status = db.Column(db.String(30), default='received')  # received, data_collected, redacted, shop_redacted, failed
    collected_data = db.Column(db.JSON)
    error = db.Column(db.Text)

    received_at = db.Column(db.DateTime, default=datetime.utcnow)
    processed_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'shop_domain': self.shop_domain,
            'topic': self.topic,
            'status': self.status,
            'received_at': self.received_at.isoformat() if self.received_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }
