"""
Member, enrollment, allocation, voucher and redemption models.

The chain is Member -> Enrollment -> RewardAllocation -> Voucher -> Redemption.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class EnrollmentStatus(str, Enum):
    ACTIVE = 'active'
    PENDING = 'pending'
    EXPIRED = 'expired'
    REVOKED = 'revoked'


class VoucherStatus(str, Enum):
    AVAILABLE = 'available'
    REDEEMED = 'redeemed'
    EXPIRED = 'expired'
    REVOKED = 'revoked'


class Member(db.Model):
    """
    End consumer of a client's loyalty program.
    Identified by phone or email within the client; external_id links the
    Shopify customer when the member came from a storefront.
    """
    __tablename__ = 'members'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)

    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    full_name = db.Column(db.String(255))
    external_id = db.Column(db.String(50))  # Shopify customer ID
    birthday = db.Column(db.Date)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    enrollments = db.relationship('Enrollment', backref='member', lazy='dynamic')
    allocations = db.relationship('RewardAllocation', backref='member', lazy='dynamic')

    __table_args__ = (
        db.UniqueConstraint('client_id', 'email', name='uq_client_member_email'),
    )

    def __repr__(self):
        return f'<Member {self.email or self.phone}>'

    def to_dict(self):
        return {
            'id': self.id,
            'client_id': self.client_id,
            'email': self.email,
            'phone': self.phone,
            'full_name': self.full_name,
            'external_id': self.external_id,
            'birthday': self.birthday.isoformat() if self.birthday else None,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Enrollment(db.Model):
    """
    Time-bounded membership of a member in a program.

    At most one active, unexpired row per (member, program); the enrollment
    service checks this before inserting.
    """
    __tablename__ = 'member_memberships'

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('membership_programs.id'), nullable=False, index=True)
    campaign_rule_id = db.Column(db.Integer, db.ForeignKey('campaign_rules.id'))

    source = db.Column(db.String(30), default='manual')  # manual, campaign_auto, token_claim
    status = db.Column(db.String(20), default=EnrollmentStatus.ACTIVE.value)
    activated_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime)

    enrollment_metadata = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    allocations = db.relationship('RewardAllocation', backref='enrollment', lazy='dynamic')

    def __repr__(self):
        return f'<Enrollment member={self.member_id} program={self.program_id} {self.status}>'

    def is_current(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        if self.status != EnrollmentStatus.ACTIVE.value:
            return False
        return self.expires_at is None or self.expires_at > now

    def to_dict(self):
        return {
            'id': self.id,
            'member_id': self.member_id,
            'program_id': self.program_id,
            'program_name': self.program.name if self.program else None,
            'campaign_rule_id': self.campaign_rule_id,
            'source': self.source,
            'status': self.status,
            'activated_at': self.activated_at.isoformat() if self.activated_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'metadata': self.enrollment_metadata or {},
        }


class RewardAllocation(db.Model):
    """
    Quantity of a reward granted to a member through an enrollment.
    Invariant: quantity_redeemed <= quantity_allocated.
    """
    __tablename__ = 'member_rewards_allocation'

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    enrollment_id = db.Column(db.Integer, db.ForeignKey('member_memberships.id'), nullable=False)
    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'), nullable=False)

    quantity_allocated = db.Column(db.Integer, nullable=False, default=1)
    quantity_redeemed = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    reward = db.relationship('Reward')
    vouchers = db.relationship('Voucher', backref='allocation', lazy='dynamic')

    __table_args__ = (
        db.UniqueConstraint('enrollment_id', 'reward_id', name='uq_enrollment_reward'),
        db.CheckConstraint('quantity_redeemed <= quantity_allocated', name='ck_allocation_quantity'),
    )

    @property
    def quantity_remaining(self) -> int:
        return self.quantity_allocated - self.quantity_redeemed

    def to_dict(self):
        return {
            'id': self.id,
            'member_id': self.member_id,
            'enrollment_id': self.enrollment_id,
            'reward': self.reward.to_dict() if self.reward else None,
            'quantity_allocated': self.quantity_allocated,
            'quantity_redeemed': self.quantity_redeemed,
            'quantity_remaining': self.quantity_remaining,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
        }


class Voucher(db.Model):
    """
    Redeemable instance of an allocated reward.

    code is our unique internal reference. coupon_code is what the customer
    types at checkout: the reward's shared code for generic rewards, the
    voucher's own code for unique ones.
    """
    __tablename__ = 'vouchers'

    id = db.Column(db.Integer, primary_key=True)
    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False, index=True)
    allocation_id = db.Column(db.Integer, db.ForeignKey('member_rewards_allocation.id'), nullable=False)

    code = db.Column(db.String(100), unique=True, nullable=False)
    coupon_code = db.Column(db.String(100))
    status = db.Column(db.String(20), default=VoucherStatus.AVAILABLE.value)
    expires_at = db.Column(db.DateTime)
    redeemed_at = db.Column(db.DateTime)

    shopify_price_rule_id = db.Column(db.String(50))
    shopify_discount_code_id = db.Column(db.String(50))
    shopify_synced = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    reward = db.relationship('Reward')

    def __repr__(self):
        return f'<Voucher {self.code} {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'coupon_code': self.coupon_code or self.code,
            'reward_id': self.reward_id,
            'reward_title': self.reward.title if self.reward else None,
            'member_id': self.member_id,
            'status': self.status,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'redeemed_at': self.redeemed_at.isoformat() if self.redeemed_at else None,
            'shopify_synced': self.shopify_synced,
        }


class Redemption(db.Model):
    """Record of a voucher being used."""
    __tablename__ = 'redemptions'

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey('vouchers.id'), nullable=False, unique=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False)
    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'), nullable=False)

    redemption_channel = db.Column(db.String(30))  # online, in_store, partner
    redemption_location = db.Column(db.String(255))
    redemption_metadata = db.Column(db.JSON, default=dict)
    redeemed_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'voucher_id': self.voucher_id,
            'member_id': self.member_id,
            'reward_id': self.reward_id,
            'redemption_channel': self.redemption_channel,
            'redemption_location': self.redemption_location,
            'redeemed_at': self.redeemed_at.isoformat() if self.redeemed_at else None,
        }
