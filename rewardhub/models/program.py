"""
Rewards catalog and membership program models.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from ..extensions import db


class EnrollmentType(str, Enum):
    """How members get into a program."""
    MANUAL = 'manual'
    AUTOMATIC = 'automatic'
    HYBRID = 'hybrid'
    INVITE_ONLY = 'invite_only'


class Reward(db.Model):
    """
    A reward offered to members, optionally supplied by a partner brand.
    """
    __tablename__ = 'rewards'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)
    brand_id = db.Column(db.Integer, db.ForeignKey('brands.id'))

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    reward_type = db.Column(db.String(30), default='discount')  # discount, free_product, experience
    discount_value = db.Column(db.Numeric(10, 2))
    discount_type = db.Column(db.String(20), default='fixed_amount')  # fixed_amount, percentage
    min_purchase_amount = db.Column(db.Numeric(10, 2))
    points_cost = db.Column(db.Integer)  # null = not purchasable with points

    # Voucher codes: 'generic' shares one code, 'unique' generates per voucher
    coupon_type = db.Column(db.String(20), default='unique')
    generic_coupon_code = db.Column(db.String(100))
    redemption_link = db.Column(db.String(500))

    status = db.Column(db.String(20), default='active')  # draft, pending, active, inactive, expired
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Reward {self.title}>'

    def to_dict(self):
        return {
            'id': self.id,
            'client_id': self.client_id,
            'brand_id': self.brand_id,
            'brand_name': self.brand.name if self.brand else None,
            'title': self.title,
            'description': self.description,
            'reward_type': self.reward_type,
            'discount_value': float(self.discount_value) if self.discount_value is not None else None,
            'discount_type': self.discount_type,
            'min_purchase_amount': (
                float(self.min_purchase_amount) if self.min_purchase_amount is not None else None
            ),
            'points_cost': self.points_cost,
            'coupon_type': self.coupon_type,
            'redemption_link': self.redemption_link,
            'status': self.status,
        }


class MembershipProgram(db.Model):
    """
    Tenant-scoped reward program members enroll in.

    Soft-disabled through is_active; rows with enrollments are never deleted.
    """
    __tablename__ = 'membership_programs'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    validity_days = db.Column(db.Integer, nullable=False, default=365)
    enrollment_type = db.Column(db.String(20), default=EnrollmentType.AUTOMATIC.value)
    fee = db.Column(db.Numeric(10, 2), default=Decimal('0'))
    max_rewards_total = db.Column(db.Integer)      # null = no cap
    max_rewards_per_brand = db.Column(db.Integer)  # null = no cap
    auto_renew = db.Column(db.Boolean, default=False)
    eligibility_criteria = db.Column(db.JSON, default=dict)

    is_active = db.Column(db.Boolean, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    program_rewards = db.relationship(
        'ProgramReward', backref='program', lazy='dynamic', cascade='all, delete-orphan'
    )
    enrollments = db.relationship('Enrollment', backref='program', lazy='dynamic')
    campaign_rules = db.relationship('CampaignRule', backref='program', lazy='dynamic')

    def __repr__(self):
        return f'<MembershipProgram {self.name}>'

    def to_dict(self, include_rewards=False):
        data = {
            'id': self.id,
            'client_id': self.client_id,
            'name': self.name,
            'description': self.description,
            'validity_days': self.validity_days,
            'enrollment_type': self.enrollment_type,
            'fee': float(self.fee or 0),
            'max_rewards_total': self.max_rewards_total,
            'max_rewards_per_brand': self.max_rewards_per_brand,
            'auto_renew': self.auto_renew,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

        if include_rewards:
            data['rewards'] = [pr.to_dict() for pr in self.program_rewards]

        return data


class ProgramReward(db.Model):
    """Reward attached to a program with a per-member quantity limit."""
    __tablename__ = 'membership_program_rewards'

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('membership_programs.id'), nullable=False)
    reward_id = db.Column(db.Integer, db.ForeignKey('rewards.id'), nullable=False)
    quantity_limit = db.Column(db.Integer)  # null = 1 per member
    is_active = db.Column(db.Boolean, default=True)
    added_at = db.Column(db.DateTime, default=datetime.utcnow)

    reward = db.relationship('Reward')

    __table_args__ = (
        db.UniqueConstraint('program_id', 'reward_id', name='uq_program_reward'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'program_id': self.program_id,
            'reward': self.reward.to_dict() if self.reward else None,
            'quantity_limit': self.quantity_limit,
            'is_active': self.is_active,
        }
