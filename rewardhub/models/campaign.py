"""
Campaign rule models.

A campaign rule binds a membership program to a trigger (order value, order
count, signup, referral, birthday or a custom event) so matching customer
events enroll the customer automatically.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class TriggerType(str, Enum):
    """Events a campaign rule can react to."""
    ORDER_VALUE = 'order_value'
    ORDER_COUNT = 'order_count'
    SIGNUP = 'signup'
    REFERRAL = 'referral'
    BIRTHDAY = 'birthday'
    CUSTOM_EVENT = 'custom_event'


class TriggerLogStatus(str, Enum):
    """Outcome of evaluating one rule against one event."""
    SUCCESS = 'success'
    ALREADY_ENROLLED = 'already_enrolled'
    MAX_REACHED = 'max_reached'
    NO_MEMBER = 'no_member'
    NOT_MATCHED = 'not_matched'
    EXCLUDED = 'excluded'
    FAILED = 'failed'


class CampaignRule(db.Model):
    """
    Automated enrollment rule for a membership program.

    trigger_conditions holds the rule parameters, e.g.
    {"min_order_value": "100.00"} or {"custom_field": "tier", "custom_value": "vip"}.
    exclusion_rules holds boolean flags checked against the raw order:
    exclude_refunded, exclude_cancelled, exclude_test_orders.
    """
    __tablename__ = 'campaign_rules'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('membership_programs.id'), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    trigger_type = db.Column(db.String(30), nullable=False)
    trigger_conditions = db.Column(db.JSON, default=dict)
    exclusion_rules = db.Column(db.JSON, default=dict)

    priority = db.Column(db.Integer, default=0)
    start_date = db.Column(db.DateTime)  # null = open
    end_date = db.Column(db.DateTime)    # null = open

    max_enrollments = db.Column(db.Integer)  # null = unlimited
    current_enrollments = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    logs = db.relationship('CampaignTriggerLog', backref='campaign_rule', lazy='dynamic')

    def __repr__(self):
        return f'<CampaignRule {self.name} ({self.trigger_type})>'

    @property
    def is_full(self) -> bool:
        return self.max_enrollments is not None and self.current_enrollments >= self.max_enrollments

    def is_live(self, now: datetime = None) -> bool:
        """Active flag set and now within the (open-ended) date window."""
        now = now or datetime.utcnow()
        if not self.is_active:
            return False
        if self.start_date and self.start_date > now:
            return False
        if self.end_date and self.end_date < now:
            return False
        return True

    def to_dict(self):
        return {
            'id': self.id,
            'client_id': self.client_id,
            'program_id': self.program_id,
            'program_name': self.program.name if self.program else None,
            'name': self.name,
            'description': self.description,
            'trigger_type': self.trigger_type,
            'trigger_conditions': self.trigger_conditions or {},
            'exclusion_rules': self.exclusion_rules or {},
            'priority': self.priority,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'max_enrollments': self.max_enrollments,
            'current_enrollments': self.current_enrollments,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class CampaignTriggerLog(db.Model):
    """Audit row for each rule evaluated against a customer event."""
    __tablename__ = 'campaign_trigger_logs'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)
    campaign_rule_id = db.Column(db.Integer, db.ForeignKey('campaign_rules.id'), index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'))
    enrollment_id = db.Column(db.Integer, db.ForeignKey('member_memberships.id'))

    trigger_type = db.Column(db.String(30))
    order_id = db.Column(db.String(100))
    customer_email = db.Column(db.String(255))
    status = db.Column(db.String(30), nullable=False)
    reason = db.Column(db.Text)
    log_metadata = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'campaign_rule_id': self.campaign_rule_id,
            'member_id': self.member_id,
            'enrollment_id': self.enrollment_id,
            'trigger_type': self.trigger_type,
            'order_id': self.order_id,
            'customer_email': self.customer_email,
            'status': self.status,
            'reason': self.reason,
            'metadata': self.log_metadata or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
