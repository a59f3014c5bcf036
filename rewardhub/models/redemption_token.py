"""
Redemption token model.

Single-use, expiring credential gating the public reward claim page.
"""
from datetime import datetime
from ..extensions import db


class RedemptionToken(db.Model):
    """
    Opaque token issued when a customer qualifies for a campaign.

    Valid iff used is false and now < expires_at.
    """
    __tablename__ = 'member_redemption_tokens'

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)

    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)
    campaign_rule_id = db.Column(db.Integer, db.ForeignKey('campaign_rules.id'), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'))  # filled on claim when unknown
    order_id = db.Column(db.String(100), index=True)
    customer_email = db.Column(db.String(255))

    redemption_url = db.Column(db.String(500))
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    campaign_rule = db.relationship('CampaignRule')
    member = db.relationship('Member')

    def __repr__(self):
        return f'<RedemptionToken {self.token[:8]}... used={self.used}>'

    def to_dict(self):
        return {
            'id': self.id,
            'token': self.token,
            'client_id': self.client_id,
            'campaign_rule_id': self.campaign_rule_id,
            'member_id': self.member_id,
            'order_id': self.order_id,
            'redemption_url': self.redemption_url,
            'used': self.used,
            'used_at': self.used_at.isoformat() if self.used_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
        }
