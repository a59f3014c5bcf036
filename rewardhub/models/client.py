"""
Tenant, partner brand and dashboard user models.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class UserRole(str, Enum):
    """Dashboard roles. Closed set: unknown role strings are rejected."""
    ADMIN = 'admin'
    CLIENT = 'client'
    BRAND = 'brand'
    MEMBER = 'member'

    @classmethod
    def parse(cls, value):
        """Return the matching role or None for anything outside the enum."""
        try:
            return cls(value)
        except ValueError:
            return None


class Client(db.Model):
    """
    Tenant organization running a loyalty program.
    Global table - every other tenant-scoped row points here.
    """
    __tablename__ = 'clients'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    company_name = db.Column(db.String(255))
    status = db.Column(db.String(20), default='active')  # active, suspended

    # Where the tenant came from, e.g. {"source": "shopify_auto_install", "shop_domain": ...}
    client_metadata = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    programs = db.relationship('MembershipProgram', backref='client', lazy='dynamic')
    members = db.relationship('Member', backref='client', lazy='dynamic')
    installations = db.relationship('StoreInstallation', backref='client', lazy='dynamic')

    def __repr__(self):
        return f'<Client {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'company_name': self.company_name,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Brand(db.Model):
    """Partner brand supplying rewards redeemable by members."""
    __tablename__ = 'brands'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_email = db.Column(db.String(255))
    logo_url = db.Column(db.String(500))
    status = db.Column(db.String(20), default='pending')  # pending, approved, rejected, suspended

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    rewards = db.relationship('Reward', backref='brand', lazy='dynamic')

    def __repr__(self):
        return f'<Brand {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contact_email': self.contact_email,
            'logo_url': self.logo_url,
            'status': self.status,
        }


class User(db.Model):
    """
    Dashboard account. Client users belong to a client, brand users to a brand.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(20), nullable=False, default=UserRole.CLIENT.value)

    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'))
    brand_id = db.Column(db.Integer, db.ForeignKey('brands.id'))

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'client_id': self.client_id,
            'brand_id': self.brand_id,
            'is_active': self.is_active,
        }
