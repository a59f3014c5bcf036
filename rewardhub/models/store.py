"""
Shopify storefront models: installations and their webhooks, plugins,
staff users, plus orders received by webhook.
"""
from datetime import datetime
from ..extensions import db


class StoreInstallation(db.Model):
    """
    One row per connected storefront.
    Upserted on every OAuth callback, keyed by (client_id, shop_domain).
    """
    __tablename__ = 'store_installations'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)

    platform = db.Column(db.String(30), default='shopify')
    shop_domain = db.Column(db.String(255), nullable=False, index=True)
    shop_name = db.Column(db.String(255))
    shop_email = db.Column(db.String(255))
    shop_currency = db.Column(db.String(10))
    shop_plan = db.Column(db.String(50))

    access_token = db.Column(db.Text)  # Encrypted in production
    scopes = db.Column(db.Text)
    api_version = db.Column(db.String(20), default='2024-01')

    installation_status = db.Column(db.String(20), default='active')  # active, uninstalled
    webhooks_registered = db.Column(db.Boolean, default=False)
    webhook_health_status = db.Column(db.String(20), default='unknown')  # healthy, degraded, unknown
    billing_plan = db.Column(db.String(30), default='free')
    app_settings = db.Column(db.JSON, default=dict)
    installation_metadata = db.Column(db.JSON, default=dict)

    installed_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_sync_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    webhooks = db.relationship('StoreWebhook', backref='installation', lazy='dynamic',
                               cascade='all, delete-orphan')
    plugins = db.relationship('StorePlugin', backref='installation', lazy='dynamic',
                              cascade='all, delete-orphan')
    users = db.relationship('StoreUser', backref='installation', lazy='dynamic',
                            cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('client_id', 'shop_domain', name='uq_client_shop_domain'),
    )

    def __repr__(self):
        return f'<StoreInstallation {self.shop_domain}>'

    def to_dict(self):
        return {
            'id': self.id,
            'client_id': self.client_id,
            'platform': self.platform,
            'shop_domain': self.shop_domain,
            'shop_name': self.shop_name,
            'shop_email': self.shop_email,
            'scopes': self.scopes,
            'api_version': self.api_version,
            'installation_status': self.installation_status,
            'webhooks_registered': self.webhooks_registered,
            'webhook_health_status': self.webhook_health_status,
            'billing_plan': self.billing_plan,
            'app_settings': self.app_settings or {},
            'installed_at': self.installed_at.isoformat() if self.installed_at else None,
        }


class StoreWebhook(db.Model):
    """Registration status of one webhook topic for an installation."""
    __tablename__ = 'store_webhooks'

    id = db.Column(db.Integer, primary_key=True)
    store_installation_id = db.Column(db.Integer, db.ForeignKey('store_installations.id'), nullable=False)
    webhook_topic = db.Column(db.String(100), nullable=False)
    webhook_id = db.Column(db.String(50))  # Shopify's webhook ID
    webhook_address = db.Column(db.String(500))
    status = db.Column(db.String(20), default='active')  # active, failed
    last_error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('store_installation_id', 'webhook_topic', name='uq_installation_webhook_topic'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'webhook_topic': self.webhook_topic,
            'webhook_id': self.webhook_id,
            'webhook_address': self.webhook_address,
            'status': self.status,
            'last_error': self.last_error,
        }


class StorePlugin(db.Model):
    """Feature module enabled for an installation."""
    __tablename__ = 'store_plugins'

    id = db.Column(db.Integer, primary_key=True)
    store_installation_id = db.Column(db.Integer, db.ForeignKey('store_installations.id'), nullable=False)
    plugin_type = db.Column(db.String(50), nullable=False)
    plugin_name = db.Column(db.String(255))
    plugin_version = db.Column(db.String(20), default='1.0.0')
    is_enabled = db.Column(db.Boolean, default=True)
    configuration = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('store_installation_id', 'plugin_type', name='uq_installation_plugin_type'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'plugin_type': self.plugin_type,
            'plugin_name': self.plugin_name,
            'plugin_version': self.plugin_version,
            'is_enabled': self.is_enabled,
        }


class StoreUser(db.Model):
    """Store staff account (the shop owner becomes master_admin on install)."""
    __tablename__ = 'store_users'

    id = db.Column(db.Integer, primary_key=True)
    store_installation_id = db.Column(db.Integer, db.ForeignKey('store_installations.id'), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(30), default='staff')  # master_admin, admin, staff
    permissions = db.Column(db.JSON, default=dict)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('store_installation_id', 'email', name='uq_installation_user_email'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'permissions': self.permissions or {},
            'is_active': self.is_active,
        }


class ShopifyOrder(db.Model):
    """Order received through the orders/* webhooks."""
    __tablename__ = 'shopify_orders'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)
    store_installation_id = db.Column(db.Integer, db.ForeignKey('store_installations.id'))
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'))

    order_id = db.Column(db.String(50), nullable=False)
    order_number = db.Column(db.String(50))
    customer_email = db.Column(db.String(255))
    customer_phone = db.Column(db.String(50))
    total_price = db.Column(db.Numeric(12, 2))
    currency = db.Column(db.String(10))
    financial_status = db.Column(db.String(30))
    fulfillment_status = db.Column(db.String(30))
    raw_payload = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('client_id', 'order_id', name='uq_client_order'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'order_number': self.order_number,
            'customer_email': self.customer_email,
            'total_price': float(self.total_price) if self.total_price is not None else None,
            'currency': self.currency,
            'financial_status': self.financial_status,
            'member_id': self.member_id,
        }
