"""
Shopify app install orchestrator.

Runs on every OAuth callback as a sequential, best-effort pipeline:

1. Exchange the OAuth code for an access token (hard fail)
2. Fetch shop details (falls back to values derived from the domain)
3. Resolve the client and upsert the store installation (hard fail)
4. Register webhook topics, recording each as active or failed
5. Install the default plugins
6. Create the master admin store user

Steps 4-6 log failures and continue. Nothing is rolled back: a store with
some failed webhooks stays active with webhook_health_status 'degraded'.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Client, StoreInstallation, StoreWebhook, StorePlugin, StoreUser
from ..utils.exceptions import InstallError, ShopifyError, ValidationError
from .shopify_client import ShopifyClient, exchange_code_for_token, normalize_shop_domain

logger = logging.getLogger(__name__)


WEBHOOK_TOPICS = [
    'orders/create',
    'orders/updated',
    'orders/paid',
    'customers/create',
    'customers/update',
]

DEFAULT_PLUGINS = [
    {'type': 'loyalty', 'name': 'Loyalty Points System', 'version': '1.0.0'},
    {'type': 'rewards', 'name': 'Rewards Program', 'version': '1.0.0'},
    {'type': 'referral', 'name': 'Referral Program', 'version': '1.0.0'},
    {'type': 'campaigns', 'name': 'Campaign Management', 'version': '1.0.0'},
]

MASTER_ADMIN_PERMISSIONS = {
    'full_access': True,
    'can_manage_users': True,
    'can_manage_plugins': True,
    'can_view_analytics': True,
    'can_manage_webhooks': True,
}

DEFAULT_APP_SETTINGS = {
    'auto_create_members': True,
    'auto_assign_rewards': True,
    'email_notifications': True,
}


@dataclass
class WebhookResult:
    """Outcome of registering one webhook topic."""
    topic: str
    success: bool
    webhook_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class InstallResult:
    """Outcome of an install run."""
    shop_domain: str
    client_id: Optional[int] = None
    installation_id: Optional[int] = None
    is_new_client: bool = False
    shop_details_fallback: bool = False
    webhooks_registered: bool = False
    webhook_health_status: str = 'unknown'
    webhook_results: List[WebhookResult] = field(default_factory=list)
    plugins_installed: int = 0
    master_admin_created: bool = False

    @property
    def webhooks_succeeded(self) -> int:
        return sum(1 for r in self.webhook_results if r.success)


def fallback_shop_details(shop: str) -> Dict[str, Any]:
    """Shop details derived from the domain when the Shopify lookup fails."""
    return {
        'name': shop.replace('.myshopify.com', ''),
        'domain': shop,
    }


def webhook_address() -> str:
    return f"{current_app.config['APP_URL']}/webhook/shopify"


class InstallService:
    """Orchestrates a Shopify app installation."""

    def __init__(self, shop: str, state: Optional[Dict[str, Any]] = None):
        self.shop = normalize_shop_domain(shop)
        self.state = state or {}

    def state_client_id(self) -> Optional[int]:
        value = self.state.get('client_id')
        if value in (None, ''):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError('client_id in OAuth state must be an integer', 'client_id')

    def install(self, code: str) -> InstallResult:
        """
        Run the full install pipeline.

        Raises:
            ValidationError: State names a malformed client_id
            ShopifyError: Token exchange failed
            InstallError: Client or installation could not be saved
        """
        result = InstallResult(shop_domain=self.shop)
        logger.info(f"[Install] Starting install for {self.shop}")
        self.state_client_id()

        # Step 1: access token
        token_data = exchange_code_for_token(self.shop, code)
        access_token = token_data['access_token']
        scopes = token_data.get('scope') or current_app.config.get('SHOPIFY_SCOPES')
        logger.info(f"[Install] Access token obtained for {self.shop}")

        shopify = ShopifyClient(self.shop, access_token)

        # Step 2: shop details
        shop_details = self.fetch_shop_details(shopify)
        result.shop_details_fallback = 'id' not in shop_details

        # Step 3: client + installation
        try:
            client, created = self.resolve_client(shop_details)
            installation = self.upsert_installation(client, shop_details, access_token, scopes)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"[Install] Failed to save installation for {self.shop}: {e}")
            raise InstallError(f"Failed to save store installation: {e}")

        result.client_id = client.id
        result.installation_id = installation.id
        result.is_new_client = created
        logger.info(f"[Install] Installation {installation.id} saved for client {client.id}")

        # Step 4: webhooks
        result.webhook_results = self.register_webhooks(shopify, installation)
        result.webhooks_registered = installation.webhooks_registered
        result.webhook_health_status = installation.webhook_health_status

        # Step 5: plugins
        result.plugins_installed = self.install_default_plugins(installation)

        # Step 6: master admin
        result.master_admin_created = self.create_master_admin(installation, shop_details)

        logger.info(
            f"[Install] Completed install for {self.shop}: "
            f"webhooks {result.webhooks_succeeded}/{len(WEBHOOK_TOPICS)} ({result.webhook_health_status}), "
            f"plugins {result.plugins_installed}, master admin {result.master_admin_created}"
        )
        return result

    def fetch_shop_details(self, shopify: ShopifyClient) -> Dict[str, Any]:
        try:
            details = shopify.get_shop()
            if details:
                return details
            logger.warning(f"[Install] Empty shop details for {self.shop}, using fallback")
        except ShopifyError as e:
            logger.warning(f"[Install] Could not fetch shop details for {self.shop}: {e.message}")
        return fallback_shop_details(self.shop)

    def resolve_client(self, shop_details: Dict[str, Any]):
        """
        Client for this install: the one named in the OAuth state, else the
        owner of an existing installation of this shop, else a new client.

        Returns:
            (client, created)
        """
        state_client_id = self.state_client_id()
        if state_client_id:
            client = db.session.get(Client, state_client_id)
            if client:
                return client, False
            logger.warning(f"[Install] Client {state_client_id} from state not found, resolving by shop")

        existing = StoreInstallation.query.filter_by(shop_domain=self.shop).order_by(
            StoreInstallation.installed_at.desc()
        ).first()
        if existing and existing.client:
            return existing.client, False

        client = Client(
            name=shop_details.get('name') or self.shop,
            email=shop_details.get('email') or f"{self.shop.split('.')[0]}@shopify.com",
            phone=shop_details.get('phone'),
            company_name=shop_details.get('name'),
            status='active',
            client_metadata={
                'source': 'shopify_auto_install',
                'shop_domain': self.shop,
                'installed_at': datetime.utcnow().isoformat(),
            },
        )
        db.session.add(client)
        db.session.flush()
        logger.info(f"[Install] Created client {client.id} for {self.shop}")
        return client, True

    def upsert_installation(
        self,
        client: Client,
        shop_details: Dict[str, Any],
        access_token: str,
        scopes: str,
    ) -> StoreInstallation:
        installation = StoreInstallation.query.filter_by(
            client_id=client.id, shop_domain=self.shop
        ).first()

        if not installation:
            installation = StoreInstallation(
                client_id=client.id,
                shop_domain=self.shop,
                platform='shopify',
                billing_plan='free',
                app_settings=dict(DEFAULT_APP_SETTINGS),
                installed_at=datetime.utcnow(),
            )
            db.session.add(installation)

        installation.shop_name = shop_details.get('name')
        installation.shop_email = shop_details.get('email')
        installation.shop_currency = shop_details.get('currency')
        installation.shop_plan = shop_details.get('plan_name')
        installation.access_token = access_token
        installation.scopes = scopes
        installation.api_version = current_app.config.get('SHOPIFY_API_VERSION', '2024-01')
        installation.installation_status = 'active'
        installation.last_sync_at = datetime.utcnow()
        installation.installation_metadata = {
            'shop_id': shop_details.get('id'),
            'shop_owner': shop_details.get('shop_owner'),
            'timezone': shop_details.get('iana_timezone'),
            'country': shop_details.get('country_code'),
        }

        db.session.flush()
        return installation

    def register_webhooks(self, shopify: ShopifyClient, installation: StoreInstallation) -> List[WebhookResult]:
        """
        Register every topic in WEBHOOK_TOPICS, one at a time, no retries.

        webhooks_registered is set when at least one topic succeeded;
        health is 'healthy' only when all did.
        """
        address = webhook_address()
        results = []

        for topic in WEBHOOK_TOPICS:
            try:
                webhook = shopify.create_webhook(topic, address)
                webhook_id = str(webhook['id']) if webhook.get('id') is not None else None
                results.append(WebhookResult(topic=topic, success=True, webhook_id=webhook_id))
                logger.info(f"[Install] Webhook registered for {self.shop}: {topic} (ID: {webhook_id})")
            except ShopifyError as e:
                results.append(WebhookResult(topic=topic, success=False, error=e.message))
                logger.error(f"[Install] Failed to register webhook {topic} for {self.shop}: {e.message}")

            self._record_webhook(installation, address, results[-1])

        success_count = sum(1 for r in results if r.success)
        installation.webhooks_registered = success_count > 0
        installation.webhook_health_status = 'healthy' if success_count == len(WEBHOOK_TOPICS) else 'degraded'
        db.session.commit()

        logger.info(f"[Install] Webhooks registered for {self.shop}: {success_count}/{len(WEBHOOK_TOPICS)}")
        return results

    def _record_webhook(self, installation: StoreInstallation, address: str, outcome: WebhookResult) -> None:
        row = StoreWebhook.query.filter_by(
            store_installation_id=installation.id, webhook_topic=outcome.topic
        ).first()
        if not row:
            row = StoreWebhook(store_installation_id=installation.id, webhook_topic=outcome.topic)
            db.session.add(row)

        row.webhook_address = address
        if outcome.success:
            row.status = 'active'
            row.webhook_id = outcome.webhook_id
            row.last_error = None
        else:
            row.status = 'failed'
            row.last_error = outcome.error

    def install_default_plugins(self, installation: StoreInstallation) -> int:
        """Upsert DEFAULT_PLUGINS. Errors are logged, never raised."""
        try:
            for plugin in DEFAULT_PLUGINS:
                row = StorePlugin.query.filter_by(
                    store_installation_id=installation.id, plugin_type=plugin['type']
                ).first()
                if not row:
                    row = StorePlugin(store_installation_id=installation.id, plugin_type=plugin['type'])
                    db.session.add(row)
                row.plugin_name = plugin['name']
                row.plugin_version = plugin['version']
                row.is_enabled = True
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"[Install] Error installing plugins for {self.shop}: {e}")
            return 0

        logger.info(f"[Install] Installed {len(DEFAULT_PLUGINS)} default plugins for {self.shop}")
        return len(DEFAULT_PLUGINS)

    def create_master_admin(self, installation: StoreInstallation, shop_details: Dict[str, Any]) -> bool:
        """
        Create the shop owner as master_admin. Skipped without a shop email;
        an existing user with that email is left untouched.
        """
        email = shop_details.get('email')
        if not email:
            logger.info(f"[Install] No shop email for {self.shop}, skipping master admin")
            return False

        try:
            existing = StoreUser.query.filter_by(
                store_installation_id=installation.id, email=email
            ).first()
            if existing:
                return True

            db.session.add(StoreUser(
                store_installation_id=installation.id,
                email=email,
                full_name=shop_details.get('shop_owner') or shop_details.get('name'),
                role='master_admin',
                permissions=dict(MASTER_ADMIN_PERMISSIONS),
                is_active=True,
            ))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"[Install] Error creating master admin for {self.shop}: {e}")
            return False

        logger.info(f"[Install] Master admin created for {self.shop}: {email}")
        return True
