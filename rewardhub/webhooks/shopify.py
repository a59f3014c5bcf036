"""
Shopify webhook receiver.

All topics registered at install time arrive at POST /webhook/shopify and are
routed on X-Shopify-Topic:
- orders/create, orders/updated, orders/paid: record the order, award points and run order campaigns
- customers/create: create the member and run signup campaigns
- customers/update: refresh member contact details

Each accepted delivery is logged as a ShopifyWebhookEvent.

The mandatory compliance topics arrive at POST /webhook/shopify/gdpr.
"""
import logging
from datetime import datetime

from flask import Blueprint, request, jsonify

from ..extensions import db
from ..models import ShopifyWebhookEvent, StoreInstallation
from ..middleware.shopify_hmac import require_webhook_hmac
from ..services.campaign_service import CampaignService
from ..services.gdpr_service import GdprService
from ..services.shopify_client import normalize_shop_domain
from ..utils.exceptions import RewardHubError

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__)

ORDER_TOPICS = ('orders/create', 'orders/updated', 'orders/paid')


def get_installation_from_request():
    """Active installation for the X-Shopify-Shop-Domain header."""
    shop_domain = normalize_shop_domain(request.headers.get('X-Shopify-Shop-Domain', ''))
    if not shop_domain:
        return None
    return StoreInstallation.query.filter_by(
        shop_domain=shop_domain,
        platform='shopify',
        installation_status='active',
    ).first()


def record_event(installation, topic, payload):
    event = ShopifyWebhookEvent(
        store_installation_id=installation.id,
        shop_domain=installation.shop_domain,
        topic=topic,
        webhook_id=request.headers.get('X-Shopify-Webhook-Id'),
        payload=payload,
        processed=False,
    )
    db.session.add(event)
    db.session.commit()
    return event


def finish_event(event, error=None):
    """Mark the logged delivery processed, or store why it failed."""
    event = db.session.get(ShopifyWebhookEvent, event.id)
    event.processed = error is None
    event.processed_at = datetime.utcnow()
    event.error = error
    db.session.commit()


@webhooks_bp.route('/webhook/shopify', methods=['POST'])
@require_webhook_hmac
def handle_shopify_webhook():
    topic = request.headers.get('X-Shopify-Topic', '')
    shop_domain = request.headers.get('X-Shopify-Shop-Domain', '')

    installation = get_installation_from_request()
    if not installation:
        logger.warning(f"[Webhook] {topic} from unknown shop {shop_domain}")
        return jsonify({'error': 'Shop not installed'}), 404

    payload = request.get_json(silent=True) or {}
    service = CampaignService(installation.client_id)
    event = record_event(installation, topic, payload)

    logger.info(f"[Webhook] {topic} from {shop_domain}")

    try:
        if topic in ORDER_TOPICS:
            result = service.process_order(installation, payload)
        elif topic == 'customers/create':
            result = service.process_signup(installation, payload)
        elif topic == 'customers/update':
            member = service.sync_customer(payload)
            result = {'processed': member is not None, 'member_id': member.id if member else None}
        else:
            # Acknowledge so Shopify does not retry topics we ignore
            logger.info(f"[Webhook] Ignoring topic {topic} from {shop_domain}")
            finish_event(event)
            return jsonify({'success': True, 'ignored': True, 'topic': topic})
    except RewardHubError as e:
        db.session.rollback()
        logger.warning(f"[Webhook] {topic} from {shop_domain} rejected: {e.message}")
        finish_event(event, e.message)
        return jsonify({'success': False, 'error': e.message, 'code': e.code}), e.status_code
    except Exception as e:
        db.session.rollback()
        logger.error(f"[Webhook] {topic} from {shop_domain} failed: {e}")
        finish_event(event, str(e))
        return jsonify({'success': False, 'error': 'Webhook processing failed'}), 500

    finish_event(event)
    return jsonify({'success': True, 'topic': topic, **result})


@webhooks_bp.route('/webhook/shopify/gdpr', methods=['POST'])
@require_webhook_hmac
def handle_gdpr_webhook():
    """
    Compliance webhooks. Always answers 200 once the signature checks out;
    the outcome is kept on the GdprRequest row.
    """
    topic = request.headers.get('X-Shopify-Topic', '')
    payload = request.get_json(silent=True) or {}
    shop_domain = request.headers.get('X-Shopify-Shop-Domain') or payload.get('shop_domain') or ''

    logger.info(f"[GDPR] Received {topic} for shop {shop_domain}")
    GdprService(shop_domain).handle(topic, payload)

    return jsonify({'received': True, 'topic': topic})
