"""
Shopify mandatory compliance webhooks.

- customers/data_request: collect what is stored about the customer
- customers/redact: strip the customer's personal data from members and orders
- shop/redact: revoke the store and delete its orders and webhook log

Every request is recorded as a GdprRequest whose status tracks the outcome.
Member rows are anonymised rather than deleted so enrollments, vouchers and
points history stay consistent.
"""
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from ..extensions import db
from ..models import GdprRequest, Member, ShopifyOrder, ShopifyWebhookEvent, StoreInstallation
from .member_service import normalize_email
from .shopify_client import normalize_shop_domain

logger = logging.getLogger(__name__)

TOPIC_DATA_REQUEST = 'customers/data_request'
TOPIC_CUSTOMER_REDACT = 'customers/redact'
TOPIC_SHOP_REDACT = 'shop/redact'

GDPR_TOPICS = (TOPIC_DATA_REQUEST, TOPIC_CUSTOMER_REDACT, TOPIC_SHOP_REDACT)


class GdprService:
    """Handles compliance requests for one shop."""

    def __init__(self, shop_domain: str):
        self.shop_domain = normalize_shop_domain(shop_domain)

    def installations(self) -> List[StoreInstallation]:
        return StoreInstallation.query.filter_by(shop_domain=self.shop_domain).all()

    def client_ids(self) -> List[int]:
        return sorted({i.client_id for i in self.installations()})

    def installation_ids(self) -> List[int]:
        return [i.id for i in self.installations()]

    def _customer(self, payload: Dict[str, Any]):
        customer = payload.get('customer') or {}
        email = normalize_email(customer.get('email'))
        external_id = str(customer['id']) if customer.get('id') is not None else None
        return email, external_id

    def find_members(self, email: Optional[str], external_id: Optional[str]) -> List[Member]:
        client_ids = self.client_ids()
        if not client_ids or not (email or external_id):
            return []

        matches = []
        if email:
            matches.append(Member.email == email)
        if external_id:
            matches.append(Member.external_id == external_id)
        return Member.query.filter(Member.client_id.in_(client_ids), db.or_(*matches)).all()

    def find_orders(self, email: Optional[str], order_ids: List[Any], member_ids: List[int]) -> List[ShopifyOrder]:
        installation_ids = self.installation_ids()
        if not installation_ids:
            return []

        matches = []
        if email:
            matches.append(ShopifyOrder.customer_email == email)
        if order_ids:
            matches.append(ShopifyOrder.order_id.in_([str(o) for o in order_ids]))
        if member_ids:
            matches.append(ShopifyOrder.member_id.in_(member_ids))
        if not matches:
            return []
        return ShopifyOrder.query.filter(
            ShopifyOrder.store_installation_id.in_(installation_ids), db.or_(*matches)
        ).all()

    def handle(self, topic: str, payload: Dict[str, Any], now: datetime = None) -> GdprRequest:
        """
        Record and process one compliance webhook. Processing errors mark the
        request failed and are not raised.
        """
        now = now or datetime.utcnow()
        request_row = GdprRequest(
            shop_domain=self.shop_domain,
            topic=topic,
            payload=payload,
            status='received',
            received_at=now,
        )
        db.session.add(request_row)
        db.session.commit()

        handlers = {
            TOPIC_DATA_REQUEST: self.collect_customer_data,
            TOPIC_CUSTOMER_REDACT: self.redact_customer,
            TOPIC_SHOP_REDACT: self.redact_shop,
        }
        handler = handlers.get(topic)
        if handler is None:
            logger.warning(f"[GDPR] Unknown topic {topic} from {self.shop_domain}")
            return request_row

        try:
            handler(request_row, payload, now)
            request_row.processed_at = now
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"[GDPR] {topic} for {self.shop_domain} failed: {e}")
            request_row.status = 'failed'
            request_row.error = str(e)
            request_row.processed_at = now
            db.session.commit()

        logger.info(f"[GDPR] {topic} for {self.shop_domain}: {request_row.status}")
        return request_row

    def collect_customer_data(self, request_row: GdprRequest, payload: Dict[str, Any], now: datetime) -> None:
        email, external_id = self._customer(payload)
        members = self.find_members(email, external_id)
        orders = self.find_orders(email, payload.get('orders_requested') or [], [m.id for m in members])

        request_row.collected_data = {
            'customer_email': email,
            'customer_shopify_id': external_id,
            'shop_domain': self.shop_domain,
            'data_requested_at': now.isoformat(),
            'members': [m.to_dict() for m in members],
            'orders': [o.to_dict() for o in orders],
        }
        request_row.status = 'data_collected'

    def redact_customer(self, request_row: GdprRequest, payload: Dict[str, Any], now: datetime) -> None:
        email, external_id = self._customer(payload)
        members = self.find_members(email, external_id)
        orders = self.find_orders(email, payload.get('orders_to_redact') or [], [m.id for m in members])

        stamp = int(now.timestamp())
        for member in members:
            member.email = f"redacted_{member.id}_{stamp}@deleted.invalid"
            member.full_name = 'Redacted Customer'
            member.phone = None
            member.birthday = None
            member.is_active = False

        for order in orders:
            order.customer_email = None
            order.customer_phone = None
            order.raw_payload = {'gdpr_redacted': True, 'redacted_at': now.isoformat()}

        request_row.status = 'redacted'
        logger.info(f"[GDPR] Redacted {len(members)} members and {len(orders)} orders for {self.shop_domain}")

    def redact_shop(self, request_row: GdprRequest, payload: Dict[str, Any], now: datetime) -> None:
        installations = self.installations()
        installation_ids = [i.id for i in installations]

        for installation in installations:
            installation.installation_status = 'revoked'
            installation.access_token = None

        orders = 0
        events = 0
        if installation_ids:
            orders = ShopifyOrder.query.filter(
                ShopifyOrder.store_installation_id.in_(installation_ids)
            ).delete(synchronize_session=False)
            events = ShopifyWebhookEvent.query.filter(
                ShopifyWebhookEvent.store_installation_id.in_(installation_ids)
            ).delete(synchronize_session=False)

        request_row.status = 'shop_redacted'
        logger.info(
            f"[GDPR] Shop {self.shop_domain} redacted: {len(installations)} installations revoked, "
            f"{orders} orders and {events} webhook events deleted"
        )
