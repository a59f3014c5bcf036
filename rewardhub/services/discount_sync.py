"""
Push RewardHub discount codes to Shopify as price rules.

A code bought with points (LoyaltyDiscountCode) or a voucher for a unique
discount reward only works at checkout once the store has a price rule
with a matching discount code. Each sync creates a single-use price rule
and its code; when the code cannot be created the price rule is deleted
again so the store is not left with an orphan.

Sync is best-effort after the local commit. Codes that fail stay
shopify_synced=False and are retried by `flask discounts sync`.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any

from flask import current_app

from ..extensions import db
from ..models import LoyaltyDiscountCode, StoreInstallation, Voucher
from ..utils.exceptions import ShopifyError, StateConflictError
from .shopify_client import ShopifyClient, normalize_shop_domain

logger = logging.getLogger(__name__)

DEFAULT_RULE_DAYS = 30


def build_price_rule(
    title: str,
    discount_type: str,
    value: Decimal,
    expires_at: Optional[datetime] = None,
    minimum_order_value: Optional[Decimal] = None,
    now: datetime = None,
) -> Dict[str, Any]:
    """Single-use, once-per-customer price rule over all line items."""
    now = now or datetime.utcnow()
    ends_at = expires_at or now + timedelta(days=DEFAULT_RULE_DAYS)

    rule = {
        'title': title,
        'target_type': 'line_item',
        'target_selection': 'all',
        'allocation_method': 'across',
        'value_type': 'percentage' if discount_type == 'percentage' else 'fixed_amount',
        'value': f"-{Decimal(value or 0):.2f}",
        'customer_selection': 'all',
        'starts_at': now.isoformat() + 'Z',
        'ends_at': ends_at.isoformat() + 'Z',
        'usage_limit': 1,
        'once_per_customer': True,
    }
    if minimum_order_value and minimum_order_value > 0:
        rule['prerequisite_subtotal_range'] = {
            'greater_than_or_equal_to': f"{Decimal(minimum_order_value):.2f}",
        }
    return rule


def installation_for(client_id: int, shop_domain: str = None) -> StoreInstallation:
    """Active installation with an access token, for the given shop or the client's first."""
    query = StoreInstallation.query.filter(
        StoreInstallation.client_id == client_id,
        StoreInstallation.installation_status == 'active',
        StoreInstallation.access_token.isnot(None),
    )
    if shop_domain:
        query = query.filter(StoreInstallation.shop_domain == normalize_shop_domain(shop_domain))
    installation = query.order_by(StoreInstallation.installed_at.desc()).first()
    if not installation:
        raise StateConflictError(f"No active Shopify installation for client {client_id}")
    return installation


def push_discount(installation: StoreInstallation, code: str, price_rule: Dict[str, Any]):
    """
    Create the price rule and its discount code.

    Returns:
        (price_rule_id, discount_code_id) as strings

    Raises:
        ShopifyError: Either call failed
    """
    shopify = ShopifyClient(installation.shop_domain, installation.access_token, installation.api_version)
    rule = shopify.create_price_rule(price_rule)
    rule_id = rule.get('id')
    if rule_id is None:
        raise ShopifyError('Shopify returned a price rule without an id')

    try:
        discount = shopify.create_discount_code(rule_id, code)
    except ShopifyError:
        logger.warning(f"[DiscountSync] Removing price rule {rule_id} after discount code {code} failed")
        try:
            shopify.delete_price_rule(rule_id)
        except ShopifyError as e:
            logger.error(f"[DiscountSync] Could not remove price rule {rule_id}: {e.message}")
        raise

    return str(rule_id), str(discount.get('id')) if discount.get('id') is not None else None


def sync_loyalty_code(discount_code: LoyaltyDiscountCode) -> LoyaltyDiscountCode:
    """Create the Shopify price rule for a points discount code. Already-synced codes are returned as-is."""
    if discount_code.shopify_synced:
        return discount_code

    installation = installation_for(discount_code.client_id, discount_code.shop_domain)
    title = discount_code.reward.title if discount_code.reward else f"{discount_code.points_redeemed} points"
    price_rule = build_price_rule(
        f"Loyalty: {title}",
        discount_code.discount_type,
        discount_code.discount_value,
        expires_at=discount_code.expires_at,
        minimum_order_value=discount_code.minimum_order_value,
    )

    rule_id, code_id = push_discount(installation, discount_code.code, price_rule)
    discount_code.shopify_price_rule_id = rule_id
    discount_code.shopify_discount_code_id = code_id
    discount_code.shopify_synced = True
    discount_code.shop_domain = installation.shop_domain
    db.session.commit()

    logger.info(f"[DiscountSync] {discount_code.code} synced to {installation.shop_domain} (price rule {rule_id})")
    return discount_code


def sync_voucher(voucher: Voucher) -> Voucher:
    """
    Create the Shopify price rule for a unique discount voucher.

    Generic rewards share a code the merchant already manages, and
    non-discount rewards have nothing to apply at checkout; both are
    rejected.
    """
    reward = voucher.reward
    if voucher.shopify_synced:
        return voucher
    if reward.coupon_type != 'unique' or reward.reward_type != 'discount' or not reward.discount_value:
        raise StateConflictError('Only unique discount vouchers can be synced to Shopify')

    installation = installation_for(reward.client_id)
    price_rule = build_price_rule(
        f"Reward: {reward.title}",
        reward.discount_type,
        reward.discount_value,
        expires_at=voucher.expires_at,
        minimum_order_value=reward.min_purchase_amount,
    )

    rule_id, code_id = push_discount(installation, voucher.code, price_rule)
    voucher.shopify_price_rule_id = rule_id
    voucher.shopify_discount_code_id = code_id
    voucher.shopify_synced = True
    db.session.commit()

    logger.info(f"[DiscountSync] Voucher {voucher.code} synced to {installation.shop_domain}")
    return voucher


def maybe_sync(sync, item) -> bool:
    """
    Run a sync when SHOPIFY_DISCOUNT_SYNC is on. Failures are logged and
    left for the CLI retry.
    """
    if not current_app.config.get('SHOPIFY_DISCOUNT_SYNC', True):
        return False
    try:
        sync(item)
        return True
    except (ShopifyError, StateConflictError) as e:
        db.session.rollback()
        logger.warning(f"[DiscountSync] Deferred sync of {item!r}: {e.message}")
        return False


def sync_after_commit(discount_code: LoyaltyDiscountCode) -> bool:
    return maybe_sync(sync_loyalty_code, discount_code)


def sync_voucher_after_commit(voucher: Voucher) -> bool:
    reward = voucher.reward
    if reward.coupon_type != 'unique' or reward.reward_type != 'discount' or not reward.discount_value:
        return False
    return maybe_sync(sync_voucher, voucher)


def sync_pending(client_id: int = None, limit: int = 100) -> Dict[str, int]:
    """Retry unsynced, unused, unexpired points codes."""
    now = datetime.utcnow()
    query = LoyaltyDiscountCode.query.filter(
        LoyaltyDiscountCode.shopify_synced.is_(False),
        LoyaltyDiscountCode.is_used.is_(False),
        db.or_(LoyaltyDiscountCode.expires_at.is_(None), LoyaltyDiscountCode.expires_at > now),
    )
    if client_id is not None:
        query = query.filter(LoyaltyDiscountCode.client_id == client_id)

    stats = {'synced': 0, 'failed': 0}
    for discount_code in query.order_by(LoyaltyDiscountCode.id.asc()).limit(limit).all():
        try:
            sync_loyalty_code(discount_code)
            stats['synced'] += 1
        except (ShopifyError, StateConflictError) as e:
            db.session.rollback()
            stats['failed'] += 1
            logger.warning(f"[DiscountSync] {discount_code.code} failed: {e.message}")
    return stats
