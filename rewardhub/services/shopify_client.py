"""
Shopify Admin API client.
Handles OAuth token exchange, shop lookup, webhook registration and
price rule / discount code creation.
"""
import logging
import re
import httpx
import requests
from flask import current_app
from typing import Optional, Dict, Any

from ..utils.exceptions import ShopifyError, ValidationError

logger = logging.getLogger(__name__)

# store-name.myshopify.com; nothing else may receive the app secret
SHOP_DOMAIN_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]*\.myshopify\.com$')


def normalize_shop_domain(shop: str) -> str:
    """Strip scheme and trailing slash from a shop domain."""
    return (shop or '').strip().replace('https://', '').replace('http://', '').rstrip('/').lower()


def is_valid_shop_domain(shop: str) -> bool:
    return bool(shop) and SHOP_DOMAIN_PATTERN.match(shop) is not None


def require_shop_domain(shop: str) -> str:
    """
    Normalized shop domain, or ValidationError (INVALID_SHOP_DOMAIN) for
    anything that is not a bare *.myshopify.com host.
    """
    normalized = normalize_shop_domain(shop)
    if not is_valid_shop_domain(normalized):
        raise ValidationError('Invalid shop domain', 'shop_domain')
    return normalized


def exchange_code_for_token(shop: str, code: str) -> Dict[str, Any]:
    """
    Exchange an OAuth authorization code for an offline access token.

    Args:
        shop: Shop domain (store.myshopify.com)
        code: Authorization code from the OAuth callback

    Returns:
        Dict with access_token and scope

    Raises:
        ValidationError: Shop is not a myshopify.com domain
        ShopifyError: If Shopify rejects the exchange or returns no token
    """
    token_url = f"https://{require_shop_domain(shop)}/admin/oauth/access_token"
    try:
        token_response = requests.post(
            token_url,
            json={
                'client_id': current_app.config['SHOPIFY_API_KEY'],
                'client_secret': current_app.config['SHOPIFY_API_SECRET'],
                'code': code,
            },
            timeout=current_app.config.get('SHOPIFY_HTTP_TIMEOUT', 30),
        )
    except requests.RequestException as e:
        raise ShopifyError(f"Token exchange request failed: {e}", e)

    if not token_response.ok:
        raise ShopifyError(f"Failed to get access token: {token_response.status_code} {token_response.text}")

    token_data = token_response.json()
    if not token_data.get('access_token'):
        raise ShopifyError("No access token returned")

    return token_data


class ShopifyClient:
    """
    Client for the Shopify Admin REST API.

    Supports:
    - Shop metadata lookup
    - Webhook registration
    - Single-use price rules with one discount code each
    """

    def __init__(self, shop_domain: str, access_token: str, api_version: str = None, timeout: float = None):
        self.shop_domain = require_shop_domain(shop_domain)
        self.access_token = access_token
        self.api_version = api_version or current_app.config.get('SHOPIFY_API_VERSION', '2024-01')
        self.timeout = timeout or current_app.config.get('SHOPIFY_HTTP_TIMEOUT', 30.0)
        self.base_url = f'https://{self.shop_domain}/admin/api/{self.api_version}'

    def _headers(self) -> Dict[str, str]:
        return {
            'X-Shopify-Access-Token': self.access_token,
            'Content-Type': 'application/json',
        }

    def _request(self, method: str, path: str, payload: Optional[Dict] = None) -> Dict[str, Any]:
        """Execute a REST call and return the decoded JSON body."""
        url = f'{self.base_url}/{path}'
        try:
            with httpx.Client() as client:
                response = client.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=payload,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise ShopifyError(
                f"Shopify {method} {path} failed: {e.response.status_code} {e.response.text}", e
            )
        except httpx.HTTPError as e:
            raise ShopifyError(f"Shopify {method} {path} failed: {e}", e)

    def get_shop(self) -> Dict[str, Any]:
        """Fetch shop metadata (name, email, currency, plan)."""
        return self._request('GET', 'shop.json').get('shop', {})

    def create_webhook(self, topic: str, address: str) -> Dict[str, Any]:
        """
        Register a webhook subscription.

        Returns:
            The created webhook object (id, topic, address)
        """
        result = self._request('POST', 'webhooks.json', {
            'webhook': {
                'topic': topic,
                'address': address,
                'format': 'json',
            }
        })
        return result.get('webhook', {})

    def create_price_rule(self, price_rule: Dict[str, Any]) -> Dict[str, Any]:
        """Create a price rule. Returns the rule object (id, title, value)."""
        return self._request('POST', 'price_rules.json', {'price_rule': price_rule}).get('price_rule', {})

    def create_discount_code(self, price_rule_id, code: str) -> Dict[str, Any]:
        """Attach a redeemable code to an existing price rule."""
        result = self._request(
            'POST',
            f'price_rules/{price_rule_id}/discount_codes.json',
            {'discount_code': {'code': code}},
        )
        return result.get('discount_code', {})

    def delete_price_rule(self, price_rule_id) -> None:
        self._request('DELETE', f'price_rules/{price_rule_id}.json')
