"""
Storefront-facing endpoints under /functions/v1.

- shopify-oauth-connect: start the OAuth install flow
- shopify-oauth-callback: finish it and run the install orchestrator
- check-campaign-rewards: checkout extension reward check
- validate-referral-code: look up a member's referral code
- calculate-loyalty-points: quote the points an order would earn
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request, g

from ..models import StoreInstallation
from ..middleware.auth import get_auth
from ..middleware.shopify_hmac import verify_hmac
from ..services.campaign_service import check_rewards
from ..services.install_service import InstallService
from ..services.member_service import find_member
from ..services.points_service import PointsService, validate_referral_code
from ..services.shopify_client import is_valid_shop_domain, normalize_shop_domain
from ..utils.errors import ErrorCode, bad_request, unauthorized
from ..utils.exceptions import OAuthStateError, RewardHubError, ValidationError
from ..utils.validation import parse_decimal

logger = logging.getLogger(__name__)

functions_bp = Blueprint('functions', __name__)


def _state_signature(payload: str) -> str:
    secret = current_app.config.get('SHOPIFY_API_SECRET') or ''
    return hmac.new(secret.encode('utf-8'), payload.encode('ascii'), hashlib.sha256).hexdigest()


def encode_state(data: dict, shop: str) -> str:
    """
    OAuth state: urlsafe base64 of a JSON object bound to the shop, then
    '.' and its hex HMAC-SHA256 under SHOPIFY_API_SECRET.
    """
    body = dict(data, shop=shop)
    body.setdefault('timestamp', int(time.time()))
    payload = base64.urlsafe_b64encode(json.dumps(body, sort_keys=True).encode('utf-8')).decode('ascii')
    return f"{payload}.{_state_signature(payload)}"


def decode_state(state: str, shop: str) -> dict:
    """
    Verify and decode OAuth state for a callback from shop.

    An absent state (App Store installs) decodes to {}.

    Raises:
        OAuthStateError: Unsigned, tampered, expired, or issued for another shop
    """
    if not state:
        return {}

    payload, _, signature = state.rpartition('.')
    if not payload or not hmac.compare_digest(_state_signature(payload), signature):
        raise OAuthStateError()

    try:
        data = json.loads(base64.urlsafe_b64decode(payload.encode('ascii')).decode('utf-8'))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise OAuthStateError()

    if not isinstance(data, dict) or data.get('shop') != shop:
        raise OAuthStateError('State was issued for another shop')

    max_age = current_app.config.get('OAUTH_STATE_MAX_AGE_SECONDS', 3600)
    if time.time() - (data.get('timestamp') or 0) > max_age:
        raise OAuthStateError('State has expired')

    return data


def integrations_redirect(error: str, message: str = None):
    params = {'error': error}
    if message:
        params['message'] = message
    return redirect(f"{current_app.config['APP_URL']}/client/integrations?{urlencode(params)}")


@functions_bp.route('/shopify-oauth-connect', methods=['GET', 'POST'])
def oauth_connect():
    """
    Build the Shopify authorization URL.

    GET redirects the merchant there; POST returns it as JSON
    ({authorization_url, state}) for the dashboard. With a bearer token the
    install is tied to the caller's client; without one the install
    resolves its client from the shop.
    """
    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
    else:
        data = request.args
    shop = normalize_shop_domain(data.get('shop'))

    if not is_valid_shop_domain(shop):
        return bad_request('Invalid shop domain', ErrorCode.INVALID_SHOP_DOMAIN)

    api_key = current_app.config.get('SHOPIFY_API_KEY')
    if not api_key:
        return bad_request('Shopify credentials not configured', ErrorCode.INVALID_REQUEST)

    auth = get_auth()
    if auth is None and g.get('auth_error'):
        return unauthorized('Invalid or expired token', ErrorCode.INVALID_TOKEN)

    client_id = None
    if auth is not None and (data.get('client_id') or not auth.is_admin):
        client_id = auth.resolve_client_id(data.get('client_id'))

    state = encode_state({
        'client_id': client_id,
        'user_id': auth.user_id if auth else None,
        'nonce': secrets.token_hex(16),
    }, shop)

    oauth_params = {
        'client_id': api_key,
        'scope': current_app.config['SHOPIFY_SCOPES'],
        'redirect_uri': f"{request.host_url.rstrip('/')}/functions/v1/shopify-oauth-callback",
        'state': state,
    }
    auth_url = f"https://{shop}/admin/oauth/authorize?{urlencode(oauth_params)}"

    if request.method == 'POST':
        return jsonify({'authorization_url': auth_url, 'state': state})
    return redirect(auth_url)


@functions_bp.route('/shopify-oauth-callback', methods=['GET'])
def oauth_callback():
    """
    Handle the OAuth callback from Shopify.

    Shopify redirects here with: code, hmac, shop, state, timestamp.
    The HMAC is mandatory and the shop must be a myshopify.com host before
    any code is exchanged. Success lands the merchant in the embedded app;
    failure goes back to the dashboard integrations page with an error.
    """
    code = request.args.get('code')
    shop = normalize_shop_domain(request.args.get('shop'))

    if not code or not shop:
        return 'Missing required parameters', 400

    if not is_valid_shop_domain(shop):
        logger.warning(f"[OAuth] Rejected callback for invalid shop domain {shop!r}")
        return 'Invalid shop domain', 400

    logger.info(f"[OAuth] Callback received from {shop}")

    api_key = current_app.config.get('SHOPIFY_API_KEY')
    if not api_key or not current_app.config.get('SHOPIFY_API_SECRET'):
        logger.error('[OAuth] Missing Shopify API credentials')
        return integrations_redirect('missing_credentials')

    if not verify_hmac(request.args.to_dict()):
        logger.warning(f"[OAuth] Missing or invalid HMAC on callback from {shop}")
        return integrations_redirect('oauth_failed', 'Invalid HMAC signature')

    try:
        state = decode_state(request.args.get('state'), shop)
        InstallService(shop, state).install(code)
    except RewardHubError as e:
        logger.error(f"[OAuth] Install failed for {shop}: {e.message}")
        return integrations_redirect('oauth_failed', e.message)

    return redirect(f"https://{shop}/admin/apps/{api_key}")


@functions_bp.route('/check-campaign-rewards', methods=['POST', 'OPTIONS'])
def check_campaign_rewards():
    """
    Checkout extension asks whether an order qualifies for rewards.

    Body: order_id, order_value, customer_email, customer_phone,
    shop_domain, line_items, shipping_address, payment_method, discount_codes.
    """
    if request.method == 'OPTIONS':
        return '', 200

    payload = request.get_json(silent=True) or {}

    try:
        return jsonify(check_rewards(payload))
    except ValidationError as e:
        return jsonify({'qualifies': False, 'error': e.message}), 400


@functions_bp.route('/validate-referral-code', methods=['GET', 'POST'])
def referral_code_check():
    """
    Check a referral code. GET takes ?code= (and optional client_id) and
    answers 404 for unknown codes; POST takes a JSON body and always
    answers 200 with valid true or false.
    """
    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
    else:
        data = request.args

    code = (data.get('code') or data.get('referral_code') or '').strip()
    if not code:
        return bad_request('Referral code is required', ErrorCode.INVALID_REQUEST)

    client_id = None
    if data.get('client_id') not in (None, ''):
        try:
            client_id = int(data['client_id'])
        except (TypeError, ValueError):
            return bad_request('client_id must be an integer', ErrorCode.VALIDATION_ERROR)

    result = validate_referral_code(code, client_id)
    if request.method == 'GET' and not result['valid']:
        return jsonify(result), 404
    return jsonify(result)


@functions_bp.route('/calculate-loyalty-points', methods=['POST', 'OPTIONS'])
def calculate_loyalty_points():
    """
    Points an order would earn at a shop. Nothing is written.

    Body: order_amount, shop_domain, customer_email (optional, for the tier).
    """
    if request.method == 'OPTIONS':
        return '', 200

    payload = request.get_json(silent=True) or {}
    if payload.get('order_amount') in (None, '') or not payload.get('shop_domain'):
        return bad_request('order_amount and shop_domain are required', ErrorCode.INVALID_REQUEST)

    try:
        order_amount = parse_decimal(payload['order_amount'], 'order_amount', minimum=0)
    except ValidationError as e:
        return bad_request(e.message, ErrorCode.VALIDATION_ERROR)

    installation = StoreInstallation.query.filter_by(
        shop_domain=normalize_shop_domain(payload['shop_domain']),
        installation_status='active',
    ).first()
    if not installation:
        return jsonify({'success': False, 'error': 'Shop not installed', 'points': 0}), 404

    service = PointsService(installation.client_id)
    if service.get_program(required=False) is None:
        return jsonify({'success': False, 'error': 'No active loyalty program found', 'points': 0})

    member = find_member(installation.client_id, email=payload.get('customer_email'))
    return jsonify({'success': True, **service.calculate_points(order_amount, member)})
