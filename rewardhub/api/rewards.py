"""
Rewards catalog API.
"""
from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..models import Reward, UserRole
from ..middleware.auth import require_role
from ..utils.errors import bad_request, forbidden
from ..utils.validation import parse_decimal, parse_int

rewards_bp = Blueprint('rewards', __name__)

VALID_REWARD_TYPES = ['discount', 'free_product', 'experience', 'service', 'custom']
VALID_COUPON_TYPES = ['generic', 'unique']
VALID_DISCOUNT_TYPES = ['fixed_amount', 'percentage']


@rewards_bp.route('', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT, UserRole.BRAND)
def list_rewards():
    """
    List rewards.

    Client users see their client's rewards, brand users the rewards they
    supply. Admins filter with client_id / brand_id.

    Query params:
        status: Filter by status
    """
    auth = g.auth
    query = Reward.query

    if auth.role == UserRole.BRAND:
        if auth.brand_id is None:
            return forbidden('No brand scope for this user')
        query = query.filter_by(brand_id=auth.brand_id)
    elif auth.is_admin and not request.args.get('client_id'):
        if request.args.get('brand_id'):
            query = query.filter_by(brand_id=parse_int(request.args['brand_id'], 'brand_id'))
    else:
        query = query.filter_by(client_id=auth.resolve_client_id(request.args.get('client_id')))

    if request.args.get('status'):
        query = query.filter_by(status=request.args['status'])

    rewards = query.order_by(Reward.created_at.desc()).all()
    return jsonify({
        'rewards': [r.to_dict() for r in rewards],
        'count': len(rewards)
    })


@rewards_bp.route('', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT, UserRole.BRAND)
def create_reward():
    """
    Create a reward.

    JSON body:
        title: Reward title (required)
        client_id: Owning client (required for admins and brands)
        description, reward_type, discount_value
        discount_type: 'fixed_amount' (default) or 'percentage'
        min_purchase_amount: Order subtotal the discount needs
        points_cost: Points a member spends to buy it (omit when not for sale)
        coupon_type: 'generic' (shared code) or 'unique'
        generic_coupon_code: Shared code for generic rewards
        redemption_link: Where customers redeem
    """
    auth = g.auth
    data = request.json or {}

    if not data.get('title'):
        return bad_request('title is required')

    if auth.role == UserRole.BRAND:
        if not data.get('client_id'):
            return bad_request('client_id is required')
        client_id = parse_int(data['client_id'], 'client_id')
        brand_id = auth.brand_id
        status = 'pending'
    else:
        client_id = auth.resolve_client_id(data.get('client_id'))
        brand_id = parse_int(data['brand_id'], 'brand_id') if data.get('brand_id') not in (None, '') else None
        status = data.get('status', 'active')

    reward_type = data.get('reward_type', 'discount')
    if reward_type not in VALID_REWARD_TYPES:
        return bad_request(f'reward_type must be one of: {VALID_REWARD_TYPES}')

    coupon_type = data.get('coupon_type', 'unique')
    if coupon_type not in VALID_COUPON_TYPES:
        return bad_request(f'coupon_type must be one of: {VALID_COUPON_TYPES}')
    if coupon_type == 'generic' and not data.get('generic_coupon_code'):
        return bad_request('generic_coupon_code is required for generic coupons')

    discount_type = data.get('discount_type', 'fixed_amount')
    if discount_type not in VALID_DISCOUNT_TYPES:
        return bad_request(f'discount_type must be one of: {VALID_DISCOUNT_TYPES}')

    discount_value = _optional_decimal(data, 'discount_value')
    min_purchase_amount = _optional_decimal(data, 'min_purchase_amount')
    points_cost = None
    if data.get('points_cost') not in (None, ''):
        points_cost = parse_int(data['points_cost'], 'points_cost', minimum=1)

    reward = Reward(
        client_id=client_id,
        brand_id=brand_id,
        title=data['title'],
        description=data.get('description'),
        reward_type=reward_type,
        discount_value=discount_value,
        discount_type=discount_type,
        min_purchase_amount=min_purchase_amount,
        points_cost=points_cost,
        coupon_type=coupon_type,
        generic_coupon_code=data.get('generic_coupon_code'),
        redemption_link=data.get('redemption_link'),
        status=status,
    )
    db.session.add(reward)
    db.session.commit()

    return jsonify(reward.to_dict()), 201


def _optional_decimal(data, field):
    if data.get(field) in (None, ''):
        return None
    return parse_decimal(data[field], field, minimum=0)
