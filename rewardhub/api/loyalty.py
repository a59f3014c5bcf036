"""
Loyalty points program API.

Handles:
- Reading and saving a client's points program
- Creating and editing tiers
- Pushing points discount codes to Shopify
"""
from decimal import Decimal

from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LoyaltyDiscountCode, LoyaltyProgram, LoyaltyTier, UserRole
from ..middleware.auth import require_role
from ..services.discount_sync import sync_loyalty_code
from ..utils.errors import bad_request, conflict
from ..utils.exceptions import NotFoundError
from ..utils.validation import parse_bool, parse_decimal, parse_int

loyalty_bp = Blueprint('loyalty', __name__)

PROGRAM_TEXT_FIELDS = ('name', 'points_name', 'points_name_singular', 'currency')
PROGRAM_BOOL_FIELDS = ('allow_redemption', 'is_active')


def _program_for_request(client_id) -> LoyaltyProgram:
    program = LoyaltyProgram.query.filter_by(client_id=client_id).order_by(LoyaltyProgram.id.asc()).first()
    if not program:
        raise NotFoundError('Loyalty program')
    return program


def _apply_tier_fields(tier: LoyaltyTier, data: dict) -> None:
    """Copy the tier fields present in data, parsing numbers and flags."""
    if 'tier_name' in data:
        tier.tier_name = data['tier_name']
    if 'tier_level' in data:
        tier.tier_level = parse_int(data['tier_level'], 'tier_level', minimum=1)
    if 'min_points' in data:
        tier.min_points = parse_int(data['min_points'], 'min_points', minimum=0)
    if 'points_earn_rate' in data:
        tier.points_earn_rate = parse_decimal(data['points_earn_rate'], 'points_earn_rate', minimum=Decimal('0'))
    if 'points_earn_divisor' in data:
        tier.points_earn_divisor = parse_decimal(
            data['points_earn_divisor'], 'points_earn_divisor', minimum=Decimal('0.01')
        )
    if 'points_value' in data:
        tier.points_value = parse_decimal(data['points_value'], 'points_value', minimum=Decimal('0'))
    if 'max_redemption_percent' in data:
        value = data['max_redemption_percent']
        tier.max_redemption_percent = None if value is None else parse_decimal(
            value, 'max_redemption_percent', minimum=Decimal('0')
        )
    if 'max_redemption_points' in data:
        value = data['max_redemption_points']
        tier.max_redemption_points = None if value is None else parse_int(value, 'max_redemption_points', minimum=1)
    if 'is_default' in data:
        tier.is_default = parse_bool(data['is_default'], 'is_default')
    for field in ('color_code', 'benefits_description'):
        if field in data:
            setattr(tier, field, data[field])


@loyalty_bp.route('', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def get_loyalty_program():
    """Client's points program with its tiers. Admins pass ?client_id=."""
    client_id = g.auth.resolve_client_id(request.args.get('client_id'))
    return jsonify(_program_for_request(client_id).to_dict(include_tiers=True))


@loyalty_bp.route('', methods=['PUT'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def save_loyalty_program():
    """
    Create or update the client's points program.

    JSON body:
        name: Program name (required when creating)
        points_name, points_name_singular, currency
        allow_redemption, is_active
    """
    data = request.get_json(silent=True) or {}
    client_id = g.auth.resolve_client_id(data.get('client_id'))

    program = LoyaltyProgram.query.filter_by(client_id=client_id).order_by(LoyaltyProgram.id.asc()).first()
    created = program is None
    if created:
        if not data.get('name'):
            return bad_request('name is required')
        program = LoyaltyProgram(client_id=client_id)
        db.session.add(program)

    for field in PROGRAM_TEXT_FIELDS:
        if field in data:
            if not data[field]:
                return bad_request(f'{field} must not be empty')
            setattr(program, field, data[field])
    for field in PROGRAM_BOOL_FIELDS:
        if field in data:
            setattr(program, field, parse_bool(data[field], field))

    db.session.commit()
    return jsonify(program.to_dict(include_tiers=True)), 201 if created else 200


@loyalty_bp.route('/tiers', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def create_tier():
    """
    Add a tier to the client's program.

    JSON body:
        tier_name, tier_level (required)
        min_points, points_earn_rate, points_earn_divisor, points_value
        max_redemption_percent, max_redemption_points, is_default
        color_code, benefits_description
    """
    data = request.get_json(silent=True) or {}
    program = _program_for_request(g.auth.resolve_client_id(data.get('client_id')))

    if not data.get('tier_name'):
        return bad_request('tier_name is required')
    if data.get('tier_level') in (None, ''):
        return bad_request('tier_level is required')

    tier = LoyaltyTier(program_id=program.id)
    _apply_tier_fields(tier, data)
    db.session.add(tier)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return conflict(f"Tier level {data['tier_level']} already exists")

    return jsonify(tier.to_dict()), 201


@loyalty_bp.route('/tiers/<int:tier_id>', methods=['PATCH'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def update_tier(tier_id):
    tier = db.session.get(LoyaltyTier, tier_id)
    if not tier:
        raise NotFoundError('Tier', tier_id)
    g.auth.resolve_client_id(tier.program.client_id)

    data = request.get_json(silent=True) or {}
    if 'tier_name' in data and not data['tier_name']:
        return bad_request('tier_name is required')
    _apply_tier_fields(tier, data)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return conflict(f"Tier level {data.get('tier_level')} already exists")

    return jsonify(tier.to_dict())


@loyalty_bp.route('/discount-codes/<int:code_id>/sync', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def sync_discount_code(code_id):
    """Create the Shopify price rule for a points discount code now."""
    discount_code = db.session.get(LoyaltyDiscountCode, code_id)
    if not discount_code:
        raise NotFoundError('Discount code', code_id)
    g.auth.resolve_client_id(discount_code.client_id)

    discount_code = sync_loyalty_code(discount_code)
    return jsonify({'success': True, 'discount_code': discount_code.to_dict()})
