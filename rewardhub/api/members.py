"""
Member rewards, loyalty points and voucher redemption API.
"""
from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..models import Enrollment, Member, Reward, Voucher, UserRole
from ..middleware.auth import require_role
from ..services.enrollment_service import enrollment_service
from ..services.points_service import PointsService
from ..services.reward_allocator import reward_allocator
from ..utils.exceptions import NotFoundError, AuthorizationError
from ..utils.validation import parse_decimal, parse_int

members_bp = Blueprint('members', __name__)
vouchers_bp = Blueprint('vouchers', __name__)


def _get_member(member_id):
    """Member in the caller's client scope."""
    member = db.session.get(Member, member_id)
    if not member:
        raise NotFoundError('Member', member_id)
    g.auth.resolve_client_id(member.client_id)
    return member


@members_bp.route('/<int:member_id>/rewards', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def member_rewards(member_id):
    """Reward allocations of a member with their vouchers and enrollments."""
    member = _get_member(member_id)

    return jsonify({
        'member': member.to_dict(),
        'enrollments': [e.to_dict() for e in member.enrollments],
        'rewards': reward_allocator.get_member_rewards(member.id),
    })


@members_bp.route('/<int:member_id>/enrollments/<int:enrollment_id>/revoke', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def revoke_enrollment(member_id, enrollment_id):
    """
    Revoke one of the member's enrollments.

    JSON body:
        reason: Stored on the enrollment metadata
    """
    member = _get_member(member_id)
    enrollment = db.session.get(Enrollment, enrollment_id)
    if not enrollment or enrollment.member_id != member.id:
        raise NotFoundError('Enrollment', enrollment_id)

    data = request.get_json(silent=True) or {}
    enrollment = enrollment_service.revoke(enrollment.id, reason=data.get('reason'))
    return jsonify({'success': True, 'enrollment': enrollment.to_dict()})


@members_bp.route('/<int:member_id>/loyalty', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def member_loyalty(member_id):
    """Points balance, tier, recent transactions and open discount codes."""
    member = _get_member(member_id)
    return jsonify(PointsService(member.client_id).loyalty_status(member))


@members_bp.route('/<int:member_id>/points', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def adjust_member_points(member_id):
    """
    Manually credit or debit points.

    JSON body:
        points: Signed integer (required)
        reason: Ledger description
        order_id: Order reference; each order can be used once
    """
    member = _get_member(member_id)
    data = request.get_json(silent=True) or {}

    points = parse_int(data.get('points'), 'points')
    transaction = PointsService(member.client_id).adjust_points(
        member, points, reason=data.get('reason'), order_id=data.get('order_id')
    )
    return jsonify({'success': True, 'transaction': transaction.to_dict()}), 201


@members_bp.route('/<int:member_id>/points/quote', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def points_quote(member_id):
    """How many points the member can put against an order (?order_amount=)."""
    member = _get_member(member_id)
    order_amount = parse_decimal(request.args.get('order_amount'), 'order_amount', minimum=0)
    return jsonify(PointsService(member.client_id).redemption_quote(member, order_amount))


@members_bp.route('/<int:member_id>/points/redeem', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def redeem_member_points(member_id):
    """
    Spend points on a fixed-amount discount code.

    JSON body:
        points_to_redeem: Points to spend (required)
        order_amount: Order the code is for (required)
        shop_domain: Store to create the Shopify discount in
    """
    member = _get_member(member_id)
    data = request.get_json(silent=True) or {}

    points = parse_int(data.get('points_to_redeem'), 'points_to_redeem', minimum=1)
    order_amount = parse_decimal(data.get('order_amount'), 'order_amount', minimum=0)

    discount_code = PointsService(member.client_id).redeem_points(
        member, points, order_amount, shop_domain=data.get('shop_domain')
    )
    return jsonify({'success': True, 'discount_code': discount_code.to_dict()}), 201


@members_bp.route('/<int:member_id>/points/rewards/<int:reward_id>', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def redeem_points_reward(member_id, reward_id):
    """
    Buy a catalog reward with points. Returns the member's open code for the
    reward instead when one exists.
    """
    member = _get_member(member_id)
    reward = db.session.get(Reward, reward_id)
    if not reward:
        raise NotFoundError('Reward', reward_id)

    data = request.get_json(silent=True) or {}
    discount_code, created = PointsService(member.client_id).redeem_reward(
        member, reward, shop_domain=data.get('shop_domain')
    )
    return jsonify({
        'success': True,
        'already_redeemed': not created,
        'discount_code': discount_code.to_dict(),
    }), 201 if created else 200


@vouchers_bp.route('/<code>/redeem', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT, UserRole.BRAND)
def redeem_voucher(code):
    """
    Redeem a voucher.

    Brand users may only redeem vouchers for rewards they supply.

    JSON body:
        channel: online, in_store or partner (default online)
        location: Store or partner location
    """
    data = request.json or {}

    voucher = Voucher.query.filter_by(code=code).first()
    if not voucher:
        raise NotFoundError('Voucher')

    auth = g.auth
    if auth.role == UserRole.BRAND:
        if voucher.reward.brand_id is None or voucher.reward.brand_id != auth.brand_id:
            raise AuthorizationError('Voucher belongs to another brand')
    else:
        auth.resolve_client_id(voucher.reward.client_id)

    redemption = reward_allocator.redeem_voucher(
        code,
        channel=data.get('channel', 'online'),
        location=data.get('location'),
    )
    return jsonify({'success': True, 'redemption': redemption.to_dict()})
