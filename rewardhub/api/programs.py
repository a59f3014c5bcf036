"""
Membership program API.

Handles:
- Program listing and creation
- Program updates and guarded deletion
- Attaching rewards to programs
"""
from flask import Blueprint, current_app, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import MembershipProgram, ProgramReward, Reward, EnrollmentType, UserRole
from ..middleware.auth import require_role
from ..services.trigger_evaluator import to_decimal
from ..utils.errors import bad_request, conflict
from ..utils.exceptions import NotFoundError, ValidationError
from ..utils.validation import parse_bool, parse_int

programs_bp = Blueprint('programs', __name__)

VALID_ENROLLMENT_TYPES = [t.value for t in EnrollmentType]


def get_program_for_request(program_id: int) -> MembershipProgram:
    """Load a program the caller is allowed to touch."""
    program = db.session.get(MembershipProgram, program_id)
    if not program:
        raise NotFoundError('Program', program_id)
    g.auth.resolve_client_id(program.client_id)
    return program


def _optional_cap(value, field):
    if value is None:
        return None
    return parse_int(value, field, minimum=1)


def _fee(value):
    fee = to_decimal(value)
    if fee is None or fee < 0:
        raise ValidationError('fee must be a non-negative number', 'fee')
    return fee


@programs_bp.route('', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def list_programs():
    """
    List programs for a client.

    Query params:
        client_id: Required for admins
        include_inactive: Include disabled programs (default false)
    """
    client_id = g.auth.resolve_client_id(request.args.get('client_id'))
    include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'

    query = MembershipProgram.query.filter_by(client_id=client_id)
    if not include_inactive:
        query = query.filter(MembershipProgram.is_active.is_(True))

    programs = query.order_by(MembershipProgram.created_at.desc()).all()

    return jsonify({
        'programs': [p.to_dict() for p in programs],
        'count': len(programs)
    })


@programs_bp.route('/<int:program_id>', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def get_program(program_id):
    program = get_program_for_request(program_id)
    data = program.to_dict(include_rewards=True)
    data['enrollment_count'] = program.enrollments.count()
    return jsonify(data)


@programs_bp.route('', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def create_program():
    """
    Create a membership program.

    JSON body:
        name: Program name (required)
        description: Program description
        validity_days: Enrollment lifetime in days (default DEFAULT_PROGRAM_VALIDITY_DAYS)
        enrollment_type: manual, automatic, hybrid or invite_only
        fee: Enrollment fee
        max_rewards_total: Cap on rewards per enrollment
        max_rewards_per_brand: Cap on rewards per brand per enrollment
        auto_renew: Renew on expiry
        client_id: Required for admins
    """
    data = request.json or {}
    client_id = g.auth.resolve_client_id(data.get('client_id'))

    if not data.get('name'):
        return bad_request('name is required')

    validity_days = parse_int(
        data.get('validity_days', current_app.config['DEFAULT_PROGRAM_VALIDITY_DAYS']),
        'validity_days',
        minimum=1,
    )

    enrollment_type = data.get('enrollment_type', EnrollmentType.AUTOMATIC.value)
    if enrollment_type not in VALID_ENROLLMENT_TYPES:
        return bad_request(f'enrollment_type must be one of: {VALID_ENROLLMENT_TYPES}')

    caps = {
        field: _optional_cap(data.get(field), field)
        for field in ('max_rewards_total', 'max_rewards_per_brand')
    }

    program = MembershipProgram(
        client_id=client_id,
        name=data['name'],
        description=data.get('description'),
        validity_days=validity_days,
        enrollment_type=enrollment_type,
        fee=_fee(data.get('fee', 0)),
        auto_renew=parse_bool(data.get('auto_renew', False), 'auto_renew'),
        eligibility_criteria=data.get('eligibility_criteria') or {},
        is_active=parse_bool(data.get('is_active', True), 'is_active'),
        created_by=g.auth.user_id,
        **caps,
    )
    db.session.add(program)
    db.session.commit()

    return jsonify(program.to_dict()), 201


@programs_bp.route('/<int:program_id>', methods=['PATCH'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def update_program(program_id):
    """Update program fields. Set is_active false to disable."""
    program = get_program_for_request(program_id)
    data = request.json or {}

    if 'validity_days' in data:
        program.validity_days = parse_int(data['validity_days'], 'validity_days', minimum=1)

    if 'enrollment_type' in data:
        if data['enrollment_type'] not in VALID_ENROLLMENT_TYPES:
            return bad_request(f'enrollment_type must be one of: {VALID_ENROLLMENT_TYPES}')
        program.enrollment_type = data['enrollment_type']

    for field in ('max_rewards_total', 'max_rewards_per_brand'):
        if field in data:
            setattr(program, field, _optional_cap(data[field], field))

    for field in ('auto_renew', 'is_active'):
        if field in data:
            setattr(program, field, parse_bool(data[field], field))

    if 'fee' in data:
        program.fee = _fee(data['fee'])

    if 'eligibility_criteria' in data:
        if not isinstance(data['eligibility_criteria'] or {}, dict):
            raise ValidationError('eligibility_criteria must be an object', 'eligibility_criteria')
        program.eligibility_criteria = data['eligibility_criteria'] or {}

    for field in ('name', 'description'):
        if field in data:
            setattr(program, field, data[field])

    db.session.commit()
    return jsonify(program.to_dict())


@programs_bp.route('/<int:program_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def delete_program(program_id):
    """Delete a program. Refused while any enrollment references it."""
    program = get_program_for_request(program_id)

    enrollment_count = program.enrollments.count()
    if enrollment_count:
        return conflict(
            f'Program has {enrollment_count} enrollments and cannot be deleted; deactivate it instead'
        )

    if program.campaign_rules.count():
        return conflict('Program is used by campaign rules and cannot be deleted')

    db.session.delete(program)
    db.session.commit()
    return jsonify({'success': True})


@programs_bp.route('/<int:program_id>/rewards', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def attach_reward(program_id):
    """
    Attach a reward to a program.

    JSON body:
        reward_id: Reward to attach (required)
        quantity_limit: Units per member (default 1)
    """
    program = get_program_for_request(program_id)
    data = request.json or {}

    reward = db.session.get(Reward, data.get('reward_id')) if data.get('reward_id') else None
    if not reward or reward.client_id != program.client_id:
        raise NotFoundError('Reward', data.get('reward_id'))

    program_reward = ProgramReward(
        program_id=program.id,
        reward_id=reward.id,
        quantity_limit=_optional_cap(data.get('quantity_limit'), 'quantity_limit'),
        is_active=True,
    )
    db.session.add(program_reward)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return conflict('Reward already attached to this program')

    return jsonify(program_reward.to_dict()), 201
