"""
Campaign rules API.

Handles:
- Campaign rule CRUD (no hard delete; deactivate instead)
- Trigger logs per rule
- Manually issued redemption links
- Dry-run evaluation of an event
- Submitting customer events (signup, referral, birthday, custom)
"""
from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..models import (
    CampaignRule,
    CampaignTriggerLog,
    Member,
    MembershipProgram,
    RedemptionToken,
    TriggerType,
    UserRole,
)
from ..middleware.auth import require_role
from ..services.campaign_service import CampaignService
from ..services.redemption_tokens import issue_token
from ..services.trigger_evaluator import EVENT_TYPES, TriggerEvent, to_decimal
from ..utils.errors import bad_request
from ..utils.exceptions import NotFoundError, ValidationError
from ..utils.validation import parse_bool, parse_datetime, parse_int

campaigns_bp = Blueprint('campaigns', __name__)
campaign_events_bp = Blueprint('campaign_events', __name__)

VALID_TRIGGER_TYPES = [t.value for t in TriggerType]
EXCLUSION_FLAGS = ('exclude_refunded', 'exclude_cancelled', 'exclude_test_orders')


def get_rule_for_request(rule_id: int) -> CampaignRule:
    rule = db.session.get(CampaignRule, rule_id)
    if not rule:
        raise NotFoundError('Campaign rule', rule_id)
    g.auth.resolve_client_id(rule.client_id)
    return rule


def apply_rule_fields(rule: CampaignRule, data: dict) -> None:
    """Validate and copy editable fields onto a rule."""
    if 'trigger_type' in data:
        if data['trigger_type'] not in VALID_TRIGGER_TYPES:
            raise ValidationError(f'trigger_type must be one of: {VALID_TRIGGER_TYPES}', 'trigger_type')
        rule.trigger_type = data['trigger_type']

    if 'trigger_conditions' in data:
        conditions = data['trigger_conditions'] or {}
        if not isinstance(conditions, dict):
            raise ValidationError('trigger_conditions must be an object', 'trigger_conditions')
        for key in ('min_order_value', 'min_order_count'):
            if key in conditions and to_decimal(conditions[key]) is None:
                raise ValidationError(f'{key} must be a number', 'trigger_conditions')
        rule.trigger_conditions = conditions

    if rule.trigger_type == TriggerType.CUSTOM_EVENT.value and not (rule.trigger_conditions or {}).get('custom_field'):
        raise ValidationError('custom_event rules need trigger_conditions.custom_field', 'trigger_conditions')

    if 'exclusion_rules' in data:
        exclusions = data['exclusion_rules'] or {}
        if not isinstance(exclusions, dict):
            raise ValidationError('exclusion_rules must be an object', 'exclusion_rules')
        rule.exclusion_rules = {
            k: parse_bool(v, 'exclusion_rules') for k, v in exclusions.items() if k in EXCLUSION_FLAGS
        }

    if 'max_enrollments' in data:
        max_enrollments = data['max_enrollments']
        if max_enrollments is not None:
            max_enrollments = parse_int(max_enrollments, 'max_enrollments', minimum=0)
            if max_enrollments < (rule.current_enrollments or 0):
                raise ValidationError(
                    'max_enrollments cannot be below current_enrollments', 'max_enrollments'
                )
        rule.max_enrollments = max_enrollments

    if 'priority' in data:
        rule.priority = parse_int(data['priority'] or 0, 'priority')

    if 'start_date' in data:
        rule.start_date = parse_datetime(data['start_date'], 'start_date')
    if 'end_date' in data:
        rule.end_date = parse_datetime(data['end_date'], 'end_date')
    if rule.start_date and rule.end_date and rule.end_date < rule.start_date:
        raise ValidationError('end_date must be after start_date', 'end_date')

    if 'is_active' in data:
        rule.is_active = parse_bool(data['is_active'], 'is_active')

    for field in ('name', 'description'):
        if field in data:
            setattr(rule, field, data[field])


def event_from_payload(data: dict) -> TriggerEvent:
    """Build a TriggerEvent from an API request body."""
    event_type = data.get('event_type')
    if event_type not in EVENT_TYPES:
        raise ValidationError(f'event_type must be one of: {list(EVENT_TYPES)}', 'event_type')

    fields = data.get('fields') or {}
    if not isinstance(fields, dict):
        raise ValidationError('fields must be an object', 'fields')

    return TriggerEvent(
        event_type=event_type,
        order_total=to_decimal(data.get('order_total')),
        customer_order_count=data.get('customer_order_count'),
        fields=fields,
        order=data.get('order') or {},
        order_id=str(data['order_id']) if data.get('order_id') is not None else None,
        customer_email=data.get('customer_email'),
        customer_phone=data.get('customer_phone'),
        customer_name=data.get('customer_name'),
    )


# ==============================================================================
# CAMPAIGN RULES
# ==============================================================================

@campaigns_bp.route('', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def list_rules():
    """
    List campaign rules in evaluation order.

    Query params:
        client_id: Required for admins
        trigger_type: Filter by trigger type
        active_only: Only active rules (default false)
    """
    client_id = g.auth.resolve_client_id(request.args.get('client_id'))

    query = CampaignRule.query.filter_by(client_id=client_id)
    if request.args.get('trigger_type'):
        query = query.filter_by(trigger_type=request.args['trigger_type'])
    if request.args.get('active_only', 'false').lower() == 'true':
        query = query.filter(CampaignRule.is_active.is_(True))

    rules = query.order_by(
        CampaignRule.priority.desc(), CampaignRule.created_at.asc(), CampaignRule.id.asc()
    ).all()

    return jsonify({
        'rules': [r.to_dict() for r in rules],
        'count': len(rules)
    })


@campaigns_bp.route('/<int:rule_id>', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def get_rule(rule_id):
    return jsonify(get_rule_for_request(rule_id).to_dict())


@campaigns_bp.route('', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def create_rule():
    """
    Create a campaign rule.

    JSON body:
        name: Rule name (required)
        program_id: Target program (required)
        trigger_type: order_value, order_count, signup, referral, birthday, custom_event (required)
        trigger_conditions: e.g. {"min_order_value": 100}
        exclusion_rules: {"exclude_refunded": true, ...}
        priority: Higher runs first (default 0)
        start_date / end_date: ISO datetimes, optional
        max_enrollments: Enrollment cap, optional
    """
    data = request.json or {}
    client_id = g.auth.resolve_client_id(data.get('client_id'))

    for field in ('name', 'program_id', 'trigger_type'):
        if not data.get(field):
            return bad_request(f'{field} is required')

    program = db.session.get(MembershipProgram, data['program_id'])
    if not program or program.client_id != client_id:
        raise NotFoundError('Program', data['program_id'])

    rule = CampaignRule(
        client_id=client_id,
        program_id=program.id,
        trigger_conditions={},
        exclusion_rules={},
        priority=0,
        current_enrollments=0,
        is_active=True,
        created_by=g.auth.user_id,
    )
    apply_rule_fields(rule, data)

    db.session.add(rule)
    db.session.commit()
    return jsonify(rule.to_dict()), 201


@campaigns_bp.route('/<int:rule_id>', methods=['PATCH'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def update_rule(rule_id):
    rule = get_rule_for_request(rule_id)
    data = request.json or {}

    if 'program_id' in data:
        program = db.session.get(MembershipProgram, data['program_id'])
        if not program or program.client_id != rule.client_id:
            raise NotFoundError('Program', data['program_id'])
        rule.program_id = program.id

    apply_rule_fields(rule, data)
    db.session.commit()
    return jsonify(rule.to_dict())


@campaigns_bp.route('/<int:rule_id>/logs', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def list_rule_logs(rule_id):
    """
    Trigger logs for a rule, newest first.

    Query params:
        status: Filter by outcome
        limit: Max rows (default 100, max 500)
    """
    rule = get_rule_for_request(rule_id)
    limit = min(request.args.get('limit', 100, type=int), 500)

    query = CampaignTriggerLog.query.filter_by(campaign_rule_id=rule.id)
    if request.args.get('status'):
        query = query.filter_by(status=request.args['status'])

    logs = query.order_by(CampaignTriggerLog.created_at.desc(), CampaignTriggerLog.id.desc()).limit(limit).all()
    return jsonify({
        'logs': [entry.to_dict() for entry in logs],
        'count': len(logs)
    })


@campaigns_bp.route('/<int:rule_id>/tokens', methods=['GET'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def list_rule_tokens(rule_id):
    rule = get_rule_for_request(rule_id)
    tokens = RedemptionToken.query.filter_by(campaign_rule_id=rule.id).order_by(
        RedemptionToken.created_at.desc()
    ).all()
    return jsonify({
        'tokens': [t.to_dict() for t in tokens],
        'count': len(tokens)
    })


@campaigns_bp.route('/<int:rule_id>/tokens', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def create_rule_token(rule_id):
    """
    Issue a redemption link for a rule.

    JSON body:
        member_id: Member the link is for (optional; resolved on claim otherwise)
        customer_email: Contact to prefill on claim
        ttl_days: Link lifetime in days
    """
    rule = get_rule_for_request(rule_id)
    data = request.json or {}

    member = None
    if data.get('member_id'):
        member = db.session.get(Member, data['member_id'])
        if not member or member.client_id != rule.client_id:
            raise NotFoundError('Member', data['member_id'])

    ttl_days = data.get('ttl_days')
    if ttl_days is not None:
        ttl_days = parse_int(ttl_days, 'ttl_days', minimum=1)

    token = issue_token(
        rule,
        member=member,
        customer_email=data.get('customer_email'),
        ttl_days=ttl_days,
    )
    return jsonify(token.to_dict()), 201


@campaigns_bp.route('/evaluate', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def evaluate_event():
    """
    Dry run: which rules would fire for an event. Nothing is written.

    JSON body: event_type, order_total, customer_order_count, fields, order
    """
    data = request.json or {}
    client_id = g.auth.resolve_client_id(data.get('client_id'))
    event = event_from_payload(data)
    return jsonify(CampaignService(client_id).evaluate_rules(event))


# ==============================================================================
# CAMPAIGN EVENTS
# ==============================================================================

@campaign_events_bp.route('', methods=['POST'])
@require_role(UserRole.ADMIN, UserRole.CLIENT)
def submit_event():
    """
    Submit a customer event for campaign processing.

    JSON body:
        event_type: order, signup, referral, birthday or custom (required)
        member_id: Known member, or customer_email / customer_phone
        order_total, customer_order_count, order_id, fields
    """
    data = request.json or {}
    client_id = g.auth.resolve_client_id(data.get('client_id'))
    event = event_from_payload(data)

    member = None
    if data.get('member_id'):
        member = db.session.get(Member, data['member_id'])
        if not member or member.client_id != client_id:
            raise NotFoundError('Member', data['member_id'])
        event.customer_email = event.customer_email or member.email
        event.customer_phone = event.customer_phone or member.phone

    result = CampaignService(client_id).process_event(event, member=member)
    return jsonify(result)
