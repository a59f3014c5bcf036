"""
Public reward claim pages.

Token-bearing links sent to customers:
- GET  /redeem/<token>  preview what the token unlocks (does not consume)
- POST /redeem/<token>  claim the rewards
- POST /claim/<token>   same as POST /redeem/<token>

Invalid tokens answer 404 (unknown) or 410 (used / expired).
"""
from flask import Blueprint, jsonify, request

from ..services import redemption_tokens
from ..services.campaign_service import program_reward_list

redemption_bp = Blueprint('redemption', __name__)


@redemption_bp.route('/redeem/<token>', methods=['GET'])
def preview(token):
    """Show the campaign and rewards behind a valid token."""
    row = redemption_tokens.peek(token)
    rule = row.campaign_rule
    program = rule.program
    rewards = program_reward_list(program.id)

    return jsonify({
        'valid': True,
        'campaign_name': rule.name,
        'campaign_description': rule.description,
        'program_name': program.name,
        'program_description': program.description,
        'rewards': rewards,
        'reward_count': len(rewards),
        'requires_contact': row.member_id is None,
        'expires_at': row.expires_at.isoformat(),
    })


@redemption_bp.route('/redeem/<token>', methods=['POST'])
@redemption_bp.route('/claim/<token>', methods=['POST'])
def claim(token):
    """
    Claim the rewards behind a token.

    JSON body (needed when the token is not tied to a member):
        contact_method: 'email' or 'phone'
        contact_value: the email address or phone number
        full_name: optional
    """
    data = request.get_json(silent=True) or {}

    result = redemption_tokens.claim(
        token,
        contact_method=data.get('contact_method'),
        contact_value=data.get('contact_value'),
        full_name=data.get('full_name'),
    )

    return jsonify({'success': True, **result})
