"""
Redemption token service.

Tokens are single-use, expiring credentials behind the public claim page.
State machine: issued -> consumed, or issued -> expired.

A token is valid iff used is false and now < expires_at. Consumption is a
single conditional UPDATE so exactly one caller can win.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from flask import current_app
from sqlalchemy import update, delete

from ..extensions import db
from ..models import (
    CampaignRule,
    CampaignTriggerLog,
    Member,
    RedemptionToken,
    TriggerLogStatus,
)
from ..utils.exceptions import TokenInvalidError, LimitExceededError, ValidationError
from .discount_sync import sync_voucher_after_commit
from .enrollment_service import enrollment_service
from .member_service import find_or_create_member
from .reward_allocator import reward_allocator

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """Opaque URL-safe token."""
    return secrets.token_urlsafe(32)


def build_redemption_url(token: str) -> str:
    return f"{current_app.config['APP_URL']}/redeem/{token}"


def issue_token(
    rule: CampaignRule,
    member: Optional[Member] = None,
    order_id: Optional[str] = None,
    customer_email: Optional[str] = None,
    ttl_days: Optional[int] = None,
    now: datetime = None,
    commit: bool = True,
) -> RedemptionToken:
    """
    Issue a redemption token for a campaign rule.

    Args:
        rule: Campaign rule the reward comes from
        member: Member the token is for (resolved on claim when None)
        order_id: Order that earned the token
        customer_email: Contact captured with the order
        ttl_days: Lifetime in days (defaults to REDEMPTION_TOKEN_TTL_DAYS)
        now: Issue time
        commit: Commit the session when done
    """
    now = now or datetime.utcnow()
    if ttl_days is None:
        ttl_days = current_app.config.get('REDEMPTION_TOKEN_TTL_DAYS', 30)

    token = generate_token()
    row = RedemptionToken(
        token=token,
        client_id=rule.client_id,
        campaign_rule_id=rule.id,
        member_id=member.id if member else None,
        order_id=str(order_id) if order_id is not None else None,
        customer_email=customer_email or (member.email if member else None),
        redemption_url=build_redemption_url(token),
        used=False,
        expires_at=now + timedelta(days=ttl_days),
        created_at=now,
    )
    db.session.add(row)
    db.session.flush()

    logger.info(f"Issued redemption token {row.id} for rule {rule.id} (order {order_id})")

    if commit:
        db.session.commit()

    return row


def is_valid(token_row: Optional[RedemptionToken], now: datetime = None) -> bool:
    """Valid iff not used and not yet expired. A used token is never valid."""
    if token_row is None:
        return False
    now = now or datetime.utcnow()
    if token_row.used:
        return False
    return now < token_row.expires_at


def _check(token_row: Optional[RedemptionToken], now: datetime) -> RedemptionToken:
    if token_row is None:
        raise TokenInvalidError('not_found')
    if token_row.used:
        raise TokenInvalidError('used')
    if now >= token_row.expires_at:
        raise TokenInvalidError('expired')
    return token_row


def peek(token: str, now: datetime = None) -> RedemptionToken:
    """
    Validate a token without consuming it.

    Raises:
        TokenInvalidError: not_found, used or expired
    """
    now = now or datetime.utcnow()
    return _check(RedemptionToken.query.filter_by(token=token).first(), now)


def _consume(token: str, now: datetime) -> RedemptionToken:
    """Conditional UPDATE marking the token used. Does not commit."""
    result = db.session.execute(
        update(RedemptionToken)
        .where(
            RedemptionToken.token == token,
            RedemptionToken.used.is_(False),
            RedemptionToken.expires_at > now,
        )
        .values(used=True, used_at=now)
        .execution_options(synchronize_session=False)
    )

    row = RedemptionToken.query.filter_by(token=token).first()
    if result.rowcount != 1:
        if row is not None:
            db.session.refresh(row)
        # Lost the race or invalid: report the current state
        _check(row, now)
        raise TokenInvalidError('used')

    db.session.refresh(row)
    return row


def validate_and_consume(token: str, now: datetime = None) -> RedemptionToken:
    """
    Atomically validate and consume a token.

    Raises:
        TokenInvalidError: not_found, used or expired
    """
    now = now or datetime.utcnow()
    try:
        row = _consume(token, now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Redemption token {row.id} consumed")
    return row


def claim(
    token: str,
    contact_method: Optional[str] = None,
    contact_value: Optional[str] = None,
    full_name: Optional[str] = None,
    now: datetime = None,
) -> Dict[str, Any]:
    """
    Claim the rewards behind a token.

    Consumes the token, resolves or creates the member, enrolls them in the
    rule's program, allocates rewards, issues vouchers and writes a trigger
    log, all in one transaction. Any failure rolls everything back,
    including the token consumption, so the customer can retry.

    Args:
        token: The redemption token
        contact_method: 'email' or 'phone' when the token has no member
        contact_value: Email address or phone number
        full_name: Optional name for a newly created member

    Returns:
        Dict with member, enrollment, allocations and vouchers
    """
    now = now or datetime.utcnow()

    try:
        row = _consume(token, now)
        rule = row.campaign_rule

        member = row.member
        if member is None:
            email = contact_value if contact_method == 'email' else row.customer_email
            phone = contact_value if contact_method == 'phone' else None
            member = find_or_create_member(row.client_id, email=email, phone=phone, full_name=full_name)
            if member is None:
                raise ValidationError('An email or phone number is required to claim rewards', 'contact')
            row.member_id = member.id

        enrollment = enrollment_service.get_active_enrollment(member.id, rule.program_id, now)
        if enrollment is None:
            if not enrollment_service.reserve_campaign_slot(rule):
                raise LimitExceededError('Enrollment', rule.max_enrollments, rule.current_enrollments)
            enrollment = enrollment_service.enroll(
                member.id,
                rule.program_id,
                source='token_claim',
                campaign_rule_id=rule.id,
                metadata={'token_id': row.id, 'order_id': row.order_id},
                now=now,
                commit=False,
            )

        allocations = reward_allocator.allocate_for_enrollment(enrollment, commit=False)
        vouchers = []
        for allocation in allocations:
            vouchers.extend(reward_allocator.issue_vouchers(allocation, now=now, commit=False))

        db.session.add(CampaignTriggerLog(
            client_id=row.client_id,
            campaign_rule_id=rule.id,
            member_id=member.id,
            enrollment_id=enrollment.id,
            trigger_type=rule.trigger_type,
            order_id=row.order_id,
            customer_email=member.email,
            status=TriggerLogStatus.SUCCESS.value,
            reason='Rewards claimed via redemption link',
            log_metadata={'token_id': row.id},
        ))

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.warning(f"Claim failed for token {token[:8]}..., rolled back")
        raise

    logger.info(f"Token {row.id} claimed by member {member.id} (enrollment {enrollment.id})")

    for voucher in vouchers:
        sync_voucher_after_commit(voucher)

    return {
        'member': member.to_dict(),
        'enrollment': enrollment.to_dict(),
        'allocations': [a.to_dict() for a in allocations],
        'vouchers': [v.to_dict() for v in vouchers],
        'program_name': rule.program.name,
        'campaign_name': rule.name,
    }


def purge_expired(now: datetime = None, grace_days: int = 7) -> int:
    """Delete unused tokens that expired more than grace_days ago."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=grace_days)

    result = db.session.execute(
        delete(RedemptionToken)
        .where(RedemptionToken.used.is_(False), RedemptionToken.expires_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    logger.info(f"Purged {result.rowcount} expired redemption tokens")
    return result.rowcount
