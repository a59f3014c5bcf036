"""
Campaign service.

Runs customer events (orders, signups, referrals, birthdays, custom events)
through a client's campaign rules and enrolls qualifying customers.

For each event, rules are tried in selection order. Rules whose triggers
do not fire are logged and skipped. For a firing rule the customer is
resolved, then enrolled unless already enrolled or the rule is full; the
first successful enrollment ends the run. The enrollment, its reward
allocations, the cap increment, the redemption token and the success log
commit together.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List
from urllib.parse import urlencode

from flask import current_app
from sqlalchemy import extract
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    CampaignRule,
    CampaignTriggerLog,
    Member,
    ProgramReward,
    RedemptionToken,
    Reward,
    ShopifyOrder,
    StoreInstallation,
    TriggerLogStatus,
)
from ..utils.exceptions import RewardHubError, ValidationError
from .enrollment_service import enrollment_service
from .member_service import find_or_create_member
from .points_service import PointsService
from .redemption_tokens import issue_token
from .reward_allocator import reward_allocator
from .rule_selector import select_rules, first_matching_rule
from .trigger_evaluator import (
    EVENT_BIRTHDAY,
    EVENT_ORDER,
    EVENT_SIGNUP,
    TriggerEvent,
    evaluate,
    is_excluded,
    to_decimal,
    trigger_types_for_event,
)

logger = logging.getLogger(__name__)

NO_POINTS_FINANCIAL_STATUSES = ('refunded', 'voided')


class CampaignService:
    """Service for processing customer events against campaign rules."""

    def __init__(self, client_id: int):
        self.client_id = client_id

    # ==================== Event processing ====================

    def _log(
        self,
        rule: Optional[CampaignRule],
        event: TriggerEvent,
        status: TriggerLogStatus,
        reason: str,
        member: Optional[Member] = None,
        enrollment_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CampaignTriggerLog:
        entry = CampaignTriggerLog(
            client_id=self.client_id,
            campaign_rule_id=rule.id if rule else None,
            member_id=member.id if member else None,
            enrollment_id=enrollment_id,
            trigger_type=rule.trigger_type if rule else None,
            order_id=event.order_id,
            customer_email=event.customer_email,
            status=status.value,
            reason=reason,
            log_metadata={
                'event_type': event.event_type,
                'campaign_name': rule.name if rule else None,
                **(metadata or {}),
            },
        )
        db.session.add(entry)
        return entry

    def process_event(self, event: TriggerEvent, member: Optional[Member] = None, now: datetime = None) -> Dict[str, Any]:
        """
        Evaluate an event against the client's live rules and enroll on a match.

        Args:
            event: The customer event
            member: Known member (otherwise resolved from the event's contact details)
            now: Evaluation time

        Returns:
            Dict with processed flag, final status, per-rule outcomes and,
            on success, the enrollment and redemption link
        """
        now = now or datetime.utcnow()
        rules = select_rules(self.client_id, trigger_types_for_event(event.event_type), now)

        result = {
            'processed': False,
            'status': None,
            'evaluated': [],
            'rule_id': None,
            'member_id': member.id if member else None,
            'enrollment_id': None,
            'redemption_url': None,
        }

        if not rules:
            logger.info(f"No active campaign rules for client {self.client_id} ({event.event_type} event)")
            result['status'] = 'no_rules'
            return result

        for rule in rules:
            status = self._process_rule(rule, event, member, now, result)
            result['evaluated'].append({'rule_id': rule.id, 'status': status.value})
            if status == TriggerLogStatus.SUCCESS:
                break

        if result['status'] is None:
            result['status'] = result['evaluated'][-1]['status']

        return result

    def _process_rule(
        self,
        rule: CampaignRule,
        event: TriggerEvent,
        member: Optional[Member],
        now: datetime,
        result: Dict[str, Any],
    ) -> TriggerLogStatus:
        excluded, reason = is_excluded(rule.exclusion_rules, event)
        if excluded:
            self._log(rule, event, TriggerLogStatus.EXCLUDED, reason, member)
            db.session.commit()
            return TriggerLogStatus.EXCLUDED

        if not evaluate(rule.trigger_type, rule.trigger_conditions, event):
            reason = self._miss_reason(rule, event)
            self._log(rule, event, TriggerLogStatus.NOT_MATCHED, reason, member)
            db.session.commit()
            return TriggerLogStatus.NOT_MATCHED

        if member is None:
            member = find_or_create_member(
                self.client_id,
                email=event.customer_email,
                phone=event.customer_phone,
                full_name=event.customer_name,
                external_id=event.customer_external_id,
            )
        if member is None:
            reason = (
                f"No member found with phone: {event.customer_phone or 'none'}, "
                f"email: {event.customer_email or 'none'}"
            )
            self._log(rule, event, TriggerLogStatus.NO_MEMBER, reason)
            db.session.commit()
            return TriggerLogStatus.NO_MEMBER

        result['member_id'] = member.id

        existing = enrollment_service.get_active_enrollment(member.id, rule.program_id, now)
        if existing:
            reason = (
                f"Member already enrolled in program (enrollment {existing.id}, "
                f"via campaign {existing.campaign_rule_id})"
            )
            self._log(rule, event, TriggerLogStatus.ALREADY_ENROLLED, reason, member, existing.id)
            db.session.commit()
            return TriggerLogStatus.ALREADY_ENROLLED

        # Member creation and earlier logs are kept even if enrollment fails
        db.session.commit()

        try:
            if not enrollment_service.reserve_campaign_slot(rule):
                reason = (
                    f"Campaign has reached max enrollments "
                    f"({rule.current_enrollments}/{rule.max_enrollments})"
                )
                self._log(rule, event, TriggerLogStatus.MAX_REACHED, reason, member, metadata={
                    'current_enrollments': rule.current_enrollments,
                    'max_enrollments': rule.max_enrollments,
                })
                db.session.commit()
                return TriggerLogStatus.MAX_REACHED

            enrollment = enrollment_service.enroll(
                member.id,
                rule.program_id,
                source='campaign_auto',
                campaign_rule_id=rule.id,
                metadata={
                    'order_id': event.order_id,
                    'order_value': str(event.order_total) if event.order_total is not None else None,
                    'triggered_by': f'{rule.trigger_type}_campaign',
                    'campaign_name': rule.name,
                },
                now=now,
                commit=False,
            )
            reward_allocator.allocate_for_enrollment(enrollment, commit=False)
            token = issue_token(
                rule,
                member=member,
                order_id=event.order_id,
                customer_email=event.customer_email,
                now=now,
                commit=False,
            )
            self._log(
                rule, event, TriggerLogStatus.SUCCESS, 'Member successfully enrolled in program',
                member, enrollment.id,
                metadata={
                    'program_id': rule.program_id,
                    'new_enrollment_count': rule.current_enrollments,
                    'token_id': token.id,
                },
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Enrollment failed for rule {rule.id}, member {member.id}: {e}")
            self._log(rule, event, TriggerLogStatus.FAILED, f"Enrollment failed: {e}", member)
            db.session.commit()
            return TriggerLogStatus.FAILED

        logger.info(
            f"Auto-enrolled member {member.id} in program {rule.program_id} via campaign '{rule.name}'"
        )
        result.update({
            'processed': True,
            'status': TriggerLogStatus.SUCCESS.value,
            'rule_id': rule.id,
            'enrollment_id': enrollment.id,
            'redemption_url': token.redemption_url,
        })
        return TriggerLogStatus.SUCCESS

    @staticmethod
    def _miss_reason(rule: CampaignRule, event: TriggerEvent) -> str:
        conditions = rule.trigger_conditions or {}
        if rule.trigger_type == 'order_value' and event.event_type == EVENT_ORDER:
            return (
                f"Order value {event.order_total} below minimum "
                f"{conditions.get('min_order_value', 0)}"
            )
        if rule.trigger_type == 'order_count' and event.event_type == EVENT_ORDER:
            return (
                f"Customer order count {event.customer_order_count} below minimum "
                f"{conditions.get('min_order_count', 0)}"
            )
        return f"Trigger {rule.trigger_type} not satisfied by {event.event_type} event"

    # ==================== Shopify events ====================

    def process_order(self, installation: StoreInstallation, order_payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record a Shopify order and run it through order campaigns.

        Args:
            installation: Store the webhook came from
            order_payload: Shopify order JSON
        """
        event = TriggerEvent.from_shopify_order(order_payload)
        if not event.order_id:
            raise ValidationError('Order payload has no id', 'order')

        order = ShopifyOrder.query.filter_by(client_id=self.client_id, order_id=event.order_id).first()
        if not order:
            order = ShopifyOrder(
                client_id=self.client_id,
                store_installation_id=installation.id if installation else None,
                order_id=event.order_id,
            )
            db.session.add(order)

        order.order_number = str(order_payload.get('order_number') or order_payload.get('name') or '')
        order.customer_email = event.customer_email
        order.customer_phone = event.customer_phone
        order.total_price = event.order_total
        order.currency = order_payload.get('currency')
        order.financial_status = order_payload.get('financial_status')
        order.fulfillment_status = order_payload.get('fulfillment_status')
        order.raw_payload = order_payload

        member = find_or_create_member(
            self.client_id,
            email=event.customer_email,
            phone=event.customer_phone,
            full_name=event.customer_name,
            external_id=event.customer_external_id,
        )
        if member:
            order.member_id = member.id
        db.session.commit()

        logger.info(f"Stored order {event.order_id} for client {self.client_id} (total {event.order_total})")
        points_awarded = self.award_order_points(member, event, order_payload)

        result = self.process_event(event, member=member)
        result['points_awarded'] = points_awarded
        return result

    def award_order_points(self, member: Optional[Member], event: TriggerEvent, order_payload: Dict[str, Any]) -> int:
        """
        Credit loyalty points for a stored order. Cancelled, refunded, voided
        and test orders earn nothing. A failure here is logged and does not
        stop campaign processing.
        """
        if member is None or order_payload.get('test') or order_payload.get('cancelled_at'):
            return 0
        if order_payload.get('financial_status') in NO_POINTS_FINANCIAL_STATUSES:
            return 0

        try:
            transaction = PointsService(self.client_id).award_order_points(member, event.order_id, event.order_total)
        except (RewardHubError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error(f"Points for order {event.order_id} failed: {e}")
            return 0
        return transaction.points_amount if transaction else 0

    def process_signup(self, installation: StoreInstallation, customer_payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a member from a Shopify customer and run signup campaigns."""
        member = self.sync_customer(customer_payload)
        if not member:
            return {'processed': False, 'status': TriggerLogStatus.NO_MEMBER.value, 'evaluated': []}

        event = TriggerEvent(
            event_type=EVENT_SIGNUP,
            customer_email=member.email,
            customer_phone=member.phone,
            customer_name=member.full_name,
            customer_external_id=member.external_id,
            fields={k: v for k, v in customer_payload.items() if not isinstance(v, (dict, list))},
        )
        return self.process_event(event, member=member)

    def sync_customer(self, customer_payload: Dict[str, Any]) -> Optional[Member]:
        """Create or update a member from a Shopify customer payload."""
        name = ' '.join(
            part for part in (customer_payload.get('first_name'), customer_payload.get('last_name')) if part
        )
        external_id = customer_payload.get('id')

        member = find_or_create_member(
            self.client_id,
            email=customer_payload.get('email'),
            phone=customer_payload.get('phone'),
            full_name=name or None,
            external_id=str(external_id) if external_id is not None else None,
        )
        if member is None:
            return None

        # Shopify is the source of truth for contact details
        if name:
            member.full_name = name
        phone = (customer_payload.get('phone') or '').strip()
        if phone and phone != member.phone and not Member.query.filter_by(
            client_id=self.client_id, phone=phone
        ).first():
            member.phone = phone

        db.session.commit()
        return member

    # ==================== Birthdays ====================

    def members_with_birthday(self, today: date = None) -> List[Member]:
        """Active members whose birthday (month and day) is today."""
        today = today or date.today()
        return Member.query.filter(
            Member.client_id == self.client_id,
            Member.is_active.is_(True),
            Member.birthday.isnot(None),
            extract('month', Member.birthday) == today.month,
            extract('day', Member.birthday) == today.day,
        ).order_by(Member.id).all()

    def process_birthdays(self, today: date = None, now: datetime = None) -> Dict[str, Any]:
        """
        Fire a birthday event for every member celebrating today.

        Returns:
            Dict with members checked, enrolled count and per-member status
        """
        results = []
        for member in self.members_with_birthday(today):
            event = TriggerEvent(
                event_type=EVENT_BIRTHDAY,
                customer_email=member.email,
                customer_phone=member.phone,
                customer_name=member.full_name,
                customer_external_id=member.external_id,
            )
            result = self.process_event(event, member=member, now=now)
            results.append({'member_id': member.id, 'status': result['status']})

        enrolled = sum(1 for r in results if r['status'] == TriggerLogStatus.SUCCESS.value)
        logger.info(f"Birthday run for client {self.client_id}: {len(results)} members, {enrolled} enrolled")
        return {'checked': len(results), 'enrolled': enrolled, 'results': results}

    # ==================== Read-only evaluation ====================

    def evaluate_rules(self, event: TriggerEvent, now: datetime = None) -> Dict[str, Any]:
        """
        Dry run: which live rules would fire for an event. Writes nothing.
        """
        rules = select_rules(self.client_id, trigger_types_for_event(event.event_type), now)

        matched = []
        for rule in rules:
            excluded, reason = is_excluded(rule.exclusion_rules, event)
            if excluded:
                continue
            if evaluate(rule.trigger_type, rule.trigger_conditions, event):
                matched.append({
                    'id': rule.id,
                    'name': rule.name,
                    'trigger_type': rule.trigger_type,
                    'priority': rule.priority,
                    'program_id': rule.program_id,
                    'is_full': rule.is_full,
                })

        return {
            'matchedRules': matched,
            'evaluatedCount': len(rules),
            'firstMatchId': matched[0]['id'] if matched else None,
        }


def program_reward_list(program_id: int) -> List[Dict[str, Any]]:
    program_rewards = (
        ProgramReward.query
        .join(Reward, ProgramReward.reward_id == Reward.id)
        .filter(
            ProgramReward.program_id == program_id,
            ProgramReward.is_active.is_(True),
            Reward.status == 'active',
        )
        .order_by(ProgramReward.id.asc())
        .all()
    )
    return [pr.reward.to_dict() for pr in program_rewards]


def check_rewards(payload: Dict[str, Any], now: datetime = None) -> Dict[str, Any]:
    """
    Checkout extension reward check.

    Looks up the client by shop domain, returns the order's existing active
    redemption link if there is one, otherwise evaluates order campaigns
    without writing anything.

    Raises:
        ValidationError: shop_domain missing, or order_value not a number
    """
    now = now or datetime.utcnow()

    shop_domain = (payload.get('shop_domain') or '').strip().lower()
    if not shop_domain:
        raise ValidationError('shop_domain is required', 'shop_domain')

    if payload.get('order_value') not in (None, '') and to_decimal(payload['order_value']) is None:
        raise ValidationError('order_value must be a number', 'order_value')

    installation = StoreInstallation.query.filter(
        db.func.lower(StoreInstallation.shop_domain) == shop_domain,
        StoreInstallation.installation_status == 'active',
    ).first()
    if not installation:
        return {'qualifies': False, 'error': 'Shop not configured'}

    client = installation.client
    client_name = client.name if client and client.name else current_app.config['DEFAULT_CLIENT_NAME']
    order_id = payload.get('order_id')

    if order_id is not None:
        token = RedemptionToken.query.filter(
            RedemptionToken.client_id == installation.client_id,
            RedemptionToken.order_id == str(order_id),
            RedemptionToken.used.is_(False),
            RedemptionToken.expires_at > now,
        ).order_by(RedemptionToken.created_at.desc()).first()

        if token:
            rule = token.campaign_rule
            program = rule.program if rule else None
            rewards = program_reward_list(program.id) if program else []
            return {
                'qualifies': True,
                'bannerTitle': "Congratulations! You've Earned Rewards!",
                'bannerMessage': (rule.description if rule else None)
                or (program.description if program else None)
                or "Thank you for your purchase! You've been enrolled in our exclusive rewards program.",
                'buttonText': 'Claim Your Rewards',
                'rewardUrl': token.redemption_url,
                'clientName': client_name,
                'campaignId': rule.id if rule else None,
                'programName': program.name if program else None,
                'rewards': rewards,
                'rewardCount': len(rewards),
            }

    rules = select_rules(installation.client_id, trigger_types_for_event(EVENT_ORDER), now)
    if not rules:
        return {'qualifies': False, 'message': 'No active campaigns available'}

    event = build_checkout_event(payload)
    rule = first_matching_rule(rules, event)
    if not rule:
        return {'qualifies': False, 'message': 'Order does not qualify for rewards'}

    program = rule.program
    rewards = program_reward_list(program.id)

    params = {'campaign': rule.id, 'order': order_id if order_id is not None else ''}
    if payload.get('customer_email'):
        params = {'email': payload['customer_email'], **params}
    reward_url = f"{current_app.config['APP_URL']}/claim-rewards?{urlencode(params)}"

    return {
        'qualifies': True,
        'bannerTitle': rule.name or "You've Earned Rewards!",
        'bannerMessage': rule.description or program.description
        or 'Congratulations! You qualify for exclusive rewards. Click below to claim your benefits.',
        'buttonText': 'Claim Your Rewards',
        'rewardUrl': reward_url,
        'clientName': client_name,
        'campaignId': rule.id,
        'programName': program.name,
        'rewards': rewards,
        'rewardCount': len(rewards),
    }


def build_checkout_event(payload: Dict[str, Any]) -> TriggerEvent:
    """Order event from the checkout extension payload (a paid, live order)."""
    order_id = payload.get('order_id')
    order_context = {
        'id': order_id,
        'total_price': payload.get('order_value'),
        'email': payload.get('customer_email'),
        'phone': payload.get('customer_phone'),
        'shipping_address': payload.get('shipping_address'),
        'line_items': payload.get('line_items') or [],
        'gateway': payload.get('payment_method'),
        'discount_codes': [{'code': c} for c in payload.get('discount_codes') or []],
        'financial_status': 'paid',
        'cancelled_at': None,
        'test': False,
    }
    fields = {k: v for k, v in payload.items() if not isinstance(v, (dict, list))}

    return TriggerEvent(
        event_type=EVENT_ORDER,
        order_total=to_decimal(payload.get('order_value')) or Decimal('0'),
        customer_order_count=payload.get('customer_order_count'),
        fields=fields,
        order=order_context,
        order_id=str(order_id) if order_id is not None else None,
        customer_email=payload.get('customer_email'),
        customer_phone=payload.get('customer_phone'),
    )
