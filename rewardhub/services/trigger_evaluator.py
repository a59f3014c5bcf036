"""
Campaign trigger evaluation.

Pure predicates deciding whether a customer event satisfies a campaign
rule's trigger conditions. No database access here; the rule selector and
campaign service feed rules and events in.

Trigger semantics:
- order_value: order_total >= min_order_value (boundary inclusive)
- order_count: customer_order_count >= min_order_count
- signup / referral / birthday: the event type matches
- custom_event: str(event.fields[custom_field]) == str(custom_value)
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List, Tuple

from ..models.campaign import TriggerType

logger = logging.getLogger(__name__)


# Event types submitted to the campaign service
EVENT_ORDER = 'order'
EVENT_SIGNUP = 'signup'
EVENT_REFERRAL = 'referral'
EVENT_BIRTHDAY = 'birthday'
EVENT_CUSTOM = 'custom'

EVENT_TYPES = (EVENT_ORDER, EVENT_SIGNUP, EVENT_REFERRAL, EVENT_BIRTHDAY, EVENT_CUSTOM)

# Trigger types that only fire for a single kind of event
_EVENT_BOUND_TRIGGERS = {
    TriggerType.ORDER_VALUE.value: EVENT_ORDER,
    TriggerType.ORDER_COUNT.value: EVENT_ORDER,
    TriggerType.SIGNUP.value: EVENT_SIGNUP,
    TriggerType.REFERRAL.value: EVENT_REFERRAL,
    TriggerType.BIRTHDAY.value: EVENT_BIRTHDAY,
}


@dataclass
class TriggerEvent:
    """A customer event evaluated against campaign rules."""
    event_type: str
    order_total: Optional[Decimal] = None
    customer_order_count: Optional[int] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    order: Dict[str, Any] = field(default_factory=dict)
    order_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    customer_external_id: Optional[str] = None

    @classmethod
    def from_shopify_order(cls, order: Dict[str, Any]) -> 'TriggerEvent':
        """Build an order event from a Shopify order payload."""
        customer = order.get('customer') or {}
        name = ' '.join(
            part for part in (customer.get('first_name'), customer.get('last_name')) if part
        )
        # Custom fields: top-level scalars plus cart note attributes
        fields = {k: v for k, v in order.items() if not isinstance(v, (dict, list))}
        for attribute in order.get('note_attributes') or []:
            if attribute.get('name'):
                fields[attribute['name']] = attribute.get('value')

        return cls(
            event_type=EVENT_ORDER,
            order_total=to_decimal(order.get('total_price')),
            customer_order_count=_to_int(customer.get('orders_count')),
            fields=fields,
            order=order,
            order_id=str(order['id']) if order.get('id') is not None else None,
            customer_email=order.get('email') or customer.get('email'),
            customer_phone=order.get('phone') or customer.get('phone'),
            customer_name=name or None,
            customer_external_id=str(customer['id']) if customer.get('id') is not None else None,
        )


def to_decimal(value) -> Optional[Decimal]:
    """Decimal from the raw stored value, or None when missing, malformed or not finite."""
    if value is None or value == '' or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    # NaN and Infinity cannot be ordered against a minimum
    return number if number.is_finite() else None


def _to_int(value) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def trigger_types_for_event(event_type: str) -> List[str]:
    """Trigger types that can fire for an event type. custom_event fires for any event."""
    types = [t for t, bound in _EVENT_BOUND_TRIGGERS.items() if bound == event_type]
    types.append(TriggerType.CUSTOM_EVENT.value)
    return types


def _minimum(conditions: Dict[str, Any], key: str) -> Optional[Decimal]:
    """Threshold from the conditions; 0 when absent, None when present but not a finite number."""
    raw = conditions.get(key)
    if raw is None or raw == '':
        return Decimal('0')
    return to_decimal(raw)


def evaluate(trigger_type: str, trigger_conditions: Optional[Dict[str, Any]], event: TriggerEvent) -> bool:
    """
    Decide whether an event satisfies a rule's trigger.

    Args:
        trigger_type: Rule trigger type (see TriggerType)
        trigger_conditions: Rule parameters, e.g. {"min_order_value": 100}
        event: The customer event

    Returns:
        True if the trigger fires for this event
    """
    conditions = trigger_conditions or {}

    bound_event = _EVENT_BOUND_TRIGGERS.get(trigger_type)
    if bound_event is not None and event.event_type != bound_event:
        return False

    if trigger_type == TriggerType.ORDER_VALUE.value:
        minimum = _minimum(conditions, 'min_order_value')
        total = to_decimal(event.order_total)
        if minimum is None or total is None:
            return False
        return total >= minimum

    if trigger_type == TriggerType.ORDER_COUNT.value:
        minimum = _minimum(conditions, 'min_order_count')
        count = to_decimal(event.customer_order_count)
        if minimum is None or count is None:
            return False
        return count >= minimum

    if trigger_type in (
        TriggerType.SIGNUP.value,
        TriggerType.REFERRAL.value,
        TriggerType.BIRTHDAY.value,
    ):
        return True

    if trigger_type == TriggerType.CUSTOM_EVENT.value:
        custom_field = conditions.get('custom_field')
        if not custom_field or custom_field not in (event.fields or {}):
            return False
        return str(event.fields[custom_field]) == str(conditions.get('custom_value'))

    logger.warning(f"Unknown trigger type '{trigger_type}', treating as not matched")
    return False


def is_excluded(exclusion_rules: Optional[Dict[str, Any]], event: TriggerEvent) -> Tuple[bool, Optional[str]]:
    """
    Check a rule's exclusion flags against the raw order payload.

    Returns:
        (excluded, reason)
    """
    if not exclusion_rules or not event.order:
        return False, None

    order = event.order
    if exclusion_rules.get('exclude_refunded') and order.get('financial_status') == 'refunded':
        return True, 'Order is refunded'
    if exclusion_rules.get('exclude_cancelled') and order.get('cancelled_at'):
        return True, 'Order is cancelled'
    if exclusion_rules.get('exclude_test_orders') and order.get('test'):
        return True, 'Test order'

    return False, None


def rule_matches(rule, event: TriggerEvent) -> Tuple[bool, Optional[str]]:
    """
    Full check of one rule: exclusions first, then the trigger.

    Returns:
        (matched, reason) where reason explains a miss
    """
    excluded, reason = is_excluded(rule.exclusion_rules, event)
    if excluded:
        return False, reason
    if not evaluate(rule.trigger_type, rule.trigger_conditions, event):
        return False, f"Trigger {rule.trigger_type} conditions not met"
    return True, None
