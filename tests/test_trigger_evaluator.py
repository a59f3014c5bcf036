"""
Tests for campaign trigger evaluation.

Tests cover:
- order_value / order_count thresholds (inclusive boundaries)
- Event-bound triggers (signup, referral, birthday)
- custom_event field matching
- Exclusion flags on the raw order
- Building events from Shopify order payloads
"""
from decimal import Decimal
from types import SimpleNamespace

from rewardhub.services.trigger_evaluator import (
    TriggerEvent,
    evaluate,
    is_excluded,
    rule_matches,
    to_decimal,
    trigger_types_for_event,
)


def order_event(total=None, count=None, **kwargs):
    return TriggerEvent(event_type='order', order_total=total, customer_order_count=count, **kwargs)


class TestOrderValue:
    """order_value fires when the order total reaches the minimum."""

    def test_fires_above_minimum(self):
        assert evaluate('order_value', {'min_order_value': 100}, order_event(Decimal('150.00')))

    def test_boundary_is_inclusive(self):
        assert evaluate('order_value', {'min_order_value': 100}, order_event(Decimal('100.00')))

    def test_below_minimum(self):
        assert not evaluate('order_value', {'min_order_value': 100}, order_event(Decimal('99.99')))

    def test_string_minimum_is_parsed(self):
        assert evaluate('order_value', {'min_order_value': '49.50'}, order_event(Decimal('49.50')))

    def test_missing_minimum_defaults_to_zero(self):
        assert evaluate('order_value', {}, order_event(Decimal('0')))

    def test_missing_total_does_not_fire(self):
        assert not evaluate('order_value', {'min_order_value': 0}, order_event(None))

    def test_nan_total_does_not_fire(self):
        assert not evaluate('order_value', {'min_order_value': 0}, order_event(Decimal('NaN')))

    def test_nan_minimum_does_not_fire(self):
        assert not evaluate('order_value', {'min_order_value': 'NaN'}, order_event(Decimal('500')))

    def test_non_order_event_does_not_fire(self):
        event = TriggerEvent(event_type='signup', order_total=Decimal('500'))
        assert not evaluate('order_value', {'min_order_value': 100}, event)


class TestOrderCount:
    """order_count compares the customer's lifetime order count."""

    def test_fires_at_minimum(self):
        assert evaluate('order_count', {'min_order_count': 3}, order_event(count=3))

    def test_below_minimum(self):
        assert not evaluate('order_count', {'min_order_count': 3}, order_event(count=2))

    def test_missing_count_does_not_fire(self):
        assert not evaluate('order_count', {'min_order_count': 1}, order_event())


class TestEventBoundTriggers:
    """signup, referral and birthday fire only for their own event type."""

    def test_signup(self):
        assert evaluate('signup', {}, TriggerEvent(event_type='signup'))
        assert not evaluate('signup', {}, TriggerEvent(event_type='referral'))

    def test_referral(self):
        assert evaluate('referral', None, TriggerEvent(event_type='referral'))

    def test_birthday(self):
        assert evaluate('birthday', {}, TriggerEvent(event_type='birthday'))
        assert not evaluate('birthday', {}, order_event(Decimal('10')))

    def test_unknown_trigger_type_never_fires(self):
        assert not evaluate('moon_phase', {}, order_event(Decimal('10')))


class TestCustomEvent:
    """custom_event compares a named event field to a configured value."""

    def test_matching_field(self):
        event = TriggerEvent(event_type='custom', fields={'source': 'popup'})
        conditions = {'custom_field': 'source', 'custom_value': 'popup'}
        assert evaluate('custom_event', conditions, event)

    def test_values_compared_as_strings(self):
        event = order_event(Decimal('10'), fields={'store_id': 42})
        conditions = {'custom_field': 'store_id', 'custom_value': '42'}
        assert evaluate('custom_event', conditions, event)

    def test_different_value(self):
        event = TriggerEvent(event_type='custom', fields={'source': 'email'})
        conditions = {'custom_field': 'source', 'custom_value': 'popup'}
        assert not evaluate('custom_event', conditions, event)

    def test_missing_field(self):
        event = TriggerEvent(event_type='custom', fields={})
        assert not evaluate('custom_event', {'custom_field': 'source', 'custom_value': 'x'}, event)

    def test_no_field_configured(self):
        event = TriggerEvent(event_type='custom', fields={'source': 'x'})
        assert not evaluate('custom_event', {'custom_value': 'x'}, event)


class TestTriggerTypesForEvent:

    def test_order_event(self):
        assert trigger_types_for_event('order') == ['order_value', 'order_count', 'custom_event']

    def test_signup_event(self):
        assert trigger_types_for_event('signup') == ['signup', 'custom_event']

    def test_custom_event(self):
        assert trigger_types_for_event('custom') == ['custom_event']


class TestExclusions:
    """Exclusion flags are checked against the raw order."""

    def test_refunded_order_excluded(self):
        event = order_event(Decimal('200'), order={'financial_status': 'refunded'})
        excluded, reason = is_excluded({'exclude_refunded': True}, event)
        assert excluded
        assert reason == 'Order is refunded'

    def test_cancelled_order_excluded(self):
        event = order_event(Decimal('200'), order={'cancelled_at': '2026-01-01T00:00:00Z'})
        assert is_excluded({'exclude_cancelled': True}, event)[0]

    def test_test_order_excluded(self):
        event = order_event(Decimal('200'), order={'test': True})
        assert is_excluded({'exclude_test_orders': True}, event)[0]

    def test_flag_off_does_not_exclude(self):
        event = order_event(Decimal('200'), order={'financial_status': 'refunded'})
        assert is_excluded({'exclude_refunded': False}, event) == (False, None)

    def test_no_order_payload(self):
        assert is_excluded({'exclude_test_orders': True}, TriggerEvent(event_type='signup')) == (False, None)

    def test_rule_matches_checks_exclusions_first(self):
        rule = SimpleNamespace(
            trigger_type='order_value',
            trigger_conditions={'min_order_value': 10},
            exclusion_rules={'exclude_test_orders': True},
        )
        matched, reason = rule_matches(rule, order_event(Decimal('50'), order={'test': True}))
        assert not matched
        assert reason == 'Test order'


class TestShopifyOrderEvent:
    """TriggerEvent.from_shopify_order maps the webhook payload."""

    PAYLOAD = {
        'id': 5678901234567,
        'email': 'customer@example.com',
        'phone': None,
        'total_price': '125.50',
        'financial_status': 'paid',
        'source_name': 'web',
        'note_attributes': [{'name': 'channel', 'value': 'instagram'}],
        'customer': {
            'id': 7890123456789,
            'email': 'customer@example.com',
            'phone': '+14155551234',
            'first_name': 'Test',
            'last_name': 'Customer',
            'orders_count': 4,
        },
    }

    def test_maps_order_fields(self):
        event = TriggerEvent.from_shopify_order(self.PAYLOAD)
        assert event.event_type == 'order'
        assert event.order_id == '5678901234567'
        assert event.order_total == Decimal('125.50')
        assert event.customer_order_count == 4
        assert event.customer_email == 'customer@example.com'
        assert event.customer_phone == '+14155551234'
        assert event.customer_name == 'Test Customer'
        assert event.customer_external_id == '7890123456789'

    def test_fields_include_scalars_and_note_attributes(self):
        event = TriggerEvent.from_shopify_order(self.PAYLOAD)
        assert event.fields['source_name'] == 'web'
        assert event.fields['channel'] == 'instagram'
        assert 'customer' not in event.fields


class TestToDecimal:

    def test_values(self):
        assert to_decimal('10.5') == Decimal('10.5')
        assert to_decimal(3) == Decimal('3')
        assert to_decimal(None) is None
        assert to_decimal('') is None
        assert to_decimal('abc') is None

    def test_non_finite_and_bool_rejected(self):
        assert to_decimal('NaN') is None
        assert to_decimal('-Infinity') is None
        assert to_decimal(Decimal('sNaN')) is None
        assert to_decimal(float('inf')) is None
        assert to_decimal(True) is None
