"""
Tests for campaign rule selection.

Tests cover:
- Priority ordering with insertion-order tie-break
- Date windows with open bounds
- Inactive rules and inactive programs
- Tenant isolation
- First matching rule
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from rewardhub.models import CampaignRule, MembershipProgram
from rewardhub.services.rule_selector import select_rules, first_matching_rule
from rewardhub.services.trigger_evaluator import TriggerEvent

NOW = datetime(2026, 6, 15, 12, 0, 0)


@pytest.fixture
def make_rule(db, sample_client, sample_program):
    def _make(name, priority=0, created_at=None, **kwargs):
        rule = CampaignRule(
            client_id=kwargs.pop('client_id', sample_client.id),
            program_id=kwargs.pop('program_id', sample_program.id),
            name=name,
            trigger_type=kwargs.pop('trigger_type', 'order_value'),
            trigger_conditions=kwargs.pop('trigger_conditions', {'min_order_value': 0}),
            exclusion_rules=kwargs.pop('exclusion_rules', {}),
            priority=priority,
            current_enrollments=0,
            is_active=kwargs.pop('is_active', True),
            created_at=created_at or NOW - timedelta(days=30),
            **kwargs,
        )
        db.session.add(rule)
        db.session.commit()
        return rule
    return _make


class TestSelectRules:
    """select_rules returns live rules in evaluation order."""

    def test_priority_descending(self, sample_client, make_rule):
        low = make_rule('low', priority=1)
        high = make_rule('high', priority=50)
        mid = make_rule('mid', priority=10)

        rules = select_rules(sample_client.id, now=NOW)
        assert [r.id for r in rules] == [high.id, mid.id, low.id]

    def test_equal_priority_uses_insertion_order(self, sample_client, make_rule):
        newer = make_rule('newer', priority=5, created_at=NOW - timedelta(days=1))
        older = make_rule('older', priority=5, created_at=NOW - timedelta(days=10))

        rules = select_rules(sample_client.id, now=NOW)
        assert [r.id for r in rules] == [older.id, newer.id]

    def test_date_window(self, sample_client, make_rule):
        make_rule('future', start_date=NOW + timedelta(days=1))
        make_rule('ended', end_date=NOW - timedelta(seconds=1))
        live = make_rule('live', start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1))
        open_ended = make_rule('open')

        ids = {r.id for r in select_rules(sample_client.id, now=NOW)}
        assert ids == {live.id, open_ended.id}

    def test_window_bounds_inclusive(self, sample_client, make_rule):
        starts_now = make_rule('starts now', start_date=NOW)
        ends_now = make_rule('ends now', end_date=NOW)

        ids = {r.id for r in select_rules(sample_client.id, now=NOW)}
        assert ids == {starts_now.id, ends_now.id}

    def test_inactive_rule_skipped(self, sample_client, make_rule):
        make_rule('off', is_active=False)
        assert select_rules(sample_client.id, now=NOW) == []

    def test_inactive_program_skipped(self, db, sample_client, make_rule):
        paused = MembershipProgram(client_id=sample_client.id, name='Paused', validity_days=30, is_active=False)
        db.session.add(paused)
        db.session.commit()
        make_rule('on paused program', program_id=paused.id)

        assert select_rules(sample_client.id, now=NOW) == []

    def test_other_client_rules_excluded(self, db, sample_client, other_client, make_rule):
        foreign_program = MembershipProgram(client_id=other_client.id, name='Theirs', validity_days=30, is_active=True)
        db.session.add(foreign_program)
        db.session.commit()
        make_rule('theirs', client_id=other_client.id, program_id=foreign_program.id)
        mine = make_rule('mine')

        assert [r.id for r in select_rules(sample_client.id, now=NOW)] == [mine.id]

    def test_trigger_type_filter(self, sample_client, make_rule):
        make_rule('orders')
        signup = make_rule('signups', trigger_type='signup', trigger_conditions={})
        custom = make_rule('custom', trigger_type='custom_event',
                           trigger_conditions={'custom_field': 'a', 'custom_value': 'b'})

        assert [r.id for r in select_rules(sample_client.id, 'signup', now=NOW)] == [signup.id]
        ids = {r.id for r in select_rules(sample_client.id, ['signup', 'custom_event'], now=NOW)}
        assert ids == {signup.id, custom.id}


class TestFirstMatchingRule:

    def test_highest_priority_match_wins(self, sample_client, make_rule):
        make_rule('premium', priority=20, trigger_conditions={'min_order_value': 500})
        standard = make_rule('standard', priority=10, trigger_conditions={'min_order_value': 100})
        make_rule('starter', priority=1, trigger_conditions={'min_order_value': 0})

        rules = select_rules(sample_client.id, now=NOW)
        event = TriggerEvent(event_type='order', order_total=Decimal('150'))
        assert first_matching_rule(rules, event).id == standard.id

    def test_no_match(self, sample_client, make_rule):
        make_rule('premium', trigger_conditions={'min_order_value': 500})
        rules = select_rules(sample_client.id, now=NOW)
        assert first_matching_rule(rules, TriggerEvent(event_type='order', order_total=Decimal('5'))) is None
