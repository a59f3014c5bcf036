"""
Tests for the Campaign Service.

Tests cover:
- Order events: enrollment, rewards, redemption link, trigger logs
- Miss paths: not matched, excluded, no member, already enrolled, max reached
- Falling through to the next rule
- Shopify order and customer payloads
- Birthday runs
- Dry-run evaluation and the checkout reward check
"""
from datetime import date
from decimal import Decimal

import pytest

from rewardhub.models import (
    CampaignRule,
    CampaignTriggerLog,
    Enrollment,
    Member,
    RedemptionToken,
    ShopifyOrder,
)
from rewardhub.services.campaign_service import CampaignService, check_rewards
from rewardhub.services.redemption_tokens import issue_token
from rewardhub.services.trigger_evaluator import TriggerEvent


def order_event(total, email='jane@example.com', phone=None, order_id='1001', **kwargs):
    return TriggerEvent(
        event_type='order',
        order_total=Decimal(str(total)),
        order_id=order_id,
        customer_email=email,
        customer_phone=phone,
        **kwargs,
    )


class TestProcessEvent:
    """CampaignService.process_event"""

    def test_qualifying_order_enrolls_member(self, app, sample_client, sample_rule, sample_member):
        result = CampaignService(sample_client.id).process_event(order_event(150))

        assert result['processed'] is True
        assert result['status'] == 'success'
        assert result['rule_id'] == sample_rule.id
        assert result['member_id'] == sample_member.id
        assert result['redemption_url'].startswith(f"{app.config['APP_URL']}/redeem/")

        enrollment = Enrollment.query.one()
        assert enrollment.source == 'campaign_auto'
        assert enrollment.campaign_rule_id == sample_rule.id
        assert enrollment.allocations.count() == 2
        assert sample_rule.current_enrollments == 1

        token = RedemptionToken.query.one()
        assert token.order_id == '1001'
        assert token.member_id == sample_member.id

        log = CampaignTriggerLog.query.filter_by(status='success').one()
        assert log.enrollment_id == enrollment.id

    def test_order_below_minimum(self, sample_client, sample_rule, sample_member):
        result = CampaignService(sample_client.id).process_event(order_event(99.99))

        assert result['processed'] is False
        assert result['status'] == 'not_matched'
        assert Enrollment.query.count() == 0
        log = CampaignTriggerLog.query.one()
        assert log.status == 'not_matched'
        assert 'below minimum' in log.reason

    def test_no_rules(self, sample_client, sample_member):
        result = CampaignService(sample_client.id).process_event(order_event(150))
        assert result['status'] == 'no_rules'
        assert CampaignTriggerLog.query.count() == 0

    def test_excluded_order(self, db, sample_client, sample_rule, sample_member):
        sample_rule.exclusion_rules = {'exclude_test_orders': True}
        db.session.commit()

        result = CampaignService(sample_client.id).process_event(order_event(150, order={'test': True}))

        assert result['status'] == 'excluded'
        assert Enrollment.query.count() == 0

    def test_new_customer_becomes_member(self, sample_client, sample_rule):
        result = CampaignService(sample_client.id).process_event(order_event(150, email='fresh@example.com'))

        member = Member.query.filter_by(email='fresh@example.com').one()
        assert result['status'] == 'success'
        assert result['member_id'] == member.id

    def test_no_contact_details(self, sample_client, sample_rule):
        result = CampaignService(sample_client.id).process_event(order_event(150, email=None))

        assert result['status'] == 'no_member'
        log = CampaignTriggerLog.query.one()
        assert log.member_id is None

    def test_already_enrolled(self, sample_client, sample_rule, sample_member):
        service = CampaignService(sample_client.id)
        service.process_event(order_event(150, order_id='1001'))

        result = service.process_event(order_event(200, order_id='1002'))

        assert result['status'] == 'already_enrolled'
        assert Enrollment.query.count() == 1
        assert sample_rule.current_enrollments == 1

    def test_max_reached(self, db, sample_client, sample_rule, sample_member):
        sample_rule.max_enrollments = 1
        sample_rule.current_enrollments = 1
        db.session.commit()

        result = CampaignService(sample_client.id).process_event(order_event(150))

        assert result['status'] == 'max_reached'
        assert Enrollment.query.count() == 0
        assert sample_rule.current_enrollments == 1

    def test_falls_through_to_next_rule(self, db, sample_client, sample_program, sample_rule, sample_member):
        sample_rule.max_enrollments = 0
        db.session.commit()
        backup = CampaignRule(
            client_id=sample_client.id,
            program_id=sample_program.id,
            name='Any order',
            trigger_type='order_value',
            trigger_conditions={'min_order_value': 0},
            priority=1,
            current_enrollments=0,
            is_active=True,
        )
        db.session.add(backup)
        db.session.commit()

        result = CampaignService(sample_client.id).process_event(order_event(150))

        assert [e['status'] for e in result['evaluated']] == ['max_reached', 'success']
        assert result['rule_id'] == backup.id

    def test_first_success_stops_evaluation(self, db, sample_client, sample_program, sample_rule, sample_member):
        later = CampaignRule(
            client_id=sample_client.id,
            program_id=sample_program.id,
            name='Lower priority',
            trigger_type='order_value',
            trigger_conditions={'min_order_value': 0},
            priority=0,
            current_enrollments=0,
            is_active=True,
        )
        db.session.add(later)
        db.session.commit()

        result = CampaignService(sample_client.id).process_event(order_event(150))

        assert len(result['evaluated']) == 1
        assert CampaignTriggerLog.query.filter_by(campaign_rule_id=later.id).count() == 0


class TestShopifyEvents:

    ORDER = {
        'id': 820982911946154508,
        'order_number': 1001,
        'email': 'shopper@example.com',
        'total_price': '180.00',
        'currency': 'USD',
        'financial_status': 'paid',
        'fulfillment_status': None,
        'customer': {'id': 115310627314723954, 'first_name': 'Sam', 'last_name': 'Shopper', 'orders_count': 1},
    }

    def test_process_order_records_order(self, sample_client, sample_installation, sample_rule):
        result = CampaignService(sample_client.id).process_order(sample_installation, self.ORDER)

        order = ShopifyOrder.query.one()
        member = Member.query.filter_by(email='shopper@example.com').one()
        assert order.order_id == '820982911946154508'
        assert order.total_price == Decimal('180.00')
        assert order.member_id == member.id
        assert member.full_name == 'Sam Shopper'
        assert member.external_id == '115310627314723954'
        assert result['status'] == 'success'

    def test_process_order_is_upsert(self, sample_client, sample_installation):
        service = CampaignService(sample_client.id)
        service.process_order(sample_installation, self.ORDER)
        service.process_order(sample_installation, {**self.ORDER, 'financial_status': 'refunded'})

        order = ShopifyOrder.query.one()
        assert order.financial_status == 'refunded'

    def test_process_signup(self, db, sample_client, sample_installation, sample_program):
        rule = CampaignRule(
            client_id=sample_client.id,
            program_id=sample_program.id,
            name='Welcome',
            trigger_type='signup',
            trigger_conditions={},
            priority=0,
            current_enrollments=0,
            is_active=True,
        )
        db.session.add(rule)
        db.session.commit()

        result = CampaignService(sample_client.id).process_signup(sample_installation, {
            'id': 42, 'email': 'new@example.com', 'first_name': 'Nia', 'last_name': 'New',
        })

        assert result['status'] == 'success'
        assert result['rule_id'] == rule.id

    def test_sync_customer_updates_contact(self, sample_client, sample_member):
        member = CampaignService(sample_client.id).sync_customer({
            'id': 99, 'email': 'jane@example.com', 'first_name': 'Janet', 'last_name': 'Doe',
        })

        assert member.id == sample_member.id
        assert member.full_name == 'Janet Doe'
        assert member.external_id == '99'

    def test_sync_customer_without_contact(self, sample_client):
        assert CampaignService(sample_client.id).sync_customer({'id': 5}) is None


class TestBirthdays:

    def test_birthday_members_enrolled(self, db, sample_client, sample_program, sample_member):
        today = date(2026, 5, 20)
        sample_member.birthday = date(1990, 5, 20)
        other = Member(client_id=sample_client.id, email='later@example.com', birthday=date(1991, 8, 1), is_active=True)
        db.session.add_all([other, CampaignRule(
            client_id=sample_client.id,
            program_id=sample_program.id,
            name='Birthday treat',
            trigger_type='birthday',
            trigger_conditions={},
            priority=0,
            current_enrollments=0,
            is_active=True,
        )])
        db.session.commit()

        service = CampaignService(sample_client.id)
        assert [m.id for m in service.members_with_birthday(today)] == [sample_member.id]

        result = service.process_birthdays(today)
        assert result['checked'] == 1
        assert result['enrolled'] == 1


class TestEvaluateRules:

    def test_dry_run_writes_nothing(self, sample_client, sample_rule):
        result = CampaignService(sample_client.id).evaluate_rules(order_event(150))

        assert result['evaluatedCount'] == 1
        assert result['firstMatchId'] == sample_rule.id
        assert result['matchedRules'][0]['name'] == 'Big spenders'
        assert CampaignTriggerLog.query.count() == 0
        assert Member.query.count() == 0


class TestCheckRewards:
    """Checkout extension reward check."""

    def test_requires_shop_domain(self, app):
        from rewardhub.utils.exceptions import ValidationError
        with pytest.raises(ValidationError):
            check_rewards({'order_value': 100})

    def test_unknown_shop(self, app):
        assert check_rewards({'shop_domain': 'nope.myshopify.com'}) == {
            'qualifies': False, 'error': 'Shop not configured'
        }

    def test_no_campaigns(self, sample_installation):
        result = check_rewards({'shop_domain': 'acme.myshopify.com', 'order_value': 150})
        assert result == {'qualifies': False, 'message': 'No active campaigns available'}

    def test_order_does_not_qualify(self, sample_installation, sample_rule):
        result = check_rewards({'shop_domain': 'acme.myshopify.com', 'order_value': 20})
        assert result == {'qualifies': False, 'message': 'Order does not qualify for rewards'}

    def test_qualifying_order(self, app, sample_installation, sample_rule):
        result = check_rewards({
            'shop_domain': 'ACME.myshopify.com',
            'order_id': 555,
            'order_value': 150,
            'customer_email': 'jane@example.com',
        })

        assert result['qualifies'] is True
        assert result['campaignId'] == sample_rule.id
        assert result['programName'] == 'VIP Club'
        assert result['clientName'] == 'Acme Outfitters'
        assert result['rewardCount'] == 2
        assert result['rewardUrl'].startswith(f"{app.config['APP_URL']}/claim-rewards?")
        assert 'campaign=' in result['rewardUrl']
        assert Member.query.count() == 0

    def test_existing_token_returned(self, sample_installation, sample_rule):
        token = issue_token(sample_rule, order_id='777')

        result = check_rewards({'shop_domain': 'acme.myshopify.com', 'order_id': 777, 'order_value': 1})

        assert result['qualifies'] is True
        assert result['rewardUrl'] == token.redemption_url
