"""
Tests for the campaign rules and campaign events API.
"""
from rewardhub.middleware.auth import issue_auth_token
from rewardhub.models import CampaignRule, CampaignTriggerLog, Enrollment, Member, MembershipProgram, User, UserRole


class TestCampaignRulesApi:

    def test_list_in_evaluation_order(self, db, client, auth_headers, sample_client, sample_program, sample_rule):
        db.session.add(CampaignRule(
            client_id=sample_client.id,
            program_id=sample_program.id,
            name='Welcome',
            trigger_type='signup',
            trigger_conditions={},
            priority=50,
            current_enrollments=0,
            is_active=True,
        ))
        db.session.commit()

        response = client.get('/api/campaign-rules', headers=auth_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['count'] == 2
        assert [r['name'] for r in data['rules']] == ['Welcome', 'Big spenders']

        filtered = client.get('/api/campaign-rules?trigger_type=order_value', headers=auth_headers).get_json()
        assert [r['name'] for r in filtered['rules']] == ['Big spenders']

    def test_create(self, db, client, auth_headers, sample_program, client_user):
        response = client.post('/api/campaign-rules', headers=auth_headers, json={
            'name': 'Repeat customers',
            'program_id': sample_program.id,
            'trigger_type': 'order_count',
            'trigger_conditions': {'min_order_count': 3},
            'exclusion_rules': {'exclude_refunded': True, 'unknown_flag': True},
            'priority': 5,
            'max_enrollments': 100,
            'start_date': '2026-01-01T00:00:00Z',
        })

        data = response.get_json()
        assert response.status_code == 201
        assert data['trigger_conditions'] == {'min_order_count': 3}
        assert data['exclusion_rules'] == {'exclude_refunded': True}
        assert data['current_enrollments'] == 0
        assert data['start_date'] == '2026-01-01T00:00:00'
        assert db.session.get(CampaignRule, data['id']).created_by == client_user.id

    def test_create_requires_fields(self, client, auth_headers, sample_program):
        response = client.post('/api/campaign-rules', headers=auth_headers, json={
            'name': 'Missing trigger', 'program_id': sample_program.id,
        })
        assert response.status_code == 400

    def test_create_rejects_unknown_trigger(self, client, auth_headers, sample_program):
        response = client.post('/api/campaign-rules', headers=auth_headers, json={
            'name': 'Bad', 'program_id': sample_program.id, 'trigger_type': 'moon_phase',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_TRIGGER_TYPE'

    def test_custom_event_needs_field(self, client, auth_headers, sample_program):
        response = client.post('/api/campaign-rules', headers=auth_headers, json={
            'name': 'Custom', 'program_id': sample_program.id, 'trigger_type': 'custom_event',
        })
        assert response.status_code == 400

    def test_program_of_other_client(self, db, client, auth_headers, other_client):
        foreign = MembershipProgram(client_id=other_client.id, name='Theirs', validity_days=30, is_active=True)
        db.session.add(foreign)
        db.session.commit()

        response = client.post('/api/campaign-rules', headers=auth_headers, json={
            'name': 'Sneaky', 'program_id': foreign.id, 'trigger_type': 'signup',
        })
        assert response.status_code == 404

    def test_update_end_before_start(self, client, auth_headers, sample_rule):
        response = client.patch(f'/api/campaign-rules/{sample_rule.id}', headers=auth_headers, json={
            'start_date': '2026-06-01T00:00:00',
            'end_date': '2026-05-01T00:00:00',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_END_DATE'

    def test_cap_cannot_drop_below_current(self, db, client, auth_headers, sample_rule):
        sample_rule.current_enrollments = 5
        db.session.commit()

        response = client.patch(f'/api/campaign-rules/{sample_rule.id}', headers=auth_headers, json={
            'max_enrollments': 4,
        })
        assert response.status_code == 400

    def test_deactivate(self, client, auth_headers, sample_rule):
        response = client.patch(f'/api/campaign-rules/{sample_rule.id}', headers=auth_headers, json={
            'is_active': False,
        })

        assert response.status_code == 200
        assert response.get_json()['is_active'] is False

    def test_other_client_rule_forbidden(self, db, client, other_client, sample_rule):
        outsider = User(email='boss@other.test', role=UserRole.CLIENT.value, client_id=other_client.id)
        db.session.add(outsider)
        db.session.commit()

        headers = {'Authorization': f'Bearer {issue_auth_token(outsider)}'}
        response = client.get(f'/api/campaign-rules/{sample_rule.id}', headers=headers)
        assert response.status_code == 403

    def test_missing_rule(self, client, auth_headers):
        response = client.get('/api/campaign-rules/999', headers=auth_headers)

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'CAMPAIGN_RULE_NOT_FOUND'


class TestRuleTokensAndLogs:

    def test_issue_link(self, app, client, auth_headers, sample_rule, sample_member):
        response = client.post(f'/api/campaign-rules/{sample_rule.id}/tokens', headers=auth_headers, json={
            'member_id': sample_member.id, 'ttl_days': 7,
        })

        data = response.get_json()
        assert response.status_code == 201
        assert data['member_id'] == sample_member.id
        assert data['redemption_url'] == f"{app.config['APP_URL']}/redeem/{data['token']}"

        listing = client.get(f'/api/campaign-rules/{sample_rule.id}/tokens', headers=auth_headers).get_json()
        assert listing['count'] == 1

    def test_issue_link_rejects_bad_ttl(self, client, auth_headers, sample_rule):
        response = client.post(f'/api/campaign-rules/{sample_rule.id}/tokens', headers=auth_headers, json={
            'ttl_days': 0,
        })
        assert response.status_code == 400

    def test_logs(self, client, auth_headers, sample_rule, sample_member):
        client.post('/api/campaign-events', headers=auth_headers, json={
            'event_type': 'order', 'order_total': 10, 'member_id': sample_member.id,
        })

        response = client.get(f'/api/campaign-rules/{sample_rule.id}/logs?status=not_matched', headers=auth_headers)

        data = response.get_json()
        assert data['count'] == 1
        assert data['logs'][0]['status'] == 'not_matched'


class TestCampaignEventsApi:

    def test_evaluate_is_dry_run(self, client, auth_headers, sample_rule):
        response = client.post('/api/campaign-rules/evaluate', headers=auth_headers, json={
            'event_type': 'order', 'order_total': '250.00',
        })

        data = response.get_json()
        assert response.status_code == 200
        assert data['firstMatchId'] == sample_rule.id
        assert CampaignTriggerLog.query.count() == 0

    def test_submit_order_event(self, client, auth_headers, sample_rule, sample_member):
        response = client.post('/api/campaign-events', headers=auth_headers, json={
            'event_type': 'order',
            'order_total': 150,
            'order_id': 'POS-77',
            'member_id': sample_member.id,
        })

        data = response.get_json()
        assert response.status_code == 200
        assert data['status'] == 'success'
        assert data['redemption_url']
        assert Enrollment.query.filter_by(member_id=sample_member.id).count() == 1

    def test_unknown_event_type(self, client, auth_headers):
        response = client.post('/api/campaign-events', headers=auth_headers, json={'event_type': 'holiday'})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_EVENT_TYPE'

    def test_member_of_other_client(self, db, client, auth_headers, other_client):
        outsider = Member(client_id=other_client.id, email='x@other.test', is_active=True)
        db.session.add(outsider)
        db.session.commit()

        response = client.post('/api/campaign-events', headers=auth_headers, json={
            'event_type': 'signup', 'member_id': outsider.id,
        })
        assert response.status_code == 404


class TestRuleFieldParsing:

    def test_offset_converted_to_utc(self, client, auth_headers, sample_program):
        response = client.post('/api/campaign-rules', headers=auth_headers, json={
            'name': 'New year',
            'program_id': sample_program.id,
            'trigger_type': 'signup',
            'start_date': '2026-01-01T00:00:00+05:00',
            'end_date': '2026-01-31T23:59:59-08:00',
        })

        data = response.get_json()
        assert response.status_code == 201
        assert data['start_date'] == '2025-12-31T19:00:00'
        assert data['end_date'] == '2026-02-01T07:59:59'

    def test_non_finite_minimum_rejected(self, client, auth_headers, sample_program):
        for value in ('NaN', 'Infinity'):
            response = client.post('/api/campaign-rules', headers=auth_headers, json={
                'name': 'Broken',
                'program_id': sample_program.id,
                'trigger_type': 'order_value',
                'trigger_conditions': {'min_order_value': value},
            })
            assert response.status_code == 400
        assert CampaignRule.query.filter_by(name='Broken').count() == 0

    def test_string_false_deactivates(self, db, client, auth_headers, sample_rule):
        response = client.patch(f'/api/campaign-rules/{sample_rule.id}', headers=auth_headers, json={
            'is_active': 'false',
        })

        assert response.status_code == 200
        assert response.get_json()['is_active'] is False
        assert db.session.get(CampaignRule, sample_rule.id).is_active is False

    def test_unparseable_flag_rejected(self, client, auth_headers, sample_rule):
        response = client.patch(f'/api/campaign-rules/{sample_rule.id}', headers=auth_headers, json={
            'is_active': 'maybe',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_IS_ACTIVE'
