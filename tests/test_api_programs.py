"""
Tests for the membership program API.
"""
from rewardhub.models import MembershipProgram, ProgramReward, Reward
from rewardhub.services.enrollment_service import enrollment_service


class TestProgramsApi:

    def test_list(self, client, auth_headers, sample_program):
        data = client.get('/api/programs', headers=auth_headers).get_json()

        assert data['count'] == 1
        assert data['programs'][0]['name'] == 'VIP Club'

    def test_admin_lists_named_client(self, client, admin_headers, sample_client, sample_program):
        data = client.get(f'/api/programs?client_id={sample_client.id}', headers=admin_headers).get_json()
        assert data['count'] == 1

    def test_create(self, client, auth_headers, sample_client):
        response = client.post('/api/programs', headers=auth_headers, json={
            'name': 'Coffee Lovers', 'validity_days': 90, 'max_rewards_total': 5,
        })

        data = response.get_json()
        assert response.status_code == 201
        program = MembershipProgram.query.filter_by(name='Coffee Lovers').one()
        assert program.client_id == sample_client.id
        assert program.validity_days == 90
        assert data['id'] == program.id

    def test_create_rejects_bad_validity(self, client, auth_headers):
        response = client.post('/api/programs', headers=auth_headers, json={'name': 'Broken', 'validity_days': 0})
        assert response.status_code == 400

    def test_get_includes_rewards(self, client, auth_headers, sample_program):
        data = client.get(f'/api/programs/{sample_program.id}', headers=auth_headers).get_json()

        assert data['enrollment_count'] == 0
        assert len(data['rewards']) == 2

    def test_update(self, client, auth_headers, sample_program):
        response = client.patch(f'/api/programs/{sample_program.id}', headers=auth_headers, json={
            'name': 'VIP Club Plus', 'is_active': False,
        })

        assert response.status_code == 200
        assert response.get_json()['name'] == 'VIP Club Plus'
        assert response.get_json()['is_active'] is False

    def test_delete_refused_with_enrollments(self, client, auth_headers, sample_program, sample_member):
        enrollment_service.enroll(sample_member.id, sample_program.id)

        response = client.delete(f'/api/programs/{sample_program.id}', headers=auth_headers)

        assert response.status_code == 409

    def test_delete_refused_with_campaign_rules(self, client, auth_headers, sample_program, sample_rule):
        response = client.delete(f'/api/programs/{sample_program.id}', headers=auth_headers)
        assert response.status_code == 409

    def test_delete_unused_program(self, db, client, auth_headers, sample_client):
        program = MembershipProgram(client_id=sample_client.id, name='Temp', validity_days=10, is_active=True)
        db.session.add(program)
        db.session.commit()
        program_id = program.id

        response = client.delete(f'/api/programs/{program_id}', headers=auth_headers)

        assert response.status_code == 200
        assert db.session.get(MembershipProgram, program_id) is None


class TestAttachReward:

    def test_attach(self, db, client, auth_headers, sample_client, sample_program):
        reward = Reward(client_id=sample_client.id, title='Tote bag', reward_type='free_product', status='active')
        db.session.add(reward)
        db.session.commit()

        response = client.post(f'/api/programs/{sample_program.id}/rewards', headers=auth_headers, json={
            'reward_id': reward.id, 'quantity_limit': 1,
        })

        assert response.status_code == 201
        assert ProgramReward.query.filter_by(program_id=sample_program.id).count() == 3

    def test_attach_twice_conflicts(self, client, auth_headers, sample_program, sample_rewards):
        response = client.post(f'/api/programs/{sample_program.id}/rewards', headers=auth_headers, json={
            'reward_id': sample_rewards[0].id,
        })
        assert response.status_code == 409

    def test_attach_other_client_reward(self, db, client, auth_headers, other_client, sample_program):
        reward = Reward(client_id=other_client.id, title='Theirs', status='active')
        db.session.add(reward)
        db.session.commit()

        response = client.post(f'/api/programs/{sample_program.id}/rewards', headers=auth_headers, json={
            'reward_id': reward.id,
        })
        assert response.status_code == 404


class TestProgramFieldParsing:

    def test_default_validity(self, app, client, auth_headers):
        response = client.post('/api/programs', headers=auth_headers, json={'name': 'Yearly'})

        assert response.status_code == 201
        assert MembershipProgram.query.filter_by(name='Yearly').one().validity_days == (
            app.config['DEFAULT_PROGRAM_VALIDITY_DAYS']
        ) == 365

    def test_string_flags(self, client, auth_headers):
        response = client.post('/api/programs', headers=auth_headers, json={
            'name': 'Flags', 'auto_renew': 'yes', 'is_active': 'false',
        })

        assert response.status_code == 201
        program = MembershipProgram.query.filter_by(name='Flags').one()
        assert program.auto_renew is True
        assert program.is_active is False

    def test_unparseable_flag_rejected(self, client, auth_headers, sample_program):
        response = client.patch(f'/api/programs/{sample_program.id}', headers=auth_headers, json={
            'auto_renew': 'maybe',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_AUTO_RENEW'

    def test_nan_fee_rejected(self, client, auth_headers):
        response = client.post('/api/programs', headers=auth_headers, json={'name': 'Free?', 'fee': 'NaN'})

        assert response.status_code == 400
        assert MembershipProgram.query.filter_by(name='Free?').count() == 0
