"""
Tests for the rewards catalog API.
"""
from decimal import Decimal

from rewardhub.models import Reward


class TestRewardsApi:

    def test_create_points_reward(self, client, auth_headers, sample_client):
        response = client.post('/api/rewards', headers=auth_headers, json={
            'title': '$5 off',
            'discount_value': '5',
            'discount_type': 'fixed_amount',
            'min_purchase_amount': 25,
            'points_cost': 500,
        })

        data = response.get_json()
        assert response.status_code == 201
        assert data['points_cost'] == 500
        reward = Reward.query.filter_by(title='$5 off').one()
        assert reward.client_id == sample_client.id
        assert reward.min_purchase_amount == Decimal('25')

    def test_list_own_rewards(self, client, auth_headers, sample_rewards):
        data = client.get('/api/rewards', headers=auth_headers).get_json()
        assert data['count'] == 2

    def test_brand_with_non_integer_client(self, client, brand_headers):
        response = client.post('/api/rewards', headers=brand_headers, json={
            'title': 'Trail mix', 'client_id': 'acme',
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_CLIENT_ID'

    def test_admin_brand_filter_must_be_integer(self, client, admin_headers):
        response = client.get('/api/rewards?brand_id=first', headers=admin_headers)

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_BRAND_ID'

    def test_nan_discount_rejected(self, client, auth_headers):
        response = client.post('/api/rewards', headers=auth_headers, json={
            'title': 'Broken', 'discount_value': 'NaN',
        })

        assert response.status_code == 400
        assert Reward.query.filter_by(title='Broken').count() == 0

    def test_points_cost_must_be_positive(self, client, auth_headers):
        response = client.post('/api/rewards', headers=auth_headers, json={
            'title': 'Free', 'points_cost': 0,
        })
        assert response.status_code == 400

    def test_unknown_discount_type(self, client, auth_headers):
        response = client.post('/api/rewards', headers=auth_headers, json={
            'title': 'Odd', 'discount_type': 'bogo',
        })
        assert response.status_code == 400
