"""
Tests for bearer token authentication and role checks.
"""
from datetime import timedelta

import jwt
import pytest

from rewardhub.middleware.auth import AuthContext, decode_auth_token, issue_auth_token
from rewardhub.models import UserRole
from rewardhub.utils.exceptions import AuthorizationError, ValidationError


class TestTokens:

    def test_round_trip(self, app, client_user):
        context = decode_auth_token(issue_auth_token(client_user))

        assert context.user_id == client_user.id
        assert context.role == UserRole.CLIENT
        assert context.client_id == client_user.client_id
        assert context.brand_id is None

    def test_expired_token(self, app, client_user):
        token = issue_auth_token(client_user, expires_in=timedelta(seconds=-1))
        assert decode_auth_token(token) is None

    def test_wrong_secret(self, app, client_user):
        token = jwt.encode({'sub': str(client_user.id), 'role': 'client'}, 'not-the-secret', algorithm='HS256')
        assert decode_auth_token(token) is None

    def test_unknown_role_rejected(self, app):
        token = jwt.encode({'sub': '1', 'role': 'superuser'}, app.config['JWT_SECRET_KEY'], algorithm='HS256')
        assert decode_auth_token(token) is None

    def test_empty_token(self, app):
        assert decode_auth_token('') is None


class TestResolveClientId:

    def test_client_user_pinned_to_own_client(self):
        auth = AuthContext(user_id=1, role=UserRole.CLIENT, client_id=5)

        assert auth.resolve_client_id() == 5
        assert auth.resolve_client_id('5') == 5
        with pytest.raises(AuthorizationError):
            auth.resolve_client_id(6)

    def test_admin_must_name_client(self):
        auth = AuthContext(user_id=1, role=UserRole.ADMIN)

        assert auth.resolve_client_id('9') == 9
        with pytest.raises(ValidationError):
            auth.resolve_client_id()
        with pytest.raises(ValidationError):
            auth.resolve_client_id('abc')

    def test_brand_user_has_no_client_scope(self):
        auth = AuthContext(user_id=1, role=UserRole.BRAND, brand_id=3)
        with pytest.raises(AuthorizationError):
            auth.resolve_client_id()


class TestRequireRole:
    """@require_role on dashboard endpoints."""

    def test_no_token(self, client):
        response = client.get('/api/programs')

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

    def test_invalid_token(self, client):
        response = client.get('/api/programs', headers={'Authorization': 'Bearer garbage'})

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'INVALID_TOKEN'

    def test_wrong_role(self, client, brand_headers):
        response = client.get('/api/programs', headers=brand_headers)

        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'PERMISSION_DENIED'

    def test_cross_client_access(self, client, auth_headers, other_client):
        response = client.get(f'/api/programs?client_id={other_client.id}', headers=auth_headers)

        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'AUTHORIZATION_ERROR'

    def test_admin_without_client_id(self, client, admin_headers):
        response = client.get('/api/programs', headers=admin_headers)

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_CLIENT_ID'
