"""
Tests for request field parsing and error rendering.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from rewardhub.utils.errors import ErrorCode, error_from_exception
from rewardhub.utils.exceptions import (
    InsufficientPointsError,
    NotFoundError,
    OAuthStateError,
    ShopifyError,
    ValidationError,
)
from rewardhub.utils.validation import parse_bool, parse_datetime, parse_decimal, parse_int


class TestParseBool:

    @pytest.mark.parametrize('value, expected', [
        (True, True), (False, False), (1, True), (0, False),
        ('true', True), ('False', False), (' yes ', True), ('off', False),
    ])
    def test_accepted(self, value, expected):
        assert parse_bool(value, 'is_active') is expected

    @pytest.mark.parametrize('value', ['maybe', '', None, 2, 1.0])
    def test_rejected(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_bool(value, 'is_active')

        assert exc.value.code == 'INVALID_IS_ACTIVE'


class TestParseInt:

    def test_numeric_string(self):
        assert parse_int('42', 'client_id') == 42

    @pytest.mark.parametrize('value', ['abc', None, True, '4.5'])
    def test_rejected(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_int(value, 'client_id')

        assert exc.value.code == 'INVALID_CLIENT_ID'

    def test_minimum(self):
        with pytest.raises(ValidationError):
            parse_int(0, 'points_cost', minimum=1)


class TestParseDecimal:

    def test_number_and_string(self):
        assert parse_decimal(12.5, 'discount_value') == Decimal('12.5')
        assert parse_decimal(' 10.00 ', 'discount_value') == Decimal('10.00')

    @pytest.mark.parametrize('value', ['NaN', 'nan', 'Infinity', '-Infinity', 'sNaN', float('nan'), float('inf')])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_decimal(value, 'discount_value')

        assert exc.value.code == 'INVALID_DISCOUNT_VALUE'

    @pytest.mark.parametrize('value', ['ten', '', None, True])
    def test_not_a_number(self, value):
        with pytest.raises(ValidationError):
            parse_decimal(value, 'discount_value')

    def test_minimum(self):
        with pytest.raises(ValidationError):
            parse_decimal('-1', 'discount_value', minimum=Decimal('0'))


class TestParseDatetime:

    def test_offset_converted_to_utc(self):
        assert parse_datetime('2026-01-01T00:00:00+05:00', 'start_date') == datetime(2025, 12, 31, 19, 0, 0)

    def test_negative_offset(self):
        assert parse_datetime('2026-01-31T23:59:59-08:00', 'end_date') == datetime(2026, 2, 1, 7, 59, 59)

    def test_zulu(self):
        parsed = parse_datetime('2026-01-01T12:00:00Z', 'start_date')

        assert parsed == datetime(2026, 1, 1, 12, 0, 0)
        assert parsed.tzinfo is None

    def test_naive_kept(self):
        assert parse_datetime('2026-01-01T12:00:00', 'start_date') == datetime(2026, 1, 1, 12, 0, 0)

    def test_empty(self):
        assert parse_datetime('', 'start_date') is None

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc:
            parse_datetime('next tuesday', 'start_date')

        assert exc.value.code == 'INVALID_START_DATE'


class TestErrorRendering:

    def test_field_error(self, app):
        response, status = error_from_exception(ValidationError('points must be an integer', 'points'))

        assert status == 400
        assert response.get_json() == {'error': {'message': 'points must be an integer', 'code': 'INVALID_POINTS'}}

    def test_not_found_code(self, app):
        response, status = error_from_exception(NotFoundError('Loyalty program'))

        assert status == 404
        assert response.get_json()['error']['code'] == 'LOYALTY_PROGRAM_NOT_FOUND'

    def test_points_conflict(self, app):
        error = InsufficientPointsError(available=100, requested=300)
        response, status = error_from_exception(error)

        assert status == 409
        assert response.get_json()['error'] == {
            'message': 'Insufficient points: 100 available, 300 requested',
            'code': ErrorCode.INSUFFICIENT_POINTS.value,
        }

    def test_oauth_state_code(self, app):
        response, status = error_from_exception(OAuthStateError())

        assert status == 400
        assert response.get_json()['error']['code'] == 'INVALID_OAUTH_STATE'

    def test_upstream_failure(self, app):
        response, status = error_from_exception(ShopifyError('Shopify unavailable'))

        assert status == 502
        assert response.get_json()['error']['code'] == 'SHOPIFY_ERROR'
