"""
Tests for environment configuration checks at startup.
"""
import pytest

from rewardhub import create_app
from rewardhub.config import ProductionConfig, validate_config
from rewardhub.utils.exceptions import ConfigurationError

STRONG_KEY = 'k7Qp2vXr9LmZ4tBn8WcY3hJf6Ds1GaUe'


@pytest.fixture
def production_settings(monkeypatch):
    """Production settings that pass every check; tests break one at a time."""
    monkeypatch.setattr(ProductionConfig, '_secret_key', STRONG_KEY)
    monkeypatch.setattr(ProductionConfig, 'SECRET_KEY', STRONG_KEY)
    monkeypatch.setattr(ProductionConfig, 'SQLALCHEMY_DATABASE_URI', 'postgresql://rewards@db/rewards')
    monkeypatch.setattr(ProductionConfig, 'SHOPIFY_API_SECRET', 'shpss_live_value')
    return monkeypatch


class TestValidateConfig:

    def test_other_environments_not_checked(self):
        validate_config('testing')
        validate_config('development')

    def test_sound_production_settings(self, production_settings):
        assert ProductionConfig.problems() == []
        validate_config('production')

    def test_missing_secret_key(self, production_settings):
        production_settings.setattr(ProductionConfig, '_secret_key', '')

        with pytest.raises(ConfigurationError) as exc:
            validate_config('production')

        assert 'SECRET_KEY is not set' in exc.value.message
        assert exc.value.code == 'CONFIGURATION_ERROR'

    def test_placeholder_secret_key(self, production_settings):
        production_settings.setattr(ProductionConfig, '_secret_key', 'dev-secret-key-change-in-production')

        problems = ProductionConfig.problems()

        assert "SECRET_KEY contains 'dev'" in problems
        assert "SECRET_KEY contains 'change'" in problems

    def test_short_secret_key(self, production_settings):
        production_settings.setattr(ProductionConfig, '_secret_key', 'Zq81mXr')

        assert ProductionConfig.problems() == ['SECRET_KEY is shorter than 32 characters']

    def test_every_problem_listed(self, production_settings):
        production_settings.setattr(ProductionConfig, 'SQLALCHEMY_DATABASE_URI', '')
        production_settings.setattr(ProductionConfig, 'SHOPIFY_API_SECRET', '')

        assert ProductionConfig.problems() == ['DATABASE_URL is not set', 'SHOPIFY_API_SECRET is not set']

    def test_create_app_refuses_unsafe_production(self, production_settings):
        production_settings.setattr(ProductionConfig, '_secret_key', '')

        with pytest.raises(ConfigurationError):
            create_app('production')


class TestDefaults:

    def test_program_validity_default(self, app):
        assert app.config['DEFAULT_PROGRAM_VALIDITY_DAYS'] == 365

    def test_discount_sync_off_in_tests(self, app):
        assert app.config['SHOPIFY_DISCOUNT_SYNC'] is False
