"""
Configuration management for the RewardHub platform.
"""
import os
from dotenv import load_dotenv

from .utils.exceptions import ConfigurationError

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production'))
    JWT_EXPIRATION_HOURS = int(os.getenv('JWT_EXPIRATION_HOURS', '12'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public URL of the dashboard (redemption links, OAuth redirects)
    APP_URL = os.getenv('APP_URL', 'http://localhost:5173').rstrip('/')

    # Shopify app credentials
    SHOPIFY_API_KEY = os.getenv('SHOPIFY_API_KEY', os.getenv('SHOPIFY_CLIENT_ID', ''))
    SHOPIFY_API_SECRET = os.getenv('SHOPIFY_API_SECRET', os.getenv('SHOPIFY_CLIENT_SECRET', ''))
    SHOPIFY_API_VERSION = '2024-01'
    SHOPIFY_SCOPES = os.getenv(
        'SHOPIFY_SCOPES',
        'read_orders,read_customers,write_customers,read_products,write_discounts'
    )
    SHOPIFY_HTTP_TIMEOUT = float(os.getenv('SHOPIFY_HTTP_TIMEOUT', '30'))

    # Rewards defaults
    REDEMPTION_TOKEN_TTL_DAYS = int(os.getenv('REDEMPTION_TOKEN_TTL_DAYS', '30'))
    VOUCHER_VALIDITY_DAYS = int(os.getenv('VOUCHER_VALIDITY_DAYS', '30'))
    DEFAULT_PROGRAM_VALIDITY_DAYS = 365
    DEFAULT_CLIENT_NAME = 'Rewards Hub'

    # Loyalty points
    LOYALTY_CODE_VALIDITY_DAYS = int(os.getenv('LOYALTY_CODE_VALIDITY_DAYS', '30'))
    LOYALTY_CODE_PREFIX = 'LOYAL'

    # OAuth state older than this is refused on callback
    OAUTH_STATE_MAX_AGE_SECONDS = int(os.getenv('OAUTH_STATE_MAX_AGE_SECONDS', '3600'))

    # Push loyalty codes and unique discount vouchers to Shopify as price rules
    SHOPIFY_DISCOUNT_SYNC = os.getenv('SHOPIFY_DISCOUNT_SYNC', 'true').lower() == 'true'


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///rewardhub_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    _secret_key = os.getenv('SECRET_KEY', '')
    SECRET_KEY = _secret_key
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', _secret_key)

    INSECURE_KEY_PATTERNS = ('dev', 'change', 'default', 'test', 'secret', 'password')

    @classmethod
    def problems(cls) -> list:
        """Settings that make this environment unsafe to start, as messages."""
        found = []
        if not cls._secret_key:
            found.append('SECRET_KEY is not set')
        else:
            lower_key = cls._secret_key.lower()
            found.extend(
                f"SECRET_KEY contains '{pattern}'"
                for pattern in cls.INSECURE_KEY_PATTERNS if pattern in lower_key
            )
            if len(cls._secret_key) < 32:
                found.append('SECRET_KEY is shorter than 32 characters')
        if not cls.SQLALCHEMY_DATABASE_URI:
            found.append('DATABASE_URL is not set')
        if not cls.SHOPIFY_API_SECRET:
            found.append('SHOPIFY_API_SECRET is not set')
        return found


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'testing-secret-key'
    JWT_SECRET_KEY = 'testing-jwt-secret'
    APP_URL = 'https://rewards.example.com'
    SHOPIFY_API_KEY = 'test-api-key'
    SHOPIFY_API_SECRET = 'test-api-secret'
    SHOPIFY_DISCOUNT_SYNC = False


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Refuse to start production with unsafe settings.

    Raises:
        ConfigurationError: Listing every problem found
    """
    if config_name != 'production':
        return
    problems = ProductionConfig.problems()
    if problems:
        raise ConfigurationError('Invalid production configuration: ' + '; '.join(problems))
