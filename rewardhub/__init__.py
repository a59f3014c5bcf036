"""
Rewards Hub loyalty platform
Flask application factory
"""
import os
import re
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    # Production refuses to boot with weak or missing secrets
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Flask-Migrate sees every table
    from . import models  # noqa: F401

    cors_origins = [
        'http://localhost:5173',
        'http://127.0.0.1:5173',
        'https://admin.shopify.com',
        re.compile(r'https://.*\.myshopify\.com'),
    ]
    if app.config.get('APP_URL'):
        cors_origins.append(app.config['APP_URL'])
    CORS(app, origins=cors_origins, supports_credentials=True, allow_headers=['Content-Type', 'Authorization'])

    # Request-scoped auth context from bearer tokens
    from .middleware.auth import init_auth
    init_auth(app)

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'rewardhub'}

    logger.info(f'Rewards Hub app created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.functions import functions_bp
    from .api.redemption import redemption_bp
    from .api.programs import programs_bp
    from .api.rewards import rewards_bp
    from .api.campaigns import campaigns_bp, campaign_events_bp
    from .api.members import members_bp, vouchers_bp
    from .api.loyalty import loyalty_bp
    from .webhooks import webhooks_bp

    # Edge-function style endpoints called by the storefront and admin UI
    app.register_blueprint(functions_bp, url_prefix='/functions/v1')

    # Public claim links
    app.register_blueprint(redemption_bp)

    # Shopify webhooks
    app.register_blueprint(webhooks_bp)

    # Role-gated admin API
    app.register_blueprint(programs_bp, url_prefix='/api/programs')
    app.register_blueprint(rewards_bp, url_prefix='/api/rewards')
    app.register_blueprint(campaigns_bp, url_prefix='/api/campaign-rules')
    app.register_blueprint(campaign_events_bp, url_prefix='/api/campaign-events')
    app.register_blueprint(members_bp, url_prefix='/api/members')
    app.register_blueprint(vouchers_bp, url_prefix='/api/vouchers')
    app.register_blueprint(loyalty_bp, url_prefix='/api/loyalty')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import error_from_exception, error_response, ErrorCode
    from .utils.exceptions import RewardHubError

    @app.errorhandler(RewardHubError)
    def handle_domain_error(error):
        return error_from_exception(error)

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(str(error), ErrorCode.INVALID_REQUEST, 400)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Not found', ErrorCode.NOT_FOUND, 404)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return error_response('Internal server error', ErrorCode.INTERNAL_ERROR, 500)
