"""
CLI Commands for Rewards Hub.

Provides Flask CLI commands for scheduled jobs and administration.

Usage:
    flask campaigns expire-enrollments [--dry-run]   # Expire lapsed enrollments
    flask campaigns birthdays [--client-id 1]        # Fire birthday campaigns
    flask tokens purge-expired [--grace-days 7]      # Delete stale redemption tokens
    flask discounts sync [--client-id 1]             # Push unsynced points codes to Shopify
    flask auth issue-token --user-id 1               # Print a bearer token
"""
from .campaigns import init_app as init_campaign_commands
from .tokens import init_app as init_token_commands
from .discounts import init_app as init_discount_commands
from .auth import init_app as init_auth_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_campaign_commands(app)
    init_token_commands(app)
    init_discount_commands(app)
    init_auth_commands(app)
