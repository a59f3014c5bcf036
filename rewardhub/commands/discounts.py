"""
CLI Commands for Shopify discount sync.

# Retry points discount codes Shopify did not accept (run hourly)
15 * * * * cd /app && flask discounts sync --limit=200
"""

import click
from flask.cli import with_appcontext
from ..services.discount_sync import sync_pending


@click.group('discounts')
def discounts_cli():
    """Shopify discount code commands."""
    pass


@discounts_cli.command('sync')
@click.option('--client-id', type=int, default=None, help='Only sync codes of this client')
@click.option('--limit', type=int, default=100, show_default=True, help='Maximum codes per run')
@with_appcontext
def sync_discounts(client_id, limit):
    """Create Shopify price rules for unsynced, unused points discount codes."""
    stats = sync_pending(client_id=client_id, limit=limit)
    click.echo(f"Synced {stats['synced']} discount codes, {stats['failed']} failed")


def init_app(app):
    """Register discount CLI commands with Flask app."""
    app.cli.add_command(discounts_cli)
