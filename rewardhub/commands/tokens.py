"""
CLI Commands for redemption token housekeeping.

# Purge stale tokens (run weekly)
0 3 * * 0 cd /app && flask tokens purge-expired --grace-days=7
"""

import click
from flask.cli import with_appcontext
from ..services.redemption_tokens import purge_expired


@click.group('tokens')
def tokens_cli():
    """Redemption token commands."""
    pass


@tokens_cli.command('purge-expired')
@click.option('--grace-days', type=int, default=7, show_default=True,
              help='Keep expired tokens this many days past expiry')
@with_appcontext
def purge_expired_tokens(grace_days):
    """Delete unused redemption tokens that expired more than --grace-days ago."""
    deleted = purge_expired(grace_days=grace_days)
    click.echo(f"Purged {deleted} expired redemption tokens")


def init_app(app):
    """Register token CLI commands with Flask app."""
    app.cli.add_command(tokens_cli)
