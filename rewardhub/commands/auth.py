"""
CLI Commands for API access.
"""

from datetime import timedelta

import click
from flask.cli import with_appcontext
from ..extensions import db
from ..models import User
from ..middleware.auth import issue_auth_token


@click.group('auth')
def auth_cli():
    """API authentication commands."""
    pass


@auth_cli.command('issue-token')
@click.option('--user-id', type=int, required=True, help='User to issue the token for')
@click.option('--hours', type=int, help='Token lifetime in hours (default JWT_EXPIRATION_HOURS)')
@with_appcontext
def issue_token(user_id, hours):
    """Print a bearer token for a user."""
    user = db.session.get(User, user_id)
    if not user:
        raise click.ClickException(f"User {user_id} not found")
    if not user.is_active:
        raise click.ClickException(f"User {user_id} is inactive")

    expires_in = timedelta(hours=hours) if hours else None
    click.echo(issue_auth_token(user, expires_in=expires_in))


def init_app(app):
    """Register auth CLI commands with Flask app."""
    app.cli.add_command(auth_cli)
