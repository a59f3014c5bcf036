"""
CLI Commands for campaign jobs.

These commands can be run manually or via cron jobs:

# Enrollment expiry (run daily at midnight)
0 0 * * * cd /app && flask campaigns expire-enrollments

# Birthday campaigns (run daily at 8 AM)
0 8 * * * cd /app && flask campaigns birthdays
"""

import click
from flask.cli import with_appcontext
from ..extensions import db
from ..models import Client
from ..services.campaign_service import CampaignService
from ..services.enrollment_service import enrollment_service


@click.group('campaigns')
def campaigns_cli():
    """Campaign and enrollment jobs."""
    pass


@campaigns_cli.command('expire-enrollments')
@click.option('--dry-run', is_flag=True, help='Preview without expiring enrollments')
@with_appcontext
def expire_enrollments(dry_run):
    """Mark active enrollments past their expiry date as expired."""
    result = enrollment_service.expire_enrollments(dry_run=dry_run)

    prefix = '[DRY RUN] ' if dry_run else ''
    click.echo(f"{prefix}Expired enrollments: {result['expired']}")
    for enrollment_id in result['enrollment_ids'][:20]:
        click.echo(f"  - Enrollment {enrollment_id}")
    if len(result['enrollment_ids']) > 20:
        click.echo(f"  ... and {len(result['enrollment_ids']) - 20} more")


@campaigns_cli.command('birthdays')
@click.option('--client-id', type=int, help='Specific client ID (or all if not specified)')
@with_appcontext
def run_birthdays(client_id):
    """Fire birthday campaigns for members whose birthday is today."""
    if client_id:
        client = db.session.get(Client, client_id)
        if not client:
            click.echo(f"Client {client_id} not found")
            return
        clients = [client]
    else:
        clients = Client.query.filter_by(status='active').all()

    total_checked = 0
    total_enrolled = 0

    for client in clients:
        result = CampaignService(client.id).process_birthdays()
        if result['checked']:
            click.echo(f"{client.name}: {result['checked']} birthdays, {result['enrolled']} enrolled")
        total_checked += result['checked']
        total_enrolled += result['enrolled']

    click.echo(f"TOTAL: {total_checked} birthdays, {total_enrolled} enrolled")


def init_app(app):
    """Register campaign CLI commands with Flask app."""
    app.cli.add_command(campaigns_cli)
