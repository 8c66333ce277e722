"""
Flask CLI commands for maintenance tasks.
"""

import click
from flask import current_app
from flask.cli import with_appcontext


def _services():
    return current_app.extensions['school_admin']


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create missing tables and the default administrator."""
    _services().db.initialize_database()
    click.echo(f"Database initialized: {current_app.config['DATABASE_PATH']}")


@click.command('create-admin')
@with_appcontext
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
def create_admin_command(name, email, password):
    """Create an administrator account."""
    result = _services().auth.create_admin({'name': name, 'email': email, 'password': password})
    if not result['success']:
        raise click.ClickException(result['error'])
    click.echo(f"Administrator created: {result['user']['email']}")


@click.command('generate-lessons')
@with_appcontext
@click.option('--weeks', type=click.IntRange(1, 52), default=None,
              help='Weeks ahead to generate (defaults to DEFAULT_WEEKS_AHEAD).')
def generate_lessons_command(weeks):
    """Generate upcoming lessons for every active group."""
    weeks = weeks or current_app.config['DEFAULT_WEEKS_AHEAD']
    result = _services().lessons.generate_lessons_for_all_groups(weeks)

    for row in result['results']:
        click.echo(f"{row['group_title']}: {row['generated']} generated, {row['skipped']} skipped")
    click.echo(f"Total: {result['total_generated']} generated, {result['total_skipped']} skipped")


@click.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_command():
    """Delete expired login sessions."""
    removed = _services().auth.cleanup_expired_sessions()
    click.echo(f"Removed {removed} expired sessions")


def register_commands(app):
    for command in (init_db_command, create_admin_command,
                    generate_lessons_command, cleanup_sessions_command):
        app.cli.add_command(command)
