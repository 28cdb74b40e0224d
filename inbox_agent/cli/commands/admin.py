"""
Admin commands for the inbox agent.

Handles database initialization.
"""

import click

from inbox_agent.database import init_database


@click.command('init')
def init():
    """
    Initialize the database.

    Creates the database schema and required tables.

    Example:
        python main.py init
    """
    try:
        db_location = init_database()
        click.secho("✓ Database initialized successfully", fg='green')
        click.echo(f"Database location: {db_location}")
    except Exception as e:
        click.secho(f"✗ Error initializing database: {e}", fg='red')
        raise click.Abort()
