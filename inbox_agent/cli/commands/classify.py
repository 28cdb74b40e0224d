"""
Classify command: summarize and categorize stored emails.
"""

import click

from inbox_agent.cli_session import get_cli_session_manager
from inbox_agent.service import classify_emails
from ..utils import run_async, setup_logging


@click.command('classify')
@click.option('--account-id', type=int, default=None, help='Only emails from this account')
@click.option('--limit', type=int, default=50, help='Maximum emails to process (default: 50)')
@click.option('--recategorize', is_flag=True, help='Re-run categorization on already categorized emails')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def classify(account_id, limit, recategorize, verbose):
    """
    Summarize and categorize stored emails that still need it.

    Example:
        python main.py classify --limit 20
        python main.py classify --recategorize
    """
    setup_logging(verbose)
    if limit < 1:
        click.secho("✗ Error: --limit must be at least 1", fg='red')
        raise click.Abort()

    session_manager = get_cli_session_manager()
    with session_manager.get_session() as session:
        try:
            stats = run_async(classify_emails(
                session, account_id=account_id, limit=limit, recategorize=recategorize
            ))
        except Exception as e:
            click.secho(f"✗ Error during classification: {e}", fg='red')
            raise click.Abort()

    if stats.total == 0:
        click.echo("No emails need processing.")
        return

    click.secho(f"✓ Processed {stats.total} email(s)", fg='green')
    click.echo(f"  Categorized: {stats.categorized}")
    if not recategorize:
        click.echo(f"  Summarized: {stats.summarized}")
    if stats.errors:
        click.secho(f"  Errors: {stats.errors}", fg='yellow')
