"""
Unsubscribe command: drive a browser through unsubscribe pages.
"""

import click

from inbox_agent.agent import BatchSummary
from inbox_agent.cli_session import get_cli_session_manager
from inbox_agent.config import Config
from inbox_agent.service import run_unsubscribe_batch, unsubscribe_emails
from ..utils import parse_ids, run_async, setup_logging


def _print_outcome(label, succeeded, message, status=None):
    if succeeded:
        click.secho(f"✓ {label}: {message}", fg='green')
    else:
        suffix = f" ({status})" if status else ""
        click.secho(f"✗ {label}: {message}{suffix}", fg='red')


@click.command('unsubscribe')
@click.option('--email-id', 'email_ids', default=None,
              help='Stored email IDs whose unsubscribe links to follow (e.g. 4,7-9)')
@click.option('--url', 'urls', multiple=True, help='Unsubscribe page URL (repeatable)')
@click.option('--owner-email', default=None, help='Address to enter when a page asks for one')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def unsubscribe(email_ids, urls, owner_email, verbose):
    """
    Unsubscribe from mailing lists using a headless browser.

    Each page is visited in order, one at a time. At most
    MAX_UNSUBSCRIBE_URLS pages are handled per run.

    Example:
        python main.py unsubscribe --email-id 12,15
        python main.py unsubscribe --url https://example.com/unsub --owner-email me@example.com
    """
    setup_logging(verbose)

    if bool(email_ids) == bool(urls):
        click.secho("✗ Error: Provide either --email-id or --url", fg='red')
        raise click.Abort()

    if urls:
        try:
            outcomes = run_async(run_unsubscribe_batch(list(urls), owner_email))
        except ValueError as e:
            click.secho(f"✗ Error: {e}", fg='red')
            raise click.Abort()

        for outcome in outcomes:
            _print_outcome(outcome.url, outcome.succeeded, outcome.message, outcome.status)
        summary = BatchSummary(outcomes)
        succeeded, failed = summary.succeeded, summary.failed
    else:
        try:
            id_list = parse_ids(email_ids)
        except ValueError as e:
            click.secho(f"✗ Error parsing IDs: {e}", fg='red')
            raise click.Abort()

        session_manager = get_cli_session_manager()
        with session_manager.get_session() as session:
            try:
                results = run_async(unsubscribe_emails(session, id_list, owner_email))
            except ValueError as e:
                click.secho(f"✗ Error: {e}", fg='red')
                raise click.Abort()

        for result in results:
            status = result.outcome.status if result.outcome else None
            _print_outcome(f"email {result.email_id}", result.succeeded, result.message, status)
        # emails with no link or no row count as failures too
        succeeded = sum(1 for r in results if r.succeeded)
        failed = len(results) - succeeded

    click.echo(f"\nSucceeded: {succeeded}  Failed: {failed}")
    click.echo(f"Screenshots: {Config.get_screenshot_dir()}")
