"""
Sync command: import new mail, archive it and run AI processing.
"""

import click

from inbox_agent.config import Config
from inbox_agent.email_processor import SyncOptions
from inbox_agent.service import run_ingestion_and_classification
from ..utils import echo_errors, parse_ids, run_async, setup_logging


@click.command('sync')
@click.option('--account-id', 'account_ids', default=None,
              help='Account IDs to sync (e.g. 1,3-4). Defaults to every active account')
@click.option('--max-messages', type=int, default=None,
              help=f'Messages to list per account (default: {Config.DEFAULT_MAX_MESSAGES})')
@click.option('--query', default=None, help=f'Mailbox search query (default: {Config.DEFAULT_SYNC_QUERY})')
@click.option('--no-archive', is_flag=True, help='Leave imported messages in the inbox')
@click.option('--no-ai', is_flag=True, help='Skip summarization and categorization')
@click.option('--sequential', is_flag=True, help='Sync the given accounts one at a time')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def sync(account_ids, max_messages, query, no_archive, no_ai, sequential, verbose):
    """
    Import new messages from mailbox accounts.

    New messages are stored once, archived in the mailbox, then summarized
    and categorized.

    Example:
        python main.py sync
        python main.py sync --account-id 1,2 --max-messages 100 --no-archive
    """
    setup_logging(verbose)

    ids = None
    if account_ids:
        try:
            ids = parse_ids(account_ids)
        except ValueError as e:
            click.secho(f"✗ Error parsing IDs: {e}", fg='red')
            raise click.Abort()

    if max_messages is not None and max_messages < 1:
        click.secho("✗ Error: --max-messages must be at least 1", fg='red')
        raise click.Abort()

    options = SyncOptions(
        max_messages=max_messages or Config.DEFAULT_MAX_MESSAGES,
        query=query or Config.DEFAULT_SYNC_QUERY,
        archive_after_import=not no_archive,
        run_ai_processing=not no_ai,
    )

    try:
        results = run_async(run_ingestion_and_classification(ids, options, parallel=not sequential))
    except Exception as e:
        click.secho(f"✗ Error during sync: {e}", fg='red')
        raise click.Abort()

    if not results:
        click.echo("No accounts to sync.")
        click.echo("\nAdd an account with: python main.py account add EMAIL")
        return

    failed = 0
    for result in results:
        label = result.email or f"account {result.account_id}"
        if result.errors and not result.fetched:
            failed += 1
            click.secho(f"✗ {label}: sync failed", fg='red')
        else:
            click.secho(f"✓ {label}", fg='green')
        click.echo(f"  Fetched: {result.fetched}  Stored: {result.stored}  Archived: {result.archived}")
        if options.run_ai_processing:
            click.echo(f"  Summarized: {result.ai_summarized}  Categorized: {result.ai_categorized}")
        echo_errors(result.errors)

    if failed == len(results):
        raise click.Abort()
