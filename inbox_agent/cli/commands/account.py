"""
Account management commands for the inbox agent.

Handles adding and listing mailbox accounts and storing their access tokens.
"""

import click
from sqlalchemy.exc import IntegrityError

from inbox_agent.cli_session import get_cli_session_manager
from inbox_agent.config import get_token_store
from inbox_agent.database.models import Account, Email

SUPPORTED_PROVIDERS = ['gmail']


@click.group()
def account():
    """Account management commands."""
    pass


@account.command('add')
@click.argument('email')
@click.option('--provider', type=click.Choice(SUPPORTED_PROVIDERS), default='gmail',
              help='Mailbox provider (default: gmail)')
def add_account(email, provider):
    """
    Add a mailbox account to sync.

    Example:
        python main.py account add user@gmail.com
    """
    if '@' not in email or '.' not in email.split('@')[-1]:
        click.secho("✗ Error: Invalid email address format", fg='red')
        raise click.Abort()

    session_manager = get_cli_session_manager()
    try:
        with session_manager.get_session() as session:
            new_account = Account(email_address=email.lower(), provider=provider)
            session.add(new_account)
            session.commit()

            click.secho("✓ Account added successfully", fg='green')
            click.echo(f"  Email: {email.lower()}")
            click.echo(f"  Provider: {provider}")
            if not get_token_store().has_token(email):
                click.echo(f"\nStore an access token with: python main.py account token {email.lower()}")

    except IntegrityError:
        click.secho(f"✗ Error: Account {email} already exists", fg='red')
        raise click.Abort()
    except Exception as e:
        click.secho(f"✗ Error adding account: {e}", fg='red')
        raise click.Abort()


@account.command('token')
@click.argument('email')
@click.option('--access-token', prompt=True, hide_input=True, help='OAuth access token')
@click.option('--refresh-token', default=None, help='OAuth refresh token (stored, not used)')
def store_token(email, access_token, refresh_token):
    """
    Store the mailbox access token for an account.

    Example:
        python main.py account token user@gmail.com
    """
    if not access_token.strip():
        click.secho("✗ Error: Access token cannot be empty", fg='red')
        raise click.Abort()

    get_token_store().set_token(email, access_token.strip(), refresh_token=refresh_token)
    click.secho(f"✓ Access token stored for {email.lower()}", fg='green')


@account.command('list')
def list_accounts():
    """
    List all configured accounts.

    Example:
        python main.py account list
    """
    session_manager = get_cli_session_manager()
    token_store = get_token_store()

    with session_manager.get_session() as session:
        accounts = session.query(Account).order_by(Account.id).all()

        if not accounts:
            click.echo("No accounts configured.")
            click.echo("\nAdd an account with: python main.py account add EMAIL")
            return

        click.echo(f"\nConfigured accounts: {len(accounts)}")
        click.echo("=" * 70)

        for acc in accounts:
            email_count = session.query(Email).filter_by(account_id=acc.id).count()
            click.echo(f"\n[{acc.id}] {acc.email_address}")
            click.echo(f"  Provider: {acc.provider}")
            click.echo(f"  Active: {'yes' if acc.is_active else 'no'}")
            click.echo(f"  Token stored: {'yes' if token_store.has_token(acc.email_address) else 'no'}")
            click.echo(f"  Emails: {email_count}")
            click.echo(f"  Last sync: {acc.last_sync or 'Never'}")

        click.echo("\n" + "=" * 70)
