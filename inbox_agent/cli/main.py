"""
Main CLI group for the inbox agent.

Integrates all command groups into a single CLI application.
"""

import click

from inbox_agent import __version__
from .commands.account import account
from .commands.admin import init
from .commands.category import category
from .commands.classify import classify
from .commands.sync import sync
from .commands.unsubscribe import unsubscribe


@click.group()
@click.version_option(version=__version__, prog_name='Inbox Agent')
def cli():
    """
    Inbox Agent - Import, summarize, categorize and unsubscribe.

    Syncs mailbox accounts into a local database, uses an LLM to summarize
    and categorize each message, and drives a headless browser through
    unsubscribe pages.
    """
    pass


# Register command groups
cli.add_command(account, name='account')
cli.add_command(category, name='category')

# Register standalone commands
cli.add_command(init, name='init')
cli.add_command(sync, name='sync')
cli.add_command(classify, name='classify')
cli.add_command(unsubscribe, name='unsubscribe')


def main():
    """Console entry point: load .env settings, then run the CLI."""
    from inbox_agent.config import load_config_from_env_file

    load_config_from_env_file()
    cli()


if __name__ == '__main__':
    main()
