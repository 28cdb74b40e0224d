"""
Common utilities for CLI commands.

Shared helper functions used across multiple command modules.
"""

import asyncio

import click

from inbox_agent.config import Config
from inbox_agent.structured_logging import configure_logging


def parse_ids(id_string: str) -> list:
    """
    Parse record IDs from various formats.

    Supports:
        - Single ID: "5"
        - Comma-separated: "1,2,3"
        - Ranges: "1-5"
        - Mixed: "1,3-5,7"

    Returns:
        List of integer IDs in the order given, without duplicates
    """
    ids = []
    for part in id_string.split(','):
        part = part.strip()
        if not part:
            continue
        if '-' in part:
            start, end = part.split('-', 1)
            start, end = int(start), int(end)
            if end < start:
                raise ValueError(f"Invalid range '{part}'")
            ids.extend(range(start, end + 1))
        else:
            ids.append(int(part))

    seen = set()
    return [i for i in ids if not (i in seen or seen.add(i))]


def run_async(coro):
    """Run a pipeline coroutine to completion from a synchronous command."""
    return asyncio.run(coro)


def setup_logging(verbose: bool = False):
    """Configure the package logger for a command run."""
    configure_logging(level='DEBUG' if verbose else Config.LOG_LEVEL, format=Config.LOG_FORMAT)


def echo_errors(errors):
    for error in errors:
        click.secho(f"  ! {error}", fg='yellow')
