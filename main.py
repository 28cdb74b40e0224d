#!/usr/bin/env python3
"""
Command-line entry point for the inbox agent.

Loads settings from .env and hands off to the click CLI.
"""

from inbox_agent.cli.main import main


if __name__ == '__main__':
    main()
