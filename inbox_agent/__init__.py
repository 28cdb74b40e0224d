"""
Inbox Agent - ingest, classify and summarize email, and unsubscribe from
mailing lists by driving a headless browser.
"""

__version__ = '0.3.0'
