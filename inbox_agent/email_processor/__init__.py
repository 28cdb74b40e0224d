"""
Email ingestion and classification pipeline.
"""

from .classification import (
    ClassificationPipeline, Summarizer, Categorizer, CategorizationResult,
    ProcessingStats, accepts_category
)
from .ingestion import IngestionPipeline, SyncOptions, SyncResult
from .link_extractor import UnsubscribeLinkExtractor
from .mailbox_client import GmailMailbox, MailboxClient
from .rate_limiter import AsyncRateLimiter

__all__ = [
    'ClassificationPipeline', 'Summarizer', 'Categorizer', 'CategorizationResult',
    'ProcessingStats', 'accepts_category', 'IngestionPipeline', 'SyncOptions',
    'SyncResult', 'UnsubscribeLinkExtractor', 'GmailMailbox', 'MailboxClient',
    'AsyncRateLimiter'
]
