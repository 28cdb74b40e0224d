"""
Email ingestion: list, dedupe, fetch, parse, store and archive.

The provider message id is the idempotency key. Rows are inserted with
skip-on-conflict so that overlapping syncs never duplicate or fail on a
message, and every database write is committed before the next await.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import Config, get_token_store
from ..database.models import Account, Email
from ..exceptions import MailboxError
from ..structured_logging import StructuredLogger
from .classification import ClassificationPipeline
from .link_extractor import UnsubscribeLinkExtractor
from .mailbox_client import GmailMailbox, MailboxClient
from .message_parser import ParsedMessage, parse_message


@dataclass
class SyncOptions:
    max_messages: int = field(default_factory=lambda: Config.DEFAULT_MAX_MESSAGES)
    query: str = field(default_factory=lambda: Config.DEFAULT_SYNC_QUERY)
    archive_after_import: bool = True
    run_ai_processing: bool = True


@dataclass
class SyncResult:
    account_id: int
    email: Optional[str] = None
    fetched: int = 0
    stored: int = 0
    archived: int = 0
    ai_processed: int = 0
    ai_categorized: int = 0
    ai_summarized: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_id': self.account_id,
            'email': self.email,
            'fetched': self.fetched,
            'stored': self.stored,
            'archived': self.archived,
            'ai_processed': self.ai_processed,
            'ai_categorized': self.ai_categorized,
            'ai_summarized': self.ai_summarized,
            'errors': list(self.errors),
        }


def default_mailbox_factory(account: Account) -> MailboxClient:
    """Build a Gmail mailbox from the stored access token."""
    token = get_token_store().get_access_token(account.email_address)
    if not token:
        raise MailboxError(f"No access token stored for {account.email_address}")
    return GmailMailbox(token)


def insert_skip_duplicates(session: Session, rows: Sequence[Dict[str, Any]]) -> List[str]:
    """Insert email rows, skipping provider ids that already exist; return inserted ids."""
    dialect = session.get_bind().dialect.name
    inserted: List[str] = []

    for row in rows:
        if dialect in ('sqlite', 'postgresql'):
            insert = sqlite_insert if dialect == 'sqlite' else postgresql_insert
            statement = insert(Email).values(**row).on_conflict_do_nothing(
                index_elements=['provider_message_id']
            )
            if session.execute(statement).rowcount == 1:
                inserted.append(row['provider_message_id'])
        else:
            try:
                with session.begin_nested():
                    session.add(Email(**row))
                inserted.append(row['provider_message_id'])
            except IntegrityError:
                pass

    session.commit()
    return inserted


class IngestionPipeline:
    """Sync one or many accounts from their mailboxes into the database."""

    def __init__(
        self,
        session_manager,
        mailbox_factory: Callable[[Account], MailboxClient] = default_mailbox_factory,
        link_extractor: Optional[UnsubscribeLinkExtractor] = None,
        classifier: Optional[ClassificationPipeline] = None
    ):
        self.session_manager = session_manager
        self.mailbox_factory = mailbox_factory
        self.link_extractor = link_extractor or UnsubscribeLinkExtractor()
        self.classifier = classifier
        self.logger = StructuredLogger("ingestion")

    async def sync_account(self, account_id: int, options: Optional[SyncOptions] = None) -> SyncResult:
        options = options or SyncOptions()
        result = SyncResult(account_id=account_id)

        with self.session_manager.get_session() as session:
            account = session.get(Account, account_id)
            if account is None:
                result.errors.append(f"Account {account_id} not found")
                return result
            result.email = account.email_address

            with self.logger.scoped_context({"account_id": account_id}):
                await self._sync(session, account, options, result)

        self.logger.info("Account sync finished", result.to_dict())
        return result

    async def _sync(self, session: Session, account: Account, options: SyncOptions, result: SyncResult):
        try:
            mailbox = self.mailbox_factory(account)
            message_ids = await mailbox.list_message_ids(options.query, options.max_messages)
        except MailboxError as e:
            result.errors.append(str(e))
            return

        new_ids = self._filter_new(session, message_ids)
        self.logger.debug("Listed messages", {"listed": len(message_ids), "new": len(new_ids)})

        messages = await self._fetch_all(mailbox, new_ids, result)
        result.fetched = len(messages)

        rows = []
        for message in messages:
            rows.append(await self._build_row(account.id, message))

        inserted = set(insert_skip_duplicates(session, rows))
        result.stored = len(inserted)

        if options.archive_after_import:
            to_archive = [m.provider_message_id for m in messages
                          if m.provider_message_id in inserted and m.in_inbox]
            archived = await self._archive_all(mailbox, to_archive, result)
            if archived:
                session.query(Email).filter(Email.provider_message_id.in_(archived)).update(
                    {Email.is_archived: True}, synchronize_session=False
                )
            result.archived = len(archived)

        account.last_sync = datetime.now(timezone.utc).replace(tzinfo=None)
        session.commit()

        if options.run_ai_processing and self.classifier is not None:
            try:
                stats = await self.classifier.process_emails(session, account_id=account.id)
                result.ai_processed = stats.total
                result.ai_categorized = stats.categorized
                result.ai_summarized = stats.summarized
                if stats.errors:
                    result.errors.append(f"AI processing failed for {stats.errors} email(s)")
            except Exception as e:
                session.rollback()
                result.errors.append(f"AI processing failed: {e}")

    @staticmethod
    def _filter_new(session: Session, message_ids: Sequence[str]) -> List[str]:
        if not message_ids:
            return []
        existing = {
            row[0] for row in session.query(Email.provider_message_id)
            .filter(Email.provider_message_id.in_(list(message_ids)))
        }
        return [mid for mid in dict.fromkeys(message_ids) if mid not in existing]

    async def _fetch_all(self, mailbox: MailboxClient, message_ids: Sequence[str],
                         result: SyncResult) -> List[ParsedMessage]:
        async def fetch(message_id: str) -> ParsedMessage:
            return parse_message(await mailbox.get_message(message_id, format='full'))

        fetched = await asyncio.gather(*(fetch(mid) for mid in message_ids), return_exceptions=True)
        messages = []
        for message_id, outcome in zip(message_ids, fetched):
            if isinstance(outcome, Exception):
                result.errors.append(f"Failed to fetch message {message_id}: {outcome}")
            else:
                messages.append(outcome)
        return messages

    async def _archive_all(self, mailbox: MailboxClient, message_ids: Sequence[str],
                           result: SyncResult) -> List[str]:
        outcomes = await asyncio.gather(*(mailbox.archive(mid) for mid in message_ids),
                                        return_exceptions=True)
        archived = []
        for message_id, outcome in zip(message_ids, outcomes):
            if isinstance(outcome, Exception):
                result.errors.append(f"Failed to archive message {message_id}: {outcome}")
            else:
                archived.append(message_id)
        return archived

    async def _build_row(self, account_id: int, message: ParsedMessage) -> Dict[str, Any]:
        unsubscribe_link = await self.link_extractor.extract(
            message.headers, message.body_html, message.body_text
        )
        return {
            'account_id': account_id,
            'provider_message_id': message.provider_message_id,
            'thread_id': message.thread_id,
            'subject': message.subject,
            'snippet': message.snippet,
            'from_address': message.from_address,
            'from_name': message.from_name,
            'to_addresses': message.to_addresses,
            'raw_headers': message.headers,
            'body_text': message.body_text,
            'body_html': message.body_html,
            'unsubscribe_link': unsubscribe_link,
            'is_read': message.is_read,
            'is_archived': False,
            'received_at': message.received_at,
        }

    async def _safe_sync(self, account_id: int, options: Optional[SyncOptions]) -> SyncResult:
        try:
            return await self.sync_account(account_id, options)
        except Exception as e:
            self.logger.error("Account sync failed", {"account_id": account_id, "error": str(e)})
            return SyncResult(account_id=account_id, errors=[f"Sync failed: {e}"])

    async def sync_accounts(self, account_ids: Sequence[int], options: Optional[SyncOptions] = None,
                            parallel: bool = True) -> List[SyncResult]:
        """Sync several accounts; one failing never affects the others."""
        if parallel:
            return list(await asyncio.gather(*(self._safe_sync(aid, options) for aid in account_ids)))

        results = []
        for account_id in account_ids:
            results.append(await self._safe_sync(account_id, options))
        return results

    async def sync_all(self, options: Optional[SyncOptions] = None) -> List[SyncResult]:
        """Scheduled path: every active account, one after another."""
        with self.session_manager.get_session() as session:
            account_ids = [row[0] for row in session.query(Account.id)
                           .filter(Account.is_active.is_(True)).order_by(Account.id)]
        return await self.sync_accounts(account_ids, options, parallel=False)
