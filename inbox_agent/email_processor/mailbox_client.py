"""
Mailbox provider API client.

The Gmail implementation wraps google-api-python-client. The client library is
blocking, so every request runs in a worker thread with its own HTTP transport
(httplib2 connections are not thread safe), under a shared rate limiter.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import httplib2
from google.auth import exceptions as google_auth_exceptions
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import Config
from ..exceptions import MailboxError
from ..structured_logging import StructuredLogger
from .rate_limiter import AsyncRateLimiter

INBOX_LABEL = 'INBOX'
UNREAD_LABEL = 'UNREAD'
PAGE_SIZE_LIMIT = 500


@dataclass(frozen=True)
class MessagePage:
    """One page of message ids from a list call."""

    message_ids: List[str] = field(default_factory=list)
    next_page_token: Optional[str] = None


class MailboxClient(ABC):
    """Provider-neutral mailbox operations used by the ingestion pipeline."""

    @abstractmethod
    async def list_messages(self, query: str, page_token: Optional[str] = None,
                            max_results: int = 50) -> MessagePage:
        pass

    @abstractmethod
    async def get_message(self, message_id: str, format: str = 'full') -> Dict[str, Any]:
        pass

    @abstractmethod
    async def modify_labels(self, message_id: str, remove_labels: Sequence[str] = (),
                            add_labels: Sequence[str] = ()) -> Dict[str, Any]:
        pass

    async def archive(self, message_id: str) -> Dict[str, Any]:
        """Archive by removing the INBOX label."""
        return await self.modify_labels(message_id, remove_labels=[INBOX_LABEL])

    async def list_message_ids(self, query: str, max_messages: int) -> List[str]:
        """Follow pagination until ``max_messages`` ids are collected or pages run out."""
        ids: List[str] = []
        page_token = None
        while len(ids) < max_messages:
            page = await self.list_messages(
                query, page_token=page_token,
                max_results=min(max_messages - len(ids), PAGE_SIZE_LIMIT)
            )
            ids.extend(page.message_ids)
            page_token = page.next_page_token
            if not page_token or not page.message_ids:
                break
        return ids[:max_messages]


class GmailMailbox(MailboxClient):
    """Gmail REST API mailbox for one account."""

    def __init__(
        self,
        access_token: str,
        limiter: Optional[AsyncRateLimiter] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: float = 1.0,
        service_factory: Optional[Callable[[], Any]] = None,
        sleep=asyncio.sleep
    ):
        if not access_token:
            raise MailboxError("No access token available for mailbox")
        self.credentials = Credentials(token=access_token)
        self.limiter = limiter or AsyncRateLimiter(
            Config.MAILBOX_MAX_CONCURRENT, Config.MAILBOX_MIN_INTERVAL
        )
        self.max_retries = max_retries or Config.MAX_RETRIES
        self.backoff_seconds = backoff_seconds
        self._service_factory = service_factory or self._build_service
        self._sleep = sleep
        self.logger = StructuredLogger("mailbox")

    def _build_service(self):
        http = AuthorizedHttp(self.credentials, http=httplib2.Http(timeout=30))
        return build('gmail', 'v1', http=http, cache_discovery=False)

    def _execute(self, make_request: Callable[[Any], Any]) -> Any:
        return make_request(self._service_factory()).execute()

    async def _call(self, operation: str, make_request: Callable[[Any], Any]) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.limiter.acquire():
                    return await asyncio.to_thread(self._execute, make_request)
            except HttpError as e:
                status = getattr(e.resp, 'status', None)
                error = MailboxError(
                    f"Mailbox {operation} failed", status_code=int(status) if status else None,
                    context={"operation": operation}
                )
                if not error.is_transient or attempt >= self.max_retries:
                    raise error from e
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                self.logger.warning("Transient mailbox error, retrying", {
                    "operation": operation, "status": status, "attempt": attempt, "delay": delay
                })
                await self._sleep(delay)
            except google_auth_exceptions.RefreshError as e:
                # expired token with no refresh token, or a revoked grant
                raise MailboxError(
                    f"Mailbox {operation} failed: access token expired or revoked",
                    status_code=401, context={"operation": operation, "error": str(e)}
                ) from e
            except (google_auth_exceptions.TransportError, httplib2.HttpLib2Error, OSError) as e:
                raise MailboxError(
                    f"Mailbox {operation} transport error: {e}", context={"operation": operation}
                ) from e

    async def list_messages(self, query: str, page_token: Optional[str] = None,
                            max_results: int = 50) -> MessagePage:
        def request(service):
            kwargs = {'userId': 'me', 'q': query, 'maxResults': max_results}
            if page_token:
                kwargs['pageToken'] = page_token
            return service.users().messages().list(**kwargs)

        result = await self._call('list', request)
        return MessagePage(
            message_ids=[m['id'] for m in result.get('messages', [])],
            next_page_token=result.get('nextPageToken')
        )

    async def get_message(self, message_id: str, format: str = 'full') -> Dict[str, Any]:
        return await self._call(
            'get',
            lambda service: service.users().messages().get(userId='me', id=message_id, format=format)
        )

    async def modify_labels(self, message_id: str, remove_labels: Sequence[str] = (),
                            add_labels: Sequence[str] = ()) -> Dict[str, Any]:
        body = {
            'removeLabelIds': list(remove_labels),
            'addLabelIds': list(add_labels),
        }
        return await self._call(
            'modify',
            lambda service: service.users().messages().modify(userId='me', id=message_id, body=body)
        )
