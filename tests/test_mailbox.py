"""
Tests for the mailbox client, its rate limiter and Gmail message parsing.
"""

import asyncio
import base64
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import httplib2
import pytest
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from inbox_agent.email_processor.mailbox_client import GmailMailbox, MailboxClient, MessagePage
from inbox_agent.email_processor.message_parser import (
    extract_bodies, parse_headers, parse_message, parse_received_at
)
from inbox_agent.email_processor.rate_limiter import AsyncRateLimiter
from inbox_agent.exceptions import MailboxError


def b64(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip('=')


def http_error(status):
    return HttpError(httplib2.Response({'status': status}), b'{}')


class PagedMailbox(MailboxClient):

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def list_messages(self, query, page_token=None, max_results=50):
        self.calls.append((page_token, max_results))
        return self.pages[page_token]

    async def get_message(self, message_id, format='full'):
        return {}

    async def modify_labels(self, message_id, remove_labels=(), add_labels=()):
        return {'id': message_id, 'removed': list(remove_labels)}


class TestAsyncRateLimiter:

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            AsyncRateLimiter(max_concurrent=0)

    def test_bounds_concurrency(self):
        limiter = AsyncRateLimiter(max_concurrent=2, min_interval=0)
        in_flight = []
        peak = []

        async def work():
            async with limiter.acquire():
                in_flight.append(1)
                peak.append(len(in_flight))
                await asyncio.sleep(0.01)
                in_flight.pop()

        async def main():
            await asyncio.gather(*(work() for _ in range(6)))

        asyncio.run(main())
        assert max(peak) == 2

    def test_spaces_call_starts(self):
        now = [100.0]
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            now[0] += seconds

        limiter = AsyncRateLimiter(max_concurrent=5, min_interval=0.5,
                                   clock=lambda: now[0], sleep=fake_sleep)

        async def main():
            for _ in range(3):
                await limiter.run(AsyncMock(return_value=None))

        asyncio.run(main())
        assert sleeps == [pytest.approx(0.5), pytest.approx(0.5)]


class TestMailboxClient:

    def test_pagination_stops_at_max_messages(self):
        mailbox = PagedMailbox({
            None: MessagePage(['a', 'b', 'c'], 'p2'),
            'p2': MessagePage(['d', 'e'], 'p3'),
        })

        ids = asyncio.run(mailbox.list_message_ids('in:inbox', 4))

        assert ids == ['a', 'b', 'c', 'd']
        assert mailbox.calls == [(None, 4), ('p2', 1)]

    def test_pagination_stops_when_pages_run_out(self):
        mailbox = PagedMailbox({None: MessagePage(['a'], None)})

        assert asyncio.run(mailbox.list_message_ids('in:inbox', 50)) == ['a']

    def test_archive_removes_inbox_label(self):
        mailbox = PagedMailbox({})

        result = asyncio.run(mailbox.archive('m1'))

        assert result == {'id': 'm1', 'removed': ['INBOX']}


class TestGmailMailbox:

    def setup_method(self):
        self.service = Mock()
        self.sleeps = []

        async def fake_sleep(seconds):
            self.sleeps.append(seconds)

        self.mailbox = GmailMailbox(
            'ya29.token',
            limiter=AsyncRateLimiter(5, 0),
            max_retries=3,
            backoff_seconds=1.0,
            service_factory=lambda: self.service,
            sleep=fake_sleep,
        )

    def test_missing_token_rejected(self):
        with pytest.raises(MailboxError):
            GmailMailbox('')

    def test_list_messages_maps_page(self):
        self.service.users().messages().list.return_value.execute.return_value = {
            'messages': [{'id': 'm1'}, {'id': 'm2'}], 'nextPageToken': 'tok'
        }

        page = asyncio.run(self.mailbox.list_messages('in:inbox', max_results=2))

        assert page == MessagePage(['m1', 'm2'], 'tok')
        self.service.users().messages().list.assert_called_with(userId='me', q='in:inbox', maxResults=2)

    def test_transient_error_is_retried_with_backoff(self):
        request = self.service.users().messages().get.return_value
        request.execute.side_effect = [http_error(503), http_error(429), {'id': 'm1'}]

        message = asyncio.run(self.mailbox.get_message('m1'))

        assert message == {'id': 'm1'}
        assert self.sleeps == [1.0, 2.0]

    def test_retries_exhausted(self):
        request = self.service.users().messages().get.return_value
        request.execute.side_effect = http_error(500)

        with pytest.raises(MailboxError) as exc_info:
            asyncio.run(self.mailbox.get_message('m1'))

        assert exc_info.value.status_code == 500
        assert request.execute.call_count == 3

    def test_client_error_not_retried(self):
        request = self.service.users().messages().modify.return_value
        request.execute.side_effect = http_error(404)

        with pytest.raises(MailboxError) as exc_info:
            asyncio.run(self.mailbox.archive('gone'))

        assert exc_info.value.status_code == 404
        assert not exc_info.value.is_transient
        assert request.execute.call_count == 1

    def test_expired_token_becomes_mailbox_error(self):
        request = self.service.users().messages().list.return_value
        request.execute.side_effect = RefreshError("The credentials do not contain the necessary fields")

        with pytest.raises(MailboxError) as exc_info:
            asyncio.run(self.mailbox.list_messages('in:inbox'))

        assert exc_info.value.status_code == 401
        assert 'expired or revoked' in str(exc_info.value)
        assert request.execute.call_count == 1
        assert self.sleeps == []

    def test_auth_transport_error_becomes_mailbox_error(self):
        request = self.service.users().messages().get.return_value
        request.execute.side_effect = TransportError("connection reset")

        with pytest.raises(MailboxError) as exc_info:
            asyncio.run(self.mailbox.get_message('m1'))

        assert 'transport error' in str(exc_info.value)

    def test_archive_sends_remove_inbox(self):
        self.service.users().messages().modify.return_value.execute.return_value = {'id': 'm1'}

        asyncio.run(self.mailbox.archive('m1'))

        self.service.users().messages().modify.assert_called_with(
            userId='me', id='m1', body={'removeLabelIds': ['INBOX'], 'addLabelIds': []}
        )


class TestMessageParser:

    def gmail_message(self, **overrides):
        message = {
            'id': 'msg-1',
            'threadId': 'thr-1',
            'snippet': 'This week in Python',
            'labelIds': ['INBOX', 'UNREAD', 'CATEGORY_PROMOTIONS'],
            'internalDate': '1700000000000',
            'payload': {
                'mimeType': 'multipart/alternative',
                'headers': [
                    {'name': 'From', 'value': '"Weekly News" <News@Example.com>'},
                    {'name': 'To', 'value': 'Me <me@example.com>'},
                    {'name': 'Cc', 'value': 'team@example.com'},
                    {'name': 'Subject', 'value': 'Issue 42'},
                    {'name': 'List-Unsubscribe', 'value': '<https://example.com/u>'},
                ],
                'parts': [
                    {'mimeType': 'text/plain', 'body': {'data': b64('Plain body')}},
                    {'mimeType': 'text/html', 'body': {'data': b64('<p>Html body</p>')}},
                    {'mimeType': 'application/pdf', 'filename': 'a.pdf', 'body': {'attachmentId': 'x'}},
                ],
            },
        }
        message.update(overrides)
        return message

    def test_parse_full_message(self):
        parsed = parse_message(self.gmail_message())

        assert parsed.provider_message_id == 'msg-1'
        assert parsed.thread_id == 'thr-1'
        assert parsed.subject == 'Issue 42'
        assert parsed.from_address == 'news@example.com'
        assert parsed.from_name == 'Weekly News'
        assert parsed.to_addresses == ['me@example.com', 'team@example.com']
        assert parsed.body_text == 'Plain body'
        assert parsed.body_html == '<p>Html body</p>'
        assert parsed.headers['list-unsubscribe'] == '<https://example.com/u>'
        assert parsed.is_read is False
        assert parsed.in_inbox is True
        assert parsed.received_at == datetime(2023, 11, 14, 22, 13, 20)

    def test_missing_subject_defaults(self):
        message = self.gmail_message(labelIds=['CATEGORY_UPDATES'])
        message['payload']['headers'] = [{'name': 'From', 'value': 'a@example.com'}]

        parsed = parse_message(message)

        assert parsed.subject == '(No Subject)'
        assert parsed.is_read is True
        assert parsed.in_inbox is False

    def test_first_header_occurrence_wins(self):
        headers = parse_headers({'headers': [
            {'name': 'Received', 'value': 'first'},
            {'name': 'RECEIVED', 'value': 'second'},
        ]})

        assert headers == {'received': 'first'}

    def test_nested_parts_are_walked(self):
        payload = {
            'mimeType': 'multipart/mixed',
            'parts': [{
                'mimeType': 'multipart/alternative',
                'parts': [{'mimeType': 'text/html', 'body': {'data': b64('<b>deep</b>')}}],
            }],
        }

        assert extract_bodies(payload) == {'text': None, 'html': '<b>deep</b>'}

    def test_date_header_used_without_internal_date(self):
        received = parse_received_at({}, {'date': 'Tue, 14 Nov 2023 23:13:20 +0100'})

        assert received == datetime(2023, 11, 14, 22, 13, 20)
