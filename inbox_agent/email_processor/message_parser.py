"""
Conversion of Gmail API message resources into flat message records.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Any, Dict, List, Optional

from .mailbox_client import UNREAD_LABEL

DEFAULT_SUBJECT = '(No Subject)'


@dataclass(frozen=True)
class ParsedMessage:
    """A provider message reduced to what the pipeline stores."""

    provider_message_id: str
    thread_id: Optional[str]
    subject: str
    snippet: str
    from_address: str
    from_name: str
    to_addresses: List[str]
    headers: Dict[str, str]
    body_text: Optional[str]
    body_html: Optional[str]
    is_read: bool
    received_at: datetime
    label_ids: List[str] = field(default_factory=list)

    @property
    def in_inbox(self) -> bool:
        return 'INBOX' in self.label_ids


def _decode_body(data: Optional[str]) -> Optional[str]:
    if not data:
        return None
    padded = data + '=' * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode('utf-8', errors='replace')
    except (ValueError, TypeError):
        return None


def extract_bodies(payload: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Walk the MIME tree and return the first text/plain and text/html bodies."""
    bodies: Dict[str, Optional[str]] = {'text': None, 'html': None}

    def walk(part: Dict[str, Any]):
        mime_type = (part.get('mimeType') or '').lower()
        if part.get('filename'):
            return
        if mime_type == 'text/plain' and bodies['text'] is None:
            bodies['text'] = _decode_body((part.get('body') or {}).get('data'))
        elif mime_type == 'text/html' and bodies['html'] is None:
            bodies['html'] = _decode_body((part.get('body') or {}).get('data'))
        for child in part.get('parts') or []:
            walk(child)

    walk(payload or {})
    return bodies


def parse_headers(payload: Dict[str, Any]) -> Dict[str, str]:
    """Header names lower-cased; the first occurrence of a name wins."""
    headers: Dict[str, str] = {}
    for header in (payload or {}).get('headers') or []:
        name = (header.get('name') or '').lower()
        if name and name not in headers:
            headers[name] = header.get('value') or ''
    return headers


def parse_received_at(message: Dict[str, Any], headers: Dict[str, str]) -> datetime:
    """Internal date, then the Date header, then now; naive UTC."""
    internal_date = message.get('internalDate')
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (ValueError, OverflowError, OSError):
            pass

    date_header = headers.get('date')
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except (TypeError, ValueError, IndexError):
            pass

    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_message(message: Dict[str, Any]) -> ParsedMessage:
    payload = message.get('payload') or {}
    headers = parse_headers(payload)
    bodies = extract_bodies(payload)

    from_name, from_address = parseaddr(headers.get('from', ''))
    recipients = getaddresses([headers.get(name, '') for name in ('to', 'cc')])
    label_ids = list(message.get('labelIds') or [])

    return ParsedMessage(
        provider_message_id=message['id'],
        thread_id=message.get('threadId'),
        subject=headers.get('subject') or DEFAULT_SUBJECT,
        snippet=message.get('snippet') or '',
        from_address=(from_address or headers.get('from', '')).lower(),
        from_name=from_name.strip('"') if from_name else '',
        to_addresses=[address.lower() for _, address in recipients if address],
        headers=headers,
        body_text=bodies['text'],
        body_html=bodies['html'],
        is_read=UNREAD_LABEL not in label_ids,
        received_at=parse_received_at(message, headers),
        label_ids=label_ids,
    )
