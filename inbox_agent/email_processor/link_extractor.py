"""
Unsubscribe link extraction from message headers and bodies.

Three tiers, cheapest first:
- the List-Unsubscribe header (RFC 2369), http(s) URLs only
- anchors in the HTML body (or URLs in the text body) whose href or text
  mentions unsubscribing
- a model call over the body, only when the body mentions unsubscribing
"""

import re
import urllib.parse
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from ..exceptions import UnsubscribeExtractionError
from ..llm import LLMClient, UsageTracker
from ..llm.prompts import build_unsubscribe_extraction_prompt
from ..structured_logging import StructuredLogger

HEADER_HTTP_URL_PATTERN = re.compile(r'<(https?://[^>]+)>', re.IGNORECASE)
URL_PATTERN = re.compile(r'https?://[^\s<>"\']+', re.IGNORECASE)
HREF_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (r'unsubscribe', r'opt-?out', r'remove')
]
ANCHOR_TEXT_KEYWORDS = [
    'unsubscribe', 'opt out', 'opt-out', 'optout', 'manage preferences',
    'email preferences', 'stop receiving', 'remove me'
]
BODY_MENTION_PATTERN = re.compile(r'unsubscribe|opt[\s-]?out', re.IGNORECASE)
AI_WINDOW = 15000


def _is_http_url(value: str) -> bool:
    return value.lower().startswith(('http://', 'https://'))


class UnsubscribeLinkExtractor:
    """Find the unsubscribe URL for one message."""

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 usage_tracker: Optional[UsageTracker] = None):
        self.llm_client = llm_client
        self.usage_tracker = usage_tracker
        self.logger = StructuredLogger("link_extractor")

    def _unwrap_quoted_printable_lines(self, text: str) -> str:
        """
        Remove quoted-printable soft line breaks and decode ``=3D``.

        A line ending in '=' continues on the next line without a space, which
        splits long URLs in raw bodies.
        """
        text = re.sub(r'=\r?\n', '', text)
        return text.replace('=3D', '=')

    def extract_from_headers(self, headers: Dict[str, str]) -> Optional[str]:
        """First http(s) URL in List-Unsubscribe; header names are lower-case."""
        value = headers.get('list-unsubscribe', '')
        match = HEADER_HTTP_URL_PATTERN.search(value)
        return match.group(1).strip() if match else None

    def extract_from_html(self, html_content: str) -> Optional[str]:
        soup = BeautifulSoup(self._unwrap_quoted_printable_lines(html_content), 'html.parser')
        anchors = [a for a in soup.find_all('a', href=True) if _is_http_url(a['href'].strip())]

        for anchor in anchors:
            href = anchor['href'].strip()
            if any(p.search(href) for p in HREF_PATTERNS):
                return href

        for anchor in anchors:
            text = anchor.get_text(' ', strip=True).lower()
            if any(keyword in text for keyword in ANCHOR_TEXT_KEYWORDS):
                return anchor['href'].strip()

        return None

    def extract_from_text(self, text_content: str) -> Optional[str]:
        for url in URL_PATTERN.findall(self._unwrap_quoted_printable_lines(text_content)):
            url = url.rstrip('.,;)')
            if self._is_unsubscribe_url(url):
                return url
        return None

    def _is_unsubscribe_url(self, url: str) -> bool:
        if any(p.search(url) for p in HREF_PATTERNS):
            return True
        query_params = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
        return any('unsub' in param.lower() or 'optout' in param.lower() for param in query_params)

    def extract_heuristic(self, headers: Dict[str, str], html_content: Optional[str],
                          text_content: Optional[str]) -> Optional[str]:
        link = self.extract_from_headers(headers)
        if link:
            return link
        if html_content:
            link = self.extract_from_html(html_content)
            if link:
                return link
        if text_content:
            return self.extract_from_text(text_content)
        return None

    async def extract_with_ai(self, html_content: Optional[str],
                              text_content: Optional[str]) -> Optional[str]:
        """Ask the model for the link in the head of the body, then the tail."""
        content = html_content or text_content
        if not content or self.llm_client is None or not self.llm_client.is_configured():
            return None

        windows = [content[:AI_WINDOW]]
        if len(content) > AI_WINDOW:
            windows.append(content[-AI_WINDOW:])

        for window in windows:
            response = await self.llm_client.complete(
                build_unsubscribe_extraction_prompt(window), temperature=0.0, max_tokens=500
            )
            if self.usage_tracker is not None:
                self.usage_tracker.track('unsubscribe_extraction', response.usage, self.llm_client.model)
            result = response.text.strip()
            if not result or result.lower() == 'none':
                continue
            if _is_http_url(result):
                return result
            self.logger.debug("Model returned a non-URL unsubscribe answer", {"answer": result[:200]})
            return None
        return None

    async def extract(self, headers: Dict[str, str], html_content: Optional[str],
                      text_content: Optional[str]) -> Optional[str]:
        link = self.extract_heuristic(headers, html_content, text_content)
        if link:
            return link

        body = html_content or text_content or ''
        if not BODY_MENTION_PATTERN.search(body):
            return None

        try:
            return await self.extract_with_ai(html_content, text_content)
        except Exception as e:
            error = UnsubscribeExtractionError("AI unsubscribe extraction failed", {"error": str(e)})
            self.logger.log_exception(error)
            return None
