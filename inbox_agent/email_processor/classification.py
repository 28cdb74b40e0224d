"""
Summarization and categorization of stored emails.

Each stage degrades to a safe default (subject as summary, no category) when
the model is unavailable or answers badly, so a batch never fails as a whole.
A category is only stored when the model's confidence reaches the threshold.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import Config
from ..database.models import Category, Email
from ..exceptions import LLMResponseError
from ..llm import LLMClient, UsageTracker, parse_json_response
from ..llm.prompts import build_categorization_prompt, build_summarization_prompt
from ..structured_logging import StructuredLogger

MAX_SUMMARY_LENGTH = 280
_QUOTE_CHARS = '"\'“”‘’'


@dataclass(frozen=True)
class EmailContent:
    """Detached copy of the fields the model sees."""

    subject: str
    sender: str
    body: str
    snippet: str

    @classmethod
    def from_email(cls, email: Email) -> 'EmailContent':
        body = email.body_text or ''
        if not body.strip() and email.body_html:
            body = BeautifulSoup(email.body_html, 'html.parser').get_text(' ', strip=True)
        return cls(
            subject=email.subject or '',
            sender=email.from_address or '',
            body=body.strip(),
            snippet=email.snippet or ''
        )


@dataclass(frozen=True)
class CategoryChoice:
    id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_category(cls, category: Category) -> 'CategoryChoice':
        return cls(id=category.id, name=category.name, description=category.description)


@dataclass(frozen=True)
class CategorizationResult:
    category_id: Optional[int] = None
    confidence: float = 0.0


@dataclass
class ProcessingStats:
    total: int = 0
    categorized: int = 0
    summarized: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self):
        return {
            'total': self.total,
            'categorized': self.categorized,
            'summarized': self.summarized,
            'errors': self.errors,
            'skipped': self.skipped,
        }


def accepts_category(result: CategorizationResult, threshold: Optional[float] = None) -> bool:
    """A category is stored only when present and at or above the threshold."""
    if threshold is None:
        threshold = Config.CONFIDENCE_THRESHOLD
    return result.category_id is not None and result.confidence >= threshold


def _strip_wrapping_quotes(text: str) -> str:
    while len(text) >= 2 and text[0] in _QUOTE_CHARS and text[-1] in _QUOTE_CHARS:
        text = text[1:-1].strip()
    return text


class Summarizer:
    """One-to-two sentence summaries, capped at 280 characters."""

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 usage_tracker: Optional[UsageTracker] = None):
        self.llm_client = llm_client
        self.usage_tracker = usage_tracker
        self.logger = StructuredLogger("summarizer")

    async def summarize(self, email: EmailContent) -> str:
        fallback = email.subject[:MAX_SUMMARY_LENGTH]
        if not email.body:
            return fallback
        if self.llm_client is None or not self.llm_client.is_configured():
            return fallback

        prompt = build_summarization_prompt(email.subject, email.sender, email.body, email.snippet)
        try:
            response = await self.llm_client.complete(prompt, temperature=0.3, max_tokens=512)
        except Exception as e:
            self.logger.warning("Summarization failed, using subject", {"error": str(e)})
            return fallback

        if self.usage_tracker is not None:
            self.usage_tracker.track('summarization', response.usage, self.llm_client.model)

        summary = _strip_wrapping_quotes(response.text.strip())
        if not summary:
            return fallback
        if len(summary) > MAX_SUMMARY_LENGTH:
            summary = summary[:MAX_SUMMARY_LENGTH - 3] + '...'
        return summary


class Categorizer:
    """Picks one of the user's categories with a confidence score."""

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 usage_tracker: Optional[UsageTracker] = None):
        self.llm_client = llm_client
        self.usage_tracker = usage_tracker
        self.logger = StructuredLogger("categorizer")

    async def categorize(self, email: EmailContent,
                         categories: Sequence[CategoryChoice]) -> CategorizationResult:
        if not categories:
            return CategorizationResult()
        if self.llm_client is None or not self.llm_client.is_configured():
            return CategorizationResult()

        prompt = build_categorization_prompt(
            email.subject, email.sender, email.body, email.snippet, categories
        )
        try:
            response = await self.llm_client.complete(prompt, temperature=0.2, max_tokens=512)
            if self.usage_tracker is not None:
                self.usage_tracker.track('categorization', response.usage, self.llm_client.model)
            data = parse_json_response(response.text)
        except LLMResponseError as e:
            self.logger.warning("Unusable categorization response", {"error": str(e)})
            return CategorizationResult()
        except Exception as e:
            self.logger.warning("Categorization failed", {"error": str(e)})
            return CategorizationResult()

        return self.parse_result(data, categories)

    def parse_result(self, data, categories: Sequence[CategoryChoice]) -> CategorizationResult:
        if not isinstance(data, dict):
            return CategorizationResult()

        raw_id = data.get('category_id')
        if raw_id is None or raw_id == '' or str(raw_id).lower() == 'null':
            return CategorizationResult()

        valid_ids = {str(c.id): c.id for c in categories}
        category_id = valid_ids.get(str(raw_id).strip())
        if category_id is None:
            self.logger.warning("Model chose an unknown category", {"category_id": str(raw_id)})
            return CategorizationResult()

        try:
            confidence = float(data.get('confidence', 0) or 0)
        except (TypeError, ValueError):
            confidence = 0.0
        if math.isnan(confidence):
            confidence = 0.0

        return CategorizationResult(category_id, max(0.0, min(1.0, confidence)))


class ClassificationPipeline:
    """Summarize and categorize emails that still need it."""

    def __init__(
        self,
        summarizer: Summarizer,
        categorizer: Categorizer,
        threshold: Optional[float] = None,
        delay: Optional[float] = None,
        sleep=asyncio.sleep
    ):
        self.summarizer = summarizer
        self.categorizer = categorizer
        self.threshold = Config.CONFIDENCE_THRESHOLD if threshold is None else threshold
        self.delay = Config.CLASSIFICATION_DELAY if delay is None else delay
        self._sleep = sleep
        self.logger = StructuredLogger("classification")

    @staticmethod
    def load_categories(session: Session) -> List[CategoryChoice]:
        return [CategoryChoice.from_category(c) for c in session.query(Category).order_by(Category.id)]

    def pending_emails(self, session: Session, has_categories: bool,
                       account_id: Optional[int] = None, limit: int = 50) -> List[Email]:
        condition = Email.summary.is_(None)
        if has_categories:
            condition = or_(condition, Email.category_id.is_(None))

        query = session.query(Email).filter(condition)
        if account_id is not None:
            query = query.filter(Email.account_id == account_id)
        return query.order_by(Email.received_at.desc()).limit(limit).all()

    async def process_emails(self, session: Session, account_id: Optional[int] = None,
                             limit: int = 50) -> ProcessingStats:
        stats = ProcessingStats()
        categories = self.load_categories(session)
        emails = self.pending_emails(session, bool(categories), account_id, limit)

        for index, email in enumerate(emails):
            if index:
                await self._sleep(self.delay)
            stats.total += 1
            email_id = email.id
            try:
                content = EmailContent.from_email(email)
                needs_summary = email.summary is None
                needs_category = bool(categories) and email.category_id is None

                if needs_summary:
                    email.summary = await self.summarizer.summarize(content)
                    stats.summarized += 1

                if needs_category:
                    result = await self.categorizer.categorize(content, categories)
                    if accepts_category(result, self.threshold):
                        email.category_id = result.category_id
                        email.ai_confidence = result.confidence
                        stats.categorized += 1
                    else:
                        stats.skipped += 1

                session.commit()
            except Exception as e:
                session.rollback()
                stats.errors += 1
                self.logger.error("Failed to classify email", {"email_id": email_id, "error": str(e)})

        self.logger.info("Classification batch finished", {"account_id": account_id, **stats.to_dict()})
        return stats

    async def recategorize(self, session: Session, account_id: Optional[int] = None,
                           limit: Optional[int] = None) -> ProcessingStats:
        """Re-run categorization over stored emails after categories changed."""
        stats = ProcessingStats()
        categories = self.load_categories(session)
        if not categories:
            return stats

        query = session.query(Email)
        if account_id is not None:
            query = query.filter(Email.account_id == account_id)
        query = query.order_by(Email.received_at.desc())
        if limit:
            query = query.limit(limit)
        emails = query.all()

        for index, email in enumerate(emails):
            if index:
                await self._sleep(self.delay)
            stats.total += 1
            email_id = email.id
            try:
                result = await self.categorizer.categorize(EmailContent.from_email(email), categories)
                if accepts_category(result, self.threshold):
                    email.category_id = result.category_id
                    email.ai_confidence = result.confidence
                    stats.categorized += 1
                else:
                    email.category_id = None
                    email.ai_confidence = None
                    stats.skipped += 1
                session.commit()
            except Exception as e:
                session.rollback()
                stats.errors += 1
                self.logger.error("Failed to recategorize email", {"email_id": email_id, "error": str(e)})

        self.logger.info("Recategorization finished", {"account_id": account_id, **stats.to_dict()})
        return stats
