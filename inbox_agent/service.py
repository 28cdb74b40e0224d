"""
Entry points used by the CLI (and any other caller) to run the pipelines.

Builds the LLM client, usage tracker and pipeline objects, and enforces
request limits before handing work to the unsubscribe agent.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from .agent import AttemptRecorder, UnsubscribeOrchestrator, UnsubscribeOutcome, UnsubscribeTarget
from .cli_session import get_cli_session_manager
from .config import Config
from .database.models import Email
from .email_processor import (
    Categorizer, ClassificationPipeline, IngestionPipeline, ProcessingStats,
    Summarizer, SyncOptions, SyncResult, UnsubscribeLinkExtractor
)
from .email_processor.ingestion import default_mailbox_factory
from .llm import LLMClient, UsageTracker
from .structured_logging import StructuredLogger

logger = StructuredLogger("service")


@dataclass(frozen=True)
class EmailUnsubscribeResult:
    """Outcome of unsubscribing from one stored email."""

    email_id: int
    succeeded: bool
    message: str
    outcome: Optional[UnsubscribeOutcome] = None


def build_classifier(llm_client: LLMClient, usage_tracker: Optional[UsageTracker]) -> ClassificationPipeline:
    return ClassificationPipeline(
        Summarizer(llm_client, usage_tracker),
        Categorizer(llm_client, usage_tracker),
    )


def _check_batch_size(count: int, max_urls: Optional[int]):
    limit = max_urls or Config.MAX_UNSUBSCRIBE_URLS
    if count > limit:
        raise ValueError(f"At most {limit} unsubscribe requests can be processed at once (got {count})")


def build_orchestrator(session_manager=None, record_session: Optional[Session] = None) -> UnsubscribeOrchestrator:
    session_manager = session_manager or get_cli_session_manager()
    return UnsubscribeOrchestrator(
        llm_client=LLMClient(),
        usage_tracker=UsageTracker(session_manager),
        recorder=AttemptRecorder(record_session) if record_session is not None else None,
    )


async def run_unsubscribe_batch(
    urls: Sequence[str],
    owner_email: Optional[str] = None,
    orchestrator: Optional[UnsubscribeOrchestrator] = None,
    max_urls: Optional[int] = None
) -> List[UnsubscribeOutcome]:
    """Unsubscribe from each URL in order; one outcome per URL."""
    _check_batch_size(len(urls), max_urls)
    if not urls:
        return []
    orchestrator = orchestrator or build_orchestrator()
    return await orchestrator.run_batch(list(urls), owner_email)


async def unsubscribe_emails(
    session: Session,
    email_ids: Sequence[int],
    owner_email: Optional[str] = None,
    orchestrator: Optional[UnsubscribeOrchestrator] = None,
    max_urls: Optional[int] = None
) -> List[EmailUnsubscribeResult]:
    """Unsubscribe using the links stored on emails; results follow ``email_ids`` order."""
    _check_batch_size(len(email_ids), max_urls)

    emails = {e.id: e for e in session.query(Email).filter(Email.id.in_(list(email_ids)))}
    results = {}
    targets = []
    for email_id in email_ids:
        email = emails.get(email_id)
        if email is None:
            results[email_id] = EmailUnsubscribeResult(email_id, False, 'Email not found')
        elif not email.unsubscribe_link:
            results[email_id] = EmailUnsubscribeResult(email_id, False, 'No unsubscribe link found')
        else:
            owner = owner_email or (email.account.email_address if email.account else None)
            targets.append(UnsubscribeTarget(
                url=email.unsubscribe_link, owner_email_address=owner, source_message_id=email.id
            ))
    session.commit()

    if targets:
        orchestrator = orchestrator or build_orchestrator(record_session=session)
        outcomes = await orchestrator.run_batch(targets)
        for target, outcome in zip(targets, outcomes):
            results[target.source_message_id] = EmailUnsubscribeResult(
                target.source_message_id, outcome.succeeded, outcome.message, outcome
            )

    return [results[email_id] for email_id in email_ids]


def build_ingestion_pipeline(session_manager=None, mailbox_factory=None,
                             llm_client: Optional[LLMClient] = None) -> IngestionPipeline:
    session_manager = session_manager or get_cli_session_manager()
    llm_client = llm_client or LLMClient()
    usage_tracker = UsageTracker(session_manager)
    return IngestionPipeline(
        session_manager,
        mailbox_factory=mailbox_factory or default_mailbox_factory,
        link_extractor=UnsubscribeLinkExtractor(llm_client, usage_tracker),
        classifier=build_classifier(llm_client, usage_tracker),
    )


async def run_ingestion_and_classification(
    account_ids: Optional[Sequence[int]] = None,
    options: Optional[SyncOptions] = None,
    parallel: bool = True,
    pipeline: Optional[IngestionPipeline] = None
) -> List[SyncResult]:
    """Sync the given accounts (or every active one, sequentially) and classify new mail."""
    pipeline = pipeline or build_ingestion_pipeline()
    if account_ids is None:
        results = await pipeline.sync_all(options)
    else:
        results = await pipeline.sync_accounts(list(account_ids), options, parallel=parallel)

    logger.info("Ingestion run finished", {
        "accounts": len(results),
        "stored": sum(r.stored for r in results),
        "errors": sum(len(r.errors) for r in results),
    })
    return results


async def classify_emails(
    session: Session,
    account_id: Optional[int] = None,
    limit: int = 50,
    recategorize: bool = False,
    classifier: Optional[ClassificationPipeline] = None
) -> ProcessingStats:
    """Run classification outside of a sync, or re-run categorization over stored mail."""
    if classifier is None:
        classifier = build_classifier(LLMClient(), UsageTracker(get_cli_session_manager()))
    if recategorize:
        return await classifier.recategorize(session, account_id=account_id, limit=limit)
    return await classifier.process_emails(session, account_id=account_id, limit=limit)
