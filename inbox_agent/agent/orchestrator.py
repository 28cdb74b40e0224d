"""
Drives one unsubscribe attempt per URL and sequential batches of them.

Per URL: launch a fresh browser, navigate, screenshot, extract and analyze
the page, execute the plan, screenshot again and tear the browser down.
Every failure, including a step or the whole attempt running past its
timeout, becomes a failed outcome for that URL only.
"""

import asyncio
import base64
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Config
from ..database.models import UnsubscribeAttempt
from ..llm import LLMClient, UsageTracker
from ..structured_logging import StructuredLogger
from .action_executor import ActionExecutor
from .page_analyzer import PageIntentAnalyzer
from .page_controller import PageController
from .result_verifier import ResultVerifier
from .types import (
    ActionPlan, PageSnapshot, ScreenshotArtifact, UnsubscribeOutcome, UnsubscribeTarget
)


class AttemptRecorder:
    """Persists outcomes as UnsubscribeAttempt rows; never raises."""

    def __init__(self, session: Session):
        self.session = session
        self.logger = StructuredLogger("attempt_recorder")

    def record(self, target: UnsubscribeTarget, outcome: UnsubscribeOutcome) -> Optional[UnsubscribeAttempt]:
        attempt = UnsubscribeAttempt(
            email_id=target.source_message_id,
            url=target.url,
            owner_email=target.owner_email_address,
            succeeded=outcome.succeeded,
            status=outcome.status,
            message=outcome.message,
            screenshot_before_path=outcome.before_artifact.path if outcome.before_artifact else None,
            screenshot_after_path=outcome.after_artifact.path if outcome.after_artifact else None,
        )
        try:
            self.session.add(attempt)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self.logger.warning("Failed to record unsubscribe attempt", {"url": target.url, "error": str(e)})
            return None
        return attempt


class UnsubscribeOrchestrator:
    """Runs the analyze/act/verify loop for each unsubscribe URL."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        usage_tracker: Optional[UsageTracker] = None,
        screenshot_dir: Optional[Path] = None,
        delay: Optional[float] = None,
        controller_factory=PageController,
        analyzer: Optional[PageIntentAnalyzer] = None,
        executor: Optional[ActionExecutor] = None,
        recorder: Optional[AttemptRecorder] = None,
        sleep=asyncio.sleep,
        step_timeout: Optional[float] = None,
        attempt_timeout: Optional[float] = None
    ):
        self.screenshot_dir = Path(screenshot_dir) if screenshot_dir else Config.get_screenshot_dir()
        self.delay = Config.UNSUBSCRIBE_DELAY if delay is None else delay
        self.controller_factory = controller_factory
        self.analyzer = analyzer or PageIntentAnalyzer(llm_client, usage_tracker)
        self.executor = executor or ActionExecutor(ResultVerifier(llm_client, usage_tracker), sleep=sleep)
        self.recorder = recorder
        self._sleep = sleep
        self.step_timeout = step_timeout or Config.BROWSER_TIMEOUT_MS / 1000
        self.attempt_timeout = attempt_timeout or Config.UNSUBSCRIBE_ATTEMPT_TIMEOUT
        self.logger = StructuredLogger("orchestrator")

    async def unsubscribe(self, target: UnsubscribeTarget) -> UnsubscribeOutcome:
        controller = self.controller_factory()
        # filled in as the attempt progresses so a timeout keeps what was captured
        progress = {'before': None, 'after': None, 'plan': None}

        with self.logger.scoped_context({"url": target.url}):
            try:
                outcome = await asyncio.wait_for(
                    self._attempt(controller, target, progress), self.attempt_timeout
                )
            except Exception as e:
                self.logger.log_exception(e, {"stage": "unsubscribe"})
                if isinstance(e, asyncio.TimeoutError):
                    message = f'Error: Timed out after {self.attempt_timeout:g}s'
                else:
                    message = f'Error: {e}'
                if progress['after'] is None and controller.is_launched:
                    progress['after'] = await self._capture(controller, target, 'after')
                outcome = UnsubscribeOutcome(
                    url=target.url, succeeded=False, message=message, status='error',
                    before_artifact=progress['before'], after_artifact=progress['after'],
                    plan=progress['plan']
                )
            finally:
                await controller.close()

            self.logger.log_operation_count("unsubscribe", outcome.succeeded)
            self.logger.info("Unsubscribe finished", outcome.to_dict(include_screenshots=False))

        if self.recorder is not None:
            self.recorder.record(target, outcome)
        return outcome

    async def _attempt(self, controller, target: UnsubscribeTarget, progress) -> UnsubscribeOutcome:
        await controller.launch()
        if not await controller.navigate_to(target.url):
            return UnsubscribeOutcome(
                url=target.url, succeeded=False,
                message='Failed to navigate to unsubscribe page', status='error'
            )

        progress['before'] = await self._capture(controller, target, 'before')
        snapshot = await self._snapshot(controller)
        html = await self._page_content(controller)
        progress['plan'] = plan = await self.analyzer.analyze_page_with_ai(snapshot, html)
        result = await self.executor.execute(controller, plan, target.owner_email_address)
        progress['after'] = await self._capture(controller, target, 'after')
        return UnsubscribeOutcome(
            url=target.url,
            succeeded=result.succeeded,
            message=result.message,
            status=result.verdict.status if result.verdict else None,
            before_artifact=progress['before'],
            after_artifact=progress['after'],
            plan=plan,
        )

    async def run_batch(self, targets: Sequence[Union[str, UnsubscribeTarget]],
                        owner_email: Optional[str] = None) -> List[UnsubscribeOutcome]:
        """Process targets one at a time, in order, with a fixed delay between them."""
        outcomes = []
        for index, target in enumerate(targets):
            if isinstance(target, str):
                target = UnsubscribeTarget(url=target, owner_email_address=owner_email)
            if index > 0:
                await self._sleep(self.delay)
            outcomes.append(await self.unsubscribe(target))
        return outcomes

    async def _snapshot(self, controller) -> PageSnapshot:
        try:
            return await asyncio.wait_for(controller.extract_elements(), self.step_timeout)
        except Exception as e:
            self.logger.warning("Element extraction failed", {"error": str(e) or type(e).__name__})
            return PageSnapshot()

    async def _page_content(self, controller) -> str:
        try:
            return await asyncio.wait_for(controller.get_page_content(), self.step_timeout)
        except Exception as e:
            self.logger.warning("Reading page content failed", {"error": str(e) or type(e).__name__})
            return ''

    async def _capture(self, controller, target: UnsubscribeTarget, label: str) -> Optional[ScreenshotArtifact]:
        """Screenshot to disk and inline; a failure only loses the artifact."""
        try:
            png = await asyncio.wait_for(controller.screenshot(), self.step_timeout)
        except Exception as e:
            self.logger.warning("Screenshot failed", {"label": label, "error": str(e) or type(e).__name__})
            return None

        encoded = base64.b64encode(png).decode('ascii')
        path = self.screenshot_dir / self._screenshot_name(target, label)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(png)
        except OSError as e:
            self.logger.warning("Could not write screenshot", {"path": str(path), "error": str(e)})
            return ScreenshotArtifact(base64=encoded)
        return ScreenshotArtifact(base64=encoded, path=str(path))

    @staticmethod
    def _screenshot_name(target: UnsubscribeTarget, label: str) -> str:
        owner = re.sub(r'[^A-Za-z0-9]+', '_', target.owner_email_address or 'unknown')
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S%f')
        return f"{owner}_{timestamp}_{label}.png"
