"""
Interprets an ActionPlan against a live page.

Each plan kind maps to a handler. Handlers build an ordered chain of attempts
(specific selector first, generic fallbacks after, text search last) and stop
at the first one that works. A successful click or submit is followed by a
bounded navigation wait, a short settle delay and result verification.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence

from ..config import Config
from ..structured_logging import StructuredLogger
from .constants import (
    ACTION_TEXTS, CLICKABLE_ELEMENT_TYPES, SUBMIT_ELEMENT_TYPES,
    GENERIC_UNSUBSCRIBE_SELECTORS, EMAIL_PLACEHOLDER
)
from .page_controller import PageController
from .result_verifier import ResultVerifier
from .types import ActionPlan, ExecutionResult, FieldToFill, OutcomeVerdict

Attempt = Callable[[], Awaitable[bool]]


async def first_success(attempts: Sequence[Attempt]) -> bool:
    """Run attempts in order until one reports success."""
    for attempt in attempts:
        if await attempt():
            return True
    return False


class ActionExecutor:
    """Executes one ActionPlan and verifies the result."""

    def __init__(
        self,
        verifier: ResultVerifier,
        navigation_wait_ms: Optional[int] = None,
        settle_delay: Optional[float] = None,
        sleep=asyncio.sleep
    ):
        self.verifier = verifier
        self.navigation_wait_ms = navigation_wait_ms or Config.NAVIGATION_WAIT_MS
        self.settle_delay = Config.SETTLE_DELAY if settle_delay is None else settle_delay
        self._sleep = sleep
        self.logger = StructuredLogger("action_executor")
        self._handlers = {
            'already_done': self._already_done,
            'fill_form': self._fill_form,
            'click_button': self._click_button,
            'unknown': self._unknown,
        }

    async def execute(self, page: PageController, plan: ActionPlan,
                      owner_email: Optional[str] = None) -> ExecutionResult:
        handler = self._handlers.get(plan.next_action, self._unknown)
        with self.logger.scoped_context({"next_action": plan.next_action}):
            result = await handler(page, plan, owner_email)
            self.logger.log_operation_count(plan.next_action, result.succeeded)
            self.logger.info("Plan executed", {"succeeded": result.succeeded, "message": result.message})
        return result

    async def _already_done(self, page, plan, owner_email) -> ExecutionResult:
        verdict = OutcomeVerdict(True, 'already_unsubscribed', 'Already unsubscribed')
        return ExecutionResult(True, 'Already unsubscribed', verdict)

    async def _fill_form(self, page, plan, owner_email) -> ExecutionResult:
        for form_field in plan.fields_to_fill:
            await self._apply_field(page, form_field, owner_email)

        if not plan.fields_to_fill and plan.requires_email_input:
            if owner_email:
                filled = await page.fill_email(owner_email)
                if not filled:
                    self.logger.warning("No email field found for generic fill")
            else:
                self.logger.warning("Form requires an email but no owner email was given")

        attempts: List[Attempt] = []
        if plan.submit_selector:
            attempts.append(lambda: page.click(plan.submit_selector))
        if plan.button_selector:
            attempts.append(lambda: page.click(plan.button_selector))
        attempts.append(lambda: page.click_by_text(ACTION_TEXTS, SUBMIT_ELEMENT_TYPES))

        if not await first_success(attempts):
            return ExecutionResult(False, 'Could not submit unsubscribe form')
        return await self._verify_after_action(page)

    async def _apply_field(self, page, form_field: FieldToFill, owner_email: Optional[str]) -> bool:
        value = form_field.value
        if EMAIL_PLACEHOLDER in value:
            if not owner_email:
                self.logger.warning("Skipping email field without owner email", {
                    "selector": form_field.selector
                })
                return False
            value = value.replace(EMAIL_PLACEHOLDER, owner_email)

        if form_field.kind in ('checkbox', 'radio'):
            applied = await page.set_checked(form_field.selector, value.strip().lower() != 'uncheck')
        elif form_field.kind == 'select':
            applied = await page.select_option(form_field.selector, value)
        else:
            applied = await page.fill(form_field.selector, value)

        if not applied:
            self.logger.warning("Form field could not be set", {
                "selector": form_field.selector, "kind": form_field.kind
            })
        return applied

    async def _click_button(self, page, plan, owner_email) -> ExecutionResult:
        attempts: List[Attempt] = []
        if plan.button_selector:
            attempts.append(lambda: page.click(plan.button_selector))
        for selector in GENERIC_UNSUBSCRIBE_SELECTORS:
            attempts.append(lambda selector=selector: page.click(selector))
        attempts.append(lambda: page.click_by_text(ACTION_TEXTS, CLICKABLE_ELEMENT_TYPES))

        if not await first_success(attempts):
            return ExecutionResult(False, 'Could not find unsubscribe button')
        return await self._verify_after_action(page)

    async def _unknown(self, page, plan, owner_email) -> ExecutionResult:
        if not await page.click_by_text(ACTION_TEXTS, CLICKABLE_ELEMENT_TYPES):
            return ExecutionResult(False, 'Could not determine how to unsubscribe')
        result = await self._verify_after_action(page)
        return ExecutionResult(
            result.succeeded, f'Attempted to unsubscribe: {result.message}', result.verdict
        )

    async def _verify_after_action(self, page) -> ExecutionResult:
        await page.wait_for_navigation(self.navigation_wait_ms)
        await self._sleep(self.settle_delay)
        verdict = await self.verifier.verify(await page.get_visible_text())
        return ExecutionResult(verdict.succeeded, verdict.reason, verdict)
