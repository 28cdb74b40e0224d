"""
Interpretation of the page shown after an unsubscribe action.

Keyword heuristics decide first; only an inconclusive page is sent to the
model, and a model failure falls back to the heuristic verdict.
"""

from typing import Optional

from ..exceptions import LLMResponseError
from ..llm import LLMClient, UsageTracker, parse_json_response
from ..llm.prompts import build_result_verification_prompt
from ..structured_logging import StructuredLogger
from .constants import (
    SUCCESS_PATTERNS, ALREADY_DONE_PATTERNS, ERROR_PATTERNS, VERIFICATION_TEXT_LIMIT
)
from .page_controller import normalize_text
from .types import OutcomeVerdict


def classify_with_heuristics(text: str) -> OutcomeVerdict:
    """Match success, then already-done, then error patterns; first hit wins."""
    normalized = normalize_text(text).lower()

    for pattern in SUCCESS_PATTERNS:
        if pattern.search(normalized):
            return OutcomeVerdict(True, 'unsubscribed', 'Successfully unsubscribed')

    for pattern in ALREADY_DONE_PATTERNS:
        if pattern.search(normalized):
            return OutcomeVerdict(True, 'already_unsubscribed', 'Already unsubscribed or not subscribed')

    for pattern in ERROR_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return OutcomeVerdict(False, 'error', f'Unsubscribe failed - {match.group(0)}')

    return OutcomeVerdict(False, 'unknown', 'Could not verify unsubscribe result')


class ResultVerifier:
    """Two-tier verdict: heuristics, then one model call for unknown pages."""

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 usage_tracker: Optional[UsageTracker] = None):
        self.llm_client = llm_client
        self.usage_tracker = usage_tracker
        self.logger = StructuredLogger("result_verifier")

    async def verify(self, page_text: str) -> OutcomeVerdict:
        verdict = classify_with_heuristics(page_text)
        self.logger.log_operation_count("heuristic_verdict", verdict.status != 'unknown')
        if verdict.status != 'unknown':
            return verdict

        if self.llm_client is None or not self.llm_client.is_configured():
            return verdict

        prompt = build_result_verification_prompt(page_text[:VERIFICATION_TEXT_LIMIT])
        try:
            response = await self.llm_client.complete(prompt, temperature=0.1)
            if self.usage_tracker is not None:
                self.usage_tracker.track('result_analysis', response.usage, self.llm_client.model)
            llm_verdict = OutcomeVerdict.from_dict(parse_json_response(response.text))
        except LLMResponseError as e:
            self.logger.warning("Model verdict unusable, keeping heuristic verdict", {"error": str(e)})
            return verdict
        except Exception as e:
            self.logger.log_exception(e, {"stage": "result_analysis"})
            return verdict

        self.logger.info("Model verdict", llm_verdict.to_dict())
        return llm_verdict
