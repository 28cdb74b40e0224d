"""
Turns a page snapshot into an ActionPlan with a single model call.
"""

from typing import Optional

from ..exceptions import LLMResponseError
from ..llm import LLMClient, UsageTracker, parse_json_response
from ..llm.prompts import build_extracted_page_prompt, build_raw_page_prompt
from ..structured_logging import StructuredLogger
from .constants import MIN_EXTRACTED_SIGNAL, EXTRACTED_CONTENT_LIMIT, RAW_HTML_LIMIT
from .types import ActionPlan, PageSnapshot


class PageIntentAnalyzer:
    """Decides how to unsubscribe from the current page. Never raises."""

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 usage_tracker: Optional[UsageTracker] = None,
                 max_tokens: int = 1024):
        self.llm_client = llm_client
        self.usage_tracker = usage_tracker
        self.max_tokens = max_tokens
        self.logger = StructuredLogger("page_analyzer")

    def build_prompt(self, snapshot: PageSnapshot, full_html: str) -> str:
        """Prefer the extracted elements; fall back to raw HTML when they carry too little."""
        if snapshot.signal_length > MIN_EXTRACTED_SIGNAL:
            return build_extracted_page_prompt(snapshot.render()[:EXTRACTED_CONTENT_LIMIT])
        return build_raw_page_prompt((full_html or '')[:RAW_HTML_LIMIT])

    async def analyze_page_with_ai(self, snapshot: PageSnapshot, full_html: str) -> ActionPlan:
        if self.llm_client is None or not self.llm_client.is_configured():
            self.logger.info("Model not configured, using default plan")
            return ActionPlan.default()

        prompt = self.build_prompt(snapshot, full_html)
        try:
            response = await self.llm_client.complete(
                prompt, temperature=0.1, max_tokens=self.max_tokens
            )
            if self.usage_tracker is not None:
                self.usage_tracker.track('page_analysis', response.usage, self.llm_client.model)
            plan = ActionPlan.from_dict(parse_json_response(response.text))
        except LLMResponseError as e:
            self.logger.warning("Unusable page analysis, using default plan", {"error": str(e)})
            self.logger.log_operation_count("page_analysis", False)
            return ActionPlan.default()
        except Exception as e:
            self.logger.log_exception(e, {"stage": "page_analysis"})
            self.logger.log_operation_count("page_analysis", False)
            return ActionPlan.default()

        self.logger.log_operation_count("page_analysis", True)
        self.logger.info("Page analyzed", {
            "next_action": plan.next_action,
            "fields": len(plan.fields_to_fill),
            "used_extracted_elements": snapshot.signal_length > MIN_EXTRACTED_SIGNAL,
        })
        return plan
