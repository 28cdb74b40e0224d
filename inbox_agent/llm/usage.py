"""
Usage accounting for model calls.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..database.models import AIUsage
from ..structured_logging import StructuredLogger
from .client import UsageMetadata

# USD per million tokens (input, output)
MODEL_PRICING = {
    'claude-3-5-haiku': (0.80, 4.00),
    'claude-3-haiku': (0.25, 1.25),
    'claude-3-5-sonnet': (3.00, 15.00),
    'claude-3-7-sonnet': (3.00, 15.00),
    'claude-sonnet-4': (3.00, 15.00),
}
DEFAULT_PRICING = (3.00, 15.00)


def estimate_cost(model: str, usage: UsageMetadata) -> float:
    input_rate, output_rate = DEFAULT_PRICING
    for prefix, rates in MODEL_PRICING.items():
        if model.startswith(prefix):
            input_rate, output_rate = rates
            break
    cost = (usage.prompt_tokens * input_rate + usage.candidates_tokens * output_rate) / 1_000_000
    return round(cost, 6)


class UsageTracker:
    """Persists one AIUsage row per model call; never raises."""

    def __init__(self, session_manager=None):
        self.session_manager = session_manager
        self.logger = StructuredLogger("usage_tracker")

    def track(self, operation: str, usage: Optional[UsageMetadata], model: str) -> Optional[AIUsage]:
        if usage is None:
            self.logger.debug("No usage metadata reported", {"operation": operation})
            return None

        cost = estimate_cost(model, usage)
        self.logger.info("Model usage", {
            "operation": operation,
            "model": model,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.candidates_tokens,
            "total_tokens": usage.total_tokens,
            "estimated_cost": cost,
        })

        if self.session_manager is None:
            return None

        record = AIUsage(
            operation=operation,
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.candidates_tokens,
            total_tokens=usage.total_tokens,
            estimated_cost=cost,
        )
        try:
            with self.session_manager.get_session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                session.expunge(record)
        except SQLAlchemyError as e:
            self.logger.warning("Failed to record model usage", {
                "operation": operation, "error": str(e)
            })
            return None
        return record
