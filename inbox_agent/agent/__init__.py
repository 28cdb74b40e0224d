"""
Autonomous unsubscribe agent: page control, analysis, action and verification.
"""

from .types import (
    ActionPlan, BatchSummary, FieldToFill, OutcomeVerdict, PageSnapshot,
    ScreenshotArtifact, UnsubscribeOutcome, UnsubscribeTarget
)
from .orchestrator import UnsubscribeOrchestrator, AttemptRecorder

__all__ = [
    'ActionPlan', 'BatchSummary', 'FieldToFill', 'OutcomeVerdict', 'PageSnapshot',
    'ScreenshotArtifact', 'UnsubscribeOutcome', 'UnsubscribeTarget',
    'UnsubscribeOrchestrator', 'AttemptRecorder'
]
