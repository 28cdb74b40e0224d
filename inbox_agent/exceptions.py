"""
Exceptions carrying structured context for the inbox agent pipelines.
"""

from typing import Dict, Any, Optional


class InboxAgentError(Exception):
    """Base exception; ``context`` is rendered into the message."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.context:
            context_info = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_message} (context: {context_info})"
        return base_message


class BrowserNotLaunchedError(InboxAgentError):
    """Raised when a page operation is attempted before launch()."""

    def __init__(self, message: str = "Browser not launched", context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)


class LLMResponseError(InboxAgentError):
    """Raised when a model response is empty, not JSON, or violates its schema."""

    def __init__(self, message: str, raw_response: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.raw_response = raw_response


class MailboxError(InboxAgentError):
    """Raised when the mailbox provider API fails or no usable token exists."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """Rate limiting and server errors are worth retrying."""
        return self.status_code is not None and (
            self.status_code == 429 or self.status_code >= 500
        )


class UnsubscribeExtractionError(InboxAgentError):
    """Raised when unsubscribe link extraction fails."""
