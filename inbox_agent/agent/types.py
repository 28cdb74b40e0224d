"""
Immutable value objects passed between the unsubscribe agent's stages.

Model-produced payloads enter through ``from_dict`` which validates them and
raises LLMResponseError on any schema violation.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from ..exceptions import LLMResponseError

NEXT_ACTIONS = ('click_button', 'fill_form', 'already_done', 'unknown')
FIELD_KINDS = ('text', 'email', 'checkbox', 'radio', 'select', 'textarea')
OUTCOME_STATUSES = ('unsubscribed', 'already_unsubscribed', 'error', 'unknown', 'requires_action')


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise LLMResponseError(f"Field '{key}' must be a string", context={'value': value})
    return value


def _bool(data: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise LLMResponseError(f"Field '{key}' must be a boolean", context={'value': value})
    return value


@dataclass(frozen=True)
class UnsubscribeTarget:
    """One unsubscribe request."""

    url: str
    owner_email_address: Optional[str] = None
    source_message_id: Optional[int] = None


@dataclass(frozen=True)
class PageSnapshot:
    """Sanitized fragments of a loaded page that are relevant to unsubscribing."""

    forms: Tuple[str, ...] = ()
    buttons: Tuple[str, ...] = ()
    links: Tuple[str, ...] = ()
    relevant_sections: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.forms or self.buttons or self.links or self.relevant_sections)

    def render(self) -> str:
        """Render the snapshot as the prompt text for page analysis."""
        blocks = []
        if self.forms:
            blocks.append("FORMS:\n" + "\n".join(self.forms))
        if self.buttons:
            blocks.append("BUTTONS:\n" + "\n".join(self.buttons))
        if self.links:
            blocks.append("UNSUBSCRIBE-RELATED LINKS:\n" + "\n".join(self.links))
        if self.relevant_sections:
            blocks.append("RELEVANT SECTIONS (footer, etc):\n" + "\n\n".join(self.relevant_sections))
        return "\n\n---\n\n".join(blocks)

    @property
    def signal_length(self) -> int:
        return len(self.render().strip())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'forms': list(self.forms),
            'buttons': list(self.buttons),
            'links': list(self.links),
            'relevant_sections': list(self.relevant_sections),
        }


@dataclass(frozen=True)
class FieldToFill:
    """A form field the executor should set before submitting."""

    selector: str
    kind: str
    value: str
    purpose: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldToFill':
        if not isinstance(data, dict):
            raise LLMResponseError("Form field entry must be an object")
        selector = _optional_str(data, 'selector')
        if not selector:
            raise LLMResponseError("Form field is missing a selector")
        kind = data.get('kind', 'text')
        if kind not in FIELD_KINDS:
            raise LLMResponseError(f"Unknown form field kind: {kind}")
        value = data.get('value', '')
        if value is None:
            value = ''
        return cls(
            selector=selector,
            kind=kind,
            value=str(value),
            purpose=_optional_str(data, 'purpose') or ''
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'selector': self.selector,
            'kind': self.kind,
            'value': self.value,
            'purpose': self.purpose,
        }


@dataclass(frozen=True)
class ActionPlan:
    """What the executor should do on the current page."""

    has_button: bool
    has_form: bool
    requires_email_input: bool
    next_action: str
    button_selector: Optional[str] = None
    fields_to_fill: Tuple[FieldToFill, ...] = ()
    submit_selector: Optional[str] = None

    @classmethod
    def default(cls) -> 'ActionPlan':
        """Plan used whenever analysis fails: try clicking an unsubscribe button."""
        return cls(
            has_button=True,
            has_form=False,
            requires_email_input=False,
            next_action='click_button'
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActionPlan':
        if not isinstance(data, dict):
            raise LLMResponseError("Action plan must be a JSON object")

        next_action = data.get('next_action')
        if next_action not in NEXT_ACTIONS:
            raise LLMResponseError(f"Unknown next_action: {next_action}")

        raw_fields = data.get('fields_to_fill') or []
        if not isinstance(raw_fields, list):
            raise LLMResponseError("fields_to_fill must be a list")

        return cls(
            has_button=_bool(data, 'has_button'),
            has_form=_bool(data, 'has_form'),
            requires_email_input=_bool(data, 'requires_email_input'),
            next_action=next_action,
            button_selector=_optional_str(data, 'button_selector'),
            fields_to_fill=tuple(FieldToFill.from_dict(item) for item in raw_fields),
            submit_selector=_optional_str(data, 'submit_selector'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'has_button': self.has_button,
            'button_selector': self.button_selector,
            'has_form': self.has_form,
            'fields_to_fill': [f.to_dict() for f in self.fields_to_fill],
            'submit_selector': self.submit_selector,
            'requires_email_input': self.requires_email_input,
            'next_action': self.next_action,
        }


@dataclass(frozen=True)
class OutcomeVerdict:
    """Interpretation of the page after the unsubscribe action."""

    succeeded: bool
    status: str
    reason: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OutcomeVerdict':
        if not isinstance(data, dict):
            raise LLMResponseError("Verdict must be a JSON object")
        status = data.get('status')
        if status not in OUTCOME_STATUSES:
            raise LLMResponseError(f"Unknown verdict status: {status}")
        reason = data.get('reason') or ''
        return cls(
            succeeded=_bool(data, 'succeeded'),
            status=status,
            reason=str(reason)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'succeeded': self.succeeded, 'status': self.status, 'reason': self.reason}


@dataclass(frozen=True)
class ScreenshotArtifact:
    """A screenshot kept both on disk and inline."""

    base64: str
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'path': self.path, 'base64': self.base64}


@dataclass(frozen=True)
class ExecutionResult:
    """What the action executor reports back to the orchestrator."""

    succeeded: bool
    message: str
    verdict: Optional[OutcomeVerdict] = None


@dataclass(frozen=True)
class UnsubscribeOutcome:
    """Final result for one URL."""

    url: str
    succeeded: bool
    message: str
    status: Optional[str] = None
    before_artifact: Optional[ScreenshotArtifact] = None
    after_artifact: Optional[ScreenshotArtifact] = None
    plan: Optional[ActionPlan] = None

    def to_dict(self, include_screenshots: bool = True) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'url': self.url,
            'succeeded': self.succeeded,
            'message': self.message,
            'status': self.status,
        }
        if self.plan is not None:
            result['plan'] = self.plan.to_dict()
        if include_screenshots:
            result['before_artifact'] = self.before_artifact.to_dict() if self.before_artifact else None
            result['after_artifact'] = self.after_artifact.to_dict() if self.after_artifact else None
        return result


@dataclass
class BatchSummary:
    """Counts over a batch of outcomes."""

    outcomes: List[UnsubscribeOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded
