"""
Prompt templates for classification, summarization, link extraction and the
unsubscribe agent. Every structured prompt asks for bare JSON.
"""

from typing import Iterable, Optional

CATEGORIZATION_BODY_LIMIT = 2000
SUMMARIZATION_BODY_LIMIT = 3000

_ACTION_PLAN_SCHEMA = """Return a JSON object with:
- has_button: boolean - is there a button/link to unsubscribe
- button_selector: string or null - CSS selector for the unsubscribe button (best guess, e.g. "button:has-text('Unsubscribe')" or "#unsubscribe-btn")
- has_form: boolean - is there a form to fill
- fields_to_fill: array of objects, each with:
  - selector: string - CSS selector for the form element (e.g. "#email", "input[name='email']")
  - kind: "text" | "email" | "checkbox" | "radio" | "select" | "textarea"
  - value: string - value to fill (use "{{EMAIL}}" for the user's email; "check" or "uncheck" for checkbox/radio)
  - purpose: string - what this field is for
- submit_selector: string or null - CSS selector for the form's submit button
- requires_email_input: boolean - does the form require the user's email address
- next_action: "click_button" | "fill_form" | "already_done" | "unknown"
"""


def _email_content(body: Optional[str], snippet: Optional[str], limit: int) -> str:
    return (body or '')[:limit] or snippet or ''


def build_categorization_prompt(subject: str, sender: str, body: Optional[str],
                                snippet: Optional[str], categories: Iterable) -> str:
    category_lines = []
    for category in categories:
        line = f'- ID: "{category.id}", Name: "{category.name}"'
        if category.description:
            line += f', Description: "{category.description}"'
        category_lines.append(line)

    return f"""You are an email categorization assistant. Analyze the following email and determine which category it belongs to.

## Available Categories:
{chr(10).join(category_lines)}

## Email to Categorize:
**From:** {sender}
**Subject:** {subject}
**Content:**
{_email_content(body, snippet, CATEGORIZATION_BODY_LIMIT)}

## Instructions:
1. Analyze the email content, sender, and subject
2. Match it to the most appropriate category based on the category descriptions
3. If no category fits well, respond with null for category_id
4. Provide a confidence score between 0 and 1 (1 = very confident)

## Response Format:
Respond with ONLY valid JSON in this exact format (no markdown, no explanation):
{{"category_id": "category_id_here_or_null", "confidence": 0.85}}"""


def build_summarization_prompt(subject: str, sender: str, body: Optional[str],
                               snippet: Optional[str]) -> str:
    return f"""Summarize this email in 1-2 complete sentences (maximum 280 characters total).

## Email:
**From:** {sender}
**Subject:** {subject}
**Content:**
{_email_content(body, snippet, SUMMARIZATION_BODY_LIMIT)}

## Instructions:
1. Summarize the key points of the email
2. Focus on actionable items or main purpose
3. Use plain, professional language
4. Do not include a "Summary:" prefix
5. Do not repeat the subject

## Response Format:
Respond with ONLY the summary text. No quotes, no markdown."""


def build_unsubscribe_extraction_prompt(content: str) -> str:
    return f"""Find the unsubscribe link in this email content.

Return ONLY the full URL (starting with http:// or https://) that a recipient would visit to unsubscribe or manage email preferences.
If there is no such link, return exactly: NONE

Email content:
{content}"""


def build_extracted_page_prompt(rendered_snapshot: str) -> str:
    return f"""Analyze these extracted elements from an unsubscribe page. {_ACTION_PLAN_SCHEMA}
For fields_to_fill, decide which fields must be filled to unsubscribe, the best CSS selector for each and the value to use.

Extracted page elements:
{rendered_snapshot}

Respond with ONLY valid JSON, no markdown."""


def build_raw_page_prompt(html: str) -> str:
    return f"""Analyze this HTML page for unsubscribe functionality. {_ACTION_PLAN_SCHEMA}
HTML content:
{html}

Respond with ONLY valid JSON, no markdown."""


def build_result_verification_prompt(page_text: str) -> str:
    return f"""Analyze this page content after an unsubscribe action was attempted. Determine if the unsubscription was successful.

Return a JSON object with:
- succeeded: boolean - true if unsubscribe was successful, false otherwise
- reason: string - brief explanation of the result (e.g. "Successfully unsubscribed from mailing list", "Link has expired")
- status: one of "unsubscribed" | "already_unsubscribed" | "error" | "unknown" | "requires_action"

Look for:
- Success indicators: "successfully unsubscribed", "you have been removed", "unsubscribe confirmed", "preferences updated"
- Already done indicators: "already unsubscribed", "not subscribed", "email not found in list"
- Error indicators: "link expired", "invalid token", "error occurred", "something went wrong"
- Requires action: "confirm your email", "check your inbox", "one more step"

Page content:
{page_text}

Respond with ONLY valid JSON, no markdown."""
