"""
Selectors, vocabularies and outcome patterns used by the unsubscribe agent.
"""

import re
from typing import List, Pattern

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Keywords the in-page extraction script matches elements against
EXTRACTION_KEYWORDS: List[str] = [
    'unsubscribe', 'opt-out', 'optout', 'opt out', 'remove', 'preference',
    'manage', 'subscription', 'email settings', 'stop receiving', 'confirm', 'submit'
]

# Text searched for when no selector works
ACTION_TEXTS: List[str] = ['unsubscribe', 'confirm', 'yes', 'opt out', 'remove', 'submit']

CLICKABLE_ELEMENT_TYPES: List[str] = ['button', 'a', 'input[type="submit"]']
SUBMIT_ELEMENT_TYPES: List[str] = ['button', 'input[type="submit"]']

GENERIC_UNSUBSCRIBE_SELECTORS: List[str] = [
    'button[type="submit"]',
    'input[type="submit"]',
    'a.unsubscribe',
    'button.unsubscribe',
    '#unsubscribe',
    '.unsubscribe-button',
    '[data-action="unsubscribe"]',
]

GENERIC_EMAIL_SELECTORS: List[str] = [
    'input[type="email"]',
    'input[name="email"]',
    'input[id="email"]',
    'input[name*="email" i]',
    'input[placeholder*="email" i]',
]

EMAIL_PLACEHOLDER = '{{EMAIL}}'

# Page analysis input budgets
MIN_EXTRACTED_SIGNAL = 100
EXTRACTED_CONTENT_LIMIT = 20000
RAW_HTML_LIMIT = 15000
VERIFICATION_TEXT_LIMIT = 10000

# Total byte budget across all snapshot buckets
SNAPSHOT_BYTE_BUDGET = 200_000

# Tags removed from every extracted fragment
STRIPPED_TAGS: List[str] = ['script', 'style', 'noscript', 'img', 'iframe', 'svg', 'template']

# Outcome patterns, checked in order: success, already-done, error
SUCCESS_PATTERNS: List[Pattern] = [re.compile(p) for p in (
    r'successfully unsubscribed',
    r'you have been unsubscribed',
    r'you(?: have|\'ve) been removed',
    r'unsubscribe(?:d)? confirmed',
    r'unsubscription confirmed',
    r'removed from (?:our|the|this) (?:mailing )?list',
    r'removed from',
    r'preferences (?:have been )?updated',
    r'subscription (?:has been )?cancell?ed',
    r'opt-?out successful',
    r'you will no longer receive',
)]

ALREADY_DONE_PATTERNS: List[Pattern] = [re.compile(p) for p in (
    r'already unsubscribed',
    r'already been unsubscribed',
    r'not subscribed',
    r'email not found',
    r'not on our list',
    r'no subscription found',
    r'(?:could not|couldn\'t|cannot|can\'t|unable to) find (?:your|the|a|any) (?:subscription|email)',
)]

ERROR_PATTERNS: List[Pattern] = [re.compile(p) for p in (
    r'link (?:has )?expired',
    r'invalid token',
    r'token (?:has )?expired',
    r'an? error (?:has )?occurred',
    r'error occurred',
    r'something went wrong',
    r'unable to process',
    r'request failed',
)]
