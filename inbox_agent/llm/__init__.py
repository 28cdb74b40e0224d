"""
LLM access: streaming client, prompt templates and usage accounting.
"""

from .client import (
    LLMClient, LLMResponse, StreamChunk, UsageMetadata,
    collect_stream, parse_json_response, strip_code_fences
)
from .usage import UsageTracker

__all__ = [
    'LLMClient', 'LLMResponse', 'StreamChunk', 'UsageMetadata',
    'collect_stream', 'parse_json_response', 'strip_code_fences', 'UsageTracker'
]
