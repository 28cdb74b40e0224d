"""
Tests for the streaming LLM client, response parsing and usage accounting.
"""

import asyncio
from unittest.mock import Mock

import pytest

from inbox_agent.database import DatabaseManager
from inbox_agent.database.models import AIUsage
from inbox_agent.exceptions import LLMResponseError
from inbox_agent.llm import (
    LLMClient, StreamChunk, UsageMetadata, UsageTracker,
    collect_stream, parse_json_response, strip_code_fences
)
from inbox_agent.llm.usage import estimate_cost


class FakeStream:
    """Stands in for the object returned by ``messages.stream(...)``."""

    def __init__(self, pieces, input_tokens=12, output_tokens=5):
        self.pieces = pieces
        self.final = Mock()
        self.final.usage = Mock(input_tokens=input_tokens, output_tokens=output_tokens)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    def text_stream(self):
        async def gen():
            for piece in self.pieces:
                yield piece
        return gen()

    async def get_final_message(self):
        return self.final


def make_client(pieces):
    sdk = Mock()
    sdk.messages.stream.return_value = FakeStream(pieces)
    return LLMClient(api_key='test', model='claude-3-5-haiku-latest', client=sdk), sdk


async def _chunks(*chunks):
    for chunk in chunks:
        yield chunk


class TestLLMClient:

    def test_complete_buffers_whole_stream(self):
        client, sdk = make_client(['{"category_id": ', '"3", ', '"confidence": 0.8}'])

        response = asyncio.run(client.complete("prompt", temperature=0.1, max_tokens=200))

        assert response.text == '{"category_id": "3", "confidence": 0.8}'
        assert response.usage == UsageMetadata(prompt_tokens=12, candidates_tokens=5, total_tokens=17)
        kwargs = sdk.messages.stream.call_args.kwargs
        assert kwargs['temperature'] == 0.1
        assert kwargs['max_tokens'] == 200
        assert kwargs['messages'] == [{"role": "user", "content": "prompt"}]

    def test_submit_yields_usage_last(self):
        client, _ = make_client(['a', 'b'])

        async def gather():
            return [chunk async for chunk in client.submit("p")]

        chunks = asyncio.run(gather())

        assert [c.text for c in chunks[:-1]] == ['a', 'b']
        assert chunks[-1].usage.total_tokens == 17

    def test_unconfigured_client_raises(self):
        client = LLMClient(api_key='')

        assert not client.is_configured()
        with pytest.raises(LLMResponseError):
            asyncio.run(client.complete("prompt"))


class TestCollectStream:

    def test_joins_text_and_keeps_last_usage(self):
        usage = UsageMetadata(1, 2, 3)
        response = asyncio.run(collect_stream(_chunks(
            StreamChunk(text="Hel"), StreamChunk(text="lo"), StreamChunk(usage=usage)
        )))

        assert response.text == "Hello"
        assert response.usage is usage

    def test_empty_stream(self):
        response = asyncio.run(collect_stream(_chunks()))

        assert response.text == ""
        assert response.usage is None


class TestParseJsonResponse:

    def test_plain_json(self):
        assert parse_json_response('{"succeeded": true}') == {"succeeded": True}

    def test_fenced_json(self):
        text = '```json\n{"next_action": "click"}\n```'

        assert strip_code_fences(text) == '{"next_action": "click"}'
        assert parse_json_response(text) == {"next_action": "click"}

    def test_empty_response_raises(self):
        with pytest.raises(LLMResponseError):
            parse_json_response("   ")

    def test_invalid_json_keeps_raw_response(self):
        with pytest.raises(LLMResponseError) as exc_info:
            parse_json_response("I think you should click the button")

        assert exc_info.value.raw_response.startswith("I think")


class TestUsageTracker:

    def setup_method(self):
        self.db_manager = DatabaseManager("sqlite:///:memory:")
        self.db_manager.initialize_database()

    def test_estimate_cost_uses_model_prefix(self):
        usage = UsageMetadata(prompt_tokens=1_000_000, candidates_tokens=1_000_000, total_tokens=2_000_000)

        assert estimate_cost('claude-3-5-haiku-latest', usage) == pytest.approx(4.80)
        assert estimate_cost('unknown-model', usage) == pytest.approx(18.00)

    def test_track_persists_usage_row(self):
        tracker = UsageTracker(self.db_manager)

        record = tracker.track('categorization', UsageMetadata(100, 20, 120), 'claude-3-5-haiku-latest')

        assert record is not None
        assert record.total_tokens == 120
        with self.db_manager.get_session() as session:
            rows = session.query(AIUsage).all()
            assert len(rows) == 1
            assert rows[0].operation == 'categorization'
            assert rows[0].completion_tokens == 20

    def test_missing_usage_is_ignored(self):
        tracker = UsageTracker(self.db_manager)

        assert tracker.track('summarization', None, 'm') is None
        with self.db_manager.get_session() as session:
            assert session.query(AIUsage).count() == 0

    def test_database_failure_does_not_raise(self):
        from sqlalchemy.exc import OperationalError

        manager = Mock()
        manager.get_session.side_effect = OperationalError("INSERT", {}, Exception("locked"))
        tracker = UsageTracker(manager)

        assert tracker.track('page_analysis', UsageMetadata(1, 1, 2), 'm') is None
