"""
Tests for page snapshot extraction and model-driven page analysis.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from inbox_agent.agent.element_extractor import ElementExtractor, sanitize_fragment
from inbox_agent.agent.page_analyzer import PageIntentAnalyzer
from inbox_agent.agent.types import ActionPlan, FieldToFill, PageSnapshot
from inbox_agent.exceptions import LLMResponseError
from inbox_agent.llm import LLMResponse, UsageMetadata

FORM_PLAN = """{
  "has_button": false,
  "button_selector": null,
  "has_form": true,
  "fields_to_fill": [
    {"selector": "#email", "kind": "email", "value": "{{EMAIL}}", "purpose": "address"},
    {"selector": "#all", "kind": "checkbox", "value": "check"}
  ],
  "submit_selector": "form button[type=submit]",
  "requires_email_input": true,
  "next_action": "fill_form"
}"""


def make_llm(answer=None, error=None):
    llm = Mock()
    llm.model = 'claude-3-5-haiku-latest'
    llm.is_configured.return_value = True
    if error is not None:
        llm.complete = AsyncMock(side_effect=error)
    else:
        llm.complete = AsyncMock(return_value=LLMResponse(answer, UsageMetadata(50, 20, 70)))
    return llm


def rich_snapshot():
    return PageSnapshot(
        forms=('<form id="unsub"><input id="email" type="email"><button type="submit">Unsubscribe</button></form>',),
        buttons=('<button class="confirm">Confirm unsubscribe from all marketing email</button>',),
    )


class TestSanitizeFragment:

    def test_strips_scripts_comments_and_handlers(self):
        html = ('<form onsubmit="track()"><!-- hidden --><script>alert(1)</script>'
                '<img src="x.png"><button onclick="go()">Unsubscribe</button></form>')

        cleaned = sanitize_fragment(html)

        assert cleaned == '<form><button>Unsubscribe</button></form>'


class TestElementExtractor:

    def test_buckets_are_deduplicated(self):
        snapshot = ElementExtractor().build_snapshot({
            'forms': ['<form>a</form>', '<form>a</form>'],
            'buttons': ['<button>Unsubscribe</button>'],
            'links': [],
            'sections': ['<footer>Unsubscribe here</footer>'],
        })

        assert snapshot.forms == ('<form>a</form>',)
        assert snapshot.buttons == ('<button>Unsubscribe</button>',)
        assert snapshot.relevant_sections == ('<footer>Unsubscribe here</footer>',)

    def test_byte_budget_keeps_earlier_buckets(self):
        extractor = ElementExtractor(byte_budget=41)
        snapshot = extractor.build_snapshot({
            'forms': ['<form>' + 'f' * 20 + '</form>'],
            'buttons': ['<button>' + 'b' * 30 + '</button>'],
            'links': ['<a>l</a>'],
        })

        assert len(snapshot.forms) == 1
        assert snapshot.buttons == ()
        assert snapshot.links == ('<a>l</a>',)

    def test_extract_runs_script_on_page(self):
        page = Mock()
        page.evaluate = AsyncMock(return_value={'buttons': ['<button>Opt out</button>']})

        snapshot = asyncio.run(ElementExtractor().extract(page))

        assert snapshot.buttons == ('<button>Opt out</button>',)
        assert page.evaluate.await_count == 1

    def test_empty_page(self):
        page = Mock()
        page.evaluate = AsyncMock(return_value=None)

        assert asyncio.run(ElementExtractor().extract(page)).is_empty


class TestActionPlanParsing:

    def test_form_plan(self):
        from inbox_agent.llm import parse_json_response

        plan = ActionPlan.from_dict(parse_json_response(FORM_PLAN))

        assert plan.next_action == 'fill_form'
        assert plan.button_selector is None
        assert plan.fields_to_fill[0] == FieldToFill('#email', 'email', '{{EMAIL}}', 'address')
        assert plan.fields_to_fill[1].kind == 'checkbox'

    @pytest.mark.parametrize('data', [
        {'next_action': 'dance'},
        {'next_action': 'click_button', 'has_button': 'yes'},
        {'next_action': 'fill_form', 'fields_to_fill': [{'kind': 'text', 'value': 'x'}]},
        {'next_action': 'fill_form', 'fields_to_fill': [{'selector': '#a', 'kind': 'slider'}]},
        ['click_button'],
    ])
    def test_schema_violations(self, data):
        with pytest.raises(LLMResponseError):
            ActionPlan.from_dict(data)


class TestPageIntentAnalyzer:

    def test_rich_snapshot_uses_extracted_prompt(self):
        analyzer = PageIntentAnalyzer(make_llm(FORM_PLAN))

        prompt = analyzer.build_prompt(rich_snapshot(), '<html>RAWHTML</html>')

        assert 'Extracted page elements' in prompt
        assert 'RAWHTML' not in prompt

    def test_thin_snapshot_falls_back_to_raw_html(self):
        analyzer = PageIntentAnalyzer(make_llm(FORM_PLAN))
        thin = PageSnapshot(links=('<a>x</a>',))

        prompt = analyzer.build_prompt(thin, '<html>' + 'R' * 20000 + '</html>')

        assert 'HTML content' in prompt
        assert 'R' * 15000 not in prompt
        assert 'R' * 14000 in prompt

    def test_plan_from_model(self):
        llm = make_llm(FORM_PLAN)
        tracker = Mock()
        analyzer = PageIntentAnalyzer(llm, tracker)

        plan = asyncio.run(analyzer.analyze_page_with_ai(rich_snapshot(), '<html></html>'))

        assert plan.next_action == 'fill_form'
        assert plan.submit_selector == 'form button[type=submit]'
        assert llm.complete.await_args.kwargs['temperature'] == 0.1
        assert tracker.track.call_args[0][0] == 'page_analysis'

    def test_invalid_json_falls_back_to_default_plan(self):
        analyzer = PageIntentAnalyzer(make_llm("Click the big red button"))

        plan = asyncio.run(analyzer.analyze_page_with_ai(rich_snapshot(), ''))

        assert plan == ActionPlan.default()
        assert plan.next_action == 'click_button'
        assert plan.has_button is True

    def test_model_error_falls_back_to_default_plan(self):
        analyzer = PageIntentAnalyzer(make_llm(error=RuntimeError("overloaded")))

        assert asyncio.run(analyzer.analyze_page_with_ai(rich_snapshot(), '')) == ActionPlan.default()

    def test_unconfigured_model_uses_default_plan(self):
        llm = Mock()
        llm.is_configured.return_value = False

        plan = asyncio.run(PageIntentAnalyzer(llm).analyze_page_with_ai(rich_snapshot(), ''))

        assert plan == ActionPlan.default()
