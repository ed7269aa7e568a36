"""
Tests for ai.py - provider routing, output parsing, benign fallbacks.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from conftest import make_report
from safetymap.services import ai, gemini, groq


@pytest.fixture
def providers(monkeypatch):
    """Both providers off by default; tests switch them on and script replies."""
    state = {"groq": None, "gemini": None, "prompts": [], "options": []}

    def scripted(name):
        async def reply(prompt, **kwargs):
            state["prompts"].append((name, prompt))
            state["options"].append(kwargs)
            value = state[name]
            if isinstance(value, Exception):
                raise value
            return value
        return reply

    monkeypatch.setattr(groq, "is_available", lambda: state["groq"] is not None)
    monkeypatch.setattr(gemini, "is_available", lambda: state["gemini"] is not None)
    monkeypatch.setattr(groq, "complete", scripted("groq"))
    monkeypatch.setattr(gemini, "generate", scripted("gemini"))
    return state


class TestParseJson:
    def test_code_fence_stripped(self):
        assert ai._parse_json('```json\n["a", "b"]\n```') == ["a", "b"]

    def test_garbage_is_none(self):
        assert ai._parse_json("I could not find anything") is None
        assert ai._parse_json(None) is None


class TestProjection:
    """What the duplicate reviewer sees."""

    def test_bounded_fields(self):
        report = make_report(id="a", description="x" * 400, lat=10.123456, lng=7.98765,
                             source_url="https://news.example/1", timestamp=1_736_899_200_000)
        (item,) = ai.project_for_review([report])
        assert set(item) == {"id", "title", "desc", "loc", "date", "source"}
        assert len(item["desc"]) == ai.DESCRIPTION_PREVIEW_CHARS
        assert item["loc"] == [10.123, 7.988]
        assert item["date"] == "2025-01-15"
        assert item["source"] == "https://news.example/1"


class TestDuplicateIds:
    def test_filters_unknown_and_repeated_ids(self, providers):
        providers["groq"] = '["b", "b", "zzz", 7, "c"]'
        reports = [make_report(id=i) for i in ("a", "b", "c")]
        assert asyncio.run(ai.identify_duplicate_ids(reports)) == ["b", "c"]

    def test_groq_failure_falls_back_to_gemini(self, providers):
        providers["groq"] = RuntimeError("rate limited")
        providers["gemini"] = '["a"]'
        reports = [make_report(id=i) for i in ("a", "b")]
        assert asyncio.run(ai.identify_duplicate_ids(reports)) == ["a"]
        assert [name for name, _ in providers["prompts"]] == ["groq", "gemini"]

    def test_malformed_output_is_empty(self, providers):
        providers["groq"] = '{"delete": ["a"]}'
        reports = [make_report(id=i) for i in ("a", "b")]
        assert asyncio.run(ai.identify_duplicate_ids(reports)) == []

    def test_no_provider_is_empty(self, providers):
        reports = [make_report(id=i) for i in ("a", "b")]
        assert asyncio.run(ai.identify_duplicate_ids(reports)) == []

    def test_single_report_skips_provider(self, providers):
        providers["groq"] = '["a"]'
        assert asyncio.run(ai.identify_duplicate_ids([make_report(id="a")])) == []
        assert providers["prompts"] == []


class TestThreatScan:
    def test_no_provider_raises(self, providers):
        with pytest.raises(ai.ScanError):
            asyncio.run(ai.scan_for_threats())

    def test_provider_error_raises(self, providers):
        providers["gemini"] = RuntimeError("quota exceeded")
        with pytest.raises(ai.ScanError):
            asyncio.run(ai.scan_for_threats())

    def test_grounded_gemini_call(self, providers):
        providers["gemini"] = "```json\n" + json.dumps([{"title": "Raid"}, "noise"]) + "\n```"
        providers["groq"] = "[]"
        assert asyncio.run(ai.scan_for_threats()) == [{"title": "Raid"}]
        assert [name for name, _ in providers["prompts"]] == ["gemini"]
        assert providers["options"][0]["grounded"] is True

    def test_groq_alone_cannot_scan(self, providers):
        providers["groq"] = '[{"title": "Raid"}]'
        with pytest.raises(ai.ScanError):
            asyncio.run(ai.scan_for_threats())
        assert providers["prompts"] == []

    def test_unparseable_is_empty(self, providers):
        providers["gemini"] = "Sorry, no results today."
        assert asyncio.run(ai.scan_for_threats()) == []


class TestAnalyzeSituation:
    def test_answer_includes_report_context(self, providers):
        providers["groq"] = "  Avoid the Kaduna road after dark.  "
        text = asyncio.run(ai.analyze_situation([make_report(title="Roadblock")], "Is it safe?"))
        assert text == "Avoid the Kaduna road after dark."
        _, prompt = providers["prompts"][0]
        assert "Roadblock" in prompt
        assert 'User Query: "Is it safe?"' in prompt

    def test_unavailable_message(self, providers):
        assert asyncio.run(ai.analyze_situation([], "hello")) == ai.ANALYSIS_UNAVAILABLE


class TestGeminiGenerate:
    """Request options forwarded to the SDK."""

    def test_grounded_call_carries_search_tool(self, monkeypatch):
        model = MagicMock()
        model.generate_content.return_value.text = "[]"
        tool = object()
        monkeypatch.setattr(gemini, "_get_client", lambda: model)
        monkeypatch.setattr(gemini, "_search_tools", lambda: [tool])

        assert asyncio.run(gemini.generate("scan", temperature=0.1, grounded=True)) == "[]"
        kwargs = model.generate_content.call_args.kwargs
        assert kwargs["tools"] == [tool]
        assert kwargs["generation_config"] == {"temperature": 0.1}

    def test_plain_call_has_no_tools(self, monkeypatch):
        model = MagicMock()
        model.generate_content.return_value.text = "ok"
        monkeypatch.setattr(gemini, "_get_client", lambda: model)

        assert asyncio.run(gemini.generate("hello", max_output_tokens=50)) == "ok"
        kwargs = model.generate_content.call_args.kwargs
        assert "tools" not in kwargs
        assert kwargs["generation_config"] == {"temperature": 0.4, "max_output_tokens": 50}
