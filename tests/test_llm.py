"""Unit tests for the analysis client and model-answer decoding."""

import asyncio
import json
from datetime import datetime

import pytest
from conftest import VALID_VERDICT, FakeLLMClient, fenced

from cryptomood.aggregate import aggregate
from cryptomood.llm import (
    AnalysisClient,
    ProviderError,
    VerdictParseError,
    VerdictValidationError,
    extract_json_text,
    parse_verdict,
)
from cryptomood.models import Post


def _client(fake: FakeLLMClient, timeout: float = 5.0) -> AnalysisClient:
    return AnalysisClient(api_key="k", model="openai/gpt-4o-mini", timeout=timeout, client=fake)


def _batch():
    return aggregate([Post(id="1", username="alice", text="gm, BTC looks strong", likes=3)], [])


class TestExtractJsonText:
    def test_fenced_block_wins(self) -> None:
        content = 'Sure! {"not": "this"}\n```json\n{"a": 1}\n```\nBye {"nor": "this"}'
        assert extract_json_text(content) == '{"a": 1}'

    def test_first_fence_only(self) -> None:
        content = '```json\n{"a": 1}\n```\n```json\n{"a": 2}\n```'
        assert extract_json_text(content) == '{"a": 1}'

    def test_whole_text_without_fence(self) -> None:
        assert extract_json_text('  {"a": 1}\n') == '{"a": 1}'

    def test_untagged_fence_is_not_extracted(self) -> None:
        content = '```\n{"a": 1}\n```'
        assert extract_json_text(content) == content


class TestParseVerdict:
    def test_plain_json(self) -> None:
        verdict = parse_verdict(json.dumps(VALID_VERDICT))
        assert verdict.overall_sentiment == "bullish"
        assert verdict.key_events == ["Spot ETF inflows", "BTC reclaims 70k"]

    def test_fenced_json_ignores_commentary(self) -> None:
        verdict = parse_verdict(fenced(VALID_VERDICT, preamble="I think {this} is bullish"))
        assert verdict.summary == VALID_VERDICT["summary"]

    def test_invalid_syntax(self) -> None:
        with pytest.raises(VerdictParseError) as exc_info:
            parse_verdict("```json\n{overall_sentiment: bullish}\n```")
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    def test_non_object(self) -> None:
        with pytest.raises(VerdictParseError):
            parse_verdict("[1, 2, 3]")

    @pytest.mark.parametrize(
        "field", ["overall_sentiment", "sentiment_intensity", "analysis", "summary"]
    )
    def test_missing_required_field(self, field: str) -> None:
        payload = {k: v for k, v in VALID_VERDICT.items() if k != field}
        with pytest.raises(VerdictValidationError, match=field):
            parse_verdict(json.dumps(payload))

    def test_empty_required_field(self) -> None:
        with pytest.raises(VerdictValidationError):
            parse_verdict(json.dumps({**VALID_VERDICT, "summary": ""}))

    def test_unknown_sentiment_level(self) -> None:
        with pytest.raises(VerdictValidationError):
            parse_verdict(json.dumps({**VALID_VERDICT, "overall_sentiment": "ecstatic"}))

    def test_labels_are_folded(self) -> None:
        verdict = parse_verdict(
            json.dumps({**VALID_VERDICT, "overall_sentiment": "Very Bearish", "sentiment_intensity": "HIGH"})
        )
        assert verdict.overall_sentiment == "very_bearish"
        assert verdict.sentiment_intensity == "high"

    def test_extra_keys_kept(self) -> None:
        verdict = parse_verdict(json.dumps({**VALID_VERDICT, "fear_greed_index": 71}))
        assert verdict.model_dump(by_alias=True)["fear_greed_index"] == 71

    def test_null_key_events_become_empty(self) -> None:
        verdict = parse_verdict(json.dumps({**VALID_VERDICT, "key_events": None}))
        assert verdict.key_events == []

    def test_numeric_created_at_kept_as_text(self) -> None:
        verdict = parse_verdict(json.dumps({**VALID_VERDICT, "createdAt": 1714564800}))
        assert verdict.created_at == "1714564800"


class TestAnalyze:
    def test_request_shape(self) -> None:
        fake = FakeLLMClient(fenced(VALID_VERDICT))
        asyncio.run(_client(fake).analyze(_batch()))

        assert len(fake.calls) == 1
        call = fake.calls[0]
        assert call["model"] == "openai/gpt-4o-mini"
        assert call["max_tokens"] == 10000
        assert call["temperature"] == 0.3
        system, user = call["messages"]
        assert system["role"] == "system"
        assert "sentiment analyst" in system["content"]
        assert user["role"] == "user"
        assert "gm, BTC looks strong" in user["content"]

    def test_created_at_synthesized(self) -> None:
        fake = FakeLLMClient(fenced(VALID_VERDICT))
        verdict = asyncio.run(_client(fake).analyze(_batch()))
        assert datetime.fromisoformat(verdict.created_at).tzinfo is not None

    def test_created_at_kept(self) -> None:
        fake = FakeLLMClient(json.dumps({**VALID_VERDICT, "createdAt": "2024-05-01T12:00:00Z"}))
        verdict = asyncio.run(_client(fake).analyze(_batch()))
        assert verdict.created_at == "2024-05-01T12:00:00Z"

    def test_timeout_is_provider_error(self) -> None:
        fake = FakeLLMClient(fenced(VALID_VERDICT), delay=2.0)
        with pytest.raises(ProviderError, match="timed out"):
            asyncio.run(_client(fake, timeout=0.05).analyze(_batch()))

    def test_empty_answer_is_parse_error(self) -> None:
        with pytest.raises(VerdictParseError):
            asyncio.run(_client(FakeLLMClient("")).analyze(_batch()))

    def test_missing_field_is_validation_error(self) -> None:
        payload = {k: v for k, v in VALID_VERDICT.items() if k != "analysis"}
        with pytest.raises(VerdictValidationError):
            asyncio.run(_client(FakeLLMClient(fenced(payload))).analyze(_batch()))
