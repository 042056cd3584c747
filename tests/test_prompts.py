"""Unit tests for prompt templates and batch rendering."""

from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from cryptomood.aggregate import aggregate
from cryptomood.models import Batch, Post, ThreadItem
from cryptomood.prompts import NO_THREADS, NO_TWEETS, PromptBuilder, TemplateNotFoundError

_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _builder(tmp_path: Path, text: str = "{{greeting}}, {{name}}!", version: str = "v1") -> PromptBuilder:
    (tmp_path / f"sentiment-analysis-{version}.md").write_text(text, encoding="utf-8")
    return PromptBuilder(tmp_path)


class TestFillTemplate:
    def test_replaces_every_occurrence(self) -> None:
        out = PromptBuilder.fill_template("{{a}} and {{a}} and {{b}}", {"a": 1, "b": "x"})
        assert out == "1 and 1 and x"

    def test_objects_are_json(self) -> None:
        out = PromptBuilder.fill_template("{{data}}", {"data": {"k": [1, 2]}})
        assert out == '{\n  "k": [\n    1,\n    2\n  ]\n}'

    def test_unknown_placeholders_left_alone(self) -> None:
        assert PromptBuilder.fill_template("{{x}} {{y}}", {"x": "X"}) == "X {{y}}"

    def test_values_are_literal(self) -> None:
        out = PromptBuilder.fill_template("{{k}}", {"k": r"\1 $& .*"})
        assert out == r"\1 $& .*"


class TestTemplateCache:
    def test_missing_template(self, tmp_path: Path) -> None:
        builder = PromptBuilder(tmp_path)
        with pytest.raises(TemplateNotFoundError, match="sentiment-analysis-v9.md"):
            builder.load_template(version="v9")

    def test_cached_until_cleared(self, tmp_path: Path) -> None:
        builder = _builder(tmp_path)
        first = builder.load_template()
        (tmp_path / "sentiment-analysis-v1.md").unlink()

        assert builder.load_template() is first

        builder.clear_cache()
        with pytest.raises(TemplateNotFoundError):
            builder.load_template()

    def test_cached_template_is_immutable(self, tmp_path: Path) -> None:
        template = _builder(tmp_path, "hello").load_template()
        assert template.filename == "sentiment-analysis-v1.md"
        with pytest.raises(ValidationError):
            template.text = "changed"

    def test_instances_do_not_share_cache(self, tmp_path: Path) -> None:
        a = _builder(tmp_path, "one")
        a.load_template()
        (tmp_path / "sentiment-analysis-v1.md").write_text("two", encoding="utf-8")
        assert PromptBuilder(tmp_path).load_template().text == "two"
        assert a.load_template().text == "one"

    def test_versions(self, tmp_path: Path) -> None:
        _builder(tmp_path, "v1 text")
        builder = _builder(tmp_path, "v2 text {{name}}", version="v2")
        assert builder.available_versions() == ["v1", "v2"]

        builder.set_default_version("v2")
        assert builder.filled_prompt({"name": "bob"}) == "v2 text bob"
        assert builder.filled_prompt({}, version="v1") == "v1 text"


class TestBuild:
    def _batch(self) -> Batch:
        posts = [
            Post(id="1", username="alice", text="BTC to the moon", likes=10, hashtags=["btc", "crypto"]),
            Post(id="2", username="bob", text="ETH looks weak", likes=20, replies=4, created_at=_NOW),
            Post(id="3", username="carol", text="Sold everything", likes=90),
        ]
        threads = [
            ThreadItem(id="t", username="dave", combined_text="1/ macro 2/ rates", total_parts=2, likes=6),
        ]
        return aggregate(posts, threads)

    def test_default_template_renders_everything(self) -> None:
        batch = self._batch()
        builder = PromptBuilder()
        prompt = builder.build(batch, now=_NOW)

        for key in builder.template_data(batch, now=_NOW):
            assert "{{" + key + "}}" not in prompt
        for text in ("BTC to the moon", "ETH looks weak", "Sold everything", "1/ macro 2/ rates"):
            assert text in prompt
        assert _NOW.isoformat() in prompt
        assert "Hashtags: btc, crypto" in prompt
        assert "Hashtags: None" in prompt

    def test_summary_stats(self) -> None:
        data = PromptBuilder().template_data(self._batch(), now=_NOW)
        summary = data["tweet_collection_summary"]
        # total likes 126 (threads included) / 3 tweets = 42
        assert "**Average Likes per Tweet**: 42" in summary
        assert "**High Engagement Tweets**: 1" in summary
        assert "**Total Engagement**: 130" in summary
        assert data["total_tweets"] == 3
        assert data["total_threads"] == 1

    def test_average_rounds_half_up(self) -> None:
        batch = aggregate([Post(id="1", likes=1), Post(id="2", likes=2)], [])
        data = PromptBuilder().template_data(batch, now=_NOW)
        assert "**Average Likes per Tweet**: 2" in data["tweet_collection_summary"]

    def test_post_block_format(self) -> None:
        data = PromptBuilder().template_data(self._batch(), now=_NOW)
        assert (
            '**Tweet 2** (@bob)\nText: "ETH looks weak"\n'
            "Engagement: 20 likes, 0 retweets, 4 replies\n"
            f"Posted: {_NOW.isoformat()}\nHashtags: None\n\n---"
        ) in data["tweets_section"]
        assert "Parts: 2" in data["threads_section"]

    def test_empty_sections_use_sentinels(self) -> None:
        prompt = PromptBuilder().build(Batch(), now=_NOW)
        assert NO_TWEETS in prompt
        assert NO_THREADS in prompt
        assert "**Average Likes per Tweet**: 0" in prompt

    def test_long_text_not_truncated(self) -> None:
        text = "word " * 2000
        prompt = PromptBuilder().build(aggregate([Post(id="1", text=text)], []), now=_NOW)
        assert text in prompt
