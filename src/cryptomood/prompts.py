"""Versioned prompt templates and rendering of a batch into a prompt.

Templates live in the ``templates`` directory as ``<name>-<version>.md`` and use
``{{key}}`` placeholders. Each ``PromptBuilder`` keeps its own cache keyed
by ``(name, version)``; entries are only dropped by ``clear_cache()``.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from cryptomood.models import Batch, Post, ThreadItem

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent / "templates"
DEFAULT_PROMPT_NAME = "sentiment-analysis"

NO_TWEETS = "No tweets available for analysis."
NO_THREADS = "No threads available for analysis."


class TemplateNotFoundError(FileNotFoundError):
    """Raised when no template file exists for a (name, version) pair."""


class PromptTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    text: str

    @property
    def filename(self) -> str:
        return f"{self.name}-{self.version}.md"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _hashtags(tags: list[str]) -> str:
    return ", ".join(tags) or "None"


def _timestamp(value: datetime | None) -> str:
    return value.isoformat() if value else "unknown"


def format_post(index: int, post: Post) -> str:
    return (
        f"**Tweet {index}** (@{post.username})\n"
        f'Text: "{post.text}"\n'
        f"Engagement: {post.likes} likes, {post.retweets} retweets, {post.replies} replies\n"
        f"Posted: {_timestamp(post.created_at)}\n"
        f"Hashtags: {_hashtags(post.hashtags)}\n"
        "\n"
        "---"
    )


def format_thread(index: int, thread: ThreadItem) -> str:
    return (
        f"**Thread {index}** (@{thread.username})\n"
        f'Combined Text: "{thread.combined_text}"\n'
        f"Parts: {thread.total_parts}\n"
        f"Engagement: {thread.likes} likes, {thread.retweets} retweets\n"
        f"Posted: {_timestamp(thread.created_at)}\n"
        f"Hashtags: {_hashtags(thread.hashtags)}\n"
        "\n"
        "---"
    )


class PromptBuilder:
    """Loads, caches and fills prompt templates."""

    def __init__(
        self,
        prompts_dir: Path = DEFAULT_PROMPTS_DIR,
        name: str = DEFAULT_PROMPT_NAME,
        version: str = "v1",
    ) -> None:
        self._prompts_dir = Path(prompts_dir)
        self.name = name
        self.version = version
        self._cache: dict[tuple[str, str], PromptTemplate] = {}

    # ── templates ───────────────────────────────────────────────────────

    def load_template(self, name: str | None = None, version: str | None = None) -> PromptTemplate:
        key = (name or self.name, version or self.version)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        path = self._prompts_dir / f"{key[0]}-{key[1]}.md"
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise TemplateNotFoundError(f"Prompt template not found: {path.name}") from exc

        template = PromptTemplate(name=key[0], version=key[1], text=text)
        self._cache[key] = template
        logger.info("Loaded prompt template %s", template.filename)
        return template

    @staticmethod
    def fill_template(template: str, data: dict[str, Any]) -> str:
        """Replace every ``{{key}}`` in *template* with its value from *data*."""
        filled = template
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                replacement = json.dumps(value, indent=2, default=str)
            else:
                replacement = str(value)
            filled = filled.replace("{{" + key + "}}", replacement)
        return filled

    def filled_prompt(
        self,
        data: dict[str, Any],
        name: str | None = None,
        version: str | None = None,
    ) -> str:
        return self.fill_template(self.load_template(name, version).text, data)

    def available_versions(self, name: str | None = None) -> list[str]:
        prefix = f"{name or self.name}-"
        return sorted(
            p.stem[len(prefix):]
            for p in self._prompts_dir.glob(f"{prefix}*.md")
        )

    def set_default_version(self, version: str) -> None:
        self.version = version
        logger.info("Default prompt version set to %s", version)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Prompt cache cleared")

    # ── batch rendering ─────────────────────────────────────────────────

    def template_data(self, batch: Batch, now: datetime | None = None) -> dict[str, Any]:
        """Derive the placeholder values for *batch*."""
        posts, threads = batch.posts, batch.threads

        # Per-tweet averages divide batch-wide totals (threads included) by
        # the tweet count only.
        avg_likes = _round_half_up(batch.total_likes / len(posts)) if posts else 0
        avg_retweets = _round_half_up(batch.total_retweets / len(posts)) if posts else 0
        high_engagement = sum(1 for p in posts if p.likes > avg_likes * 2)

        summary = (
            "\n"
            f"- **Total Tweets**: {len(posts)}\n"
            f"- **Total Threads**: {len(threads)}\n"
            f"- **Total Engagement**: {batch.total_engagement}\n"
            f"- **Average Likes per Tweet**: {avg_likes}\n"
            f"- **Average Retweets per Tweet**: {avg_retweets}\n"
            f"- **High Engagement Tweets**: {high_engagement}\n"
        )

        tweets_section = "\n".join(format_post(i, p) for i, p in enumerate(posts, start=1))
        threads_section = "\n".join(format_thread(i, t) for i, t in enumerate(threads, start=1))

        return {
            "timestamp": (now or datetime.now(UTC)).isoformat(),
            "total_tweets": len(posts),
            "total_threads": len(threads),
            "tweet_collection_summary": summary,
            "tweets_section": tweets_section or NO_TWEETS,
            "threads_section": threads_section or NO_THREADS,
        }

    def build(self, batch: Batch, now: datetime | None = None) -> str:
        """Render the sentiment prompt for *batch* with the default template."""
        return self.filled_prompt(self.template_data(batch, now))
