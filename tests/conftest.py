"""Shared fixtures: a temporary document store and a fake LLM client."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from cryptomood.collector import TweetCollector
from cryptomood.llm import AnalysisClient
from cryptomood.pipeline import SentimentService
from cryptomood.results import ResultStore
from cryptomood.store import DocumentStore

VALID_VERDICT: dict[str, Any] = {
    "overall_sentiment": "bullish",
    "sentiment_intensity": "moderate",
    "analysis": "ETF inflows and a quiet macro calendar keep traders optimistic.",
    "summary": "Cautiously bullish mood across crypto Twitter.",
    "key_events": ["Spot ETF inflows", "BTC reclaims 70k"],
}


class FakeLLMClient:
    """Stands in for ``AsyncOpenAI``: ``client.chat.completions.create``."""

    def __init__(
        self,
        content: str = "",
        *,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
        error: Exception | None = None,
    ) -> None:
        self.content = content
        self.delay = delay
        self.gate = gate
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fenced(payload: dict[str, Any], preamble: str = "Here is my analysis:") -> str:
    return f"{preamble}\n\n```json\n{json.dumps(payload, indent=2)}\n```\n\nLet me know!"


def tweet_doc(tweet_id: str, minutes_ago: int = 5, **fields: Any) -> dict[str, Any]:
    now = datetime.now(UTC)
    doc: dict[str, Any] = {
        "tweetId": tweet_id,
        "username": f"user{tweet_id}",
        "text": f"tweet {tweet_id} about $BTC",
        "createdAt": now - timedelta(minutes=minutes_ago + 1),
        "collectedAt": now - timedelta(minutes=minutes_ago),
    }
    doc.update(fields)
    return doc


@pytest.fixture
def store(tmp_path: Path) -> DocumentStore:
    return DocumentStore(db_path=tmp_path / "var" / "test.sqlite3")


@pytest.fixture
def seed(store: DocumentStore):
    def _seed(*docs: dict[str, Any], collection: str = "tweet_global") -> None:
        async def _add_all() -> None:
            for doc in docs:
                await store.add(collection, doc)

        asyncio.run(_add_all())

    return _seed


@pytest.fixture
def make_service(store: DocumentStore):
    def _make(client: FakeLLMClient, *, timeout: float = 5.0) -> SentimentService:
        collector = TweetCollector(store, collection="tweet_global", lookback_hours=6)
        analyzer = AnalysisClient(
            api_key="test-key",
            model="openai/gpt-4o-mini",
            timeout=timeout,
            client=client,
        )
        results = ResultStore(
            store,
            collection="sentiment_analysis",
            lookback_hours=6,
            model="openai/gpt-4o-mini",
            provider="openrouter",
            service_version="1.0.0",
        )
        return SentimentService(collector, analyzer, results)

    return _make
