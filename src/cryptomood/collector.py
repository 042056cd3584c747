"""Collect recent tweets from the document store and classify them.

Raw documents are written by a separate ingestion service and are loosely
shaped: the same value can live under different keys depending on which
scraper produced it. ``FIELD_SOURCES`` is the contract for reading them.
Each normalized field lists its acceptable source keys in priority order;
the first one holding a non-empty value wins.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from cryptomood.models import Batch, ClassifiedItem, Post, ThreadItem
from cryptomood.store import DocumentStore, StorageError, to_instant

logger = logging.getLogger(__name__)

# Sentinel key meaning "the store's own document id".
DOC_ID = "__doc_id__"

FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "id": ("tweetId", DOC_ID),
    "username": ("username", "authorHandle"),
    "combined_text": ("combinedText", "fullText", "text"),
    "text": ("text", "fullText"),
    "total_parts": ("threadTotalParts", "totalParts"),
}


class CollectionError(Exception):
    """Raised when recent tweets cannot be read from the store."""


def first_present(raw: dict[str, Any], field: str, doc_id: str = "") -> Any:
    """Resolve *field* from *raw* using ``FIELD_SOURCES``; ``None`` if absent."""
    for key in FIELD_SOURCES[field]:
        value = doc_id if key == DOC_ID else raw.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _strings(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def classify(raw: dict[str, Any], doc_id: str = "") -> ClassifiedItem:
    """Map one raw document to a ``ThreadItem`` or a ``Post``."""
    identifier = str(first_present(raw, "id", doc_id) or "")
    username = str(first_present(raw, "username") or "")
    created_at = to_instant(raw.get("createdAt"))
    collected_at = to_instant(raw.get("collectedAt"))
    likes = _int(raw.get("likes"))
    retweets = _int(raw.get("retweets"))
    hashtags = _strings(raw.get("hashtags"))
    mentions = _strings(raw.get("mentions"))

    if _int(raw.get("threadTotalParts")) > 1:
        return ThreadItem(
            id=identifier,
            username=username,
            combined_text=str(first_present(raw, "combined_text") or ""),
            total_parts=_int(first_present(raw, "total_parts")) or 1,
            created_at=created_at,
            collected_at=collected_at,
            likes=likes,
            retweets=retweets,
            hashtags=hashtags,
            mentions=mentions,
        )

    thread_position = raw.get("threadPosition")
    return Post(
        id=identifier,
        username=username,
        text=str(first_present(raw, "text") or ""),
        created_at=created_at,
        collected_at=collected_at,
        likes=likes,
        retweets=retweets,
        replies=_int(raw.get("replies")),
        quotes=_int(raw.get("quotes")),
        views=_int(raw.get("views")),
        hashtags=hashtags,
        mentions=mentions,
        is_thread=bool(raw.get("isThread", False)),
        thread_id=str(raw["threadId"]) if raw.get("threadId") else None,
        thread_position=_int(thread_position) if thread_position else None,
    )


class TweetCollector:
    """Reads the last N hours of collected tweets into a ``Batch``."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str = "tweet_global",
        lookback_hours: int = 6,
    ) -> None:
        self._store = store
        self._collection = collection
        self.lookback_hours = lookback_hours

    # ── public ──────────────────────────────────────────────────────────

    async def collect(self, window_hours: int | None = None) -> Batch:
        """Return classified tweets from the window; empty on store failure.

        Totals on the returned batch are left at zero, see ``aggregate``.
        """
        hours = window_hours if window_hours is not None else self.lookback_hours
        logger.info("Collecting tweets from last %d hours …", hours)
        try:
            documents = await self._fetch(hours)
        except CollectionError:
            logger.warning("Tweet collection failed; treating as no data", exc_info=True)
            return Batch()

        posts: list[Post] = []
        threads: list[ThreadItem] = []
        for doc_id, raw in documents:
            item = classify(raw, doc_id)
            if isinstance(item, ThreadItem):
                threads.append(item)
            else:
                posts.append(item)

        logger.info("Collected %d tweets and %d threads", len(posts), len(threads))
        return Batch(posts=posts, threads=threads)

    # ── private ─────────────────────────────────────────────────────────

    async def _fetch(self, hours: int) -> list[tuple[str, dict[str, Any]]]:
        cutoff = datetime.now(UTC) - timedelta(hours=hours)
        try:
            return await self._store.query(
                self._collection,
                where=("collectedAt", ">=", cutoff),
                order_by="collectedAt",
                descending=True,
                temporal=True,
            )
        except StorageError as exc:
            raise CollectionError(str(exc)) from exc
