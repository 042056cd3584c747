"""Engagement totals for a batch of tweets and threads."""

from __future__ import annotations

import logging

from cryptomood.models import Batch, Post, ThreadItem

logger = logging.getLogger(__name__)


def post_engagement(post: Post) -> int:
    return post.likes + post.retweets + post.replies


def thread_engagement(thread: ThreadItem) -> int:
    # Thread documents carry no reply count, so replies are not part of it.
    return thread.likes + thread.retweets


def aggregate(posts: list[Post], threads: list[ThreadItem]) -> Batch:
    """Return a new batch holding *posts*, *threads* and their totals."""
    batch = Batch(
        posts=list(posts),
        threads=list(threads),
        total_likes=sum(p.likes for p in posts) + sum(t.likes for t in threads),
        total_retweets=sum(p.retweets for p in posts) + sum(t.retweets for t in threads),
        total_engagement=(
            sum(post_engagement(p) for p in posts)
            + sum(thread_engagement(t) for t in threads)
        ),
    )
    logger.debug(
        "Aggregated %d tweets / %d threads: engagement=%d likes=%d retweets=%d",
        len(posts),
        len(threads),
        batch.total_engagement,
        batch.total_likes,
        batch.total_retweets,
    )
    return batch
