"""Cycle orchestration — wires collect → aggregate → analyze → save."""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime

from cryptomood import config
from cryptomood.aggregate import aggregate
from cryptomood.collector import TweetCollector
from cryptomood.llm import AnalysisClient
from cryptomood.models import AnalysisRecord, CycleOutcome, CycleStatus
from cryptomood.prompts import PromptBuilder
from cryptomood.results import ResultStore
from cryptomood.store import DocumentStore

logger = logging.getLogger(__name__)


class CycleState:
    """Single-slot guard: at most one cycle holds it at a time.

    Cycles can be triggered from the scheduler thread and from request
    handlers, each on its own event loop, so the flag is a lock rather
    than a plain bool.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def try_enter(self) -> bool:
        return self._lock.acquire(blocking=False)

    def leave(self) -> None:
        self._lock.release()


class SentimentService:
    """Runs analysis cycles and exposes their history."""

    def __init__(
        self,
        collector: TweetCollector,
        analyzer: AnalysisClient,
        results: ResultStore,
    ) -> None:
        self.collector = collector
        self.analyzer = analyzer
        self.results = results
        self.state = CycleState()
        self.started_at = datetime.now(UTC)

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    async def run_cycle(self) -> CycleOutcome:
        """Execute one full analysis cycle unless one is already in flight."""
        if not self.state.try_enter():
            logger.warning("Analysis already running, skipping")
            return CycleOutcome(status=CycleStatus.SKIPPED_RUNNING)

        started = time.monotonic()
        stage = "collect"
        try:
            logger.info("=== sentiment cycle start ===")

            # ── 1. Collect ────────────────────────────────────────────
            collected = await self.collector.collect()
            if collected.is_empty:
                logger.warning("No tweets found for analysis")
                return CycleOutcome(
                    status=CycleStatus.SKIPPED_NO_DATA,
                    duration=time.monotonic() - started,
                )

            # ── 2. Aggregate ──────────────────────────────────────────
            stage = "aggregate"
            batch = aggregate(collected.posts, collected.threads)

            # ── 3. Analyze ────────────────────────────────────────────
            stage = "analyze"
            verdict = await self.analyzer.analyze(batch)

            # ── 4. Save ───────────────────────────────────────────────
            stage = "save"
            saved = await self.results.save(batch, verdict)

            duration = time.monotonic() - started
            logger.info(
                "=== sentiment cycle done — id=%s sentiment=%s intensity=%s in %.2fs ===",
                saved.analysis_id,
                saved.sentiment,
                saved.sentiment_intensity,
                duration,
            )
            return CycleOutcome(status=CycleStatus.COMPLETED, result=saved, duration=duration)
        except Exception:
            logger.exception(
                "Sentiment cycle failed at stage '%s' after %.2fs",
                stage,
                time.monotonic() - started,
            )
            raise
        finally:
            self.state.leave()

    async def get_history(self, limit: int = 10) -> list[AnalysisRecord]:
        return await self.results.recent(limit)


def build_service(store: DocumentStore | None = None) -> SentimentService:
    """Assemble a ``SentimentService`` from the environment configuration."""
    store = store or DocumentStore(db_path=config.DB_PATH)
    collector = TweetCollector(
        store,
        collection=config.TWEETS_COLLECTION,
        lookback_hours=config.LOOKBACK_HOURS,
    )
    analyzer = AnalysisClient(
        api_key=config.OPENROUTER_API_KEY,
        model=config.LLM_MODEL,
        base_url=config.OPENROUTER_BASE_URL,
        prompt_builder=PromptBuilder(config.PROMPTS_DIR, version=config.PROMPT_VERSION),
        timeout=config.LLM_TIMEOUT_SECONDS,
        max_tokens=config.LLM_MAX_TOKENS,
        temperature=config.LLM_TEMPERATURE,
    )
    results = ResultStore(
        store,
        collection=config.SENTIMENT_COLLECTION,
        lookback_hours=config.LOOKBACK_HOURS,
        model=config.LLM_MODEL,
        provider=config.LLM_PROVIDER,
        service_version=config.SERVICE_VERSION,
    )
    return SentimentService(collector, analyzer, results)
