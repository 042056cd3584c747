"""Persistence of analysis results and retrieval of their history."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from cryptomood.models import AnalysisRecord, Batch, InputSummary, SaveResult, SentimentVerdict
from cryptomood.store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)


class ResultStore:
    """Append-only archive of sentiment analyses.

    Storage failures are deliberately not caught here: an analysis that
    cannot be written must fail the cycle that produced it.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = "sentiment_analysis",
        *,
        lookback_hours: int,
        model: str,
        provider: str,
        service_version: str,
    ) -> None:
        self._store = store
        self._collection = collection
        self._lookback_hours = lookback_hours
        self._model = model
        self._provider = provider
        self._service_version = service_version

    # ── public ──────────────────────────────────────────────────────────

    async def save(self, batch: Batch, verdict: SentimentVerdict) -> SaveResult:
        """Write one analysis document and return its summary."""
        record = AnalysisRecord(
            analysis_time=datetime.now(UTC),
            input_data=InputSummary(
                tweets_analyzed=len(batch.posts),
                threads_analyzed=len(batch.threads),
                total_engagement=batch.total_engagement,
                lookback_hours=self._lookback_hours,
            ),
            sentiment=verdict,
            service_version=self._service_version,
            model=self._model,
            provider=self._provider,
        )
        document = record.model_dump(by_alias=True, exclude={"id", "timestamp"})
        document["timestamp"] = SERVER_TIMESTAMP

        analysis_id = await self._store.add(self._collection, document)
        logger.info("Sentiment analysis saved with ID: %s", analysis_id)

        return SaveResult(
            analysis_id=analysis_id,
            timestamp=record.analysis_time,
            sentiment=verdict.overall_sentiment,
            sentiment_intensity=verdict.sentiment_intensity,
            created_at=verdict.created_at,
        )

    async def recent(self, limit: int = 10) -> list[AnalysisRecord]:
        """Return up to *limit* analyses, newest first."""
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        rows = await self._store.query(
            self._collection,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [AnalysisRecord.model_validate({**doc, "id": doc_id}) for doc_id, doc in rows]
