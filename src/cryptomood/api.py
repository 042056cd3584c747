"""HTTP API: manual triggers, history and status for the sentiment service."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from flask import Flask, jsonify, request

from cryptomood.pipeline import SentimentService

logger = logging.getLogger(__name__)

SERVICE_NAME = "Crypto Sentiment Analysis Service"
DEFAULT_HISTORY_LIMIT = 10


def _error(message: str, exc: Exception) -> tuple[Any, int]:
    return jsonify({"success": False, "message": message, "error": str(exc)}), 500


def create_app(
    service: SentimentService,
    configuration: dict[str, Any] | None = None,
    version: str = "1.0.0",
) -> Flask:
    """Build the Flask app around *service*.

    *configuration* is echoed verbatim by ``GET /status``.
    """
    app = Flask(__name__)
    app.json.sort_keys = False
    configuration = configuration or {}

    @app.get("/")
    def index():
        return jsonify(
            {
                "service": SERVICE_NAME,
                "version": version,
                "status": "running",
                "description": "AI-powered crypto market sentiment analysis from tweets",
                "endpoints": {
                    "/analyze": "POST - Trigger sentiment analysis",
                    "/history": "GET - Get recent analysis history",
                    "/status": "GET - Service status and metrics",
                },
            }
        )

    @app.post("/analyze")
    async def analyze():
        try:
            outcome = await service.run_cycle()
        except Exception as exc:
            logger.error("Analysis request failed: %s", exc)
            return _error("Analysis failed", exc)

        if outcome.skipped or outcome.result is None:
            return jsonify(
                {
                    "success": True,
                    "message": "No tweets found or analysis skipped",
                    "status": outcome.status.value,
                    "result": None,
                }
            )
        return jsonify(
            {
                "success": True,
                "message": "Sentiment analysis completed successfully",
                "status": outcome.status.value,
                "result": outcome.result.model_dump(mode="json", by_alias=True),
            }
        )

    @app.get("/history")
    async def history():
        limit = request.args.get("limit", type=int)
        if not limit or limit <= 0:
            limit = DEFAULT_HISTORY_LIMIT
        try:
            records = await service.get_history(limit)
        except Exception as exc:
            logger.error("History request failed: %s", exc)
            return _error("Failed to retrieve history", exc)

        return jsonify(
            {
                "success": True,
                "count": len(records),
                "analyses": [r.model_dump(mode="json", by_alias=True) for r in records],
            }
        )

    @app.get("/status")
    def status():
        uptime = (datetime.now(UTC) - service.started_at).total_seconds()
        return jsonify(
            {
                "service": SERVICE_NAME,
                "status": "operational",
                "isRunning": service.is_running,
                "configuration": configuration,
                "uptime": round(uptime, 3),
            }
        )

    return app
