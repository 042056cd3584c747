"""CLI entry-point: ``python -m cryptomood serve`` / ``run`` / ``history`` / ``prompts``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from cryptomood import config
from cryptomood.api import create_app
from cryptomood.pipeline import build_service
from cryptomood.prompts import PromptBuilder
from cryptomood.scheduler import CycleScheduler

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _require_valid_config() -> None:
    problems = config.validate()
    for problem in problems:
        logger.error("Configuration error: %s", problem)
    if problems:
        sys.exit(1)


def _serve(no_schedule: bool) -> None:
    _require_valid_config()
    service = build_service()
    scheduler = CycleScheduler(service.run_cycle, config.ANALYSIS_CRON)

    app = create_app(
        service,
        configuration={
            "lookbackHours": config.LOOKBACK_HOURS,
            "maxTweets": "No limit - process ALL tweets in the lookback window",
            "analysisInterval": config.ANALYSIS_CRON,
            "frequency": scheduler.cadence.describe(),
            "model": config.LLM_MODEL,
            "provider": config.LLM_PROVIDER,
            "promptVersion": config.PROMPT_VERSION,
        },
        version=config.SERVICE_VERSION,
    )

    if not no_schedule:
        scheduler.start()
    logger.info("Crypto Sentiment Analysis Service listening on %s:%d", config.HOST, config.PORT)
    logger.info("Analyzing last %d hours of tweets (no limit)", config.LOOKBACK_HOURS)
    try:
        app.run(host=config.HOST, port=config.PORT)
    finally:
        scheduler.stop(timeout=5)
        logger.info("Server closed")


def _run_once() -> None:
    _require_valid_config()
    service = build_service()
    outcome = asyncio.run(service.run_cycle())
    print(json.dumps(outcome.model_dump(mode="json", by_alias=True), indent=2))


def _history(limit: int) -> None:
    service = build_service()
    records = asyncio.run(service.get_history(limit))
    print(json.dumps([r.model_dump(mode="json", by_alias=True) for r in records], indent=2))


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _prompts() -> None:
    builder = PromptBuilder(config.PROMPTS_DIR, version=config.PROMPT_VERSION)
    for version in builder.available_versions():
        marker = "*" if version == builder.version else " "
        print(f"{marker} {builder.name}-{version}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="cryptomood",
        description="Crypto market sentiment analysis from recently collected tweets.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── serve ──────────────────────────────────────────────────────────
    serve_parser = sub.add_parser("serve", help="Start the HTTP API and the scheduled trigger.")
    serve_parser.add_argument(
        "--no-schedule",
        action="store_true",
        help="Serve the API only; cycles run on manual trigger.",
    )

    # ── run ────────────────────────────────────────────────────────────
    sub.add_parser("run", help="Execute a single analysis cycle and print its outcome.")

    # ── history ────────────────────────────────────────────────────────
    history_parser = sub.add_parser("history", help="Print the most recent analyses.")
    history_parser.add_argument(
        "--limit",
        type=_positive_int,
        default=10,
        help="How many analyses to print (default: 10).",
    )

    # ── prompts ────────────────────────────────────────────────────────
    sub.add_parser("prompts", help="List available prompt template versions.")

    args = parser.parse_args(argv)
    _setup_logging()

    if args.command == "serve":
        _serve(no_schedule=args.no_schedule)
    elif args.command == "run":
        _run_once()
    elif args.command == "history":
        _history(limit=args.limit)
    elif args.command == "prompts":
        _prompts()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
