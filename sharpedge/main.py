"""
SharpEdge - Main Entry Point.

Runs exactly one poll cycle and prints the JSON run summary:
1. Fetch bookmaker odds (The Odds API) and Polymarket CLOB prices
2. Match monitored markets to bookmaker games
3. Score edge and sharp movement, persist signals
4. Alert on newly created signals

Usage:
    python -m sharpedge.main

Scheduling is external (cron, systemd timer, ...). Configuration comes
from the environment / .env, see config/settings.py:
    ODDS_API__API_KEY       - Required: The Odds API key
    ALERTS__WEBHOOK_URL     - Optional: webhook for signal alerts
    RESOLVER__ENABLED       - Optional: enable AI-assisted matching
    DATABASE_URL            - sqlite+aiosqlite:///path/to/db
"""

import argparse
import asyncio
import sys
from typing import Optional

import structlog

from config.settings import ConfigurationError, Settings, settings as default_settings
from sharpedge.models.schemas import RunSummary
from sharpedge.monitor import PollCycle
from sharpedge.storage.base import SignalStore
from sharpedge.storage.memory import InMemoryStore
from sharpedge.storage.sqlite import SqliteStore
from sharpedge.utils.logging import setup_logging

logger = structlog.get_logger()


def build_store(settings: Settings, in_memory: bool = False) -> SignalStore:
    if in_memory:
        return InMemoryStore()
    path = settings.sqlite_path
    if path is None:
        raise ConfigurationError(f"Unsupported DATABASE_URL: {settings.database_url}")
    return SqliteStore(path)


async def run(settings: Settings, in_memory: bool = False) -> RunSummary:
    """Open the store, run one cycle, close everything."""
    store = build_store(settings, in_memory)
    cycle = PollCycle(settings, store)
    await store.open()
    try:
        return await cycle.run_once()
    finally:
        await cycle.close()
        await store.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run one SharpEdge poll cycle")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--console", action="store_true", help="Human-readable logs")
    parser.add_argument("--memory", action="store_true", help="Use an in-memory store (dry run)")
    args = parser.parse_args(argv)

    settings = default_settings
    setup_logging(
        args.log_level or settings.log_level,
        json_output=settings.log_json and not args.console,
    )

    try:
        settings.validate_credentials()
        summary = asyncio.run(run(settings, in_memory=args.memory))
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted", file=sys.stderr)
        return 130

    print(summary.model_dump_json())
    return 0


if __name__ == "__main__":
    sys.exit(main())
