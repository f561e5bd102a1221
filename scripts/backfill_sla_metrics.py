#!/usr/bin/env python3
"""
Backfill SLA Metrics
====================

Computes and stores SLA metrics for existing conversations. Run after
changing office hours or targets, or to populate historical data.

Usage:
    python scripts/backfill_sla_metrics.py
    python scripts/backfill_sla_metrics.py --days 90
    python scripts/backfill_sla_metrics.py --conversation-id chat_abc123
    python scripts/backfill_sla_metrics.py --start-date 2025-01-01 --end-date 2025-02-01
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone

from chat_sla.config import RecalculationTrigger, settings
from chat_sla.core import ApplicationException
from chat_sla.infrastructure.database import close_database, get_session_context, init_database
from chat_sla.shared.infrastructure.logging import setup_logging
from chat_sla.sla.application import RecalculationQuery, SLAMetricsService
from chat_sla.sla.infrastructure import (
    SQLAlchemyConversationRepository,
    SQLAlchemySLAMetricsRepository,
    YAMLConfigProvider,
)


def parse_date(value: str) -> datetime:
    """Parse YYYY-MM-DD as midnight UTC."""
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill SLA metrics for existing conversations")
    parser.add_argument("--days", type=int, default=settings.default_lookback_days,
                        help="Backfill the last N days (default: %(default)s)")
    parser.add_argument("--conversation-id", help="Backfill a single conversation")
    parser.add_argument("--start-date", type=parse_date, help="Range start, YYYY-MM-DD")
    parser.add_argument("--end-date", type=parse_date, help="Range end, YYYY-MM-DD (default: now)")
    parser.add_argument("--batch-size", type=int, default=settings.recalculation_batch_size,
                        help="Conversations per batch, 1-2000 (default: %(default)s)")
    parser.add_argument("--config", default=str(settings.sla_config_path),
                        help="SLA configuration YAML (default: %(default)s)")
    return parser.parse_args(argv)


def build_query(args: argparse.Namespace, now: datetime) -> RecalculationQuery:
    """Translate command-line options into a recalculation query."""
    if args.conversation_id:
        return RecalculationQuery(conversation_id=args.conversation_id, batch_size=args.batch_size)

    end_date = min(args.end_date, now) if args.end_date else now
    start_date = args.start_date or end_date - timedelta(days=args.days)
    return RecalculationQuery(start_date=start_date, end_date=end_date, batch_size=args.batch_size)


async def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(settings.log_level, settings.environment)

    config_provider = YAMLConfigProvider(args.config)
    query = build_query(args, datetime.now(timezone.utc))

    init_database()
    try:
        async with get_session_context() as session:
            service = SLAMetricsService(
                SQLAlchemyConversationRepository(session),
                SQLAlchemySLAMetricsRepository(session),
                config_provider,
            )
            result = await service.recalculate(query, trigger=RecalculationTrigger.RECALCULATION)
    except ApplicationException as e:
        print(f"Backfill failed: {e.message}")
        return 1
    finally:
        await close_database()

    print("SLA backfill complete")
    print(f"  Total:     {result.total}")
    print(f"  Processed: {result.processed}")
    print(f"  Failed:    {result.failed}")
    print(f"  Batches:   {result.batches}")
    print(f"  Duration:  {result.duration_ms} ms")
    for error in result.errors:
        print(f"  ! {error}")

    return 0 if result.success else 2


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
