#!/usr/bin/env python3
"""
Run the daily expiry sweep against a database, optionally disposing expired stock.

Loads ledger, transfer and expiry-marker state, classifies every batch,
emits notifications for band transitions, and writes the updated markers
and a sweep-run row back.  Running it twice on the same day reports no
newly expired batches the second time.

Usage:
    python3 scripts/run_daily_sweep.py --database-url sqlite:///freshstock.db
    python3 scripts/run_daily_sweep.py --database-url <url> --as-of 2024-03-01 \
        --dispose-expired --actor-id <uuid>
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime, time, timezone
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///freshstock.db"
SYSTEM_ACTOR = UUID(int=0)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the expiry sweep and persist its markers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: packaged defaults).",
    )
    parser.add_argument(
        "--database-url",
        default=DB_URL,
        help=f"Database URL (default: {DB_URL!r}).",
    )
    parser.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Sweep date (YYYY-MM-DD). Default: today (UTC).",
    )
    parser.add_argument(
        "--dispose-expired",
        action="store_true",
        help="Dispose every expired batch that still holds stock after the sweep.",
    )
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=SYSTEM_ACTOR,
        help="Actor UUID recorded on disposals and rows (default: system actor).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Log level for the JSON log stream on stderr.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    # Lazy imports so we fail fast on args first
    from freshstock_config import load_config
    from freshstock_kernel.db import create_tables, init_engine_from_url, session_scope
    from freshstock_kernel.domain import (
        DeterministicClock,
        ExpiryStatus,
        InMemoryCatalog,
        InMemorySalesHistory,
        SystemClock,
    )
    from freshstock_kernel.exceptions import ConfigurationError
    from freshstock_kernel.logging_config import configure_logging
    from freshstock_services import InventoryOrchestrator

    configure_logging(level=getattr(logging, args.log_level))

    try:
        config = load_config(args.config)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    if args.as_of is not None:
        clock = DeterministicClock(
            datetime.combine(args.as_of, time(12, 0), tzinfo=timezone.utc)
        )
    else:
        clock = SystemClock()

    init_engine_from_url(args.database_url)
    create_tables()

    # The sweep only needs ledger state; catalog and sales stay empty.
    orchestrator = InventoryOrchestrator(
        InMemoryCatalog(), InMemorySalesHistory(), clock=clock, config=config,
    )
    persistence = orchestrator.persistence(actor_id=args.actor_id)

    with session_scope() as session:
        persistence.load(session)

    summary = orchestrator.expiry_monitor.run_sweep()

    disposal = None
    if args.dispose_expired:
        disposable = orchestrator.disposal.list_disposable()
        if disposable:
            disposal = orchestrator.disposal.dispose_batches(
                [b.id for b in disposable], disposed_by=args.actor_id,
            )

    with session_scope() as session:
        persistence.save(session)

    print(f"Sweep date:      {summary.sweep_date}")
    for status in ExpiryStatus:
        print(f"  {status.value:<10} {summary.count(status)}")
    print(f"Newly expired:   {summary.newly_expired_count}")
    print(f"Value at risk:   {summary.value_at_risk}")
    print(f"Value lost:      {summary.value_lost}")
    if disposal is not None:
        print(
            f"Disposed:        {len(disposal.succeeded)} batch(es), "
            f"{disposal.total_quantity} unit(s), value {disposal.value_lost}"
        )
        for item in disposal.failed:
            print(f"  FAILED {item.batch_id}: {item.error_code} {item.message}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
