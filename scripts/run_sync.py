#!/usr/bin/env python3
"""
scripts/run_sync.py

Run one hazard sync (fetch → normalize → reconcile) outside the API process.

Useful from cron or for a manual catch-up after an outage. Exits non-zero
when the run failed (the pipeline logs the reason).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sentinel_sync.core.settings import settings
from sentinel_sync.core.storage import open_event_store
from sentinel_sync.services.pipeline import SyncPipeline


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run one hazard feed sync against the event store")
    parser.add_argument("--db", default=settings.cache_db_path, help="Path to SQLite store")
    parser.add_argument("--collection", default=settings.events_collection)
    parser.add_argument("--json", action="store_true", help="Print the run report as JSON")
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = open_event_store(args.db, collection=args.collection)
    try:
        pipeline = SyncPipeline.from_settings(settings, store=store)
        report = asyncio.run(pipeline.run_once())
    finally:
        store.conn.close()

    if report is None:
        print("sync failed", file=sys.stderr)
        return 1

    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        print(f"synced {report.events} events: writes={report.written} deletes={report.deleted}")
        for s in report.sources:
            status = "ok" if s.ok else f"FAILED ({s.error})"
            extra = f" count={s.diagnostic_count}" if s.diagnostic_count is not None else f" events={s.events}"
            print(f"  {s.source:<14} {status}{extra}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
