# sentinel_sync/services/aggregator.py
"""
Concurrent fan-out over all enabled feed sources.

Every source is fetched in its own asyncio task; the aggregator waits for
all of them (bounded by the fetch budget) and then hands each raw result to
that source's normalizer. Per-source failures live in the FetchResult, so
no task can take another down and no state is shared between tasks.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from sentinel_sync.core.contracts import FetchFailed, FetchResult, HazardEvent, SourceReport
from sentinel_sync.core.time import utc_now_iso
from sentinel_sync.services.feeds import FeedSource, FeedTransport, fetch_feed
from sentinel_sync.services.normalizers import parse_payload, reliefweb_count

logger = logging.getLogger(__name__)

# Sources consulted for a diagnostic count only; they never emit events.
MONITORING_PARSERS = frozenset({"reliefweb"})

Fetched = List[Tuple[FeedSource, FetchResult]]


@dataclass
class AggregateResult:
    events: List[HazardEvent] = field(default_factory=list)
    sources: List[SourceReport] = field(default_factory=list)

    @property
    def failed(self) -> List[str]:
        return [s.source for s in self.sources if not s.ok]


class Aggregator:
    def __init__(
        self,
        *,
        sources: Sequence[FeedSource],
        transport: FeedTransport,
        fetch_budget_s: Optional[float] = None,
    ):
        self.sources = [s for s in sources if s.enabled]
        self.transport = transport
        self.fetch_budget_s = fetch_budget_s

    async def fetch_all(self) -> Fetched:
        """Fetch every source concurrently; results in configured order."""
        if not self.sources:
            return []

        tasks = {
            asyncio.create_task(fetch_feed(self.transport, src), name=f"feed:{src.name}"): src
            for src in self.sources
        }
        try:
            _done, pending = await asyncio.wait(tasks.keys(), timeout=self.fetch_budget_s)
        except asyncio.CancelledError:
            # Run abandoned (outer timeout): stop every in-flight fetch too.
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        out: Fetched = []
        for task, src in tasks.items():
            if task in pending:
                logger.warning(
                    "aggregate: %s still pending after %.1fs, treated as failed",
                    src.name,
                    self.fetch_budget_s,
                )
                out.append((src, FetchFailed(source=src.name, error="timeout")))
                continue
            exc = task.exception()
            if exc is not None:
                logger.error("aggregate: %s fetch crashed: %s", src.name, exc)
                out.append((src, FetchFailed(source=src.name, error=str(exc) or type(exc).__name__)))
                continue
            out.append((src, task.result()))
        return out

    def normalize_all(self, fetched: Fetched, *, now: Optional[str] = None) -> AggregateResult:
        ts = now or utc_now_iso()
        out = AggregateResult()

        for src, result in fetched:
            error = None if result.ok else result.error

            if src.parser in MONITORING_PARSERS:
                count = reliefweb_count(result) if result.ok else None
                if result.ok:
                    logger.info("aggregate: %s fetch success, count=%d", src.name, count)
                out.sources.append(
                    SourceReport(source=src.name, ok=result.ok, error=error, diagnostic_count=count)
                )
                continue

            events, error = parse_payload(src.parser, result, now=ts)
            out.events.extend(events)
            out.sources.append(
                SourceReport(source=src.name, ok=error is None, error=error, events=len(events))
            )

        logger.info(
            "aggregate: %d events from %d sources (%d failed)",
            len(out.events),
            len(fetched),
            len(out.failed),
        )
        return out

    async def run(self, *, now: Optional[str] = None) -> AggregateResult:
        return self.normalize_all(await self.fetch_all(), now=now)
