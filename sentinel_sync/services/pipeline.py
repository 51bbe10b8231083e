# sentinel_sync/services/pipeline.py
"""
One sync run: fetch (fan-out) → normalize → reconcile.

run_once() never raises. Any failure (storage, timeout, bug) is logged and
the run becomes a no-op returning None; the next scheduled run starts from
scratch. Nothing carries over between runs except the persisted collection
itself (and `last_report`, which is for status display only).
"""
from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from typing import Callable, List, Optional, Sequence

from sentinel_sync.core.contracts import SyncReport
from sentinel_sync.core.settings import Settings
from sentinel_sync.core.storage import EventStore
from sentinel_sync.core.time import utc_now_iso
from sentinel_sync.services.aggregator import AggregateResult, Aggregator
from sentinel_sync.services.feeds import FeedSource, FeedTransport, default_sources
from sentinel_sync.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    RECONCILING = "reconciling"


TransportFactory = Callable[[], FeedTransport]


class SyncPipeline:
    def __init__(
        self,
        *,
        store: EventStore,
        sources: Optional[Sequence[FeedSource]] = None,
        transport_factory: Optional[TransportFactory] = None,
        timeout_s: float = 60.0,
        fetch_budget_s: float = 45.0,
        user_agent: str = "sentinel-sync",
    ):
        self.store = store
        self.sources: List[FeedSource] = list(sources) if sources is not None else default_sources()
        self.timeout_s = timeout_s
        self.fetch_budget_s = min(fetch_budget_s, timeout_s)
        self._transport_factory = transport_factory or (
            lambda: FeedTransport(user_agent=user_agent, timeout_s=self.timeout_s)
        )
        self.state = RunState.IDLE
        self.last_report: Optional[SyncReport] = None
        self._running = False

    @classmethod
    def from_settings(cls, cfg: Settings, *, store: EventStore) -> "SyncPipeline":
        return cls(
            store=store,
            sources=default_sources(cfg),
            timeout_s=cfg.sync_timeout_s,
            fetch_budget_s=cfg.fetch_budget_s,
            user_agent=cfg.http_user_agent,
        )

    @property
    def running(self) -> bool:
        return self._running

    async def _run(self, run_id: str, started_at: str) -> SyncReport:
        self.state = RunState.FETCHING
        async with self._transport_factory() as transport:
            aggregator = Aggregator(
                sources=self.sources,
                transport=transport,
                fetch_budget_s=self.fetch_budget_s,
            )
            fetched = await aggregator.fetch_all()

            self.state = RunState.NORMALIZING
            agg: AggregateResult = aggregator.normalize_all(fetched, now=started_at)

        events = agg.events

        self.state = RunState.RECONCILING
        result = Reconciler(self.store).reconcile(events)

        return SyncReport(
            run_id=run_id,
            started_at=started_at,
            finished_at=utc_now_iso(),
            events=len(events),
            written=result.written,
            deleted=result.deleted,
            sources=agg.sources,
        )

    async def run_once(self) -> Optional[SyncReport]:
        if self._running:
            logger.warning("sync: previous run still in progress, skipping this trigger")
            return None

        run_id = uuid.uuid4().hex[:12]
        started_at = utc_now_iso()
        self._running = True
        try:
            report = await asyncio.wait_for(self._run(run_id, started_at), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.error("sync[%s]: run exceeded %.1fs, abandoned without commit", run_id, self.timeout_s)
            return None
        except Exception:
            logger.exception("sync[%s]: global sync error", run_id)
            return None
        finally:
            self.state = RunState.IDLE
            self._running = False

        self.last_report = report
        logger.info(
            "sync[%s]: synced %d events. writes=%d deletes=%d",
            run_id,
            report.events,
            report.written,
            report.deleted,
        )
        return report
