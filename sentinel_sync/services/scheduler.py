from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sentinel_sync.services.pipeline import SyncPipeline

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Fixed-interval trigger for the sync pipeline.

    Runs once immediately, then every `interval_s`. A failed run is already
    a logged no-op inside the pipeline, so the loop itself only stops on
    stop() / cancellation.
    """

    def __init__(self, pipeline: SyncPipeline, *, interval_s: float):
        self.pipeline = pipeline
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while True:
            await self.pipeline.run_once()
            self.runs += 1
            await asyncio.sleep(self.interval_s)

    def start(self) -> None:
        if self.started:
            return
        logger.info("scheduler: sync every %.0fs", self.interval_s)
        self._task = asyncio.create_task(self._loop(), name="sentinel-sync-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("scheduler: stopped after %d runs", self.runs)
