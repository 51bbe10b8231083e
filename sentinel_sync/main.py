# sentinel_sync/main.py
from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.middleware.gzip import GZipMiddleware

# Load <repo>/.env (main.py is <repo>/sentinel_sync/main.py)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

from sentinel_sync.core.settings import settings
from sentinel_sync.core.storage import open_event_store
from sentinel_sync.api import api_router
from sentinel_sync.services.pipeline import SyncPipeline
from sentinel_sync.services.scheduler import SyncScheduler

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Sentinel Hazard Sync", version="1.0.0")

# The /events feed can run to a few thousand records
app.add_middleware(GZipMiddleware, minimum_size=1000)

# ──────────────────────────────────────────────────────────────
# Store + pipeline
# ──────────────────────────────────────────────────────────────

_store = open_event_store(settings.cache_db_path, collection=settings.events_collection)
_pipeline = SyncPipeline.from_settings(settings, store=_store)
_scheduler = SyncScheduler(_pipeline, interval_s=settings.sync_interval_s)

# ──────────────────────────────────────────────────────────────
# Dependency providers
# ──────────────────────────────────────────────────────────────

def provide_pipeline() -> SyncPipeline:
    return _pipeline


def provide_event_store():
    return _store


from sentinel_sync.api import events as events_api
from sentinel_sync.api import sync as sync_api

app.dependency_overrides[sync_api.get_pipeline] = provide_pipeline
app.dependency_overrides[events_api.get_event_store] = provide_event_store

# Routes
app.include_router(api_router)

# ──────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup():
    if settings.sync_scheduler_enabled:
        _scheduler.start()
    else:
        logger.info("[app] Scheduler disabled (SYNC_SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown():
    logger.info("[app] Shutting down: stopping scheduler, closing store")
    await _scheduler.stop()
    try:
        _store.conn.close()
    except Exception as e:
        logger.warning(f"[app] Error closing store: {e}")
