from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from sentinel_sync.core.contracts import EventsPage
from sentinel_sync.core.errors import StorageError, service_unavailable
from sentinel_sync.core.storage import SqliteEventStore

router = APIRouter()


def get_event_store() -> SqliteEventStore:
    raise RuntimeError("EventStore must be provided by app dependency override")


@router.get("/events", response_model=EventsPage)
def list_events(
    source: Optional[str] = None,
    store: SqliteEventStore = Depends(get_event_store),
) -> EventsPage:
    try:
        items = store.list_events(source=source)
    except StorageError as e:
        service_unavailable("store_unavailable", str(e))
    return EventsPage(collection=store.collection, count=len(items), items=items)
