from __future__ import annotations

import json
from typing import Callable, Dict

import httpx
import pytest

from sentinel_sync.core.contracts import HazardEvent
from sentinel_sync.core.storage import SqliteEventStore, connect_sqlite, ensure_schema
from sentinel_sync.services.feeds import FeedSource, FeedTransport


# ──────────────────────────────────────────────────────────────
# Sample upstream payloads
# ──────────────────────────────────────────────────────────────

USGS_PAYLOAD = {
    "type": "FeatureCollection",
    "features": [
        {
            "id": "123",
            "properties": {"mag": 6.5, "place": "10 km N of Somewhere", "time": 1700000000000},
            "geometry": {"type": "Point", "coordinates": [10.0, 45.0, 12.3]},
        }
    ],
}

GDACS_PAYLOAD = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [120.5, 14.2]},
            "properties": {
                "eventtype": "TC",
                "eventid": 1000999,
                "name": "Tropical Cyclone KONG-REY",
                "alertlevel": "Orange",
                "todate": "2024-10-30T12:00:00",
            },
        },
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [30.1, -1.5]},
            "properties": {"eventtype": "XX", "eventid": 42, "name": "Mystery", "alertlevel": "Green"},
        },
    ],
}

NASA_PAYLOAD = {
    "title": "EONET Events",
    "events": [
        {
            "id": "EONET_6543",
            "title": "Wildfire near Athens",
            "categories": [{"id": "wildfires", "title": "Wildfires"}],
            "geometry": [
                {"date": "2024-08-10T00:00:00Z", "type": "Point", "coordinates": [23.0, 38.0]},
                {"date": "2024-08-11T06:00:00Z", "type": "Point", "coordinates": [23.7, 38.1]},
            ],
        },
        {"id": "EONET_0", "title": "No geometry", "categories": [{"title": "Floods"}], "geometry": []},
    ],
}

COPERNICUS_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:georss="http://www.georss.org/georss">
  <channel>
    <title>Copernicus EMS - list of activations</title>
    <item>
      <title>Flood Alert</title>
      <georss:point>42.0 13.0</georss:point>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Activation without a location</title>
      <pubDate>Mon, 06 Jan 2025 11:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

EMSC_PAYLOAD = {
    "type": "FeatureCollection",
    "features": [
        {
            "id": "20240101_0000123",
            "properties": {"mag": 5.2, "flynn_region": "CENTRAL ITALY", "time": "2024-01-01T08:15:00.0Z"},
            "geometry": {"type": "Point", "coordinates": [13.4, 42.3, -10.0]},
        },
        {
            "id": "20240101_0000124",
            "properties": {"mag": 4.1, "time": "2024-01-01T09:00:00Z"},
            "geometry": {"type": "Point", "coordinates": [21.0, 37.5, -5.0]},
        },
    ],
}

RELIEFWEB_PAYLOAD = {"totalCount": 37, "count": 0, "data": []}


# ──────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────

@pytest.fixture
def store() -> SqliteEventStore:
    conn = connect_sqlite(":memory:")
    ensure_schema(conn)
    s = SqliteEventStore(conn, collection="active_disasters")
    yield s
    conn.close()


@pytest.fixture
def make_event() -> Callable[..., HazardEvent]:
    def _make(hid: str = "evt-1", **kw) -> HazardEvent:
        base = dict(
            id=hid,
            type="Earthquake",
            title="Somewhere",
            lat=10.0,
            lng=20.0,
            severity="Medium",
            source="USGS",
            timestamp="2024-01-01T00:00:00+00:00",
        )
        base.update(kw)
        return HazardEvent(**base)

    return _make


def feed_sources() -> list[FeedSource]:
    return [
        FeedSource("GDACS", "https://feeds.test/gdacs", "gdacs"),
        FeedSource("USGS", "https://feeds.test/usgs", "usgs"),
        FeedSource("NASA", "https://feeds.test/nasa", "nasa"),
        FeedSource("Copernicus EU", "https://feeds.test/copernicus", "copernicus", relaxed_tls=True),
        FeedSource("ReliefWeb", "https://feeds.test/reliefweb", "reliefweb"),
        FeedSource("EMSC", "https://feeds.test/emsc", "emsc"),
    ]


def default_routes() -> Dict[str, Callable[[httpx.Request], httpx.Response]]:
    def as_json(payload):
        return lambda request: httpx.Response(200, text=json.dumps(payload))

    return {
        "/gdacs": as_json(GDACS_PAYLOAD),
        "/usgs": as_json(USGS_PAYLOAD),
        "/nasa": as_json(NASA_PAYLOAD),
        "/copernicus": lambda request: httpx.Response(200, text=COPERNICUS_RSS),
        "/reliefweb": as_json(RELIEFWEB_PAYLOAD),
        "/emsc": as_json(EMSC_PAYLOAD),
    }


def mock_transport(routes: Dict[str, Callable]) -> httpx.MockTransport:
    async def handler(request: httpx.Request) -> httpx.Response:
        fn = routes.get(request.url.path)
        if fn is None:
            return httpx.Response(404)
        resp = fn(request)
        if hasattr(resp, "__await__"):
            resp = await resp
        return resp

    return httpx.MockTransport(handler)


def transport_factory(routes: Dict[str, Callable]) -> Callable[[], FeedTransport]:
    return lambda: FeedTransport(user_agent="sentinel-test", timeout_s=5.0, transport=mock_transport(routes))
