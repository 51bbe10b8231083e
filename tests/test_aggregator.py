from __future__ import annotations

import asyncio

import httpx

from conftest import default_routes, feed_sources, mock_transport

from sentinel_sync.services.aggregator import Aggregator
from sentinel_sync.services.feeds import FeedSource, FeedTransport

NOW = "2025-01-01T00:00:00+00:00"


def _run(routes, *, sources=None, budget=5.0):
    async def go():
        async with FeedTransport(user_agent="t", timeout_s=5.0, transport=mock_transport(routes)) as transport:
            agg = Aggregator(sources=sources or feed_sources(), transport=transport, fetch_budget_s=budget)
            return await agg.run(now=NOW)

    return asyncio.run(go())


def test_all_sources_succeed_and_are_concatenated():
    result = _run(default_routes())

    by_source = {s.source: s for s in result.sources}
    assert [s.source for s in result.sources] == [s.name for s in feed_sources()]
    assert all(s.ok for s in result.sources)
    assert by_source["GDACS"].events == 2
    assert by_source["USGS"].events == 1
    assert by_source["NASA"].events == 1
    assert by_source["Copernicus EU"].events == 1
    assert by_source["EMSC"].events == 2
    assert len(result.events) == 7


def test_reliefweb_only_reports_a_count():
    result = _run(default_routes())

    rw = next(s for s in result.sources if s.source == "ReliefWeb")
    assert rw.ok
    assert rw.diagnostic_count == 37
    assert rw.events == 0
    assert not any(ev.source == "ReliefWeb" for ev in result.events)


def test_partial_failure_keeps_the_other_sources():
    routes = default_routes()
    routes["/usgs"] = lambda request: httpx.Response(500)

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    routes["/copernicus"] = refuse
    routes["/gdacs"] = lambda request: httpx.Response(200, text="<<garbage>>")

    result = _run(routes)

    assert set(result.failed) == {"USGS", "Copernicus EU", "GDACS"}
    # GDACS fetched fine but its payload was unreadable
    gdacs = next(s for s in result.sources if s.source == "GDACS")
    assert not gdacs.ok and gdacs.events == 0
    assert gdacs.error.startswith("parse error:")
    assert {ev.source for ev in result.events} == {"NASA", "EMSC"}


def test_all_sources_failing_gives_empty_list_not_error():
    routes = {path: (lambda request: httpx.Response(502)) for path in default_routes()}

    result = _run(routes)

    assert result.events == []
    assert len(result.failed) == len(feed_sources())


def test_source_still_pending_at_budget_counts_as_failed():
    routes = default_routes()

    async def hang(request):
        await asyncio.sleep(30)
        return httpx.Response(200, text="{}")

    routes["/nasa"] = hang

    result = _run(routes, budget=0.2)

    nasa = next(s for s in result.sources if s.source == "NASA")
    assert not nasa.ok and nasa.error == "timeout"
    assert {ev.source for ev in result.events} == {"GDACS", "USGS", "Copernicus EU", "EMSC"}


def test_disabled_sources_are_not_fetched():
    hits = []

    def record(request):
        hits.append(request.url.path)
        return httpx.Response(200, text='{"features": []}')

    sources = [
        FeedSource("USGS", "https://feeds.test/usgs", "usgs"),
        FeedSource("EMSC", "https://feeds.test/emsc", "emsc", enabled=False),
    ]
    result = _run({"/usgs": record, "/emsc": record}, sources=sources)

    assert hits == ["/usgs"]
    assert [s.source for s in result.sources] == ["USGS"]


def test_broken_xml_is_reported_as_a_failed_source():
    routes = default_routes()
    routes["/copernicus"] = lambda request: httpx.Response(200, text="<rss><broken")

    result = _run(routes)

    cop = next(s for s in result.sources if s.source == "Copernicus EU")
    assert not cop.ok
    assert cop.error.startswith("parse error:")
    assert result.failed == ["Copernicus EU"]
    assert len(result.events) == 6
