# sentinel_sync/services/feeds.py
"""
Upstream hazard feed fetchers.

One FeedSource per provider; `fetch_feed()` issues a single GET and always
returns a FetchResult (FetchOk | FetchFailed). Transport errors, TLS errors
and non-2xx responses are captured, never raised, so one broken provider
cannot abort a sync run. There are no retries: the scheduler re-runs the
whole sync on its next tick.

HTTP clients are owned by FeedTransport and injected into the fetchers.
Relaxed TLS (verify=False) is a per-source option and uses its own client;
the default client always verifies certificates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from sentinel_sync.core.contracts import FetchFailed, FetchOk, FetchResult
from sentinel_sync.core.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


# Provider names double as the `source` field of emitted events.
SOURCE_GDACS = "GDACS"
SOURCE_USGS = "USGS"
SOURCE_NASA = "NASA"
SOURCE_COPERNICUS = "Copernicus EU"
SOURCE_RELIEFWEB = "ReliefWeb"
SOURCE_EMSC = "EMSC"


@dataclass(frozen=True, slots=True)
class FeedSource:
    name: str
    url: str
    parser: str
    relaxed_tls: bool = False
    enabled: bool = True


def default_sources(cfg: Settings | None = None) -> List[FeedSource]:
    s = cfg or default_settings
    return [
        FeedSource(SOURCE_GDACS, s.gdacs_url, "gdacs", enabled=s.gdacs_enabled),
        FeedSource(SOURCE_USGS, s.usgs_url, "usgs", enabled=s.usgs_enabled),
        FeedSource(SOURCE_NASA, s.nasa_url, "nasa", enabled=s.nasa_enabled),
        FeedSource(
            SOURCE_COPERNICUS,
            s.copernicus_url,
            "copernicus",
            relaxed_tls=s.copernicus_relaxed_tls,
            enabled=s.copernicus_enabled,
        ),
        FeedSource(SOURCE_RELIEFWEB, s.reliefweb_url, "reliefweb", enabled=s.reliefweb_enabled),
        FeedSource(SOURCE_EMSC, s.emsc_url, "emsc", enabled=s.emsc_enabled),
    ]


class FeedTransport:
    """
    Owns the HTTP clients used by one sync run.

    `timeout_s` is deliberately the whole-run budget rather than a tight
    per-request value; the aggregator's deadline decides when a slow source
    counts as failed.
    """

    def __init__(
        self,
        *,
        user_agent: str,
        timeout_s: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._relaxed_client: Optional[httpx.AsyncClient] = None

    def _make_client(self, *, verify: bool) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            verify=verify,
            transport=self._transport,
        )

    def client_for(self, source: FeedSource) -> httpx.AsyncClient:
        if source.relaxed_tls:
            if self._relaxed_client is None:
                logger.info("feeds: relaxed TLS client created for %s", source.name)
                self._relaxed_client = self._make_client(verify=False)
            return self._relaxed_client
        if self._client is None:
            self._client = self._make_client(verify=True)
        return self._client

    async def aclose(self) -> None:
        for c in (self._client, self._relaxed_client):
            if c is not None:
                await c.aclose()
        self._client = None
        self._relaxed_client = None

    async def __aenter__(self) -> "FeedTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


async def fetch_feed(transport: FeedTransport, source: FeedSource) -> FetchResult:
    client = transport.client_for(source)
    try:
        r = await client.get(source.url)
        r.raise_for_status()
    except httpx.HTTPStatusError as e:
        err = f"HTTP {e.response.status_code}"
        logger.warning("feeds: %s failed: %s", source.name, err)
        return FetchFailed(source=source.name, error=err)
    except Exception as e:
        # transport, TLS, DNS, timeout, invalid URL
        err = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        logger.warning("feeds: %s failed: %s", source.name, err)
        return FetchFailed(source=source.name, error=err)

    return FetchOk(source=source.name, payload=r.text, status_code=r.status_code)
