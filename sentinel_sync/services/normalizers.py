# sentinel_sync/services/normalizers.py
"""
Per-provider schema normalizers: raw feed payload → canonical HazardEvent.

Providers:
  - GDACS:      JSON/GeoJSON, sometimes double-encoded as a JSON string
  - USGS:       GeoJSON (global seismic)
  - NASA:       EONET v3 JSON (category tagged, geometry history)
  - Copernicus: RSS / Atom / RDF with georss:point
  - EMSC:       GeoJSON (Euro-Mediterranean seismic)
  - ReliefWeb:  diagnostic count only, never contributes events

A per-provider normalizer raises on a payload it cannot read at all;
parse_payload() turns that into a per-source error and normalize() into [].
Malformed records are dropped. A record is only emitted with a
finite lat/lng pair.

Field probing uses an explicit MISSING marker: None, absent keys and blank
strings are missing; numeric 0 is a real value.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import json
import logging
import math
import re
import xml.etree.ElementTree as ET

from sentinel_sync.core.contracts import FetchResult, HazardEvent, SeverityLevel
from sentinel_sync.core.time import iso_from_any, utc_now_iso
from sentinel_sync.services.feeds import (
    SOURCE_COPERNICUS,
    SOURCE_EMSC,
    SOURCE_GDACS,
    SOURCE_NASA,
    SOURCE_RELIEFWEB,
    SOURCE_USGS,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════
# Field probing
# ══════════════════════════════════════════════════════════════

class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def _get(obj: Any, *path: Any) -> Any:
    """Walk dict keys / list indices; MISSING on any absent step."""
    cur = obj
    for step in path:
        if isinstance(step, int):
            if not isinstance(cur, list) or not cur:
                return MISSING
            try:
                cur = cur[step]
            except IndexError:
                return MISSING
        else:
            if not isinstance(cur, dict) or step not in cur:
                return MISSING
            cur = cur[step]
        if cur is None:
            return MISSING
    return cur


def _present(v: Any) -> bool:
    if v is MISSING or v is None:
        return False
    if isinstance(v, str) and not v.strip():
        return False
    return True


def _first(*values: Any, default: Any = MISSING) -> Any:
    for v in values:
        if _present(v):
            return v
    return default


def _safe_float(x: Any) -> Optional[float]:
    if not _present(x) or isinstance(x, bool):
        return None
    try:
        f = float(x)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _first_float(*values: Any) -> Optional[float]:
    for v in values:
        f = _safe_float(v)
        if f is not None:
            return f
    return None


def _text(v: Any, default: str = "") -> str:
    return str(v).strip() if _present(v) else default


def slug_id(prefix: str, title: Any) -> str:
    """`<prefix>_` + lowercase alphanumeric-only title, first 20 chars."""
    slug = re.sub(r"[^a-z0-9]", "", _text(title).lower())[:20]
    return f"{prefix}_{slug}"


def _timestamp(value: Any, now: str) -> str:
    return iso_from_any(value) or now


def _decode_json(payload: str) -> Any:
    """json.loads, repeated while the result is itself a JSON string."""
    data: Any = payload
    for _ in range(3):
        if not isinstance(data, str):
            break
        data = json.loads(data)
    return data


Mapper = Callable[[Dict[str, Any], str], Optional[HazardEvent]]


def _collect(source: str, records: Iterable[Any], mapper: Mapper, now: str) -> List[HazardEvent]:
    out: List[HazardEvent] = []
    dropped = 0
    for rec in records:
        if not isinstance(rec, dict):
            dropped += 1
            continue
        try:
            ev = mapper(rec, now)
        except (TypeError, ValueError):
            ev = None
        if ev is None or not ev.has_valid_coords():
            dropped += 1
            continue
        out.append(ev)
    logger.info("normalize: %s kept=%d dropped=%d", source, len(out), dropped)
    return out


# ══════════════════════════════════════════════════════════════
# GDACS
# ══════════════════════════════════════════════════════════════

GDACS_TYPES: Dict[str, str] = {
    "VO": "Volcano",
    "TC": "Tropical Cyclone",
    "FL": "Flood",
    "EQ": "Earthquake",
    "DR": "Drought",
    "WF": "Wildfire",
    "TS": "Tsunami",
}


def gdacs_type(code: Any) -> str:
    """Two-letter GDACS event code → category; unknown codes pass through."""
    c = _text(code)
    if not c:
        return "Unknown"
    return GDACS_TYPES.get(c, c)


def _map_gdacs(evt: Dict[str, Any], now: str) -> Optional[HazardEvent]:
    props = _get(evt, "properties")
    coords = _get(evt, "geometry", "coordinates")

    # Precedence per field: top-level event, then properties, then fallback.
    def field(name: str) -> Any:
        return _first(_get(evt, name), _get(props, name))

    title = _text(field("name"), "Disaster")
    event_id = field("eventid")
    hid = str(event_id) if _present(event_id) else slug_id("gdacs", title)

    return HazardEvent(
        id=hid,
        type=gdacs_type(field("eventtype")),
        title=title,
        lat=_first_float(field("latitude"), _get(coords, 1)),
        lng=_first_float(field("longitude"), _get(coords, 0)),
        severity=_text(field("alertlevel"), "Unknown"),
        source=SOURCE_GDACS,
        timestamp=_timestamp(field("todate"), now),
    )


def normalize_gdacs(payload: str, now: str) -> List[HazardEvent]:
    data = _decode_json(payload)
    if not isinstance(data, dict):
        return []
    features = _first(_get(data, "features"), _get(data, "results"), default=[])
    if not isinstance(features, list):
        return []
    return _collect(SOURCE_GDACS, features, _map_gdacs, now)


# ══════════════════════════════════════════════════════════════
# Seismic magnitude thresholds
# ══════════════════════════════════════════════════════════════

def severity_from_magnitude(mag: Optional[float], *, high_at: float) -> SeverityLevel:
    """High at or above `high_at`, Medium otherwise (including no magnitude)."""
    if mag is not None and mag >= high_at:
        return "High"
    return "Medium"


USGS_HIGH_MAGNITUDE = 6.0
EMSC_HIGH_MAGNITUDE = 5.0


# ══════════════════════════════════════════════════════════════
# USGS
# ══════════════════════════════════════════════════════════════

def _map_usgs(evt: Dict[str, Any], now: str) -> Optional[HazardEvent]:
    props = _get(evt, "properties")
    coords = _get(evt, "geometry", "coordinates")
    title = _text(_get(props, "place"), "Earthquake")
    fid = _get(evt, "id")

    return HazardEvent(
        id=str(fid) if _present(fid) else slug_id("usgs", title),
        type="Earthquake",
        title=title,
        lat=_safe_float(_get(coords, 1)),
        lng=_safe_float(_get(coords, 0)),
        severity=severity_from_magnitude(_safe_float(_get(props, "mag")), high_at=USGS_HIGH_MAGNITUDE),
        source=SOURCE_USGS,
        timestamp=_timestamp(_get(props, "time"), now),
    )


def normalize_usgs(payload: str, now: str) -> List[HazardEvent]:
    data = _decode_json(payload)
    features = _get(data, "features")
    if not isinstance(features, list):
        return []
    return _collect(SOURCE_USGS, features, _map_usgs, now)


# ══════════════════════════════════════════════════════════════
# NASA EONET
# ══════════════════════════════════════════════════════════════

def _eonet_point(geom: Any) -> Tuple[Optional[float], Optional[float]]:
    """(lat, lng) from an EONET geometry entry; polygons reduce to ring mean."""
    coords = _get(geom, "coordinates")
    if _text(_get(geom, "type")) == "Polygon":
        ring = _get(coords, 0)
        if not isinstance(ring, list):
            return None, None
        pts = [(_safe_float(_get(p, 1)), _safe_float(_get(p, 0))) for p in ring]
        pts = [(la, ln) for la, ln in pts if la is not None and ln is not None]
        if not pts:
            return None, None
        return (
            sum(p[0] for p in pts) / len(pts),
            sum(p[1] for p in pts) / len(pts),
        )
    return _safe_float(_get(coords, 1)), _safe_float(_get(coords, 0))


def _map_nasa(evt: Dict[str, Any], now: str) -> Optional[HazardEvent]:
    history = _get(evt, "geometry")
    if not isinstance(history, list) or not history:
        return None
    geom = history[-1]
    lat, lng = _eonet_point(geom)
    title = _text(_get(evt, "title"))
    eid = _get(evt, "id")

    return HazardEvent(
        id=str(eid) if _present(eid) else slug_id("nasa", title),
        type=_text(_get(evt, "categories", 0, "title"), "Unknown"),
        title=title,
        lat=lat,
        lng=lng,
        severity="Unknown",
        source=SOURCE_NASA,
        timestamp=_timestamp(_get(geom, "date"), now),
    )


def normalize_nasa(payload: str, now: str) -> List[HazardEvent]:
    data = _decode_json(payload)
    events = _get(data, "events")
    if not isinstance(events, list):
        return []
    return _collect(SOURCE_NASA, events, _map_nasa, now)


# ══════════════════════════════════════════════════════════════
# Copernicus EMS (RSS 2.0 / Atom / RDF + georss:point)
# ══════════════════════════════════════════════════════════════

_XML_ROOTS = ("rss", "feed", "RDF")
_XML_ITEMS = ("item", "entry")


def _localname(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    if ":" in tag:
        return tag.split(":", 1)[1]
    return tag


def _child_text(el: ET.Element, *names: str) -> Any:
    """Text of the first direct child whose local name is in `names`, in order."""
    for name in names:
        for child in el:
            if _localname(child.tag) == name:
                txt = (child.text or "").strip()
                if txt:
                    return txt
    return MISSING


def _xml_items(root: ET.Element) -> List[ET.Element]:
    channel = next((c for c in root if _localname(c.tag) == "channel"), None)
    items: List[ET.Element] = []
    if channel is not None:
        items = [c for c in channel if _localname(c.tag) in _XML_ITEMS]
    if not items:
        # Atom entries and RSS 1.0 items sit directly under the root.
        items = [c for c in root if _localname(c.tag) in _XML_ITEMS]
    return items


def _parse_point(text: Any) -> Tuple[Optional[float], Optional[float]]:
    """georss "lat lng" → (lat, lng)."""
    parts = _text(text).split()
    if len(parts) < 2:
        return None, None
    return _safe_float(parts[0]), _safe_float(parts[1])


def _map_copernicus(item: Dict[str, Any], now: str) -> Optional[HazardEvent]:
    point = item.get("point")
    if not _present(point):
        return None
    lat, lng = _parse_point(point)
    title = _text(item.get("title"))

    return HazardEvent(
        id=slug_id("copernicus", title),
        type="Emergency",
        title=title,
        lat=lat,
        lng=lng,
        severity="High",
        source=SOURCE_COPERNICUS,
        timestamp=_timestamp(item.get("date"), now),
    )


def normalize_copernicus(payload: str, now: str) -> List[HazardEvent]:
    root = ET.fromstring(payload.strip())
    if _localname(root.tag) not in _XML_ROOTS:
        raise ValueError(f"unexpected XML root <{root.tag}>")

    records = [
        {
            "title": _child_text(el, "title"),
            "point": _child_text(el, "point"),
            "date": _child_text(el, "pubDate", "updated", "published", "date"),
        }
        for el in _xml_items(root)
    ]
    return _collect(SOURCE_COPERNICUS, records, _map_copernicus, now)


# ══════════════════════════════════════════════════════════════
# EMSC
# ══════════════════════════════════════════════════════════════

def _fmt_magnitude(mag: Any) -> str:
    f = _safe_float(mag)
    if f is None:
        return "?"
    return str(int(f)) if f.is_integer() else str(f)


def _map_emsc(evt: Dict[str, Any], now: str) -> Optional[HazardEvent]:
    props = _get(evt, "properties")
    coords = _get(evt, "geometry", "coordinates")
    mag = _get(props, "mag")
    region = _text(_get(props, "flynn_region"), "Europe")
    title = f"M{_fmt_magnitude(mag)} - {region}"
    eid = _first(_get(evt, "id"), _get(props, "unid"))

    return HazardEvent(
        id=f"emsc_{eid}" if _present(eid) else slug_id("emsc", title),
        type="Earthquake",
        title=title,
        lat=_safe_float(_get(coords, 1)),
        lng=_safe_float(_get(coords, 0)),
        severity=severity_from_magnitude(_safe_float(mag), high_at=EMSC_HIGH_MAGNITUDE),
        source=SOURCE_EMSC,
        timestamp=_timestamp(_get(props, "time"), now),
    )


def normalize_emsc(payload: str, now: str) -> List[HazardEvent]:
    data = _decode_json(payload)
    features = _get(data, "features")
    if not isinstance(features, list):
        return []
    return _collect(SOURCE_EMSC, features, _map_emsc, now)


# ══════════════════════════════════════════════════════════════
# ReliefWeb (monitoring only)
# ══════════════════════════════════════════════════════════════

def reliefweb_count(result: FetchResult) -> int:
    """`totalCount` of a ReliefWeb listing; 0 when absent or unreadable."""
    if not result.ok:
        return 0
    try:
        data = _decode_json(result.payload)
    except ValueError:
        return 0
    count = _safe_float(_get(data, "totalCount"))
    return int(count) if count is not None else 0


def normalize_reliefweb(payload: str, now: str) -> List[HazardEvent]:
    return []


# ══════════════════════════════════════════════════════════════
# Dispatch
# ══════════════════════════════════════════════════════════════

NORMALIZERS: Dict[str, Callable[[str, str], List[HazardEvent]]] = {
    "gdacs": normalize_gdacs,
    "usgs": normalize_usgs,
    "nasa": normalize_nasa,
    "copernicus": normalize_copernicus,
    "reliefweb": normalize_reliefweb,
    "emsc": normalize_emsc,
}

_PARSER_FOR_SOURCE: Dict[str, str] = {
    SOURCE_GDACS: "gdacs",
    SOURCE_USGS: "usgs",
    SOURCE_NASA: "nasa",
    SOURCE_COPERNICUS: "copernicus",
    SOURCE_RELIEFWEB: "reliefweb",
    SOURCE_EMSC: "emsc",
}


def parse_payload(
    source: str, result: FetchResult, *, now: Optional[str] = None
) -> Tuple[List[HazardEvent], Optional[str]]:
    """
    Map one source's fetch result to canonical events.

    Returns (events, error). `error` is set when the whole payload could not
    be read (or no normalizer exists); individual bad records are dropped
    without failing the source.
    """
    key = _PARSER_FOR_SOURCE.get(source, source.lower())
    fn = NORMALIZERS.get(key)
    if fn is None:
        logger.warning("normalize: no normalizer for source %r", source)
        return [], f"no normalizer for {source}"
    if not result.ok:
        return [], result.error

    try:
        return fn(result.payload, now or utc_now_iso()), None
    except Exception as e:
        logger.error("normalize: %s parse error: %s", source, e)
        return [], f"parse error: {e}"


def normalize(source: str, result: FetchResult, *, now: Optional[str] = None) -> List[HazardEvent]:
    """
    `source` is a provider name ("USGS") or parser key ("usgs"). Never
    raises: failed fetches and unreadable payloads give [].
    """
    events, _error = parse_payload(source, result, now=now)
    return events
