from __future__ import annotations

import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def iso_from_epoch_ms(ms: Any) -> Optional[str]:
    """Epoch milliseconds (USGS / EMSC style) → ISO-8601 UTC, or None."""
    if isinstance(ms, bool):
        return None
    try:
        f = float(ms)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    try:
        return datetime.fromtimestamp(f / 1000.0, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def iso_from_text(s: Any) -> Optional[str]:
    """
    Parse a feed timestamp string into ISO-8601 UTC.

    Accepts ISO-8601 (with or without "Z") and RFC 822 dates as used by
    RSS <pubDate>. Naive values are taken as UTC.
    """
    if not isinstance(s, str):
        return None
    t = s.strip()
    if not t:
        return None

    iso = t[:-1] + "+00:00" if t.endswith("Z") else t
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        try:
            dt = parsedate_to_datetime(t)
        except (TypeError, ValueError, IndexError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def iso_from_any(value: Any) -> Optional[str]:
    """Numbers are epoch ms, strings are ISO / RFC 822."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return iso_from_epoch_ms(value)
    return iso_from_text(value)
