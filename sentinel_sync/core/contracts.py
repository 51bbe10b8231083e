from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# ──────────────────────────────────────────────────────────────
# Canonical hazard event
# ──────────────────────────────────────────────────────────────

# Coarse levels emitted by the threshold rules. Sources may also pass
# through their own native levels (e.g. GDACS "Green"/"Orange"/"Red"),
# so severity stays a plain string on the model.
SeverityLevel = Literal["Low", "Medium", "High", "Unknown"]


class HazardEvent(BaseModel):
    id: str
    type: str = "Unknown"
    title: str = ""
    # Optional so a normalizer can represent "missing"; never persisted unset.
    lat: Optional[float] = None
    lng: Optional[float] = None
    severity: str = "Unknown"
    source: str
    timestamp: str

    def has_valid_coords(self) -> bool:
        return (
            self.lat is not None
            and self.lng is not None
            and math.isfinite(self.lat)
            and math.isfinite(self.lng)
        )

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump()


# ──────────────────────────────────────────────────────────────
# Fetch results (one per source per run)
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class FetchOk:
    source: str
    payload: str
    status_code: int = 200
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class FetchFailed:
    source: str
    error: str
    ok: Literal[False] = False


FetchResult = Union[FetchOk, FetchFailed]


# ──────────────────────────────────────────────────────────────
# Run reporting
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class ReconcileResult:
    written: int = 0
    deleted: int = 0
    skipped_invalid: int = 0


class SourceReport(BaseModel):
    source: str
    ok: bool
    error: Optional[str] = None
    events: int = 0
    diagnostic_count: Optional[int] = None


class SyncReport(BaseModel):
    run_id: str
    started_at: str
    finished_at: str
    events: int = 0
    written: int = 0
    deleted: int = 0
    sources: List[SourceReport] = Field(default_factory=list)


class EventsPage(BaseModel):
    collection: str
    count: int
    items: List[HazardEvent] = Field(default_factory=list)
