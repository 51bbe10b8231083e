# sentinel_sync/services/reconciler.py
"""
Diff-based sync of the combined event list into the persisted collection.

Algorithm:
  1. Load the whole collection keyed by id.
  2. Collapse valid events to the last one per id. For each, stage an
     upsert if the id is new or its `severity` / `lat` changed, then mark
     the id as still current.
  3. Every unmarked stored id is staged for deletion.
  4. Commit all staged operations as one atomic batch (only if non-empty).

Change detection only compares `severity` and `lat`. A change confined to
`lng`, `title` or `timestamp` does not rewrite the stored copy, so those
fields can drift from upstream until severity or lat moves.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from sentinel_sync.core.contracts import HazardEvent, ReconcileResult
from sentinel_sync.core.storage import EventStore

logger = logging.getLogger(__name__)

TRACKED_FIELDS = ("severity", "lat")


def needs_write(old: Dict, ev: HazardEvent) -> bool:
    return any(old.get(f) != getattr(ev, f) for f in TRACKED_FIELDS)


class Reconciler:
    def __init__(self, store: EventStore):
        self.store = store

    def reconcile(self, events: Sequence[HazardEvent]) -> ReconcileResult:
        if not events:
            # Total upstream failure looks like an empty list; never treat it
            # as "everything resolved".
            logger.info("reconcile: empty combined list, nothing to do")
            return ReconcileResult()

        existing = self.store.get_all()

        # Last occurrence of a repeated id wins, before any comparison.
        current: Dict[str, HazardEvent] = {}
        skipped = 0
        for ev in events:
            if not ev.has_valid_coords():
                skipped += 1
                continue
            current[ev.id] = ev

        upserts: Dict[str, HazardEvent] = {}
        for hid, ev in current.items():
            old = existing.pop(hid, None)
            if old is None or needs_write(old, ev):
                upserts[hid] = ev

        deletes: List[str] = list(existing.keys())

        if not upserts and not deletes:
            logger.info("reconcile: %d events, no changes", len(events))
            return ReconcileResult(skipped_invalid=skipped)

        batch = self.store.batch()
        for hid, ev in upserts.items():
            batch.set(hid, ev.to_doc())
        for hid in deletes:
            batch.delete(hid)
        batch.commit()

        logger.info(
            "reconcile: %d events, writes=%d deletes=%d skipped_invalid=%d",
            len(events),
            len(upserts),
            len(deletes),
            skipped,
        )
        return ReconcileResult(written=len(upserts), deleted=len(deletes), skipped_invalid=skipped)
