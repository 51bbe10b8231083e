from __future__ import annotations

import math

import pytest

from sentinel_sync.core.errors import StorageError
from sentinel_sync.core.storage import SqliteEventStore
from sentinel_sync.services.reconciler import Reconciler


def test_new_events_are_written(store, make_event):
    result = Reconciler(store).reconcile([make_event("a"), make_event("b")])

    assert (result.written, result.deleted) == (2, 0)
    assert set(store.get_all()) == {"a", "b"}


def test_second_identical_run_is_a_no_op(store, make_event):
    events = [make_event("a"), make_event("b", severity="High")]
    rec = Reconciler(store)
    rec.reconcile(events)

    commits = []
    real_batch = store.batch

    def spy_batch():
        b = real_batch()
        commits.append(b)
        return b

    store.batch = spy_batch
    again = rec.reconcile(events)

    assert (again.written, again.deleted) == (0, 0)
    assert commits == []


def test_severity_change_triggers_upsert(store, make_event):
    rec = Reconciler(store)
    rec.reconcile([make_event("quake", severity="Medium", lat=45.0)])

    result = rec.reconcile([make_event("quake", severity="High", lat=45.0)])

    assert result.written == 1
    assert store.get("quake")["severity"] == "High"


def test_lat_change_triggers_upsert(store, make_event):
    rec = Reconciler(store)
    rec.reconcile([make_event("a", lat=1.0)])

    assert rec.reconcile([make_event("a", lat=1.5)]).written == 1
    assert store.get("a")["lat"] == 1.5


def test_title_timestamp_or_lng_only_changes_do_not_rewrite(store, make_event):
    rec = Reconciler(store)
    rec.reconcile([make_event("a", title="Old title", lng=20.0, timestamp="2024-01-01T00:00:00+00:00")])

    result = rec.reconcile(
        [make_event("a", title="New title", lng=21.0, timestamp="2024-06-01T00:00:00+00:00")]
    )

    assert (result.written, result.deleted) == (0, 0)
    stored = store.get("a")
    assert stored["title"] == "Old title"
    assert stored["lng"] == 20.0
    assert stored["timestamp"] == "2024-01-01T00:00:00+00:00"


def test_ids_missing_from_run_are_deleted_once(store, make_event):
    rec = Reconciler(store)
    rec.reconcile([make_event("a"), make_event("b"), make_event("c")])

    first = rec.reconcile([make_event("a")])
    second = rec.reconcile([make_event("a")])

    assert first.deleted == 2
    assert second.deleted == 0
    assert set(store.get_all()) == {"a"}


def test_invalid_coordinates_are_never_persisted(store, make_event):
    result = Reconciler(store).reconcile(
        [
            make_event("no-lat", lat=None),
            make_event("no-lng", lng=None),
            make_event("nan", lat=math.nan),
            make_event("inf", lng=math.inf),
            make_event("equator", lat=0.0, lng=0.0),
        ]
    )

    assert result.written == 1
    assert result.skipped_invalid == 4
    docs = store.get_all()
    assert set(docs) == {"equator"}
    for doc in docs.values():
        assert math.isfinite(doc["lat"]) and math.isfinite(doc["lng"])


def test_invalid_event_does_not_keep_stale_copy_alive(store, make_event):
    rec = Reconciler(store)
    rec.reconcile([make_event("a"), make_event("b")])

    result = rec.reconcile([make_event("a"), make_event("b", lat=None)])

    assert result.deleted == 1
    assert set(store.get_all()) == {"a"}


def test_empty_combined_list_leaves_collection_untouched(store, make_event):
    rec = Reconciler(store)
    rec.reconcile([make_event("a")])

    result = rec.reconcile([])

    assert (result.written, result.deleted) == (0, 0)
    assert set(store.get_all()) == {"a"}


def test_duplicate_ids_last_occurrence_wins(store, make_event):
    result = Reconciler(store).reconcile(
        [make_event("dup", severity="Medium"), make_event("dup", severity="High")]
    )

    assert result.written == 1
    assert store.get("dup")["severity"] == "High"


def test_repeated_id_in_a_run_is_idempotent_across_runs(store, make_event):
    events = [make_event("copernicus_floodalert"), make_event("copernicus_floodalert", lng=21.0)]
    rec = Reconciler(store)

    first = rec.reconcile(events)
    second = rec.reconcile(events)

    assert first.written == 1
    assert (second.written, second.deleted) == (0, 0)
    assert store.get("copernicus_floodalert")["lng"] == 21.0


class _BrokenCommitStore(SqliteEventStore):
    def batch(self):
        b = super().batch()

        def fail():
            raise StorageError("disk full")

        b.commit = fail
        return b


def test_commit_failure_propagates_and_leaves_state_unchanged(store, make_event):
    Reconciler(store).reconcile([make_event("a")])
    broken = _BrokenCommitStore(store.conn, collection=store.collection)

    with pytest.raises(StorageError):
        Reconciler(broken).reconcile([make_event("b")])

    assert set(store.get_all()) == {"a"}
