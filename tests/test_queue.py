"""Tests for the durable sample queue.

Covers:
- Entries survive close/reopen and abrupt termination
- Oldest-first ordering by capture time, ties by insertion order
- Idempotent removal
- Dead-letter moves, rejection counting and capacity eviction
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0, make_sample
from waypoint.capture.sample import Sample
from waypoint.errors import StorageError
from waypoint.sync.queue import SampleQueue


class TestDurability:
    """Committed entries outlive the process; uncommitted ones never appear."""

    def test_queue_persists_across_restart(self, tmp_path):
        """Verify queued samples survive queue close and reopen."""
        db_path = tmp_path / "queue.db"

        queue1 = SampleQueue(db_path)
        entry_id = queue1.enqueue(make_sample(lat=10.0, lon=20.0))
        queue1.close()

        queue2 = SampleQueue(db_path)
        pending = queue2.list_pending()
        assert len(pending) == 1
        assert pending[0].id == entry_id
        assert pending[0].sample == make_sample(lat=10.0, lon=20.0)
        queue2.close()

    def test_enqueue_visible_without_clean_shutdown(self, tmp_path):
        """An enqueue that returned is readable from a fresh connection
        even though the first one was never closed (simulated crash)."""
        db_path = tmp_path / "queue.db"

        crashed = SampleQueue(db_path)
        ids = [crashed.enqueue(make_sample(i)) for i in range(5)]

        recovered = SampleQueue(db_path)
        assert [e.id for e in recovered.list_pending()] == ids
        recovered.close()
        crashed.close()

    def test_uncommitted_insert_is_absent_after_crash(self, tmp_path):
        """A write that never committed leaves no trace."""
        db_path = tmp_path / "queue.db"
        queue = SampleQueue(db_path)
        kept = queue.enqueue(make_sample(0))
        queue.close()

        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "INSERT INTO pending_samples "
            "(latitude, longitude, captured_at, captured_us, queued_at) "
            "VALUES (1.0, 2.0, '2026-01-24T12:00:00+00:00', 0, 'x')"
        )
        conn.close()  # no commit: the process "died" mid-transaction

        reopened = SampleQueue(db_path)
        assert [e.id for e in reopened.list_pending()] == [kept]
        reopened.close()

    def test_connection_opened_lazily(self, tmp_path):
        """Constructing the queue does not touch the filesystem."""
        db_path = tmp_path / "nested" / "queue.db"
        queue = SampleQueue(db_path)
        assert not db_path.exists()

        queue.enqueue(make_sample())
        assert db_path.exists()
        queue.close()

    def test_storage_fault_raises_storage_error(self, tmp_path):
        """A queue that cannot be opened surfaces StorageError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")

        queue = SampleQueue(blocker / "queue.db")
        with pytest.raises(StorageError):
            queue.enqueue(make_sample())


class TestOrdering:
    def test_pending_sorted_by_capture_time(self, queue):
        """Samples enqueued out of order come back oldest first."""
        for offset in (30, 10, 50, 0, 20):
            queue.enqueue(make_sample(offset))

        captured = [e.captured_at for e in queue.list_pending()]
        assert captured == sorted(captured)
        assert captured[0] == T0

    def test_ties_broken_by_insertion_order(self, queue):
        """Equal capture times keep insertion order."""
        first = queue.enqueue(make_sample(0, lat=1.0))
        second = queue.enqueue(make_sample(0, lat=2.0))
        third = queue.enqueue(make_sample(0, lat=3.0))

        assert [e.id for e in queue.list_pending()] == [first, second, third]

    def test_mixed_utc_offsets_sorted_by_instant(self, queue):
        """Ordering uses the absolute instant, not the ISO string."""
        plus_two = timezone(timedelta(hours=2))
        # 13:30+02:00 is 11:30 UTC, earlier than 12:00 UTC
        early = Sample(1.0, 1.0, datetime(2026, 1, 24, 13, 30, tzinfo=plus_two))
        late = Sample(2.0, 2.0, T0)

        queue.enqueue(late)
        queue.enqueue(early)

        assert [e.sample for e in queue.list_pending()] == [early, late]

    def test_ids_are_never_reused(self, queue):
        """Surrogate keys keep increasing after deletions."""
        first = queue.enqueue(make_sample(0))
        queue.remove(first)
        second = queue.enqueue(make_sample(1))
        assert second > first


class TestRemoval:
    def test_remove_twice_same_as_once(self, queue):
        """Removing an entry a second time is a no-op."""
        id1 = queue.enqueue(make_sample(0))
        id2 = queue.enqueue(make_sample(1))

        queue.remove(id1)
        after_once = queue.list_pending()
        queue.remove(id1)
        after_twice = queue.list_pending()

        assert after_once == after_twice
        assert [e.id for e in after_twice] == [id2]

    def test_remove_unknown_id_is_noop(self, queue):
        queue.enqueue(make_sample())
        queue.remove(9999)
        assert queue.count() == 1

    def test_clear_removes_everything(self, queue):
        for i in range(3):
            queue.enqueue(make_sample(i))
        queue.clear()
        assert queue.list_pending() == []
        assert queue.get_stats()["pending"] == 0


class TestDeadLetter:
    def test_quarantine_moves_entry(self, queue):
        """Quarantined entries leave the pending list but are kept."""
        id1 = queue.enqueue(make_sample(0))
        id2 = queue.enqueue(make_sample(1))

        assert queue.quarantine(id1, "rejected 3 times") is True

        assert [e.id for e in queue.list_pending()] == [id2]
        dead = queue.list_dead_letter()
        assert len(dead) == 1
        assert dead[0].id == id1
        assert dead[0].reason == "rejected 3 times"
        assert dead[0].sample == make_sample(0)

    def test_quarantine_unknown_entry(self, queue):
        assert queue.quarantine(42, "gone") is False
        assert queue.list_dead_letter() == []

    def test_requeue_restores_order(self, queue):
        """Requeued samples slot back in by capture time."""
        old = queue.enqueue(make_sample(0))
        queue.enqueue(make_sample(10))
        queue.quarantine(old, "rejected")

        assert queue.requeue_dead_letter() == 1

        pending = queue.list_pending()
        assert [e.captured_at for e in pending] == [T0, T0 + timedelta(seconds=10)]
        assert queue.list_dead_letter() == []

    def test_rejection_counter(self, queue):
        entry_id = queue.enqueue(make_sample())
        assert queue.record_rejection(entry_id, "400") == 1
        assert queue.record_rejection(entry_id, "400") == 2

        # Counter resets once the entry is gone
        queue.remove(entry_id)
        assert queue.record_rejection(entry_id, "400") == 1

    def test_capacity_evicts_oldest_to_dead_letter(self, tmp_path):
        """Over capacity, the oldest samples are quarantined, not dropped."""
        queue = SampleQueue(tmp_path / "queue.db", max_pending=3)
        for i in range(5):
            queue.enqueue(make_sample(i))

        pending = queue.list_pending()
        assert len(pending) == 3
        assert pending[0].captured_at == T0 + timedelta(seconds=2)

        dead = queue.list_dead_letter()
        assert [d.reason for d in dead] == ["evicted", "evicted"]
        assert queue.get_stats()["dead_letter"] == 2
        queue.close()


class TestStats:
    def test_stats_report_range(self, queue):
        queue.enqueue(make_sample(60))
        queue.enqueue(make_sample(0))

        stats = queue.get_stats()
        assert stats["pending"] == 2
        assert stats["dead_letter"] == 0
        assert datetime.fromisoformat(stats["oldest"]) == T0
        assert datetime.fromisoformat(stats["newest"]) == T0 + timedelta(seconds=60)

    def test_stats_empty_queue(self, queue):
        assert queue.get_stats() == {
            "pending": 0,
            "dead_letter": 0,
            "oldest": None,
            "newest": None,
        }
