"""SQLite-backed durable queue of samples awaiting upload."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from waypoint.capture.sample import Sample
from waypoint.errors import StorageError

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _epoch_micros(value: datetime) -> int:
    """Absolute ordering key, independent of the timestamp's UTC offset."""
    return (value - _EPOCH) // timedelta(microseconds=1)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class QueuedEntry:
    """A sample persisted in the queue, identified by its surrogate key."""

    id: int
    sample: Sample

    @property
    def captured_at(self) -> datetime:
        return self.sample.captured_at


@dataclass(frozen=True)
class DeadLetterEntry:
    """A sample taken out of automatic retry."""

    id: int
    sample: Sample
    reason: str
    quarantined_at: datetime


def _sample_from_row(row: sqlite3.Row) -> Sample:
    return Sample(
        latitude=row["latitude"],
        longitude=row["longitude"],
        captured_at=datetime.fromisoformat(row["captured_at"]),
    )


class SampleQueue:
    """SQLite-backed persistent queue for samples that could not be sent.

    Samples are queued when the device is offline or an upload fails, and
    drained oldest-first once the server is reachable again. The queue
    persists across agent restarts: every enqueue is its own committed
    transaction, so a crash never leaves a half-written entry behind.

    The connection is opened lazily on first use and guarded by a lock, so
    the queue can be shared between the router and the sync engine.
    """

    def __init__(self, db_path: Path, max_pending: int | None = None) -> None:
        """Initialize the sample queue.

        Args:
            db_path: Path to the SQLite database file
            max_pending: Pending entries kept before the oldest are moved to
                the dead-letter table, None for no limit
        """
        self.db_path = db_path
        self.max_pending = max_pending
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            self._create_tables(conn)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open sample queue at {self.db_path}: {e}") from e

        self._conn = conn
        logger.debug("Sample queue opened: path=%s", self.db_path)
        return conn

    def _create_tables(self, conn: sqlite3.Connection) -> None:
        """Create the queue tables if they don't exist."""
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_samples (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    captured_at TEXT NOT NULL,
                    captured_us INTEGER NOT NULL,
                    queued_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_pending_captured
                ON pending_samples (captured_us, id)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS rejections (
                    entry_id INTEGER PRIMARY KEY,
                    count INTEGER NOT NULL,
                    last_reason TEXT,
                    last_rejected_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dead_letter (
                    id INTEGER PRIMARY KEY,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    captured_at TEXT NOT NULL,
                    captured_us INTEGER NOT NULL,
                    reason TEXT NOT NULL,
                    quarantined_at TEXT NOT NULL
                )
            """)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one committed transaction, rolling back on error."""
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    yield conn
            except sqlite3.Error as e:
                raise StorageError(f"Sample queue operation failed: {e}") from e

    def enqueue(self, sample: Sample) -> int:
        """Persist a sample.

        The entry is committed before this returns.

        Args:
            sample: Sample to queue

        Returns:
            Entry id (monotonically increasing, never reused)

        Raises:
            StorageError: the entry could not be written
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO pending_samples
                    (latitude, longitude, captured_at, captured_us, queued_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    sample.latitude,
                    sample.longitude,
                    sample.captured_at.isoformat(),
                    _epoch_micros(sample.captured_at),
                    _now_iso(),
                ),
            )
            entry_id = cursor.lastrowid
            if self.max_pending is not None:
                self._evict_overflow(conn)

        logger.debug("Sample queued: entry_id=%s", entry_id)
        return entry_id

    def _evict_overflow(self, conn: sqlite3.Connection) -> None:
        (count,) = conn.execute("SELECT COUNT(*) FROM pending_samples").fetchone()
        overflow = count - self.max_pending
        if overflow <= 0:
            return

        rows = conn.execute(
            "SELECT id FROM pending_samples ORDER BY captured_us ASC, id ASC LIMIT ?",
            (overflow,),
        ).fetchall()
        for row in rows:
            self._move_to_dead_letter(conn, row["id"], "evicted")
        logger.warning(
            "Sample queue over capacity, moved %d oldest entries to dead letter "
            "(max_pending=%d)",
            len(rows), self.max_pending,
        )

    def list_pending(self) -> list[QueuedEntry]:
        """Get every pending entry, oldest capture first.

        Ties on capture time are returned in insertion order.

        Returns:
            List of QueuedEntry objects
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                SELECT id, latitude, longitude, captured_at
                FROM pending_samples
                ORDER BY captured_us ASC, id ASC
                """
            )
            return [
                QueuedEntry(id=row["id"], sample=_sample_from_row(row))
                for row in cursor.fetchall()
            ]

    def remove(self, entry_id: int) -> None:
        """Delete an entry after successful upload.

        Removing an unknown id is a no-op. A copy moved to dead letter
        while the upload was in flight is deleted too.

        Args:
            entry_id: Queue entry id
        """
        with self._transaction() as conn:
            conn.execute("DELETE FROM pending_samples WHERE id = ?", (entry_id,))
            conn.execute("DELETE FROM dead_letter WHERE id = ?", (entry_id,))
            conn.execute("DELETE FROM rejections WHERE entry_id = ?", (entry_id,))

    def clear(self) -> None:
        """Remove every pending entry (administrative reset)."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM pending_samples")
            conn.execute("DELETE FROM rejections")
        logger.info("Sample queue cleared")

    def count(self) -> int:
        with self._transaction() as conn:
            (count,) = conn.execute("SELECT COUNT(*) FROM pending_samples").fetchone()
            return count

    def record_rejection(self, entry_id: int, reason: str | None) -> int:
        """Count a server rejection of an entry.

        Args:
            entry_id: Queue entry id
            reason: Rejection reason reported by the uploader

        Returns:
            Number of times the entry has now been rejected
        """
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO rejections (entry_id, count, last_reason, last_rejected_at)
                VALUES (?, 1, ?, ?)
                ON CONFLICT (entry_id) DO UPDATE SET
                    count = count + 1,
                    last_reason = excluded.last_reason,
                    last_rejected_at = excluded.last_rejected_at
                """,
                (entry_id, reason, _now_iso()),
            )
            (count,) = conn.execute(
                "SELECT count FROM rejections WHERE entry_id = ?", (entry_id,)
            ).fetchone()
            return count

    def quarantine(self, entry_id: int, reason: str) -> bool:
        """Move an entry from the pending queue to the dead-letter table.

        Args:
            entry_id: Queue entry id
            reason: Why the entry is taken out of retry

        Returns:
            True if the entry existed and was moved
        """
        with self._transaction() as conn:
            moved = self._move_to_dead_letter(conn, entry_id, reason)
        if moved:
            logger.warning("Entry moved to dead letter: entry_id=%d, reason=%s", entry_id, reason)
        return moved

    def _move_to_dead_letter(
        self, conn: sqlite3.Connection, entry_id: int, reason: str
    ) -> bool:
        cursor = conn.execute(
            """
            INSERT INTO dead_letter
                (id, latitude, longitude, captured_at, captured_us, reason, quarantined_at)
            SELECT id, latitude, longitude, captured_at, captured_us, ?, ?
            FROM pending_samples WHERE id = ?
            """,
            (reason, _now_iso(), entry_id),
        )
        if cursor.rowcount == 0:
            return False
        conn.execute("DELETE FROM pending_samples WHERE id = ?", (entry_id,))
        conn.execute("DELETE FROM rejections WHERE entry_id = ?", (entry_id,))
        return True

    def list_dead_letter(self) -> list[DeadLetterEntry]:
        """Get quarantined entries, oldest capture first."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                SELECT id, latitude, longitude, captured_at, reason, quarantined_at
                FROM dead_letter
                ORDER BY captured_us ASC, id ASC
                """
            )
            return [
                DeadLetterEntry(
                    id=row["id"],
                    sample=_sample_from_row(row),
                    reason=row["reason"],
                    quarantined_at=datetime.fromisoformat(row["quarantined_at"]),
                )
                for row in cursor.fetchall()
            ]

    def requeue_dead_letter(self) -> int:
        """Move every dead-letter entry back into the pending queue.

        Requeued entries get fresh ids; their capture time keeps them in
        order.

        Returns:
            Number of entries requeued
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO pending_samples
                    (latitude, longitude, captured_at, captured_us, queued_at)
                SELECT latitude, longitude, captured_at, captured_us, ?
                FROM dead_letter
                ORDER BY captured_us ASC, id ASC
                """,
                (_now_iso(),),
            )
            count = cursor.rowcount
            conn.execute("DELETE FROM dead_letter")
        logger.info("Dead-letter entries requeued: count=%d", count)
        return count

    def clear_dead_letter(self) -> int:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM dead_letter")
            return cursor.rowcount

    def get_stats(self) -> dict:
        """Get queue statistics.

        Returns:
            Dictionary with pending and dead-letter counts plus the capture
            time range of pending entries
        """
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS pending,
                       MIN(captured_us) AS oldest_us,
                       MAX(captured_us) AS newest_us
                FROM pending_samples
                """
            ).fetchone()
            (dead,) = conn.execute("SELECT COUNT(*) FROM dead_letter").fetchone()

        def _iso(micros: int | None) -> str | None:
            if micros is None:
                return None
            return (_EPOCH + timedelta(microseconds=micros)).isoformat()

        return {
            "pending": row["pending"],
            "dead_letter": dead,
            "oldest": _iso(row["oldest_us"]),
            "newest": _iso(row["newest_us"]),
        }

    def close(self) -> None:
        """Close the database connection. The queue reopens on next use."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SampleQueue":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
