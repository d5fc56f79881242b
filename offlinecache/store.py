"""SQLite-backed partition store for cached responses.

Each partition is a named key -> response mapping. Partitions are created
lazily on first open and live until deleted. Every thread gets its own
connection; SQLite serializes writers, so concurrent writes to the same
key resolve as last-writer-wins without a process-wide lock.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from .models import SOURCE_CACHE, CachedResponse

logger = logging.getLogger(__name__)

# Seconds a connection waits on a locked database before failing.
BUSY_TIMEOUT_SECONDS = 30.0


class StoreError(Exception):
    """Raised when a store operation fails (store unavailable, disk full, ...)."""

    pass


def _row_to_response(row: sqlite3.Row) -> CachedResponse:
    """Convert an entries row to a CachedResponse."""
    return CachedResponse(
        url=row["url"],
        status=row["status"],
        reason=row["reason"] or "",
        headers=json.loads(row["headers"]) if row["headers"] else {},
        body=bytes(row["body"]) if row["body"] is not None else b"",
        source=SOURCE_CACHE,
    )


class Partition:
    """Handle on one named partition of a CacheStore."""

    def __init__(self, store: "CacheStore", name: str) -> None:
        self._store = store
        self.name = name

    def match(self, key: str) -> CachedResponse | None:
        """Look up a key in this partition."""
        return self._store.match(key, partitions=[self.name])

    def put(self, key: str, response: CachedResponse) -> None:
        """Store a response under a key, replacing any previous entry."""
        self._store.put(self.name, key, response)

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        return self._store.delete_entry(self.name, key)

    def keys(self) -> list[str]:
        """Return every key stored in this partition."""
        return self._store.entry_keys(self.name)

    def __repr__(self) -> str:
        return f"Partition({self.name!r})"


class CacheStore:
    """Durable store of named partitions in a single SQLite file.

    Example:
        store = CacheStore("/tmp/cache.db")
        partition = store.open("site-static-v1")
        partition.put("https://example.com/", response)
        store.close()
    """

    def __init__(self, path: str) -> None:
        """Initialize the store and create tables if they don't exist.

        Args:
            path: Path to the SQLite database file.

        Raises:
            StoreError: If the database cannot be created or opened.
        """
        self.path = path
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        # Guards the connection registry only, never store operations.
        self._registry_lock = threading.Lock()

        try:
            parent_dir = Path(path).parent
            if not parent_dir.exists():
                parent_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to create store directory: {e}")

        try:
            conn = self._connection()
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS partitions (
                    name TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    seq INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    partition TEXT NOT NULL,
                    key TEXT NOT NULL,
                    url TEXT NOT NULL,
                    status INTEGER NOT NULL,
                    reason TEXT,
                    headers TEXT,
                    body BLOB,
                    stored_at TEXT NOT NULL,
                    PRIMARY KEY (partition, key)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_entries_key
                ON entries(key)
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize store: {e}")

    def _connection(self) -> sqlite3.Connection:
        """Return this thread's connection, opening it on first use."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.path, timeout=BUSY_TIMEOUT_SECONDS, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
            with self._registry_lock:
                self._connections.append(conn)
        return conn

    def release_connection(self) -> None:
        """Close the calling thread's connection, if it has one."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            return
        self._local.conn = None
        with self._registry_lock:
            if conn in self._connections:
                self._connections.remove(conn)
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.debug("Failed to close store connection: %s", e)

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._registry_lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug("Failed to close store connection: %s", e)
        self._local = threading.local()

    # =========================================================================
    # PARTITIONS
    # =========================================================================

    def open(self, name: str) -> Partition:
        """Open a partition, creating it if it doesn't exist.

        Raises:
            StoreError: If the partition cannot be created.
        """
        self._ensure_partition(name)
        return Partition(self, name)

    def _ensure_partition(self, name: str) -> None:
        try:
            conn = self._connection()
            with conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO partitions (name, created_at, seq)
                    VALUES (?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM partitions))
                    """,
                    (name, datetime.now(UTC).isoformat()),
                )
            if cursor.rowcount > 0:
                logger.info("Cache partition created partition=%s", name)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open partition {name}: {e}")

    def has(self, name: str) -> bool:
        """Check whether a partition exists."""
        try:
            row = self._connection().execute("SELECT 1 FROM partitions WHERE name = ?", (name,)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to look up partition {name}: {e}")
        return row is not None

    def partition_names(self) -> list[str]:
        """Return every partition name, oldest first."""
        try:
            rows = self._connection().execute("SELECT name FROM partitions ORDER BY seq").fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list partitions: {e}")
        return [row["name"] for row in rows]

    def delete(self, name: str) -> bool:
        """Delete a partition and all of its entries.

        Returns:
            True if the partition existed.

        Raises:
            StoreError: If the deletion fails.
        """
        try:
            conn = self._connection()
            with conn:
                conn.execute("DELETE FROM entries WHERE partition = ?", (name,))
                cursor = conn.execute("DELETE FROM partitions WHERE name = ?", (name,))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete partition {name}: {e}")

        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Cache partition deleted partition=%s", name)
        return deleted

    # =========================================================================
    # ENTRIES
    # =========================================================================

    def match(
        self,
        key: str,
        partitions: list[str] | None = None,
        prefer: Sequence[str] = (),
    ) -> CachedResponse | None:
        """Find a cached response for a key.

        Args:
            key: Cache key (see paths.cache_key).
            partitions: Partitions to search, in order. None searches every
                partition, oldest first.
            prefer: When searching every partition, partitions to search
                before all others.

        Returns:
            The first matching response, or None on a miss.

        Raises:
            StoreError: If the lookup fails.
        """
        try:
            conn = self._connection()
            if partitions is None:
                preferred = list(prefer)
                placeholders = ", ".join("?" for _ in preferred) or "NULL"
                row = conn.execute(
                    f"""
                    SELECT e.* FROM entries e
                    JOIN partitions p ON p.name = e.partition
                    WHERE e.key = ?
                    ORDER BY CASE WHEN p.name IN ({placeholders}) THEN 0 ELSE 1 END, p.seq
                    LIMIT 1
                    """,
                    (key, *preferred),
                ).fetchone()
                return _row_to_response(row) if row is not None else None

            for name in partitions:
                row = conn.execute(
                    "SELECT * FROM entries WHERE partition = ? AND key = ?",
                    (name, key),
                ).fetchone()
                if row is not None:
                    return _row_to_response(row)
            return None
        except sqlite3.Error as e:
            raise StoreError(f"Failed to match {key}: {e}")

    def put(self, partition: str, key: str, response: CachedResponse, create: bool = True) -> bool:
        """Store a response, replacing any previous entry for the key.

        Args:
            partition: Partition name.
            key: Cache key.
            response: Response to store.
            create: Create the partition if needed. When False, a write to a
                partition that no longer exists is skipped, so late writes
                never bring back a deleted generation.

        Returns:
            True if the entry was written.

        Raises:
            StoreError: If the write fails.
        """
        values = (
            partition,
            key,
            response.url,
            response.status,
            response.reason,
            json.dumps(response.headers),
            sqlite3.Binary(response.body),
            datetime.now(UTC).isoformat(),
        )

        if create:
            self._ensure_partition(partition)
        try:
            conn = self._connection()
            with conn:
                if create:
                    cursor = conn.execute(
                        """
                        INSERT OR REPLACE INTO entries
                        (partition, key, url, status, reason, headers, body, stored_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        values,
                    )
                else:
                    cursor = conn.execute(
                        """
                        INSERT OR REPLACE INTO entries
                        (partition, key, url, status, reason, headers, body, stored_at)
                        SELECT ?, ?, ?, ?, ?, ?, ?, ?
                        WHERE EXISTS (SELECT 1 FROM partitions WHERE name = ?)
                        """,
                        (*values, partition),
                    )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to store {key} in {partition}: {e}")

        if cursor.rowcount == 0:
            logger.info("Cache write skipped, partition gone partition=%s key=%s", partition, key)
            return False

        logger.debug(
            "Cache entry written partition=%s key=%s status=%d bytes=%d",
            partition,
            key,
            response.status,
            len(response.body),
        )
        return True

    def delete_entry(self, partition: str, key: str) -> bool:
        """Delete one entry. Returns True if it existed."""
        try:
            conn = self._connection()
            with conn:
                cursor = conn.execute(
                    "DELETE FROM entries WHERE partition = ? AND key = ?",
                    (partition, key),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete {key} from {partition}: {e}")

        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Cache entry deleted partition=%s key=%s", partition, key)
        return deleted

    def entry_keys(self, partition: str) -> list[str]:
        """Return every key stored in a partition."""
        try:
            rows = self._connection().execute(
                "SELECT key FROM entries WHERE partition = ? ORDER BY stored_at",
                (partition,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list keys of {partition}: {e}")
        return [row["key"] for row in rows]

    def count(self, partition: str) -> int:
        """Return the number of entries in a partition."""
        try:
            row = self._connection().execute(
                "SELECT COUNT(*) FROM entries WHERE partition = ?",
                (partition,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to count entries of {partition}: {e}")
        return row[0]
