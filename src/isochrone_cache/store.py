"""Two-tier isochrone storage.

The memory tier is a bounded LRU map; the durable tier is an embedded
key-value store that survives restarts. ``CacheStore`` writes through both
and promotes durable hits into memory. Neither tier evaluates expiry on
``get``; that is the caller's decision.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import List, Optional, Union

from .domain import Coordinate, IsochroneEntry, Quality, TransportMode, as_ring
from .exceptions import StoreError
from .geo import degree_window, haversine_m
from .logging_config import get_logger

logger = get_logger(__name__)


class MemoryTier:
    """Thread-safe LRU map of key -> IsochroneEntry."""

    def __init__(self, maxsize: int = 512):
        self.maxsize = maxsize
        self._entries: "OrderedDict[str, IsochroneEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[IsochroneEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def set(self, entry: IsochroneEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            while len(self._entries) > self.maxsize:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Memory tier evicted entry", key=evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def values(self) -> List[IsochroneEntry]:
        """Snapshot of the stored entries; safe to iterate without the lock."""
        with self._lock:
            return list(self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


class DurableStore(ABC):
    """Embedded key-value store backing the cache across restarts."""

    @abstractmethod
    def open(self) -> None:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[IsochroneEntry]:
        pass

    @abstractmethod
    def put(self, entry: IsochroneEntry) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def scan(
        self,
        transport_mode: TransportMode,
        now: float,
        center: Coordinate,
        radius_m: float,
    ) -> List[IsochroneEntry]:
        """Unexpired entries of a mode whose center lies within radius_m."""
        pass

    def close(self) -> None:
        pass


class SqliteIsochroneStore(DurableStore):
    """sqlite3-backed durable tier.

    File databases open a short-lived connection per operation; ``:memory:``
    keeps a single connection alive for the lifetime of the store. All
    sqlite errors surface as StoreError.
    """

    def __init__(self, db_path: Union[str, Path] = "isochrone-cache.db"):
        self._db_path = str(db_path)
        self._lock = threading.RLock()
        self._persistent_conn: Optional[sqlite3.Connection] = None
        self._opened = False

    def open(self) -> None:
        with self._lock:
            if self._opened:
                return
            try:
                if self._db_path == ":memory:":
                    self._persistent_conn = sqlite3.connect(":memory:", check_same_thread=False)
                    self._persistent_conn.row_factory = sqlite3.Row
                else:
                    Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
                self._init_database()
            except (sqlite3.Error, OSError) as e:
                raise StoreError(f"Cannot open isochrone store at {self._db_path}: {e}") from e
            self._opened = True
        logger.info("Durable isochrone store opened", db_path=self._db_path)

    def _init_database(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS isochrones (
                    key TEXT PRIMARY KEY,
                    center_lng REAL NOT NULL,
                    center_lat REAL NOT NULL,
                    duration INTEGER NOT NULL,
                    transport_mode TEXT NOT NULL,
                    polygon TEXT NOT NULL,
                    simplified_polygon TEXT,
                    created_at REAL NOT NULL,
                    ttl REAL NOT NULL,
                    quality TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_transport_mode ON isochrones(transport_mode)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_created_at ON isochrones(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_duration ON isochrones(duration)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_center ON isochrones(center_lng, center_lat)")
            conn.commit()
        finally:
            self._release(conn)

    def _get_connection(self) -> sqlite3.Connection:
        if self._persistent_conn is not None:
            return self._persistent_conn
        conn = sqlite3.connect(self._db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is not self._persistent_conn:
            conn.close()

    def _require_open(self) -> None:
        if not self._opened:
            raise StoreError("Isochrone store is not open")

    def get(self, key: str) -> Optional[IsochroneEntry]:
        self._require_open()
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute("SELECT * FROM isochrones WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Read failed for {key}: {e}") from e
            finally:
                self._release(conn)
        return self._row_to_entry(row) if row is not None else None

    def put(self, entry: IsochroneEntry) -> None:
        self._require_open()
        simplified = json.dumps(entry.simplified_polygon) if entry.simplified_polygon is not None else None
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO isochrones
                    (key, center_lng, center_lat, duration, transport_mode,
                     polygon, simplified_polygon, created_at, ttl, quality)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.key,
                        entry.center[0],
                        entry.center[1],
                        entry.duration,
                        entry.transport_mode.value,
                        json.dumps(entry.polygon),
                        simplified,
                        entry.created_at,
                        entry.ttl,
                        entry.quality.value,
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Write failed for {entry.key}: {e}") from e
            finally:
                self._release(conn)

    def clear(self) -> None:
        self._require_open()
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute("DELETE FROM isochrones")
                conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Clear failed: {e}") from e
            finally:
                self._release(conn)

    def scan(self, transport_mode, now, center, radius_m):
        self._require_open()
        min_lng, min_lat, max_lng, max_lat = degree_window(center, radius_m)
        with self._lock:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    """
                    SELECT * FROM isochrones
                    WHERE transport_mode = ?
                      AND created_at + ttl >= ?
                      AND center_lng BETWEEN ? AND ?
                      AND center_lat BETWEEN ? AND ?
                    ORDER BY duration
                    """,
                    (TransportMode(transport_mode).value, now, min_lng, max_lng, min_lat, max_lat),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Scan failed: {e}") from e
            finally:
                self._release(conn)

        entries = (self._row_to_entry(row) for row in rows)
        return [e for e in entries if haversine_m(center, e.center) <= radius_m]

    def count(self) -> int:
        self._require_open()
        with self._lock:
            conn = self._get_connection()
            try:
                return conn.execute("SELECT COUNT(*) FROM isochrones").fetchone()[0]
            finally:
                self._release(conn)

    def close(self) -> None:
        with self._lock:
            if self._persistent_conn is not None:
                self._persistent_conn.close()
                self._persistent_conn = None
            self._opened = False

    def _row_to_entry(self, row: sqlite3.Row) -> IsochroneEntry:
        simplified = row["simplified_polygon"]
        return IsochroneEntry(
            key=row["key"],
            center=(row["center_lng"], row["center_lat"]),
            duration=row["duration"],
            transport_mode=TransportMode(row["transport_mode"]),
            polygon=as_ring(json.loads(row["polygon"])),
            simplified_polygon=as_ring(json.loads(simplified)) if simplified is not None else None,
            created_at=row["created_at"],
            ttl=row["ttl"],
            quality=Quality(row["quality"]),
        )


class CacheStore:
    """Write-through pairing of a MemoryTier and a DurableStore."""

    def __init__(self, durable: DurableStore, memory: Optional[MemoryTier] = None):
        self.durable = durable
        self.memory = memory if memory is not None else MemoryTier()

    def get(self, key: str) -> Optional[IsochroneEntry]:
        entry = self.memory.get(key)
        if entry is not None:
            return entry

        try:
            entry = self.durable.get(key)
        except StoreError as e:
            logger.warning("Durable tier read failed, treating as miss", key=key, error_message=str(e))
            return None

        if entry is not None:
            self.memory.set(entry)
            logger.debug("Promoted durable entry to memory", key=key)
        return entry

    def set(self, entry: IsochroneEntry) -> bool:
        """Store an entry in both tiers.

        Returns False when only the memory tier accepted it.
        """
        self.memory.set(entry)
        try:
            self.durable.put(entry)
        except StoreError as e:
            logger.error("Durable tier write failed, entry kept in memory only",
                         key=entry.key, error_message=str(e))
            return False
        return True

    def clear(self) -> None:
        self.memory.clear()
        try:
            self.durable.clear()
        except StoreError as e:
            logger.error("Durable tier clear failed", error_message=str(e))

    def nearby(
        self,
        center: Coordinate,
        transport_mode: TransportMode,
        radius_m: float,
        now: float,
        include_durable: bool = False,
    ) -> List[IsochroneEntry]:
        """Unexpired same-mode entries within radius_m of center.

        The memory tier is always searched. With include_durable the durable
        tier's indexed scan is merged in, memory entries winning on key clash.
        """
        mode = TransportMode(transport_mode)
        found = {}
        for entry in self.memory.values():
            if entry.transport_mode is mode and not entry.is_expired(now) \
                    and haversine_m(center, entry.center) <= radius_m:
                found[entry.key] = entry

        if include_durable:
            try:
                for entry in self.durable.scan(mode, now, center, radius_m):
                    found.setdefault(entry.key, entry)
            except StoreError as e:
                logger.warning("Durable tier scan failed", error_message=str(e))

        return list(found.values())
