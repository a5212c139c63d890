# dnsperf/storage.py
# Version: 1.0.0
# Log store (append-only measurements) and stats store (one row per domain)

"""
Measurement Storage

Two roles share one backend:

- the log store, an append-only table of successful measurements that the
  stats aggregator rereads for each domain;
- the stats store, one summary row per domain overwritten in place.

SQLiteStore is used by the daemon. MemoryStore keeps everything in process
and backs --dry-run and the tests.
"""

import logging
import os
import sqlite3
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from dnsperf.constants import DOMAINS_TABLE, LOG_TABLE, STATS_TABLE
from dnsperf.errors import StoreError
from dnsperf.models import DomainStats, Measurement

logger = logging.getLogger(__name__)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class MeasurementStore:
    """Interface shared by the log store and stats store backends"""

    def initialize(self, domains: Sequence[str], reset: bool = False) -> None:
        """Create storage if needed, optionally wiping it, and seed the domains"""
        raise NotImplementedError

    def load_domains(self) -> List[str]:
        """Configured domains in rank order"""
        raise NotImplementedError

    def append_measurement(self, measurement: Measurement) -> None:
        raise NotImplementedError

    def measurements_for(self, domain: str) -> List[Measurement]:
        raise NotImplementedError

    def count_measurements(self, domain: Optional[str] = None) -> int:
        raise NotImplementedError

    def upsert_stats(self, stats: DomainStats) -> None:
        raise NotImplementedError

    def get_stats(self, domain: str) -> Optional[DomainStats]:
        raise NotImplementedError

    def all_stats(self) -> List[DomainStats]:
        raise NotImplementedError

    def seed_domains(self, domains: Sequence[str]) -> None:
        """Ranked domain rows plus a null stats row for each domain"""
        raise NotImplementedError

    def close(self) -> None:
        pass

    @staticmethod
    def _check_appendable(measurement: Measurement):
        if not measurement.succeeded:
            raise StoreError(
                f"Refusing to log failed measurement for {measurement.domain} "
                f"via {measurement.nameserver}"
            )
        if measurement.latency_us <= 0:
            raise StoreError(f"Refusing to log non-positive latency {measurement.latency_us}us")


class MemoryStore(MeasurementStore):
    """In-process store"""

    def __init__(self):
        self._lock = threading.RLock()
        self._domains: List[str] = []
        self._log: List[Measurement] = []
        self._stats: Dict[str, DomainStats] = {}

    def initialize(self, domains: Sequence[str], reset: bool = False) -> None:
        with self._lock:
            if reset:
                self._domains = []
                self._log = []
                self._stats = {}
            self.seed_domains(domains)

    def load_domains(self) -> List[str]:
        with self._lock:
            return list(self._domains)

    def append_measurement(self, measurement: Measurement) -> None:
        self._check_appendable(measurement)
        with self._lock:
            self._log.append(measurement)

    def measurements_for(self, domain: str) -> List[Measurement]:
        with self._lock:
            return [m for m in self._log if m.domain == domain]

    def count_measurements(self, domain: Optional[str] = None) -> int:
        with self._lock:
            if domain is None:
                return len(self._log)
            return sum(1 for m in self._log if m.domain == domain)

    def upsert_stats(self, stats: DomainStats) -> None:
        with self._lock:
            self._stats[stats.domain] = stats

    def get_stats(self, domain: str) -> Optional[DomainStats]:
        with self._lock:
            return self._stats.get(domain)

    def all_stats(self) -> List[DomainStats]:
        with self._lock:
            ordered = [self._stats[d] for d in self._domains if d in self._stats]
            extra = [s for d, s in self._stats.items() if d not in self._domains]
            return ordered + extra

    def seed_domains(self, domains: Sequence[str]) -> None:
        with self._lock:
            for domain in domains:
                if domain not in self._domains:
                    self._domains.append(domain)
                self._stats.setdefault(domain, DomainStats.empty(domain))


class SQLiteStore(MeasurementStore):
    """SQLite-backed store

    Tables:
        domains:      rank, domain, notes
        dnsqueries:   append-only measurement log
        domain_stats: one summary row per domain
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        try:
            dir_path = os.path.dirname(self.db_path)
            if dir_path and self.db_path != ":memory:":
                os.makedirs(dir_path, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e

        logger.info(f"Opened measurement database {self.db_path}")
        return conn

    def _execute(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                with self._conn:
                    return self._conn.execute(sql, tuple(params))
            except sqlite3.Error as e:
                raise StoreError(f"Database error: {e}") from e

    def _query(self, sql: str, params: Iterable = ()) -> List[tuple]:
        with self._lock:
            try:
                return self._conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Database error: {e}") from e

    def initialize(self, domains: Sequence[str], reset: bool = False) -> None:
        if reset:
            logger.info("Dropping existing measurement tables...")
            for table in (STATS_TABLE, LOG_TABLE, DOMAINS_TABLE):
                self._execute(f"DROP TABLE IF EXISTS {table}")

        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {DOMAINS_TABLE} (
                rank   INTEGER NOT NULL,
                domain TEXT PRIMARY KEY,
                notes  TEXT
            )
            """
        )
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {LOG_TABLE} (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                domain     TEXT NOT NULL,
                nameserver TEXT NOT NULL,
                latency    INTEGER NOT NULL CHECK (latency > 0),
                timestamp  TEXT NOT NULL,
                notes      TEXT
            )
            """
        )
        self._execute(
            f"CREATE INDEX IF NOT EXISTS idx_{LOG_TABLE}_domain_ts "
            f"ON {LOG_TABLE}(domain, timestamp)"
        )
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {STATS_TABLE} (
                domain  TEXT PRIMARY KEY,
                average REAL,
                stddev  REAL,
                count   INTEGER NOT NULL DEFAULT 0,
                first   TEXT,
                last    TEXT
            )
            """
        )

        self.seed_domains(domains)
        logger.info(
            f"Database {'reinitialized' if reset else 'ready'}: "
            f"{len(self.load_domains())} domains, {self.count_measurements()} measurements"
        )

    def seed_domains(self, domains: Sequence[str]) -> None:
        for rank, domain in enumerate(domains, start=1):
            self._execute(
                f"INSERT INTO {DOMAINS_TABLE} (rank, domain) VALUES (?, ?) "
                f"ON CONFLICT(domain) DO UPDATE SET rank = excluded.rank",
                (rank, domain),
            )
            self._execute(
                f"INSERT OR IGNORE INTO {STATS_TABLE} (domain, count) VALUES (?, 0)",
                (domain,),
            )

    def load_domains(self) -> List[str]:
        rows = self._query(f"SELECT domain FROM {DOMAINS_TABLE} ORDER BY rank, domain")
        return [row[0] for row in rows]

    def append_measurement(self, measurement: Measurement) -> None:
        self._check_appendable(measurement)
        self._execute(
            f"INSERT INTO {LOG_TABLE} (domain, nameserver, latency, timestamp, notes) "
            f"VALUES (?, ?, ?, ?, ?)",
            (
                measurement.domain,
                measurement.nameserver,
                int(measurement.latency_us),
                _to_text(measurement.observed_at),
                measurement.note,
            ),
        )

    def measurements_for(self, domain: str) -> List[Measurement]:
        rows = self._query(
            f"SELECT domain, nameserver, latency, timestamp, notes FROM {LOG_TABLE} "
            f"WHERE domain = ? ORDER BY id",
            (domain,),
        )
        return [
            Measurement(
                domain=row[0],
                nameserver=row[1],
                latency_us=row[2],
                observed_at=_from_text(row[3]),
                note=row[4],
            )
            for row in rows
        ]

    def count_measurements(self, domain: Optional[str] = None) -> int:
        if domain is None:
            rows = self._query(f"SELECT COUNT(*) FROM {LOG_TABLE}")
        else:
            rows = self._query(f"SELECT COUNT(*) FROM {LOG_TABLE} WHERE domain = ?", (domain,))
        return rows[0][0]

    def upsert_stats(self, stats: DomainStats) -> None:
        self._execute(
            f"INSERT INTO {STATS_TABLE} (domain, average, stddev, count, first, last) "
            f"VALUES (?, ?, ?, ?, ?, ?) "
            f"ON CONFLICT(domain) DO UPDATE SET average = excluded.average, "
            f"stddev = excluded.stddev, count = excluded.count, "
            f"first = excluded.first, last = excluded.last",
            (
                stats.domain,
                stats.mean_latency_us,
                stats.stddev_latency_us,
                stats.count,
                _to_text(stats.first_observed_at),
                _to_text(stats.last_observed_at),
            ),
        )

    def _row_to_stats(self, row: tuple) -> DomainStats:
        return DomainStats(
            domain=row[0],
            mean_latency_us=row[1],
            stddev_latency_us=row[2],
            count=row[3],
            first_observed_at=_from_text(row[4]),
            last_observed_at=_from_text(row[5]),
        )

    def get_stats(self, domain: str) -> Optional[DomainStats]:
        rows = self._query(
            f"SELECT domain, average, stddev, count, first, last FROM {STATS_TABLE} "
            f"WHERE domain = ?",
            (domain,),
        )
        return self._row_to_stats(rows[0]) if rows else None

    def all_stats(self) -> List[DomainStats]:
        rows = self._query(
            f"SELECT s.domain, s.average, s.stddev, s.count, s.first, s.last "
            f"FROM {STATS_TABLE} s LEFT JOIN {DOMAINS_TABLE} d ON d.domain = s.domain "
            f"ORDER BY d.rank IS NULL, d.rank, s.domain"
        )
        return [self._row_to_stats(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.error(f"Failed to close database {self.db_path}: {e}")
