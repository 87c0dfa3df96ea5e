"""
Offline mirror of the remote word catalog, stored in SQLite.

Tables:
    vocab      one row per CachedVocab (every field is a column), plus
               created_ms (sort key) and seq (insertion order tie-break)
    meta       one row per replaced (mode, category) key
    integrity  per-record SHA-256 tags

Indexes on (mode) and (mode, category) serve "all words in a mode" and
"words in mode + category" without a full scan.

A bulk replace for a key runs in a single transaction behind the connection
lock: readers see either the complete old set or the complete new set.
"""

import asyncio
import base64
import hashlib
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from msamiati.application.catalog_parser import parse_catalog_rows
from msamiati.application.utils.clock import wall_clock_ms
from msamiati.application.utils.observable import Subscribers, Unsubscribe
from msamiati.domain.catalog import (
    BulkReplaceResult,
    CachedVocab,
    CacheMeta,
    CacheStatus,
    IntegrityReport,
    cache_key,
)
from msamiati.domain.constants import MODES
from msamiati.domain.errors import OfflineCacheError
from msamiati.domain.models import Mode
from msamiati.domain.paging import DayPage, day_bounds

logger = logging.getLogger(__name__)

FIELDS = list(CachedVocab.model_fields)
_COLUMN_TYPES = {"difficulty": "INTEGER"}
_SQL_LIMIT_CHUNK = 500


def _schema() -> list[str]:
    columns = ",\n  ".join(
        f"{name} {_COLUMN_TYPES.get(name, 'TEXT')}" + (" PRIMARY KEY" if name == "id" else "")
        for name in FIELDS
    )
    return [
        f"""CREATE TABLE IF NOT EXISTS vocab (
  {columns},
  created_ms REAL NOT NULL,
  seq INTEGER NOT NULL
)""",
        "CREATE INDEX IF NOT EXISTS idx_vocab_mode ON vocab(mode, created_ms, seq)",
        "CREATE INDEX IF NOT EXISTS idx_vocab_mode_category "
        "ON vocab(mode, category, created_ms, seq)",
        """CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  last_updated INTEGER NOT NULL,
  count INTEGER NOT NULL,
  checksum TEXT
)""",
        """CREATE TABLE IF NOT EXISTS integrity (
  id TEXT PRIMARY KEY,
  hash TEXT NOT NULL,
  timestamp INTEGER NOT NULL
)""",
    ]


def record_hash(record: CachedVocab) -> str:
    canonical = json.dumps(
        record.model_dump(), sort_keys=True, ensure_ascii=False, separators=(",", ":")
    )
    return base64.b64encode(hashlib.sha256(canonical.encode("utf-8")).digest()).decode("ascii")


def batch_checksum(key: str, hashes: Iterable[str]) -> str:
    digest = hashlib.sha256(key.encode("utf-8"))
    for h in hashes:
        digest.update(b"\n")
        digest.update(h.encode("ascii"))
    return base64.b64encode(digest.digest()).decode("ascii")


def _scope(
    mode: Mode, category: str | None, alias: str = ""
) -> tuple[str, tuple[Any, ...]]:
    """WHERE clause for a cache key. A None category means the whole mode."""
    if category:
        return f"{alias}mode = ? AND {alias}category = ?", (mode, category)
    return f"{alias}mode = ?", (mode,)


@dataclass(frozen=True)
class CacheChange:
    """Emitted after a bulk replace commits."""

    key: str
    result: BulkReplaceResult


class OfflineCache:
    """
    Structured local store for (mode, category)-scoped catalog slices.

    One instance per process, opened by the composition root and passed to
    consumers. Usable as an async context manager.
    """

    def __init__(self, path: Path | str, clock: Callable[[], int] = wall_clock_ms):
        self.path = path
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._subscribers: Subscribers[CacheChange] = Subscribers()

    # ---------- lifecycle ----------

    def open(self) -> "OfflineCache":
        if self._conn is not None:
            return self
        try:
            if str(self.path) != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path), timeout=10.0, isolation_level=None, check_same_thread=False
            )
            conn.execute("PRAGMA journal_mode=WAL")
            for statement in _schema():
                conn.execute(statement)
        except (sqlite3.Error, OSError) as e:
            raise OfflineCacheError(f"Could not open offline cache at {self.path}: {e}") from e
        self._conn = conn
        logger.debug(f"Opened offline cache at {self.path}")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def __aenter__(self) -> "OfflineCache":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def subscribe(self, callback: Callable[[CacheChange], None]) -> Unsubscribe:
        return self._subscribers.subscribe(callback)

    # ---------- plumbing ----------

    def _run(self, fn: Callable[[sqlite3.Connection], Any]) -> Any:
        with self._lock:
            if self._conn is None:
                raise OfflineCacheError("Offline cache is not open")
            try:
                return fn(self._conn)
            except sqlite3.Error as e:
                raise OfflineCacheError(f"Offline cache storage failure: {e}") from e

    def _transaction(self, fn: Callable[[sqlite3.Connection], Any]) -> Any:
        def run(conn: sqlite3.Connection) -> Any:
            conn.execute("BEGIN IMMEDIATE")
            try:
                result = fn(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return result

        return self._run(run)

    @staticmethod
    def _row_to_record(row: tuple) -> CachedVocab:
        data = dict(zip(FIELDS, row))
        if data.get("category") == "":
            data["category"] = None
        return CachedVocab.model_validate(data)

    _select = f"SELECT {', '.join(FIELDS)} FROM vocab"

    # ---------- writes ----------

    async def bulk_replace(
        self, mode: Mode, category: str | None, records: Iterable[Any]
    ) -> BulkReplaceResult:
        """
        Replace every cached record of (mode, category) with `records`.

        Each record passes the catalog parse boundary first; rejected and
        duplicate records are dropped and counted. Storage failures raise
        OfflineCacheError and leave the previous set untouched.
        """
        accepted, total = parse_catalog_rows(records, mode, category)

        unique: list[CachedVocab] = []
        seen: set[str] = set()
        for record in accepted:
            if record.id in seen:
                logger.warning(f"Dropping duplicate catalog row {record.id}")
                continue
            seen.add(record.id)
            unique.append(record)

        key = cache_key(mode, category)
        now = self._clock()
        hashes = [record_hash(r) for r in unique]

        def replace(conn: sqlite3.Connection) -> None:
            where, params = _scope(mode, category)
            conn.execute(
                f"DELETE FROM integrity WHERE id IN (SELECT id FROM vocab WHERE {where})", params
            )
            conn.execute(f"DELETE FROM vocab WHERE {where}", params)

            (base,) = conn.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM vocab").fetchone()
            placeholders = ", ".join("?" for _ in FIELDS)
            rows = []
            for i, record in enumerate(unique):
                data = record.model_dump()
                data["category"] = data["category"] or ""
                rows.append([data[name] for name in FIELDS] + [record.created_ms, base + i])
            conn.executemany(
                f"INSERT OR REPLACE INTO vocab ({', '.join(FIELDS)}, created_ms, seq) "
                f"VALUES ({placeholders}, ?, ?)",
                rows,
            )
            conn.executemany(
                "INSERT OR REPLACE INTO integrity (id, hash, timestamp) VALUES (?, ?, ?)",
                [(r.id, h, now) for r, h in zip(unique, hashes)],
            )

            if not category:
                # A whole-mode replace supersedes every per-category batch
                conn.execute(
                    "DELETE FROM meta WHERE key LIKE ? ESCAPE '\\'", (f"{mode}\\_%",)
                )
            conn.execute(
                "INSERT OR REPLACE INTO meta (key, last_updated, count, checksum) "
                "VALUES (?, ?, ?, ?)",
                (key, now, len(unique), batch_checksum(key, hashes)),
            )
            if category:
                self._refresh_mode_meta(conn, mode)

        await asyncio.to_thread(self._transaction, replace)

        result = BulkReplaceResult(accepted=len(unique), total=total)
        logger.info(f"Cached {result.accepted}/{result.total} records for {key}")
        self._subscribers.emit(CacheChange(key=key, result=result))
        return result

    def _refresh_mode_meta(self, conn: sqlite3.Connection, mode: Mode) -> None:
        """Keep the whole-mode batch count and checksum true after a category replace."""
        key = cache_key(mode, None)
        if conn.execute("SELECT 1 FROM meta WHERE key = ?", (key,)).fetchone() is None:
            return
        hashes = self._stored_hashes(conn, mode, None)
        conn.execute(
            "UPDATE meta SET count = ?, checksum = ? WHERE key = ?",
            (len(hashes), batch_checksum(key, hashes), key),
        )

    @staticmethod
    def _stored_hashes(conn: sqlite3.Connection, mode: Mode, category: str | None) -> list[str]:
        where, params = _scope(mode, category, alias="v.")
        rows = conn.execute(
            f"SELECT i.hash FROM vocab v JOIN integrity i ON i.id = v.id "
            f"WHERE {where} ORDER BY v.seq",
            params,
        ).fetchall()
        return [r[0] for r in rows]

    async def clear(self) -> None:
        def wipe(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM vocab")
            conn.execute("DELETE FROM meta")
            conn.execute("DELETE FROM integrity")

        await asyncio.to_thread(self._transaction, wipe)
        logger.info("Cleared offline cache")

    # ---------- reads ----------

    async def query(
        self, mode: Mode, category: str | None = None, page: DayPage | None = None
    ) -> list[CachedVocab]:
        """
        Records in creation order (created_at, then insertion order).

        With a page, exactly the slice [(day-1)*size, day*size) clipped to
        what exists.
        """
        where, params = _scope(mode, category)
        sql = f"{self._select} WHERE {where} ORDER BY created_ms, seq"
        if page is not None:
            start, end = day_bounds(page)
            sql += " LIMIT ? OFFSET ?"
            params = params + (end - start, start)

        rows = await asyncio.to_thread(
            self._run, lambda conn: conn.execute(sql, params).fetchall()
        )
        return [self._row_to_record(row) for row in rows]

    async def count(self, mode: Mode, category: str | None = None) -> int:
        where, params = _scope(mode, category)
        (n,) = await asyncio.to_thread(
            self._run,
            lambda conn: conn.execute(f"SELECT COUNT(*) FROM vocab WHERE {where}", params).fetchone(),
        )
        return n

    async def get_by_ids(self, ids: Iterable[str]) -> list[CachedVocab]:
        """Records for the given ids, in the order requested; unknown ids are skipped."""
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []

        def fetch(conn: sqlite3.Connection) -> list[tuple]:
            rows: list[tuple] = []
            for i in range(0, len(wanted), _SQL_LIMIT_CHUNK):
                chunk = wanted[i : i + _SQL_LIMIT_CHUNK]
                marks = ", ".join("?" for _ in chunk)
                rows.extend(
                    conn.execute(f"{self._select} WHERE id IN ({marks})", chunk).fetchall()
                )
            return rows

        rows = await asyncio.to_thread(self._run, fetch)
        by_id = {r.id: r for r in (self._row_to_record(row) for row in rows)}
        return [by_id[i] for i in wanted if i in by_id]

    async def get_meta(self, mode: Mode, category: str | None = None) -> CacheMeta | None:
        key = cache_key(mode, category)
        row = await asyncio.to_thread(
            self._run,
            lambda conn: conn.execute(
                "SELECT key, last_updated, count, checksum FROM meta WHERE key = ?", (key,)
            ).fetchone(),
        )
        return CacheMeta(*row) if row else None

    async def status(self) -> CacheStatus:
        def read(conn: sqlite3.Connection) -> tuple[list[tuple], tuple]:
            counts = conn.execute("SELECT mode, COUNT(*) FROM vocab GROUP BY mode").fetchall()
            last = conn.execute("SELECT MAX(last_updated) FROM meta").fetchone()
            return counts, last

        counts, (last_updated,) = await asyncio.to_thread(self._run, read)
        per_mode = {mode: 0 for mode in MODES}
        per_mode.update(dict(counts))
        return CacheStatus(
            total_count=sum(per_mode.values()),
            per_mode_counts=per_mode,
            last_updated=last_updated,
        )

    async def verify_integrity(self) -> IntegrityReport:
        """
        Recompute record hashes and batch checksums.

        Advisory only: the result is a diagnostic and never blocks reads.
        """

        def read(conn: sqlite3.Connection):
            rows = conn.execute(
                f"SELECT {', '.join('v.' + f for f in FIELDS)}, i.hash "
                f"FROM vocab v LEFT JOIN integrity i ON i.id = v.id ORDER BY v.seq"
            ).fetchall()
            metas = conn.execute("SELECT key, checksum FROM meta").fetchall()
            batches = {}
            for key, checksum in metas:
                mode, _, category = key.partition("_")
                hashes = self._stored_hashes(conn, mode, None if category == "all" else category)
                batches[key] = (checksum, hashes)
            return rows, batches

        rows, batches = await asyncio.to_thread(self._run, read)
        report = IntegrityReport()
        for row in rows:
            record = self._row_to_record(row[:-1])
            stored = row[-1]
            if stored is None:
                report.missing.append(record.id)
            elif stored != record_hash(record):
                report.mismatched.append(record.id)
        for key, (checksum, hashes) in batches.items():
            if checksum and checksum != batch_checksum(key, hashes):
                report.bad_batches.append(key)

        if not report.ok:
            logger.warning(
                f"Offline cache integrity: {len(report.missing)} missing, "
                f"{len(report.mismatched)} mismatched, {len(report.bad_batches)} bad batches"
            )
        return report
