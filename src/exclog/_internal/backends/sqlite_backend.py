from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping

from exclog.telemetry.records import ExceptionRecord

logger = logging.getLogger(__name__)


def _to_json(v: Any) -> str:
    try:
        return json.dumps(v, ensure_ascii=False, separators=(",", ":"), default=str)
    except Exception:
        return json.dumps({"_error": "json_serialize_failed"}, ensure_ascii=False)


class SQLiteHandle:
    """Writes exception records to a local SQLite file."""

    name = "local"

    def __init__(self, *, path: Path, retention_days: int = 7, cleanup_interval_s: float = 60.0) -> None:
        self.path = Path(path)
        self.retention_days = max(1, int(retention_days))
        self.cleanup_interval_s = max(0.0, float(cleanup_interval_s))
        self._last_cleanup = 0.0
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def load(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        cur = self._conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS exception_events (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  ts REAL NOT NULL,
                  type_name TEXT NOT NULL,
                  message TEXT,
                  stack TEXT,
                  severity_level INTEGER NOT NULL,
                  buffered INTEGER NOT NULL DEFAULT 0,
                  properties_json TEXT
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_ee_ts ON exception_events(ts);")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_ee_sev ON exception_events(severity_level);")
            self._conn.commit()
        finally:
            cur.close()
        self.cleanup()
        logger.info("[exclog/local] handle loaded path=%s", str(self.path))

    def send(self, record: ExceptionRecord) -> None:
        if self._conn is None:
            logger.warning("[exclog/local] send before load; record dropped")
            return
        data = record.to_dict()
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO exception_events(ts, type_name, message, stack, severity_level, buffered, properties_json)
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        time.time(),
                        data["exception"]["type"],
                        data["exception"]["message"],
                        data["exception"].get("stack", ""),
                        data["severityLevel"],
                        1 if record.is_buffered() else 0,
                        _to_json(data["properties"]),
                    ),
                )
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                logger.error("[exclog/local] insert failed", exc_info=True)
        # Periodic retention cleanup (once/min by default).
        if (time.time() - self._last_cleanup) > self.cleanup_interval_s:
            try:
                self.cleanup()
            except Exception:
                logger.error("[exclog/local] cleanup failed", exc_info=True)

    def flush(self) -> None:
        if self._conn is None:
            return
        with self._lock:
            try:
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                logger.error("[exclog/local] commit failed", exc_info=True)

    def cleanup(self) -> int:
        if self._conn is None:
            return 0
        self._last_cleanup = time.time()
        cutoff = time.time() - self.retention_days * 86400
        with self._lock:
            cur = self._conn.execute("DELETE FROM exception_events WHERE ts < ?;", (cutoff,))
            self._conn.commit()
            return int(cur.rowcount or 0)

    def query(self, *, limit: int = 200) -> List[Dict[str, Any]]:
        if self._conn is None:
            return []
        lim = max(1, min(int(limit or 200), 5000))
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM exception_events ORDER BY id ASC LIMIT ?;", (lim,)
            ).fetchall()
        out: List[Dict[str, Any]] = []
        for r in rows:
            d = dict(r)
            try:
                d["properties"] = json.loads(d.pop("properties_json") or "{}")
            except Exception:
                d["properties"] = {}
            d["buffered"] = bool(d.get("buffered"))
            out.append(d)
        return out

    def close(self) -> None:
        if self._conn is None:
            return
        with self._lock:
            try:
                self._conn.commit()
            finally:
                self._conn.close()
                self._conn = None


class SQLiteBackend:
    name = "local"

    def __init__(self, *, default_path: Path | None = None) -> None:
        self.default_path = default_path

    async def create(self, config: Mapping[str, Any]) -> SQLiteHandle:
        path = config.get("sqlite_path") or self.default_path or Path("storage/exclog/exceptions.sqlite3")
        return SQLiteHandle(path=Path(path), retention_days=int(config.get("retention_days") or 7))
