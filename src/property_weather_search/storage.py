from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from property_weather_search.models import PropertyRecord


class PropertyStore:
    """SQLite source of truth for property master records.

    A connection is opened per call so the store can be used from worker
    threads (the snapshot reload runs in one).
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=5)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    city TEXT,
                    state TEXT,
                    country TEXT,
                    lat REAL,
                    lng REAL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    tags TEXT,
                    created_at TEXT
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_properties_active_name ON properties(is_active, name)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_properties_city_state ON properties(city, state)"
            )
            conn.commit()
        finally:
            conn.close()

    def find_active_properties(self) -> List[PropertyRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT id, name, city, state, country, lat, lng, is_active, tags, created_at
                FROM properties
                WHERE is_active = 1
                ORDER BY name ASC, id ASC
                """
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def upsert_properties(self, records: Iterable[PropertyRecord]) -> int:
        now = datetime.now(timezone.utc).isoformat()
        n = 0
        conn = self._connect()
        try:
            for rec in records:
                conn.execute(
                    """
                    INSERT INTO properties (
                        id, name, city, state, country, lat, lng, is_active, tags, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name=excluded.name,
                        city=excluded.city,
                        state=excluded.state,
                        country=excluded.country,
                        lat=excluded.lat,
                        lng=excluded.lng,
                        is_active=excluded.is_active,
                        tags=excluded.tags
                    """,
                    (
                        rec.id,
                        rec.name,
                        rec.city,
                        rec.state,
                        rec.country,
                        rec.lat,
                        rec.lng,
                        1 if rec.is_active else 0,
                        json.dumps(list(rec.tags)),
                        rec.created_at or now,
                    ),
                )
                n += 1
            conn.commit()
        finally:
            conn.close()
        return n

    def count_properties(self, *, active_only: bool = True) -> int:
        sql = "SELECT COUNT(*) FROM properties"
        if active_only:
            sql += " WHERE is_active = 1"
        conn = self._connect()
        try:
            row = conn.execute(sql).fetchone()
        finally:
            conn.close()
        return int(row[0]) if row else 0

    def ping(self) -> bool:
        try:
            conn = self._connect()
            try:
                conn.execute("SELECT 1").fetchone()
            finally:
                conn.close()
        except sqlite3.Error:
            return False
        return True


def _parse_tags(raw: Optional[str]) -> tuple:
    if not raw:
        return ()
    try:
        value = json.loads(raw)
    except ValueError:
        # Legacy rows store tags comma separated.
        return tuple(t.strip() for t in raw.split(",") if t.strip())
    if not isinstance(value, list):
        return ()
    return tuple(t for t in value if isinstance(t, str))


def _row_to_record(row: sqlite3.Row) -> PropertyRecord:
    return PropertyRecord(
        id=int(row["id"]),
        name=row["name"] or "",
        city=row["city"] or "",
        state=row["state"] or "",
        country=row["country"] or "",
        lat=row["lat"],
        lng=row["lng"],
        is_active=bool(row["is_active"]),
        tags=_parse_tags(row["tags"]),
        created_at=row["created_at"],
    )


def records_from_rows(rows: Iterable[Dict[str, Any]]) -> List[PropertyRecord]:
    """Build records from loosely-typed dict rows (JSON/CSV seed files)."""

    out: List[PropertyRecord] = []
    for row in rows:
        tags = row.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        active = row.get("is_active", row.get("isActive", True))
        if isinstance(active, str):
            active = active.strip().lower() not in ("0", "false", "no", "n", "")
        out.append(
            PropertyRecord.from_dict(
                {
                    "id": row["id"],
                    "name": row.get("name"),
                    "city": row.get("city"),
                    "state": row.get("state"),
                    "country": row.get("country"),
                    "lat": row.get("lat"),
                    "lng": row.get("lng"),
                    "is_active": bool(active),
                    "tags": list(tags),
                    "created_at": row.get("created_at") or row.get("createdAt"),
                }
            )
        )
    return out
