"""
SQLite-backed media library and playlist store.

Provides the read side the pool builder needs (filtered tracks, jingles, clock
templates) and the write side the orchestrator needs (upsert a playlist by
name, replace its ordered track list).  Every sqlite3 error is re-raised as
StorageError so callers deal with a single failure type.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from engine.models import ClockHourTemplate, Filters

logger = logging.getLogger(__name__)

JINGLE_POOL_LIMIT = 500

SCHEMA = """
CREATE TABLE IF NOT EXISTS tracks (
    id             INTEGER PRIMARY KEY,
    file_path      TEXT    NOT NULL DEFAULT '',
    title          TEXT    NOT NULL DEFAULT '',
    artist         TEXT    NOT NULL DEFAULT '',
    album          TEXT    NOT NULL DEFAULT '',
    genre          TEXT    NOT NULL DEFAULT '',
    year           INTEGER,
    duration_ms    INTEGER NOT NULL DEFAULT 0,
    bpm            REAL,
    energy_level   REAL,
    mood_tag       TEXT    NOT NULL DEFAULT '',
    rating         INTEGER NOT NULL DEFAULT 3,
    play_count     INTEGER NOT NULL DEFAULT 0,
    last_played_at TEXT,
    is_jingle      INTEGER NOT NULL DEFAULT 0,
    is_sweeper     INTEGER NOT NULL DEFAULT 0,
    is_spot        INTEGER NOT NULL DEFAULT 0,
    is_missing     INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS track_categories (
    track_id    INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    PRIMARY KEY (track_id, category_id)
);

CREATE TABLE IF NOT EXISTS clock_hours (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    hour         INTEGER NOT NULL,
    day_of_week  INTEGER,
    name         TEXT    NOT NULL DEFAULT '',
    segment_json TEXT    NOT NULL DEFAULT '[]',
    is_active    INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS playlists (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT    NOT NULL UNIQUE,
    type        TEXT    NOT NULL DEFAULT 'static',
    description TEXT    NOT NULL DEFAULT '',
    rule_json   TEXT    NOT NULL DEFAULT '{}',
    track_count INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT    NOT NULL,
    modified_at TEXT
);

CREATE TABLE IF NOT EXISTS playlist_tracks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
    track_id    INTEGER NOT NULL,
    position    INTEGER NOT NULL,
    weight      REAL    NOT NULL DEFAULT 1.0
);
"""

# Column → pool key, for the handful of columns whose names differ
_COLUMN_ALIASES = {
    "energy_level": "energy",
    "mood_tag":     "mood",
}

_TRACK_COLUMNS = (
    "id", "file_path", "title", "artist", "album", "genre", "year",
    "duration_ms", "bpm", "energy_level", "mood_tag", "rating",
    "play_count", "last_played_at", "is_jingle", "is_sweeper", "is_spot",
)


class StorageError(Exception):
    """The backing store could not complete a read or write."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _row_to_track(row: sqlite3.Row) -> dict:
    return {_COLUMN_ALIASES.get(k, k): row[k] for k in row.keys()}


def filter_clauses(filters: Filters) -> Tuple[str, List]:
    """Compose the WHERE clause for a filter set.

    Each filter contributes one predicate; predicates are ANDed in a fixed
    order so the parameter list lines up with the placeholders.
    """
    where: List[str] = ["t.is_missing = 0"]
    params: List = []

    if filters.category_ids:
        ids = sorted(filters.category_ids)
        ph = ",".join("?" for _ in ids)
        # EXISTS keeps one row per track even when it sits in several categories
        where.append(
            "EXISTS (SELECT 1 FROM track_categories tc "
            f"WHERE tc.track_id = t.id AND tc.category_id IN ({ph}))"
        )
        params.extend(ids)

    if filters.genre:
        where.append("py_casefold(t.genre) LIKE ? ESCAPE '\\'")
        escaped = (filters.genre.casefold()
                   .replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_"))
        params.append(f"%{escaped}%")

    if not filters.include_jingles:
        where.append("t.is_jingle = 0")
    if not filters.include_sweepers:
        where.append("t.is_sweeper = 0")
    if not filters.include_spots:
        where.append("t.is_spot = 0")

    if filters.year_from is not None:
        where.append("t.year >= ?")
        params.append(filters.year_from)
    if filters.year_to is not None:
        where.append("t.year <= ?")
        params.append(filters.year_to)

    # Tracks without a BPM are never disqualified by a BPM range
    if filters.bpm_min is not None:
        where.append("(t.bpm IS NULL OR t.bpm >= ?)")
        params.append(filters.bpm_min)
    if filters.bpm_max is not None:
        where.append("(t.bpm IS NULL OR t.bpm <= ?)")
        params.append(filters.bpm_max)

    if filters.rating_min is not None:
        where.append("t.rating >= ?")
        params.append(filters.rating_min)

    return " AND ".join(where), params


class SqliteStore:
    """Media library and playlist tables in a single SQLite database."""

    def __init__(self, db_path: str = "data/playlists.db"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            # isolation_level=None: transactions are opened explicitly in transaction()
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False,
                                        isolation_level=None)
            self.conn.row_factory = sqlite3.Row
            # SQLite LOWER() only folds ASCII
            self.conn.create_function("py_casefold", 1, lambda s: (s or "").casefold(),
                                      deterministic=True)
            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self.db_path}: {e}") from e
        logger.debug(f"Connected to database: {self.db_path}")

    def close(self):
        self.conn.close()

    def _query(self, sql: str, params: Iterable = ()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def _execute(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    @contextmanager
    def transaction(self):
        """Run the enclosed writes atomically.

        BEGIN IMMEDIATE takes the database write lock up front, so two
        regenerate calls for the same playlist name are serialised instead of
        interleaving their delete/insert steps.
        """
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StorageError(f"cannot start transaction: {e}") from e
        try:
            yield self
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            try:
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                self.conn.execute("ROLLBACK")
                raise StorageError(f"commit failed: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_tracks(self, filters: Filters) -> List[dict]:
        where_sql, params = filter_clauses(filters)
        cols = ", ".join(f"t.{c}" for c in _TRACK_COLUMNS)
        rows = self._query(
            f"SELECT {cols} FROM tracks t WHERE {where_sql} ORDER BY t.id",
            params,
        )
        return [_row_to_track(r) for r in rows]

    def count_tracks(self, filters: Filters) -> int:
        where_sql, params = filter_clauses(filters)
        rows = self._query(f"SELECT COUNT(*) AS n FROM tracks t WHERE {where_sql}", params)
        return int(rows[0]["n"]) if rows else 0

    def fetch_jingles(self, limit: int = JINGLE_POOL_LIMIT) -> List[dict]:
        cols = ", ".join(f"t.{c}" for c in _TRACK_COLUMNS)
        rows = self._query(
            f"SELECT {cols} FROM tracks t "
            "WHERE t.is_jingle = 1 AND t.is_missing = 0 "
            "ORDER BY RANDOM() LIMIT ?",
            (limit,),
        )
        return [_row_to_track(r) for r in rows]

    def fetch_clock_templates(self, hours: Iterable[int],
                              day_of_week: Optional[int] = None) -> List[ClockHourTemplate]:
        """Active templates for the given hours, one per hour.

        A template pinned to ``day_of_week`` wins over an any-day template for
        the same hour; templates pinned to other days are ignored.
        """
        hours = sorted({int(h) for h in hours})
        if not hours:
            return []
        ph = ",".join("?" for _ in hours)
        rows = self._query(
            f"SELECT hour, day_of_week, name, segment_json FROM clock_hours "
            f"WHERE hour IN ({ph}) AND is_active = 1 ORDER BY hour, id",
            hours,
        )
        by_hour: Dict[int, ClockHourTemplate] = {}
        for row in rows:
            dow = row["day_of_week"]
            if dow is not None and dow != day_of_week:
                continue
            current = by_hour.get(row["hour"])
            if current is None or (current.day_of_week is None and dow is not None):
                by_hour[row["hour"]] = ClockHourTemplate.from_row(dict(row))
        return [by_hour[h] for h in sorted(by_hour)]

    def get_playlist(self, playlist_id: int) -> Optional[dict]:
        rows = self._query("SELECT * FROM playlists WHERE id = ?", (playlist_id,))
        return dict(rows[0]) if rows else None

    def get_playlist_by_name(self, name: str) -> Optional[dict]:
        rows = self._query("SELECT * FROM playlists WHERE name = ?", (name,))
        return dict(rows[0]) if rows else None

    def get_playlist_tracks(self, playlist_id: int) -> List[dict]:
        cols = ", ".join(f"t.{c}" for c in _TRACK_COLUMNS)
        rows = self._query(
            f"SELECT pt.position, pt.weight AS slot_weight, {cols} "
            "FROM playlist_tracks pt JOIN tracks t ON t.id = pt.track_id "
            "WHERE pt.playlist_id = ? ORDER BY pt.position",
            (playlist_id,),
        )
        return [_row_to_track(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_playlist(self, name: str, type_: str, description: str,
                        rule_json: str, track_count: int) -> int:
        """Insert a playlist, or reset an existing one of the same name.

        Resetting clears the previous track list so the caller can write the
        new one in its place.
        """
        existing = self._query("SELECT id FROM playlists WHERE name = ?", (name,))
        if existing:
            playlist_id = int(existing[0]["id"])
            self._execute(
                "UPDATE playlists SET type = ?, description = ?, rule_json = ?, "
                "track_count = ?, modified_at = ? WHERE id = ?",
                (type_, description, rule_json, track_count, _now(), playlist_id),
            )
            self._execute("DELETE FROM playlist_tracks WHERE playlist_id = ?", (playlist_id,))
            return playlist_id

        cur = self._execute(
            "INSERT INTO playlists (name, type, description, rule_json, track_count, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (name, type_, description, rule_json, track_count, _now()),
        )
        return int(cur.lastrowid)

    def replace_playlist_tracks(self, playlist_id: int, tracks: List[dict]) -> int:
        """Write the ordered track list with 1-based positions; returns rows written."""
        self._execute("DELETE FROM playlist_tracks WHERE playlist_id = ?", (playlist_id,))
        rows = [(playlist_id, t["id"], pos) for pos, t in enumerate(tracks, start=1)]
        try:
            self.conn.executemany(
                "INSERT INTO playlist_tracks (playlist_id, track_id, position, weight) "
                "VALUES (?, ?, ?, 1.0)",
                rows,
            )
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        return len(rows)

    def update_track_count(self, playlist_id: int, track_count: int) -> None:
        self._execute(
            "UPDATE playlists SET track_count = ? WHERE id = ?",
            (track_count, playlist_id),
        )

    # ------------------------------------------------------------------
    # Library seeding
    # ------------------------------------------------------------------

    def import_tracks(self, tracks: List[dict]) -> int:
        """Insert or replace library rows; ``categories`` lists category ids."""
        with self.transaction():
            for t in tracks:
                self._execute(
                    "INSERT OR REPLACE INTO tracks (id, file_path, title, artist, album, genre, "
                    "year, duration_ms, bpm, energy_level, mood_tag, rating, play_count, "
                    "last_played_at, is_jingle, is_sweeper, is_spot, is_missing) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        t["id"], t.get("file_path", ""), t.get("title", ""),
                        t.get("artist", ""), t.get("album", ""), t.get("genre", ""),
                        t.get("year"), t.get("duration_ms", 0), t.get("bpm"),
                        t.get("energy"), t.get("mood", ""), t.get("rating", 3),
                        t.get("play_count", 0), t.get("last_played_at"),
                        int(bool(t.get("is_jingle"))), int(bool(t.get("is_sweeper"))),
                        int(bool(t.get("is_spot"))), int(bool(t.get("is_missing"))),
                    ),
                )
                self._execute("DELETE FROM track_categories WHERE track_id = ?", (t["id"],))
                for cat_id in t.get("categories") or []:
                    self._execute(
                        "INSERT OR IGNORE INTO track_categories (track_id, category_id) VALUES (?, ?)",
                        (t["id"], int(cat_id)),
                    )
        logger.info(f"Imported {len(tracks)} tracks into {self.db_path}")
        return len(tracks)

    def save_clock_template(self, hour: int, segments: List[dict], name: str = "",
                            day_of_week: Optional[int] = None, active: bool = True) -> int:
        cur = self._execute(
            "INSERT INTO clock_hours (hour, day_of_week, name, segment_json, is_active) "
            "VALUES (?, ?, ?, ?, ?)",
            (int(hour), day_of_week, name, json.dumps(segments), int(active)),
        )
        return int(cur.lastrowid)
