"""
Karaoke Queue Service - SQLite Database

Embedded SQLite store.  Uses aiosqlite for async operations within FastAPI
and plain sqlite3 for schema creation and migrations.

Each public coroutine opens its own connection and performs one logical
write (or one consistent read), so no operation can leave a row
half-updated.  Duplicate prevention is enforced by UNIQUE indexes:

* ``songs``        — (source, source_id, title_norm, artist_norm)
* ``crate_songs``  — (crate_id, song_id)

and inserts rely on ``ON CONFLICT DO NOTHING`` / ``INSERT OR IGNORE`` so
concurrent writers cannot create duplicates.
"""

import json
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import aiosqlite
from loguru import logger

from karaoke.config import DB_PATH
from karaoke.errors import InfrastructureError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS songs (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    title_norm TEXT NOT NULL,
    artist TEXT NOT NULL,
    artist_norm TEXT NOT NULL,
    album TEXT,
    duration_sec INTEGER,
    cover_art_url TEXT,
    video_url TEXT,
    source TEXT NOT NULL,
    source_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_songs_dedup
    ON songs(source, source_id, title_norm, artist_norm);
CREATE INDEX IF NOT EXISTS idx_songs_title ON songs(title COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_songs_artist ON songs(artist COLLATE NOCASE);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT,
    display_name TEXT,
    email TEXT,
    avatar TEXT,
    role TEXT NOT NULL DEFAULT 'singer',
    org_id TEXT,
    push_token TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    name TEXT NOT NULL,
    date TEXT NOT NULL,
    venue TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_org ON events(org_id);
CREATE INDEX IF NOT EXISTS idx_events_status_date ON events(status, date);

CREATE TABLE IF NOT EXISTS requests (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL REFERENCES events(id),
    song_id TEXT NOT NULL REFERENCES songs(id),
    requester_id TEXT NOT NULL,
    co_singer_ids TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending_admin',
    video_url TEXT,
    rejection_reason TEXT,
    fast_pass INTEGER NOT NULL DEFAULT 0,
    in_crate INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_requests_event_status ON requests(event_id, status);
CREATE INDEX IF NOT EXISTS idx_requests_event_in_crate ON requests(event_id, in_crate);
CREATE INDEX IF NOT EXISTS idx_requests_requester ON requests(requester_id);

CREATE TABLE IF NOT EXISTS crates (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL UNIQUE REFERENCES events(id),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS crate_songs (
    crate_id TEXT NOT NULL REFERENCES crates(id),
    song_id TEXT NOT NULL REFERENCES songs(id),
    added_at TEXT NOT NULL,
    UNIQUE (crate_id, song_id)
);

CREATE TABLE IF NOT EXISTS performances (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL REFERENCES events(id),
    request_id TEXT NOT NULL REFERENCES requests(id),
    song_id TEXT NOT NULL REFERENCES songs(id),
    requester_id TEXT NOT NULL,
    co_singer_ids TEXT NOT NULL DEFAULT '[]',
    performed_at TEXT NOT NULL,
    video_url TEXT
);

CREATE INDEX IF NOT EXISTS idx_performances_event ON performances(event_id);
"""

# ---------------------------------------------------------------------------
# Migration helpers
# ---------------------------------------------------------------------------
_MIGRATIONS = [
    # Migration 1: fast_pass flag on requests (older files predate it)
    {
        "check": "SELECT COUNT(*) FROM pragma_table_info('requests') WHERE name='fast_pass'",
        "apply": [
            "ALTER TABLE requests ADD COLUMN fast_pass INTEGER NOT NULL DEFAULT 0",
        ],
        "description": "Add fast_pass column",
    },
    # Migration 2: enrichment video URL on songs
    {
        "check": "SELECT COUNT(*) FROM pragma_table_info('songs') WHERE name='video_url'",
        "apply": [
            "ALTER TABLE songs ADD COLUMN video_url TEXT",
        ],
        "description": "Add songs.video_url column",
    },
]


def _run_migrations(conn: sqlite3.Connection) -> None:
    """Run any pending schema migrations."""
    for migration in _MIGRATIONS:
        cursor = conn.execute(str(migration["check"]))
        (count,) = cursor.fetchone()
        if count == 0:
            logger.info("🔄 Running migration: {}", migration["description"])
            for stmt in migration["apply"]:
                conn.execute(stmt)
            conn.commit()
            logger.success("✅ Migration applied: {}", migration["description"])


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------
def init_db() -> None:
    """Initialize the SQLite database, create tables, and run migrations."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    try:
        with sqlite3.connect(str(DB_PATH)) as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
            _run_migrations(conn)
        logger.success(f"✅ Database initialized at {DB_PATH}")
    except Exception as e:
        logger.critical(f"❌ Failed to initialize database: {e}")
        raise


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------
@asynccontextmanager
async def get_async_connection():
    """Async context manager for an aiosqlite connection with row factory.

    Any ``sqlite3.Error`` raised while the connection is open is re-raised
    as :class:`InfrastructureError` so callers see a retryable failure.
    """
    try:
        db = await aiosqlite.connect(str(DB_PATH))
    except sqlite3.Error as e:
        logger.error("❌ Could not open database {}: {}", DB_PATH, e)
        raise InfrastructureError("Database unavailable") from e
    db.row_factory = aiosqlite.Row
    try:
        await db.execute("PRAGMA foreign_keys = ON")
        yield db
    except sqlite3.Error as e:
        logger.error("❌ Database error: {}", e)
        raise InfrastructureError("Database operation failed") from e
    finally:
        await db.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def row_to_dict(row) -> Dict[str, Any]:
    """Convert a database row to a plain dictionary."""
    if row is None:
        return {}
    return dict(row)


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds; sorts lexicographically."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _filter_fields(fields: Dict[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    allowed_set = set(allowed)
    return {k: v for k, v in fields.items() if k in allowed_set}


# ---------------------------------------------------------------------------
# Songs
# ---------------------------------------------------------------------------
async def insert_song_if_absent(
    *,
    title: str,
    title_norm: str,
    artist: str,
    artist_norm: str,
    source: str,
    source_id: str,
    album: Optional[str] = None,
    duration_sec: Optional[int] = None,
    cover_art_url: Optional[str] = None,
    video_url: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    Insert a song unless a row with the same dedup key exists.

    Returns ``(row, inserted)``.  The insert and the conflict check happen in
    one statement, so two concurrent saves of the same track produce one row.
    """
    now = utc_now()
    async with get_async_connection() as db:
        cursor = await db.execute(
            """
            INSERT INTO songs (
                id, title, title_norm, artist, artist_norm, album, duration_sec,
                cover_art_url, video_url, source, source_id, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(source, source_id, title_norm, artist_norm) DO NOTHING
            """,
            (
                new_id(),
                title,
                title_norm,
                artist,
                artist_norm,
                album,
                duration_sec,
                cover_art_url,
                video_url,
                source,
                source_id,
                now,
                now,
            ),
        )
        await db.commit()
        inserted = cursor.rowcount > 0

        cursor = await db.execute(
            """
            SELECT * FROM songs
            WHERE source = ? AND source_id = ? AND title_norm = ? AND artist_norm = ?
            """,
            (source, source_id, title_norm, artist_norm),
        )
        row = await cursor.fetchone()
        return row_to_dict(row), inserted


async def get_song_by_id(song_id: str) -> Optional[Dict[str, Any]]:
    """Fetch a single song by its id."""
    async with get_async_connection() as db:
        cursor = await db.execute("SELECT * FROM songs WHERE id = ?", (song_id,))
        row = await cursor.fetchone()
        return row_to_dict(row) if row else None


async def get_songs_by_ids(song_ids: Sequence[str]) -> List[Dict[str, Any]]:
    """Batch fetch songs.  Unknown ids are simply absent from the result."""
    ids = list(dict.fromkeys(song_ids))
    if not ids:
        return []
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"SELECT * FROM songs WHERE id IN ({_placeholders(ids)})", ids
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


def _search_clause(pattern: Optional[str]) -> Tuple[str, List[Any]]:
    if not pattern:
        return "", []
    return (
        "WHERE title LIKE ? ESCAPE '\\' OR artist LIKE ? ESCAPE '\\' "
        "OR album LIKE ? ESCAPE '\\'",
        [pattern, pattern, pattern],
    )


async def search_songs(
    pattern: Optional[str], limit: int = 20, offset: int = 0
) -> List[Dict[str, Any]]:
    """Fetch songs whose title/artist/album match a LIKE *pattern*."""
    where, params = _search_clause(pattern)
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"""
            SELECT * FROM songs {where}
            ORDER BY title COLLATE NOCASE ASC, id ASC
            LIMIT ? OFFSET ?
            """,
            params + [limit, offset],
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


async def count_songs(pattern: Optional[str] = None) -> int:
    """Return total number of songs, optionally filtered by a LIKE *pattern*."""
    where, params = _search_clause(pattern)
    async with get_async_connection() as db:
        cursor = await db.execute(f"SELECT COUNT(*) as cnt FROM songs {where}", params)
        row = await cursor.fetchone()
        return row["cnt"] if row else 0


async def update_song(song_id: str, **fields) -> bool:
    """Update enrichment fields of a song. Returns True if a row was modified."""
    filtered = _filter_fields(fields, {"video_url", "cover_art_url"})
    if not filtered:
        return False

    set_clause = ", ".join(f"{k} = ?" for k in filtered)
    values = list(filtered.values()) + [utc_now(), song_id]

    async with get_async_connection() as db:
        cursor = await db.execute(
            f"UPDATE songs SET {set_clause}, updated_at = ? WHERE id = ?",
            values,
        )
        await db.commit()
        updated = cursor.rowcount > 0
        if updated:
            logger.info(f"✏️ Song id={song_id} enriched: {list(filtered.keys())}")
        return updated


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
async def ensure_user(user_id: str, role: str = "singer", org_id: Optional[str] = None) -> None:
    """Create the user row on first sight; refresh role/org on later calls."""
    now = utc_now()
    async with get_async_connection() as db:
        await db.execute(
            """
            INSERT INTO users (id, role, org_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET role = excluded.role, org_id = excluded.org_id
            """,
            (user_id, role, org_id, now, now),
        )
        await db.commit()


async def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    async with get_async_connection() as db:
        cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        return row_to_dict(row) if row else None


async def get_users_by_ids(user_ids: Sequence[str]) -> List[Dict[str, Any]]:
    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return []
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"SELECT * FROM users WHERE id IN ({_placeholders(ids)})", ids
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


async def search_users(pattern: str, limit: int = 20) -> List[Dict[str, Any]]:
    """Match a LIKE *pattern* against username, display name or email."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            """
            SELECT * FROM users
            WHERE username LIKE ? ESCAPE '\\'
               OR display_name LIKE ? ESCAPE '\\'
               OR email LIKE ? ESCAPE '\\'
            ORDER BY username, id
            LIMIT ?
            """,
            (pattern, pattern, pattern, limit),
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


async def update_user(user_id: str, **fields) -> bool:
    """Update profile fields / push token. Returns True if a row was modified."""
    filtered = _filter_fields(
        fields, {"username", "display_name", "email", "avatar", "push_token"}
    )
    if not filtered:
        return False

    set_clause = ", ".join(f"{k} = ?" for k in filtered)
    values = list(filtered.values()) + [utc_now(), user_id]

    async with get_async_connection() as db:
        cursor = await db.execute(
            f"UPDATE users SET {set_clause}, updated_at = ? WHERE id = ?",
            values,
        )
        await db.commit()
        return cursor.rowcount > 0


async def get_push_tokens() -> List[Dict[str, Any]]:
    """Return ``{"id", "push_token"}`` for every user with a stored token."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "SELECT id, push_token FROM users WHERE push_token IS NOT NULL AND push_token != ''"
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
async def insert_event(
    org_id: str,
    name: str,
    date: str,
    created_by: str,
    venue: Optional[str] = None,
    status: str = "draft",
) -> Dict[str, Any]:
    now = utc_now()
    event_id = new_id()
    async with get_async_connection() as db:
        await db.execute(
            """
            INSERT INTO events (id, org_id, name, date, venue, status, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (event_id, org_id, name, date, venue, status, created_by, now, now),
        )
        await db.commit()
        cursor = await db.execute("SELECT * FROM events WHERE id = ?", (event_id,))
        row = await cursor.fetchone()
    logger.success(f"✅ Event created (id={event_id}): {name}")
    return row_to_dict(row)


async def get_event(event_id: str) -> Optional[Dict[str, Any]]:
    async with get_async_connection() as db:
        cursor = await db.execute("SELECT * FROM events WHERE id = ?", (event_id,))
        row = await cursor.fetchone()
        return row_to_dict(row) if row else None


async def list_events(
    org_id: Optional[str] = None, status: Optional[str] = None
) -> List[Dict[str, Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if org_id:
        clauses.append("org_id = ?")
        params.append(org_id)
    if status:
        clauses.append("status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"SELECT * FROM events {where} ORDER BY date ASC, created_at ASC", params
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


async def get_latest_active_event(org_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    params: List[Any] = ["active"]
    org_clause = ""
    if org_id:
        org_clause = "AND org_id = ?"
        params.append(org_id)
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"SELECT * FROM events WHERE status = ? {org_clause} ORDER BY date DESC LIMIT 1",
            params,
        )
        row = await cursor.fetchone()
        return row_to_dict(row) if row else None


async def update_event(event_id: str, **fields) -> bool:
    filtered = _filter_fields(fields, {"name", "date", "venue", "status"})
    if not filtered:
        return False

    set_clause = ", ".join(f"{k} = ?" for k in filtered)
    values = list(filtered.values()) + [utc_now(), event_id]

    async with get_async_connection() as db:
        cursor = await db.execute(
            f"UPDATE events SET {set_clause}, updated_at = ? WHERE id = ?",
            values,
        )
        await db.commit()
        updated = cursor.rowcount > 0
        if updated:
            logger.info(f"✏️ Event id={event_id} updated: {list(filtered.keys())}")
        return updated


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
async def insert_request(
    event_id: str,
    song_id: str,
    requester_id: str,
    co_singer_ids: Sequence[str] = (),
    in_crate: bool = False,
    fast_pass: bool = False,
    status: str = "pending_admin",
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Insert a request row and return it."""
    now = created_at or utc_now()
    request_id = new_id()
    async with get_async_connection() as db:
        await db.execute(
            """
            INSERT INTO requests (
                id, event_id, song_id, requester_id, co_singer_ids, status,
                fast_pass, in_crate, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                request_id,
                event_id,
                song_id,
                requester_id,
                json.dumps(list(co_singer_ids)),
                status,
                int(fast_pass),
                int(in_crate),
                now,
                now,
            ),
        )
        await db.commit()
        cursor = await db.execute("SELECT * FROM requests WHERE id = ?", (request_id,))
        row = await cursor.fetchone()
        return row_to_dict(row)


async def get_request(request_id: str) -> Optional[Dict[str, Any]]:
    async with get_async_connection() as db:
        cursor = await db.execute("SELECT * FROM requests WHERE id = ?", (request_id,))
        row = await cursor.fetchone()
        return row_to_dict(row) if row else None


async def list_requests(
    event_id: str,
    statuses: Optional[Sequence[str]] = None,
    in_crate: Optional[bool] = None,
    oldest_first: bool = False,
) -> List[Dict[str, Any]]:
    """
    Fetch the requests of an event in a single SELECT.

    Ordering is by creation time, with insertion order (rowid) breaking
    ties so equal timestamps still sort deterministically.
    """
    clauses = ["event_id = ?"]
    params: List[Any] = [event_id]
    if statuses:
        clauses.append(f"status IN ({_placeholders(statuses)})")
        params.extend(statuses)
    if in_crate is not None:
        clauses.append("in_crate = ?")
        params.append(int(in_crate))

    direction = "ASC" if oldest_first else "DESC"
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"""
            SELECT * FROM requests
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at {direction}, rowid {direction}
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


_REQUEST_FIELDS = {"status", "rejection_reason", "video_url", "in_crate"}


async def update_request(
    request_id: str,
    allowed_from: Optional[Sequence[str]] = None,
    **fields,
) -> bool:
    """
    Update a request in one statement.

    When *allowed_from* is given the row is only touched if its current
    status is in that set, making the state check and the write atomic.
    Returns True if a row was modified.
    """
    filtered = _filter_fields(fields, _REQUEST_FIELDS)
    if not filtered:
        return False
    if "in_crate" in filtered:
        filtered["in_crate"] = int(bool(filtered["in_crate"]))

    set_clause = ", ".join(f"{k} = ?" for k in filtered)
    values: List[Any] = list(filtered.values()) + [utc_now(), request_id]
    guard = ""
    if allowed_from:
        guard = f"AND status IN ({_placeholders(allowed_from)})"
        values.extend(allowed_from)

    async with get_async_connection() as db:
        cursor = await db.execute(
            f"UPDATE requests SET {set_clause}, updated_at = ? WHERE id = ? {guard}",
            values,
        )
        await db.commit()
        return cursor.rowcount > 0


async def mark_request_performed(
    request_id: str, allowed_from: Sequence[str]
) -> Optional[Dict[str, Any]]:
    """
    Move a request to ``performed`` and append its performance record.

    Both writes share one transaction.  Returns the performance row, or
    None when the request was not in an allowed status.
    """
    now = utc_now()
    performance_id = new_id()
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"""
            UPDATE requests SET status = 'performed', updated_at = ?
            WHERE id = ? AND status IN ({_placeholders(allowed_from)})
            """,
            [now, request_id, *allowed_from],
        )
        if cursor.rowcount == 0:
            await db.rollback()
            return None

        await db.execute(
            """
            INSERT INTO performances (
                id, event_id, request_id, song_id, requester_id, co_singer_ids,
                performed_at, video_url
            )
            SELECT ?, event_id, id, song_id, requester_id, co_singer_ids, ?, video_url
            FROM requests WHERE id = ?
            """,
            (performance_id, now, request_id),
        )
        await db.commit()

        cursor = await db.execute(
            "SELECT * FROM performances WHERE id = ?", (performance_id,)
        )
        row = await cursor.fetchone()
        return row_to_dict(row)


async def list_performances(event_id: str) -> List[Dict[str, Any]]:
    async with get_async_connection() as db:
        cursor = await db.execute(
            "SELECT * FROM performances WHERE event_id = ? ORDER BY performed_at ASC",
            (event_id,),
        )
        rows = await cursor.fetchall()
        return [row_to_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Crates
# ---------------------------------------------------------------------------
async def _load_crate(db: aiosqlite.Connection, where: str, value: str) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(f"SELECT * FROM crates WHERE {where} = ?", (value,))
    row = await cursor.fetchone()
    if not row:
        return None
    crate = row_to_dict(row)
    cursor = await db.execute(
        "SELECT song_id FROM crate_songs WHERE crate_id = ? ORDER BY rowid ASC",
        (crate["id"],),
    )
    crate["song_ids"] = [r["song_id"] for r in await cursor.fetchall()]
    return crate


async def get_crate_by_event(event_id: str) -> Optional[Dict[str, Any]]:
    """Return the event's crate with ``song_ids`` in insertion order, or None."""
    async with get_async_connection() as db:
        return await _load_crate(db, "event_id", event_id)


async def get_or_create_crate(event_id: str) -> Dict[str, Any]:
    """Return the event's crate, creating an empty one if absent."""
    now = utc_now()
    async with get_async_connection() as db:
        cursor = await db.execute(
            "INSERT OR IGNORE INTO crates (id, event_id, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (new_id(), event_id, now, now),
        )
        await db.commit()
        if cursor.rowcount > 0:
            logger.info(f"📦 Crate created for event {event_id}")
        crate = await _load_crate(db, "event_id", event_id)
        return crate or {}


async def get_crates_by_ids(crate_ids: Sequence[str]) -> List[Dict[str, Any]]:
    """Fetch several crates (with song ids) in the order requested."""
    out: List[Dict[str, Any]] = []
    async with get_async_connection() as db:
        for crate_id in dict.fromkeys(crate_ids):
            crate = await _load_crate(db, "id", crate_id)
            if crate:
                out.append(crate)
    return out


async def add_crate_songs(crate_id: str, song_ids: Sequence[str]) -> List[str]:
    """
    Add songs to a crate with set semantics.

    Uses ``INSERT OR IGNORE`` against the (crate_id, song_id) UNIQUE index,
    which is the atomic add-if-absent primitive.  Returns the ids that were
    actually inserted.
    """
    now = utc_now()
    added: List[str] = []
    async with get_async_connection() as db:
        for song_id in song_ids:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO crate_songs (crate_id, song_id, added_at) VALUES (?, ?, ?)",
                (crate_id, song_id, now),
            )
            if cursor.rowcount > 0:
                added.append(song_id)
        if added:
            await db.execute(
                "UPDATE crates SET updated_at = ? WHERE id = ?", (now, crate_id)
            )
        await db.commit()
    return added


async def remove_crate_song(crate_id: str, song_id: str) -> bool:
    """Remove a song from a crate. Returns True if it was present."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "DELETE FROM crate_songs WHERE crate_id = ? AND song_id = ?",
            (crate_id, song_id),
        )
        removed = cursor.rowcount > 0
        if removed:
            await db.execute(
                "UPDATE crates SET updated_at = ? WHERE id = ?", (utc_now(), crate_id)
            )
        await db.commit()
        return removed


async def is_song_in_event_crate(event_id: str, song_id: str) -> bool:
    async with get_async_connection() as db:
        cursor = await db.execute(
            """
            SELECT 1 FROM crate_songs cs
            JOIN crates c ON c.id = cs.crate_id
            WHERE c.event_id = ? AND cs.song_id = ?
            """,
            (event_id, song_id),
        )
        return await cursor.fetchone() is not None
