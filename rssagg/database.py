"""Storage of users, feeds and feed follows in SQLite."""

from __future__ import annotations

import hashlib
import secrets
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

__all__ = [
    "NotFoundError",
    "User",
    "Feed",
    "FeedFollow",
    "Queries",
    "connect",
]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    api_key TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS feeds (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    last_fetched_at TEXT
);
CREATE TABLE IF NOT EXISTS feed_follows (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    feed_id TEXT NOT NULL REFERENCES feeds (id) ON DELETE CASCADE
);
"""

_USER_COLUMNS = "id, created_at, updated_at, name, api_key"
_FEED_COLUMNS = "id, created_at, updated_at, name, url, user_id, last_fetched_at"
_FOLLOW_COLUMNS = "id, created_at, updated_at, user_id, feed_id"


class NotFoundError(LookupError):
    """A query that must return one row returned none."""


@dataclass(frozen=True)
class User:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    name: str
    api_key: str


@dataclass(frozen=True)
class Feed:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_id: uuid.UUID
    last_fetched_at: datetime | None = None


@dataclass(frozen=True)
class FeedFollow:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    user_id: uuid.UUID
    feed_id: uuid.UUID


def _store_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.%f") + "+00:00"


def _load_time(value: str | None) -> datetime | None:
    return None if value is None else datetime.fromisoformat(value)


def _user(row: tuple) -> User:
    return User(
        id=uuid.UUID(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        name=row[3],
        api_key=row[4],
    )


def _feed(row: tuple) -> Feed:
    return Feed(
        id=uuid.UUID(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        name=row[3],
        url=row[4],
        user_id=uuid.UUID(row[5]),
        last_fetched_at=_load_time(row[6]),
    )


def _feed_follow(row: tuple) -> FeedFollow:
    return FeedFollow(
        id=uuid.UUID(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        user_id=uuid.UUID(row[3]),
        feed_id=uuid.UUID(row[4]),
    )


class Queries:
    """The application's queries over one SQLite connection, safe across threads."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._lock = threading.RLock()
        self._in_transaction = False
        with self._lock:
            self._conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Queries:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def create_schema(self) -> None:
        """Create the tables if they do not exist yet."""
        with self._lock:
            self._conn.executescript(_SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[Queries]:
        """Run the enclosed queries as one unit, rolled back if an exception escapes."""
        with self._lock:
            if self._in_transaction:
                yield self
                return
            self._in_transaction = True
            try:
                yield self
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                self._in_transaction = False

    def _fetch(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self.transaction():
            return self._conn.execute(sql, params).fetchall()

    def _fetch_one(self, sql: str, params: tuple, what: str) -> tuple:
        rows = self._fetch(sql, params)
        if not rows:
            raise NotFoundError(f"no {what} found")
        return rows[0]

    def create_user(
        self, id: uuid.UUID, created_at: datetime, updated_at: datetime, name: str
    ) -> User:
        """Insert a user with a freshly generated API key and return it."""
        api_key = hashlib.sha256(secrets.token_bytes(32)).hexdigest()
        with self.transaction():
            self._fetch(
                "INSERT INTO users (id, created_at, updated_at, name, api_key) "
                "VALUES (?, ?, ?, ?, ?)",
                (str(id), _store_time(created_at), _store_time(updated_at), name, api_key),
            )
            row = self._fetch_one(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (str(id),), "user"
            )
        return _user(row)

    def get_user_by_api_key(self, api_key: str) -> User:
        row = self._fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE api_key = ?", (api_key,), "user"
        )
        return _user(row)

    def create_feed(
        self,
        id: uuid.UUID,
        created_at: datetime,
        updated_at: datetime,
        name: str,
        url: str,
        user_id: uuid.UUID,
    ) -> Feed:
        with self.transaction():
            self._fetch(
                "INSERT INTO feeds (id, created_at, updated_at, name, url, user_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(id),
                    _store_time(created_at),
                    _store_time(updated_at),
                    name,
                    url,
                    str(user_id),
                ),
            )
            row = self._fetch_one(
                f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(id),), "feed"
            )
        return _feed(row)

    def get_feeds(self) -> list[Feed]:
        return [_feed(row) for row in self._fetch(f"SELECT {_FEED_COLUMNS} FROM feeds")]

    def get_next_feeds_to_fetch(self, limit: int) -> list[Feed]:
        """Return up to ``limit`` feeds, never-fetched first, then oldest fetch first."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        rows = self._fetch(
            f"SELECT {_FEED_COLUMNS} FROM feeds "
            "ORDER BY last_fetched_at IS NOT NULL, last_fetched_at ASC "
            "LIMIT ?",
            (limit,),
        )
        return [_feed(row) for row in rows]

    def mark_feed_fetched(self, id: uuid.UUID) -> Feed:
        """Stamp the feed as fetched now and return it."""
        now = _store_time(datetime.now(timezone.utc))
        with self.transaction():
            self._fetch(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (now, now, str(id)),
            )
            row = self._fetch_one(
                f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(id),), "feed"
            )
        return _feed(row)

    def create_feed_follow(
        self,
        id: uuid.UUID,
        created_at: datetime,
        updated_at: datetime,
        user_id: uuid.UUID,
        feed_id: uuid.UUID,
    ) -> FeedFollow:
        with self.transaction():
            self._fetch(
                "INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    str(id),
                    _store_time(created_at),
                    _store_time(updated_at),
                    str(user_id),
                    str(feed_id),
                ),
            )
            row = self._fetch_one(
                f"SELECT {_FOLLOW_COLUMNS} FROM feed_follows WHERE id = ?",
                (str(id),),
                "feed follow",
            )
        return _feed_follow(row)

    def delete_feed_follow(self, id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete the follow if it belongs to the user; otherwise do nothing."""
        self._fetch(
            "DELETE FROM feed_follows WHERE id = ? AND user_id = ?",
            (str(id), str(user_id)),
        )

    def get_feed_follows_for_user(self, user_id: uuid.UUID) -> list[FeedFollow]:
        rows = self._fetch(
            f"SELECT {_FOLLOW_COLUMNS} FROM feed_follows WHERE user_id = ?",
            (str(user_id),),
        )
        return [_feed_follow(row) for row in rows]


def connect(url: str) -> Queries:
    """Open a database from a ``sqlite://`` URL, a file path or ``:memory:``."""
    if url.startswith("sqlite://"):
        path = url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        path = path or ":memory:"
    elif "://" in url:
        raise ValueError(f"unsupported database URL: {url}")
    else:
        path = url
    if not path:
        raise ValueError("database URL is empty")
    return Queries(sqlite3.connect(path, check_same_thread=False))