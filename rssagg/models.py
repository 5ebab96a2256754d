"""JSON-ready views of stored records."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from rssagg.database import Feed, FeedFollow, User

__all__ = [
    "serialize_user",
    "serialize_feed",
    "serialize_feeds",
    "serialize_feed_follow",
    "serialize_feed_follows",
]


def _format_time(moment: datetime) -> str:
    """RFC 3339 with trailing fractional zeros dropped and ``Z`` for UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if not offset:
        return text + "Z"
    seconds = int(offset.total_seconds())
    sign = "+" if seconds >= 0 else "-"
    seconds = abs(seconds)
    return f"{text}{sign}{seconds // 3600:02d}:{seconds % 3600 // 60:02d}"


def serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "created_at": _format_time(user.created_at),
        "updated_at": _format_time(user.updated_at),
        "name": user.name,
        "api_key": user.api_key,
    }


def serialize_feed(feed: Feed) -> dict:
    return {
        "id": str(feed.id),
        "created_at": _format_time(feed.created_at),
        "updated_at": _format_time(feed.updated_at),
        "name": feed.name,
        "url": feed.url,
        "user_id": str(feed.user_id),
    }


def serialize_feeds(feeds: Iterable[Feed]) -> list[dict]:
    return [serialize_feed(feed) for feed in feeds]


def serialize_feed_follow(feed_follow: FeedFollow) -> dict:
    return {
        "id": str(feed_follow.id),
        "created_at": _format_time(feed_follow.created_at),
        "updated_at": _format_time(feed_follow.updated_at),
        "user_id": str(feed_follow.user_id),
        "feed_id": str(feed_follow.feed_id),
    }


def serialize_feed_follows(feed_follows: Iterable[FeedFollow]) -> list[dict]:
    return [serialize_feed_follow(follow) for follow in feed_follows]