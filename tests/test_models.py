import json
import uuid
from datetime import datetime, timedelta, timezone

from rssagg.database import Feed, FeedFollow, User
from rssagg.models import (
    serialize_feed,
    serialize_feed_follow,
    serialize_feed_follows,
    serialize_feeds,
    serialize_user,
)

MOMENT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _feed(name="news"):
    return Feed(
        id=uuid.uuid4(),
        created_at=MOMENT,
        updated_at=MOMENT,
        name=name,
        url="https://example.com/rss",
        user_id=uuid.uuid4(),
        last_fetched_at=MOMENT,
    )


def _follow():
    return FeedFollow(uuid.uuid4(), MOMENT, MOMENT, uuid.uuid4(), uuid.uuid4())


def test_serialize_user():
    user = User(uuid.uuid4(), MOMENT, MOMENT, "alice", "placeholder")
    data = serialize_user(user)
    assert data == {
        "id": str(user.id),
        "created_at": "2024-01-02T03:04:05Z",
        "updated_at": "2024-01-02T03:04:05Z",
        "name": "alice",
        "api_key": "placeholder",
    }


def test_fractional_seconds_trimmed():
    moment = MOMENT.replace(microsecond=500000)
    user = User(uuid.uuid4(), moment, moment, "alice", "placeholder")
    assert serialize_user(user)["created_at"] == "2024-01-02T03:04:05.5Z"


def test_non_utc_offset_kept():
    zone = timezone(timedelta(hours=5, minutes=30))
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=zone)
    user = User(uuid.uuid4(), moment, moment, "alice", "placeholder")
    assert serialize_user(user)["created_at"] == "2024-01-02T03:04:05+05:30"


def test_serialize_feed_omits_last_fetched():
    feed = _feed()
    data = serialize_feed(feed)
    assert set(data) == {"id", "created_at", "updated_at", "name", "url", "user_id"}
    assert data["user_id"] == str(feed.user_id)
    assert data["url"] == feed.url


def test_serialize_feeds_keeps_order():
    feeds = [_feed("a"), _feed("b"), _feed("c")]
    assert [item["name"] for item in serialize_feeds(feeds)] == ["a", "b", "c"]


def test_serialize_empty_lists():
    assert serialize_feeds([]) == []
    assert serialize_feed_follows([]) == []


def test_serialize_feed_follow():
    follow = _follow()
    data = serialize_feed_follow(follow)
    assert data["id"] == str(follow.id)
    assert data["user_id"] == str(follow.user_id)
    assert data["feed_id"] == str(follow.feed_id)
    assert data["created_at"] == data["updated_at"]


def test_serialized_follows_are_json():
    follows = [_follow(), _follow()]
    encoded = json.dumps(serialize_feed_follows(follows))
    decoded = json.loads(encoded)
    assert [uuid.UUID(item["id"]) for item in decoded] == [f.id for f in follows]