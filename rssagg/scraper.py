"""Periodic collection of RSS feeds."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
import xml.etree.ElementTree as ElementTree
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta

from rssagg.database import Feed, NotFoundError, Queries

__all__ = [
    "RSSItem",
    "RSSFeed",
    "parse_feed",
    "url_to_feed",
    "scrape_feed",
    "scrape_once",
    "start_scraping",
]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass
class RSSItem:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RSSFeed:
    title: str = ""
    link: str = ""
    description: str = ""
    language: str = ""
    items: list[RSSItem] = field(default_factory=list)


_CHANNEL_FIELDS = {
    "title": "title",
    "link": "link",
    "description": "description",
    "language": "language",
}
_ITEM_FIELDS = {
    "title": "title",
    "link": "link",
    "description": "description",
    "pubDate": "pub_date",
}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def _direct_text(element: ElementTree.Element) -> str:
    """Character data directly inside ``element``, skipping nested elements."""
    return (element.text or "") + "".join(child.tail or "" for child in element)


def _parse_item(element: ElementTree.Element) -> RSSItem:
    item = RSSItem()
    for child in element:
        attribute = _ITEM_FIELDS.get(_local_name(child.tag))
        if attribute:
            setattr(item, attribute, _direct_text(child))
    return item


def parse_feed(data: bytes | str) -> RSSFeed:
    """Parse an RSS document; raise ``ValueError`` if it is not well-formed XML.

    Elements are matched by local name; a repeated field keeps its last value and
    items from every channel are collected in document order.
    """
    try:
        root = ElementTree.fromstring(data)
    except ElementTree.ParseError as err:
        raise ValueError(f"invalid feed document: {err}") from err
    feed = RSSFeed()
    for channel in root:
        if _local_name(channel.tag) != "channel":
            continue
        for child in channel:
            name = _local_name(child.tag)
            if name == "item":
                feed.items.append(_parse_item(child))
            elif name in _CHANNEL_FIELDS:
                setattr(feed, _CHANNEL_FIELDS[name], _direct_text(child))
    return feed


def url_to_feed(url: str, timeout: float = DEFAULT_TIMEOUT) -> RSSFeed:
    """Download ``url`` and parse it as a feed, whatever the HTTP status."""
    scheme = urllib.parse.urlsplit(url).scheme.lower()
    if scheme not in ("http", "https"):
        raise ValueError(f"unsupported protocol scheme {scheme!r}")
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            data = response.read()
    except urllib.error.HTTPError as err:
        try:
            data = err.read()
        finally:
            err.close()
    return parse_feed(data)


def scrape_feed(queries: Queries, feed: Feed) -> RSSFeed | None:
    """Mark ``feed`` fetched, then collect it; return the parsed feed, or None on failure."""
    try:
        queries.mark_feed_fetched(feed.id)
    except (NotFoundError, sqlite3.Error) as err:
        logger.warning("Couldn't mark feed %s fetched: %s", feed.name, err)
        return None
    try:
        rss_feed = url_to_feed(feed.url)
    except (OSError, ValueError) as err:
        logger.warning("Couldn't collect feed %s: %s", feed.name, err)
        return None
    for item in rss_feed.items:
        logger.info("Found post %s", item.title)
    logger.info("Feed %s collected, %d posts found", feed.name, len(rss_feed.items))
    return rss_feed


def scrape_once(queries: Queries, concurrency: int) -> list[tuple[Feed, RSSFeed | None]]:
    """Collect up to ``concurrency`` of the feeds most in need of it, all at once."""
    feeds = queries.get_next_feeds_to_fetch(concurrency)
    logger.info("Found %d feeds to fetch!", len(feeds))
    if not feeds:
        return []
    with ThreadPoolExecutor(max_workers=len(feeds)) as pool:
        results = list(pool.map(lambda feed: scrape_feed(queries, feed), feeds))
    return list(zip(feeds, results))


def start_scraping(
    queries: Queries,
    concurrency: int,
    interval: float | timedelta,
    stop_event: threading.Event | None = None,
) -> None:
    """Collect feeds at once and then every ``interval`` until ``stop_event`` is set."""
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError("interval must be positive")
    stop = stop_event if stop_event is not None else threading.Event()
    logger.info("Collecting feeds every %ss on %d threads...", seconds, concurrency)
    next_tick = time.monotonic()
    while True:
        try:
            scrape_once(queries, concurrency)
        except (sqlite3.Error, ValueError) as err:
            logger.warning("Couldn't get next feeds to fetch: %s", err)
        next_tick += seconds
        now = time.monotonic()
        if next_tick < now:
            next_tick = now
        if stop.wait(next_tick - now):
            return