"""The HTTP API: users, feeds and feed follows under ``/v1``."""

from __future__ import annotations

import argparse
import functools
import json
import logging
import os
import sqlite3
import sys
import threading
import uuid
from datetime import datetime, timezone

from dotenv import load_dotenv
from flask import Blueprint, Flask, Response, current_app, request

from rssagg.auth import AuthError, get_api_key
from rssagg.database import NotFoundError, Queries, connect
from rssagg.models import (
    serialize_feed,
    serialize_feed_follow,
    serialize_feed_follows,
    serialize_feeds,
    serialize_user,
)
from rssagg.responses import error_response, json_response
from rssagg.scraper import start_scraping

__all__ = ["create_app", "main"]

logger = logging.getLogger(__name__)

COLLECTION_CONCURRENCY = 10
COLLECTION_INTERVAL = 60.0

_QUERIES_KEY = "rssagg.queries"
_DB_ERRORS = (sqlite3.Error, NotFoundError)

_ALLOWED_ORIGIN_PREFIXES = ("https://", "http://")
_ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "OPTIONS"})
_EXPOSED_HEADERS = "Link"
_MAX_AGE = 300


class _DecodeError(ValueError):
    pass


def _reject_constant(name: str):
    raise ValueError(f"invalid JSON constant {name}")


_JSON = json.JSONDecoder(parse_constant=_reject_constant)
_ZERO = {str: "", uuid.UUID: uuid.UUID(int=0)}


def _decode_params(spec: dict[str, type]) -> dict:
    """Decode the first JSON value of the request body into the fields of ``spec``.

    Keys match field names without regard to case; unknown keys and nulls are
    ignored, and missing fields keep their zero value.
    """
    text = request.get_data().decode("utf-8", errors="replace").lstrip(" \t\r\n")
    try:
        value, _ = _JSON.raw_decode(text)
    except ValueError as err:
        raise _DecodeError(str(err)) from err
    params = {name: _ZERO[kind] for name, kind in spec.items()}
    if value is None:
        return params
    if not isinstance(value, dict):
        raise _DecodeError("expected a JSON object")
    lookup = {name.lower(): name for name in spec}
    for key, item in value.items():
        name = lookup.get(key.lower())
        if name is None or item is None:
            continue
        if not isinstance(item, str):
            raise _DecodeError(f"field {key!r} must be a string")
        if spec[name] is uuid.UUID:
            try:
                params[name] = uuid.UUID(item)
            except ValueError as err:
                raise _DecodeError(f"field {key!r} is not a UUID") from err
        else:
            params[name] = item
    return params


def _queries() -> Queries:
    return current_app.extensions[_QUERIES_KEY]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _authed(handler):
    """Resolve the caller from the API key and pass the user to ``handler``."""

    @functools.wraps(handler)
    def wrapper(*args, **kwargs):
        try:
            api_key = get_api_key(request.headers)
        except AuthError:
            return error_response(401, "Couldn't find api key")
        try:
            user = _queries().get_user_by_api_key(api_key)
        except _DB_ERRORS:
            return error_response(404, "Couldn't get user")
        return handler(user, *args, **kwargs)

    return wrapper


v1 = Blueprint("v1", __name__, url_prefix="/v1")


@v1.post("/users")
def create_user():
    try:
        params = _decode_params({"name": str})
    except _DecodeError:
        return error_response(500, "Couldn't decode parameters")
    now = _now()
    try:
        user = _queries().create_user(uuid.uuid4(), now, now, params["name"])
    except _DB_ERRORS:
        return error_response(500, "Couldn't create user")
    return json_response(200, serialize_user(user))


@v1.get("/users")
@_authed
def get_user(user):
    return json_response(200, serialize_user(user))


@v1.post("/feeds")
@_authed
def create_feed(user):
    try:
        params = _decode_params({"name": str, "url": str})
    except _DecodeError:
        return error_response(500, "Couldn't decode parameters")
    now = _now()
    try:
        feed = _queries().create_feed(
            uuid.uuid4(), now, now, params["name"], params["url"], user.id
        )
    except _DB_ERRORS:
        return error_response(500, "Couldn't create feed")
    return json_response(200, serialize_feed(feed))


@v1.get("/feeds")
def get_feeds():
    try:
        feeds = _queries().get_feeds()
    except _DB_ERRORS:
        return error_response(500, "couldn't get feeds")
    return json_response(200, serialize_feeds(feeds))


@v1.get("/feed_follows")
@_authed
def get_feed_follows(user):
    try:
        follows = _queries().get_feed_follows_for_user(user.id)
    except _DB_ERRORS:
        return error_response(500, "Couldn't create feed follow")
    return json_response(200, serialize_feed_follows(follows))


@v1.post("/feed_follows")
@_authed
def create_feed_follow(user):
    try:
        params = _decode_params({"FeedID": uuid.UUID})
    except _DecodeError:
        return error_response(500, "Couldn't decode parameters")
    now = _now()
    try:
        follow = _queries().create_feed_follow(
            uuid.uuid4(), now, now, user.id, params["FeedID"]
        )
    except _DB_ERRORS:
        return error_response(500, "Couldn't create feed follow")
    return json_response(200, serialize_feed_follow(follow))


@v1.delete("/feed_follows/<feed_follow_id>")
@_authed
def delete_feed_follow(user, feed_follow_id):
    try:
        follow_id = uuid.UUID(feed_follow_id)
    except ValueError:
        return error_response(400, "Invalid feed follow ID")
    try:
        _queries().delete_feed_follow(follow_id, user.id)
    except _DB_ERRORS:
        return error_response(500, "Couldn't create feed follow")
    return json_response(200, {})


@v1.get("/healthz")
def readiness():
    return json_response(200, {})


@v1.get("/error")
def failure():
    return error_response(400, "something went wrong")


def _origin_allowed(origin: str) -> bool:
    origin = origin.lower()
    return any(
        origin.startswith(prefix) and len(origin) >= len(prefix)
        for prefix in _ALLOWED_ORIGIN_PREFIXES
    )


def _canonical_header(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("-"))


def _is_preflight() -> bool:
    return request.method == "OPTIONS" and bool(
        request.headers.get("Access-Control-Request-Method")
    )


def _cors_preflight():
    if not _is_preflight():
        return None
    response = Response(status=200)
    for name in ("Origin", "Access-Control-Request-Method", "Access-Control-Request-Headers"):
        response.headers.add("Vary", name)
    origin = request.headers.get("Origin", "")
    method = request.headers.get("Access-Control-Request-Method", "").upper()
    if not origin or not _origin_allowed(origin) or method not in _ALLOWED_METHODS:
        return response
    requested = [
        _canonical_header(part.strip())
        for part in request.headers.get("Access-Control-Request-Headers", "").split(",")
        if part.strip()
    ]
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Methods"] = method
    if requested:
        response.headers["Access-Control-Allow-Headers"] = ", ".join(requested)
    response.headers["Access-Control-Max-Age"] = str(_MAX_AGE)
    return response


def _cors_actual(response: Response) -> Response:
    if _is_preflight():
        return response
    response.headers.add("Vary", "Origin")
    origin = request.headers.get("Origin", "")
    if origin and _origin_allowed(origin) and request.method.upper() in _ALLOWED_METHODS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Expose-Headers"] = _EXPOSED_HEADERS
    return response


def create_app(queries: Queries) -> Flask:
    """Build the web application over ``queries``."""
    app = Flask(__name__)
    app.extensions[_QUERIES_KEY] = queries
    app.before_request(_cors_preflight)
    app.after_request(_cors_actual)
    app.register_blueprint(v1)
    return app


def main(argv: list[str] | None = None) -> None:
    """Serve the API on ``$PORT`` and collect feeds in the background."""
    parser = argparse.ArgumentParser(
        prog="rssagg",
        description="RSS aggregator API; configured by PORT and DATABASE_URL.",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    load_dotenv(".env")

    port = os.environ.get("PORT", "")
    if not port:
        sys.exit("PORT environment variable is not set")
    db_url = os.environ.get("DATABASE_URL", "")
    if not db_url:
        sys.exit("DATABASE_URL environment variable is not set")
    try:
        port_number = int(port)
    except ValueError:
        sys.exit(f"invalid PORT: {port}")
    try:
        queries = connect(db_url)
        queries.create_schema()
    except (ValueError, sqlite3.Error) as err:
        sys.exit(str(err))

    app = create_app(queries)
    threading.Thread(
        target=start_scraping,
        args=(queries, COLLECTION_CONCURRENCY, COLLECTION_INTERVAL),
        daemon=True,
    ).start()

    logger.info("Serving on port: %s", port)
    try:
        app.run(host="0.0.0.0", port=port_number, threaded=True)
    except OSError as err:
        sys.exit(str(err))