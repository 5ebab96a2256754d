# rssagg

A small RSS aggregator. It serves a JSON HTTP API for registering users,
adding feeds and following them. In the background it collects the feeds
that have waited longest since their last fetch. Data is kept in SQLite.

## Installing

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Running the server

The server reads its settings from the environment. If there is a `.env`
file in the working directory, it is loaded first.

- `PORT`: the port to listen on (required, an integer).
- `DATABASE_URL`: the SQLite database (required). It may be a file path,
  `:memory:`, or a `sqlite://` URL such as `sqlite:///rssagg.db`. A URL with
  any other scheme is rejected.

```
PORT=8080 DATABASE_URL=rssagg.db rssagg
```

The tables are created on start-up if they do not exist yet. If either
variable is missing or invalid, the server stops with an error message.

While the server runs, a background scraper runs once at start and then once
a minute. Each run takes up to ten feeds and collects them in parallel.
Feeds that have never been fetched come first, then the ones fetched longest
ago. Each feed is stamped as fetched before it is downloaded. The scraper
logs every post title it finds.

## API

All routes live under `/v1`. Response bodies are JSON. Errors come back as
`{"error": "<message>"}`.

Routes marked *auth* need this header:

```
Authorization: ApiKey placeholder
```

Here `placeholder` stands for the `api_key` returned when the user was
created. A missing or malformed header gives `401`. A key that matches no
user gives `404`.

| Method | Path                            | Auth | Body                          |
|--------|---------------------------------|------|-------------------------------|
| POST   | `/v1/users`                     |      | `{"name": ...}`               |
| GET    | `/v1/users`                     | yes  |                               |
| POST   | `/v1/feeds`                     | yes  | `{"name": ..., "url": ...}`   |
| GET    | `/v1/feeds`                     |      |                               |
| GET    | `/v1/feed_follows`              | yes  |                               |
| POST   | `/v1/feed_follows`              | yes  | `{"feedid": ...}`             |
| DELETE | `/v1/feed_follows/<follow id>`  | yes  |                               |
| GET    | `/v1/healthz`                   |      |                               |
| GET    | `/v1/error`                     |      |                               |

Body keys are matched without regard to case, so `FeedID` and `feedid` both
work. Unknown keys are ignored. A field that is missing is left empty. A body
that cannot be decoded gives `500` with `Couldn't decode parameters`.

User, feed and follow objects carry `id`, `created_at` and `updated_at`, with
times in RFC 3339 UTC. Users also carry `name` and `api_key`. Feeds also
carry `name`, `url` and `user_id`. Follows also carry `user_id` and
`feed_id`.

Deleting a follow with an id that is not a UUID gives `400`. A follow that
does not belong to the caller is left alone, and the reply is still `{}`.

`/v1/healthz` answers `200` with `{}`. `/v1/error` always answers `400` with
`something went wrong`. Cross-origin requests are allowed from any `http` or
`https` origin, including preflight requests.

## Using it as a library

```python
from rssagg.database import connect
from rssagg.app import create_app

queries = connect("rssagg.db")
queries.create_schema()
app = create_app(queries)
```

- `rssagg.database.Queries` runs every query. It is safe to share across
  threads, and `transaction()` groups several calls into one unit.
- `rssagg.auth.get_api_key` pulls the key out of a header mapping.
- `rssagg.scraper.parse_feed` turns RSS XML into an `RSSFeed`.
- `rssagg.scraper.url_to_feed` downloads a feed and parses it.
- `rssagg.scraper.scrape_once` runs a single collection pass over the
  database.
- `rssagg.scraper.start_scraping` repeats collection passes until a
  `threading.Event` is set.

## What it does not do

- Storage is SQLite only. No other database server is supported.
- Collected posts are only logged. They are not stored, and no route serves
  them.
- The server is Flask's built-in server, started by the `rssagg` command.