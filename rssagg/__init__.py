"""RSS feed aggregator: a JSON HTTP API over SQLite and a background feed scraper."""

__version__ = "0.1.0"