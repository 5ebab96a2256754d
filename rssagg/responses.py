"""Helpers that build JSON HTTP responses."""

from __future__ import annotations

import json
import logging
from typing import Any

from flask import Response

__all__ = ["json_response", "error_response"]

logger = logging.getLogger(__name__)


def json_response(status: int, payload: Any) -> Response:
    """Encode ``payload`` as compact JSON; a payload that cannot be encoded gives a bare 500."""
    try:
        body = json.dumps(payload, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError):
        logger.error("Failed to marshal JSON response: %r", payload)
        return Response(status=500)
    return Response(body, status=status, mimetype="application/json")


def error_response(status: int, message: str) -> Response:
    """Respond with ``{"error": message}``, logging server errors."""
    if status > 499:
        logger.warning("Responding with 5XX error: %s", message)
    return json_response(status, {"error": message})