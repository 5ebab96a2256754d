"""Extraction of API keys from request headers."""

from collections.abc import Mapping

__all__ = ["AuthError", "NoAuthHeaderError", "get_api_key"]


class AuthError(ValueError):
    """The Authorization header could not be used to identify a caller."""


class NoAuthHeaderError(AuthError):
    """The request carried no Authorization header at all."""

    def __init__(self, message: str = "no authorization header included") -> None:
        super().__init__(message)


def _header(headers: Mapping, name: str) -> str:
    value = headers.get(name)
    if value:
        return value
    wanted = name.lower()
    for key, candidate in headers.items():
        if key.lower() == wanted and candidate:
            return candidate
    return ""


def get_api_key(headers: Mapping) -> str:
    """Return the key from an ``Authorization: ApiKey <key>`` header.

    Header names are matched without regard to case.
    """
    auth_header = _header(headers, "Authorization")
    if not auth_header:
        raise NoAuthHeaderError()
    parts = auth_header.split(" ")
    if len(parts) < 2 or parts[0] != "ApiKey":
        raise AuthError("malformed authorization header")
    return parts[1]