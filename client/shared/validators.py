"""Shared validation helpers for client settings."""

from urllib.parse import urlsplit

HTTP_SCHEMES = frozenset({"http", "https"})
WEBSOCKET_SCHEMES = frozenset({"ws", "wss"})


def parse_base_url(value: str, *, schemes: frozenset[str]) -> str:
    """Validate a base URL and return it without a trailing slash.

    Accepts only the given schemes and requires a host. Query strings and
    fragments are rejected since paths are appended to the base.

    Raises ValueError describing the first problem found.
    """
    stripped = value.strip()
    if not stripped:
        raise ValueError("URL must not be empty")

    parts = urlsplit(stripped)
    if parts.scheme not in schemes:
        allowed = ", ".join(sorted(schemes))
        raise ValueError(f"URL scheme must be one of {allowed}, got {parts.scheme or 'none'!r}")
    if not parts.netloc:
        raise ValueError(f"URL has no host: {stripped!r}")
    if parts.query or parts.fragment:
        raise ValueError(f"Base URL must not carry a query or fragment: {stripped!r}")

    return stripped.rstrip("/")


def websocket_url_from_http(api_url: str) -> str:
    """Derive the websocket base URL that pairs with an HTTP API base URL."""
    parts = urlsplit(api_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    return f"{scheme}://{parts.netloc}{parts.path}".rstrip("/")
