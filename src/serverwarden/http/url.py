"""URL parsing and query-string encoding."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode, urlsplit

from serverwarden.constants import HTTP_PORT, HTTPS_PORT
from serverwarden.errors import HttpProtocolError

_SUPPORTED_SCHEMES = ("http", "https")

# Reserved and already-escaped characters pass through; anything else is %-encoded
_TARGET_SAFE = "/?&=%:@!$'()*+,;~"


@dataclass(frozen=True)
class Target:
    """Where and what to request: connection endpoint plus request target."""

    scheme: str
    host: str
    port: int
    path: str
    query: str = ""

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"

    @property
    def request_target(self) -> str:
        """Origin-form target written on the request line."""
        path = self.path or "/"
        return f"{path}?{self.query}" if self.query else path

    @property
    def host_header(self) -> str:
        default_port = HTTPS_PORT if self.is_tls else HTTP_PORT
        host = f"[{self.host}]" if ":" in self.host else self.host
        return host if self.port == default_port else f"{host}:{self.port}"


def parse_url(url: str) -> Target:
    """Split *url* into a :class:`Target`.

    ``https`` always connects to port 443. ``http`` honours an explicit
    port and falls back to 80.
    """
    try:
        parts = urlsplit(url.strip())
        explicit_port = parts.port
    except ValueError as exc:
        raise HttpProtocolError(f"Invalid URL {url!r}: {exc}") from exc

    scheme = parts.scheme.lower()
    if scheme not in _SUPPORTED_SCHEMES:
        raise HttpProtocolError(f"Unsupported URL scheme {parts.scheme!r} in {url!r}")
    if not parts.hostname:
        raise HttpProtocolError(f"URL has no host: {url!r}")

    if scheme == "https":
        port = HTTPS_PORT
    else:
        port = explicit_port or HTTP_PORT

    return Target(
        scheme=scheme,
        host=parts.hostname,
        port=port,
        path=quote(parts.path or "/", safe=_TARGET_SAFE),
        query=quote(parts.query, safe=_TARGET_SAFE),
    )


def to_querystring(params: Mapping[str, Any]) -> str:
    """Form-encode *params* (``a=1&b=x+y``)."""
    return urlencode({key: str(value) for key, value in params.items()})


def with_query(url: str, params: Mapping[str, Any] | None) -> str:
    """Append *params* to *url* as a query string."""
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{to_querystring(params)}"
