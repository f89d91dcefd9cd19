"""Minimal asyncio HTTP/1.1 client used by the update pipeline.

One request per connection, optional TLS without certificate validation,
streamed response decoding with download progress for binary payloads.
"""

from serverwarden.http.client import HttpClient
from serverwarden.http.models import HttpMethod, HttpRequest, HttpResponse
from serverwarden.http.progress import DownloadProgress

__all__ = [
    "DownloadProgress",
    "HttpClient",
    "HttpMethod",
    "HttpRequest",
    "HttpResponse",
]
