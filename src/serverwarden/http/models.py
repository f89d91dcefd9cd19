"""Request and response models for the HTTP client."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from serverwarden.constants import BINARY_CONTENT_TYPES
from serverwarden.errors import HttpProtocolError, HttpStatusError
from serverwarden.http.url import Target

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HttpMethod(StrEnum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class ExchangeState(StrEnum):
    """Lifecycle of a single request/response exchange."""

    CONNECTING = "connecting"
    TLS_HANDSHAKE = "tls_handshake"
    SENDING_REQUEST = "sending_request"
    AWAITING_HEADERS = "awaiting_headers"
    STREAMING_BODY = "streaming_body"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class HttpRequest:
    """One HTTP/1.1 request, serialised in a single write."""

    method: HttpMethod
    target: Target
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def build_headers(self) -> dict[str, str]:
        """Default headers overlaid with the caller's (case-insensitive)."""
        merged: dict[str, str] = {
            "Host": self.target.host_header,
            "Accept-Encoding": "gzip",
            "Content-Type": JSON_CONTENT_TYPE,
            "Content-Length": str(len(self.body)),
            "Connection": "close",
        }
        canonical = {name.lower(): name for name in merged}
        for name, value in self.headers.items():
            existing = canonical.get(name.lower())
            if existing is not None and existing != name:
                del merged[existing]
            merged[name] = value
            canonical[name.lower()] = name
        return merged

    def encode(self) -> bytes:
        lines = [f"{self.method.value} {self.target.request_target} HTTP/1.1"]
        lines.extend(f"{name}: {value}" for name, value in self.build_headers().items())
        head = "\r\n".join(lines) + "\r\n\r\n"
        try:
            return head.encode("latin-1") + self.body
        except UnicodeEncodeError as exc:
            raise HttpProtocolError(f"Request head is not latin-1 encodable: {exc}") from exc


@dataclass
class HttpResponse:
    """A fully buffered response."""

    url: str
    status_code: int | None = None
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)  # lower-cased names
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        """Media type without parameters, lower-cased."""
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @property
    def is_binary(self) -> bool:
        return is_binary_content_type(self.headers.get("content-type", ""))

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    def validate(self) -> None:
        """Reject responses without a status code or without a body."""
        if self.status_code is None:
            raise HttpProtocolError(f"No status code received from {self.url}")
        if not self.body:
            raise HttpProtocolError(f"Empty response body from {self.url}")

    def raise_for_status(self) -> None:
        if not self.ok:
            raise HttpStatusError(self.status_code or 0, self.url)


def is_binary_content_type(value: str) -> bool:
    media_type = value.split(";", 1)[0].strip().lower()
    return media_type in BINARY_CONTENT_TYPES
