"""Asyncio HTTP/1.1 client over raw streams.

Each call opens its own connection, upgrades it to TLS for ``https``
(certificates are not verified), writes exactly one request and decodes
the streamed response until its framing says it is complete. There is no
connection reuse, no redirect handling and no retry; callers decide what
to do with a failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import ssl
from collections.abc import Mapping
from typing import Any

from serverwarden.constants import PROGRESS_INTERVAL_SECONDS, READ_CHUNK_SIZE
from serverwarden.errors import HttpConnectionError, HttpProtocolError, ServerWardenError
from serverwarden.http.decoder import ResponseDecoder
from serverwarden.http.models import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    ExchangeState,
    HttpMethod,
    HttpRequest,
    HttpResponse,
    is_binary_content_type,
)
from serverwarden.http.progress import ProgressCallback, ProgressTicker, log_progress
from serverwarden.http.url import Target, parse_url, to_querystring, with_query
from serverwarden.logging import get_logger

log = get_logger("serverwarden.http.client")


def insecure_ssl_context() -> ssl.SSLContext:
    """Client TLS context that accepts any server certificate."""
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def encode_body(body: Mapping[str, Any] | None, headers: Mapping[str, str] | None) -> bytes:
    """Serialise a mapping body according to the request content type.

    JSON is the default; any other content type is sent form-encoded.
    """
    if not body:
        return b""
    content_type = JSON_CONTENT_TYPE
    for name, value in (headers or {}).items():
        if name.lower() == "content-type":
            content_type = value
    if content_type.split(";", 1)[0].strip().lower() == JSON_CONTENT_TYPE:
        return json.dumps(body).encode("utf-8")
    return to_querystring(body).encode("utf-8")


class HttpClient:
    """Performs single request/response exchanges.

    Args:
        progress_interval: Seconds between progress notifications for
            binary downloads.
        on_progress: Receives :class:`DownloadProgress` snapshots; defaults
            to logging them.
        timeout: Optional deadline in seconds for a whole exchange. ``None``
            disables it, so a stalled peer blocks the call indefinitely.
    """

    def __init__(
        self,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> None:
        self._progress_interval = progress_interval
        self._on_progress = on_progress or log_progress
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def get(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        return await self.request(with_query(url, params), HttpMethod.GET, headers=headers)

    async def post(
        self,
        url: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        return await self.request(url, HttpMethod.POST, encode_body(body, headers), headers)

    async def put(
        self,
        url: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        return await self.request(url, HttpMethod.PUT, encode_body(body, headers), headers)

    async def delete(
        self,
        url: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        return await self.request(url, HttpMethod.DELETE, encode_body(body, headers), headers)

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def request(
        self,
        url: str,
        method: HttpMethod = HttpMethod.GET,
        body: bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        """Perform one exchange and return a validated response.

        Raises:
            HttpConnectionError: connect, TLS, socket or deadline failure.
            HttpProtocolError: malformed or truncated response, or a
                response without status code or body.
        """
        target = parse_url(url)
        request = HttpRequest(method=method, target=target, headers=dict(headers or {}), body=body)

        try:
            async with asyncio.timeout(self._timeout):
                response = await self._exchange(url, request)
        except TimeoutError as exc:
            log.warning("http_request_timeout", url=url, timeout=self._timeout)
            raise HttpConnectionError(f"Request to {url} timed out after {self._timeout}s") from exc
        except ServerWardenError as exc:
            log.debug("http_state", url=url, state=ExchangeState.ERROR, error=str(exc))
            raise

        response.validate()
        return response

    async def _exchange(self, url: str, request: HttpRequest) -> HttpResponse:
        target = request.target
        writer: asyncio.StreamWriter | None = None
        ticker: ProgressTicker | None = None
        completed = False
        try:
            reader, writer = await self._connect(url, target)

            log.debug("http_state", url=url, state=ExchangeState.SENDING_REQUEST)
            try:
                writer.write(request.encode())
                await writer.drain()
            except (OSError, ssl.SSLError) as exc:
                raise HttpConnectionError(f"Failed to send request to {url}: {exc}") from exc

            log.debug("http_state", url=url, state=ExchangeState.AWAITING_HEADERS)
            decoder = ResponseDecoder(method=request.method)
            while not decoder.complete:
                try:
                    data = await reader.read(READ_CHUNK_SIZE)
                except (OSError, ssl.SSLError) as exc:
                    raise HttpConnectionError(f"Connection to {url} failed: {exc}") from exc
                if data:
                    had_headers = decoder.headers_complete
                    decoder.feed(data)
                    if decoder.headers_complete and not had_headers:
                        log.debug(
                            "http_state",
                            url=url,
                            state=ExchangeState.STREAMING_BODY,
                            status=decoder.status_code,
                        )
                        ticker = self._start_progress(url, decoder)
                else:
                    decoder.feed_eof()

            completed = True
            log.debug("http_state", url=url, state=ExchangeState.COMPLETE, bytes=decoder.received)
            return HttpResponse(
                url=url,
                status_code=decoder.status_code,
                reason=decoder.reason,
                headers=decoder.headers,
                body=decoder.body,
            )
        finally:
            if ticker is not None:
                await ticker.stop(completed=completed)
            if writer is not None:
                writer.close()
                # The peer may already be gone; teardown errors don't change the result
                with contextlib.suppress(OSError, ssl.SSLError):
                    await writer.wait_closed()

    async def _connect(
        self, url: str, target: Target
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        log.debug("http_state", url=url, state=ExchangeState.CONNECTING, host=target.host)
        try:
            reader, writer = await asyncio.open_connection(target.host, target.port)
        except OSError as exc:
            raise HttpConnectionError(
                f"Failed to connect to {target.host}:{target.port}: {exc}"
            ) from exc

        if target.is_tls:
            log.debug("http_state", url=url, state=ExchangeState.TLS_HANDSHAKE)
            try:
                await writer.start_tls(insecure_ssl_context(), server_hostname=target.host)
            except (OSError, ssl.SSLError) as exc:
                writer.close()
                raise HttpConnectionError(
                    f"TLS handshake with {target.host} failed: {exc}"
                ) from exc
        return reader, writer

    def _start_progress(self, url: str, decoder: ResponseDecoder) -> ProgressTicker | None:
        if not is_binary_content_type(decoder.headers.get("content-type", "")):
            return None
        log.info("http_download_started", url=url, total=decoder.content_length)
        ticker = ProgressTicker(
            url=url,
            total=decoder.content_length,
            sample=lambda: decoder.received,
            callback=self._on_progress,
            interval=self._progress_interval,
        )
        ticker.start()
        return ticker
