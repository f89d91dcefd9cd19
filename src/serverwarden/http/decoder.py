"""Incremental HTTP/1.1 response decoder.

The decoder is fed raw bytes exactly as they arrive from the socket and
never performs I/O itself. Completion is decided by the message framing
(``Content-Length`` exhausted or the terminating zero-length chunk); a
close-delimited body is the only case where end-of-stream completes the
response.
"""

from __future__ import annotations

import zlib
from enum import StrEnum

from serverwarden.errors import HttpProtocolError
from serverwarden.http.models import ExchangeState, HttpMethod

MAX_HEAD_BYTES = 64 * 1024
MAX_CHUNK_LINE_BYTES = 4 * 1024

_NO_BODY_STATUSES = frozenset({204, 304})


class Framing(StrEnum):
    NONE = "none"
    LENGTH = "length"
    CHUNKED = "chunked"
    CLOSE = "close"


class _ChunkState(StrEnum):
    SIZE = "size"
    DATA = "data"
    DATA_END = "data_end"
    TRAILERS = "trailers"


class ResponseDecoder:
    """Parses one response from a byte stream.

    ``received`` counts body bytes as transmitted (before gzip inflation,
    excluding chunk framing) so it can be compared with ``content_length``.
    """

    def __init__(self, method: HttpMethod = HttpMethod.GET) -> None:
        self._method = method
        self._buffer = bytearray()
        self._body = bytearray()
        self._state = ExchangeState.AWAITING_HEADERS
        self._framing: Framing | None = None
        self._chunk_state = _ChunkState.SIZE
        self._remaining = 0
        self._inflater: zlib._Decompress | None = None

        self.status_code: int | None = None
        self.reason = ""
        self.headers: dict[str, str] = {}
        self.content_length: int | None = None
        self.received = 0

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def headers_complete(self) -> bool:
        return self._state is not ExchangeState.AWAITING_HEADERS

    @property
    def complete(self) -> bool:
        return self._state is ExchangeState.COMPLETE

    @property
    def framing(self) -> Framing | None:
        return self._framing

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def feed(self, data: bytes) -> None:
        """Consume the next slice of the stream. Bytes after completion are ignored."""
        if self.complete:
            return
        self._buffer += data
        if self._state is ExchangeState.AWAITING_HEADERS:
            self._parse_head()
        if self._state is ExchangeState.STREAMING_BODY:
            self._parse_body()

    def feed_eof(self) -> None:
        """Signal that the peer closed the connection."""
        if self.complete:
            return
        if self._state is ExchangeState.AWAITING_HEADERS:
            raise HttpProtocolError("Connection closed before response headers were received")
        if self._framing is Framing.CLOSE:
            self._finish()
            return
        expected = f" of {self.content_length}" if self.content_length is not None else ""
        raise HttpProtocolError(
            f"Connection closed prematurely after {self.received}{expected} body bytes"
        )

    # ------------------------------------------------------------------
    # Head
    # ------------------------------------------------------------------

    def _parse_head(self) -> None:
        while self._state is ExchangeState.AWAITING_HEADERS:
            end = self._buffer.find(b"\r\n\r\n")
            if end < 0:
                if len(self._buffer) > MAX_HEAD_BYTES:
                    raise HttpProtocolError("Response headers exceed size limit")
                return
            head = bytes(self._buffer[:end]).decode("latin-1")
            del self._buffer[: end + 4]

            status_line, *header_lines = head.split("\r\n")
            code, reason = _parse_status_line(status_line)
            headers = _parse_header_lines(header_lines)

            # Interim responses (100 Continue and friends) precede the real one
            if 100 <= code < 200 and code != 101:
                continue

            self.status_code = code
            self.reason = reason
            self.headers = headers
            self._start_body()

    def _start_body(self) -> None:
        self._state = ExchangeState.STREAMING_BODY

        if self.headers.get("content-encoding", "").strip().lower() in ("gzip", "x-gzip"):
            self._inflater = zlib.decompressobj(16 + zlib.MAX_WBITS)

        transfer_coding = self.headers.get("transfer-encoding", "").lower()
        if (
            self._method is HttpMethod.HEAD
            or self.status_code in _NO_BODY_STATUSES
            or self.status_code == 101
        ):
            self._framing = Framing.NONE
        elif transfer_coding.split(",")[-1].strip() == "chunked":
            self._framing = Framing.CHUNKED
        elif "content-length" in self.headers:
            self.content_length = _parse_content_length(self.headers["content-length"])
            self._remaining = self.content_length
            self._framing = Framing.LENGTH if self.content_length else Framing.NONE
        else:
            self._framing = Framing.CLOSE

        if self._framing is Framing.NONE:
            self._finish()

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def _parse_body(self) -> None:
        if self._framing is Framing.LENGTH:
            self._take_remaining()
            if self._remaining == 0:
                self._finish()
        elif self._framing is Framing.CLOSE:
            if self._buffer:
                self._emit(bytes(self._buffer))
                self._buffer.clear()
        elif self._framing is Framing.CHUNKED:
            self._parse_chunks()

    def _parse_chunks(self) -> None:
        while not self.complete:
            if self._chunk_state is _ChunkState.SIZE:
                line = self._read_line()
                if line is None:
                    return
                size_field = line.split(b";", 1)[0].strip()
                try:
                    size = int(size_field, 16)
                except ValueError:
                    raise HttpProtocolError(f"Invalid chunk size {size_field!r}") from None
                if size < 0:
                    raise HttpProtocolError(f"Invalid chunk size {size_field!r}")
                if size == 0:
                    self._chunk_state = _ChunkState.TRAILERS
                else:
                    self._remaining = size
                    self._chunk_state = _ChunkState.DATA

            elif self._chunk_state is _ChunkState.DATA:
                self._take_remaining()
                if self._remaining:
                    return
                self._chunk_state = _ChunkState.DATA_END

            elif self._chunk_state is _ChunkState.DATA_END:
                if len(self._buffer) < 2:
                    return
                if self._buffer[:2] != b"\r\n":
                    raise HttpProtocolError("Chunk data not terminated by CRLF")
                del self._buffer[:2]
                self._chunk_state = _ChunkState.SIZE

            else:
                line = self._read_line()
                if line is None:
                    return
                if not line:
                    self._finish()

    def _read_line(self) -> bytes | None:
        end = self._buffer.find(b"\r\n")
        if end < 0:
            if len(self._buffer) > MAX_CHUNK_LINE_BYTES:
                raise HttpProtocolError("Chunk header line exceeds size limit")
            return None
        line = bytes(self._buffer[:end])
        del self._buffer[: end + 2]
        return line

    def _take_remaining(self) -> None:
        take = min(self._remaining, len(self._buffer))
        if take:
            self._emit(bytes(self._buffer[:take]))
            del self._buffer[:take]
            self._remaining -= take

    def _emit(self, raw: bytes) -> None:
        self.received += len(raw)
        if self._inflater is None:
            self._body += raw
            return
        try:
            self._body += self._inflater.decompress(raw)
        except zlib.error as exc:
            raise HttpProtocolError(f"Invalid gzip body: {exc}") from exc

    def _finish(self) -> None:
        if self._inflater is not None:
            try:
                self._body += self._inflater.flush()
            except zlib.error as exc:
                raise HttpProtocolError(f"Invalid gzip body: {exc}") from exc
        self._buffer.clear()
        self._state = ExchangeState.COMPLETE


def _parse_status_line(line: str) -> tuple[int, str]:
    parts = line.split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/1."):
        raise HttpProtocolError(f"Malformed status line: {line!r}")
    code_field = parts[1]
    if len(code_field) != 3 or not code_field.isdigit():
        raise HttpProtocolError(f"Malformed status code in status line: {line!r}")
    code = int(code_field)
    if not 100 <= code <= 599:
        raise HttpProtocolError(f"Unrecognized status code {code}")
    reason = parts[2] if len(parts) == 3 else ""
    return code, reason


def _parse_header_lines(lines: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for line in lines:
        name, sep, value = line.partition(":")
        if not sep or not name or name != name.strip():
            raise HttpProtocolError(f"Malformed header line: {line!r}")
        key = name.lower()
        value = value.strip()
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    return headers


def _parse_content_length(value: str) -> int:
    # Repeated identical Content-Length headers arrive comma-joined
    candidates = {item.strip() for item in value.split(",")}
    if len(candidates) != 1:
        raise HttpProtocolError(f"Conflicting Content-Length values: {value!r}")
    field = candidates.pop()
    if not field.isdigit():
        raise HttpProtocolError(f"Invalid Content-Length: {value!r}")
    return int(field)
