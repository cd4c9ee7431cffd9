"""
=============================================================================
WRITER DECORATORS
=============================================================================

Two small writers that wrap another writer and change ONE thing about it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      STACKED WRITERS                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   FileServer                                                         │
    │       │ write(b"<html>...")                                         │
    │       ▼                                                              │
    │   CompressingWriter      bytes → gzip stream                         │
    │       │ write(b"\\x1f\\x8b...")                                      │
    │       ▼                                                              │
    │   ResponseRecorder       counts bytes, remembers status             │
    │       │                                                              │
    │       ▼                                                              │
    │   ConnectionResponseWriter   → socket                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Because the recorder sits OUTSIDE the compressor, the byte count in the
access log is the compressed size: what actually went over the wire.

Both decorators:
- wrap exactly one writer and share its header map
- forward write_header() unchanged (the recorder peeks at it first)
- live for exactly one request

=============================================================================
"""

import zlib

from .response import ResponseWriter
from .status_codes import HTTPStatus, body_allowed


class ResponseRecorder(ResponseWriter):
    """
    Records the status code and byte count of a response passing through.

    Attributes:
        status: Last status passed to write_header(); 200 if the first
                write() came before any write_header(); 0 if neither
                has happened yet.
        bytes_written: Sum of the lengths of all byte strings passed
                       to write(), whether or not the transport sent them.
    """

    def __init__(self, writer: ResponseWriter):
        self._writer = writer
        self.status = 0
        self.bytes_written = 0

    @property
    def headers(self):
        return self._writer.headers

    def write_header(self, status: int) -> None:
        self.status = int(status)
        self._writer.write_header(status)

    def write(self, data: bytes) -> int:
        if not self.status:
            self.status = HTTPStatus.OK
        self.bytes_written += len(data)
        return self._writer.write(data)


class CompressingWriter(ResponseWriter):
    """
    Routes body bytes through a streaming gzip compressor.

    Use as a context manager so the gzip trailer is always written:

        with CompressingWriter(writer) as gz:
            handler(request, gz)

    Compressed output reaches the inner writer only as zlib produces it,
    so the inner writer's head is committed no earlier than it would be
    without compression. An explicit write_header() still goes straight
    through.

    Since the compressed size is unknown up front, any Content-Length
    set by the handler is dropped before the head is committed.

    Responses that carry no body on the wire (HEAD, 1xx, 204, 304) get
    no gzip stream at all, not even the empty-stream header and trailer.
    Pass discard_body=True for HEAD; bodiless statuses are detected from
    write_header().
    """

    # wbits 16 + MAX_WBITS selects the gzip container (header + CRC trailer)
    GZIP_WBITS = 16 + zlib.MAX_WBITS

    def __init__(self, writer: ResponseWriter, level: int = 6, discard_body: bool = False):
        self._writer = writer
        self._discard_body = discard_body
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, self.GZIP_WBITS)
        self._closed = False
        self._started = False

    @property
    def headers(self):
        return self._writer.headers

    def write_header(self, status: int) -> None:
        self._started = True
        if not body_allowed(status):
            self._discard_body = True
        self._writer.headers.pop("Content-Length", None)
        self._writer.write_header(status)

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed CompressingWriter")

        self._writer.headers.pop("Content-Length", None)

        self._started = True
        if self._discard_body:
            return len(data)

        compressed = self._compressor.compress(data)
        if compressed:
            self._writer.write(compressed)
        return len(data)

    def close(self) -> None:
        """Flush the compressor and write the gzip trailer. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._discard_body:
            return

        self._writer.headers.pop("Content-Length", None)
        self._writer.write(self._compressor.flush(zlib.Z_FINISH))

    def __enter__(self) -> "CompressingWriter":
        return self

    def abort(self) -> None:
        """Drop the compressor without writing anything. Idempotent."""
        self._closed = True

    def __exit__(self, exc_type, exc_val, exc_tb):
        # The handler failed before producing any response: leave the head
        # uncommitted so the connection can still answer 500.
        if exc_type is not None and not self._started:
            self.abort()
        else:
            self.close()
        return False
