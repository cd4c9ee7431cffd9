"""
=============================================================================
HTTP RESPONSE WRITERS
=============================================================================

A handler does not RETURN a response here, it WRITES one:

    def handler(request, writer):
        writer.headers["Content-Type"] = "text/plain; charset=utf-8"
        writer.write_header(200)       # optional, first write() implies 200
        writer.write(b"hello ")
        writer.write(b"world")

Streaming matters for a file server: a 200 MB video is sent chunk by
chunk instead of being loaded into memory, and a gzip layer can compress
it on the fly.

=============================================================================
THE WRITER CONTRACT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ResponseWriter lifecycle                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   headers[...] = ...      mutate freely until the head is sent     │
    │        │                                                             │
    │        ▼                                                             │
    │   write_header(status)    at most once; sends the head              │
    │        │                  (skipped → first write() sends 200)       │
    │        ▼                                                             │
    │   write(data) ...         zero or more body writes                   │
    │        │                                                             │
    │        ▼                                                             │
    │   finish()                transport only: empty 200 if nothing      │
    │                           was written, chunked terminator           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Writers are STACKABLE. A middleware may wrap the writer it was given in
another writer (see writers.py) and hand the wrapper downstream. Every
wrapper shares the header map of the writer it wraps, so a header set
anywhere in the stack lands on the wire.

=============================================================================
BODY FRAMING
=============================================================================

    HEAD, 1xx, 204, 304     no body at all
    Content-Length set      exactly that many bytes, keep-alive possible
    HTTP/1.1, no length     Transfer-Encoding: chunked
    HTTP/1.0, no length     body ends when the connection closes

=============================================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from html import escape
from typing import Dict, Optional
import logging

from .request import HTTPRequest
from .status_codes import HTTPStatus, body_allowed, status_phrase

logger = logging.getLogger(__name__)


class ResponseWriter(ABC):
    """
    The sink a handler writes its response into.

    Concrete writers either talk to a connection (ConnectionResponseWriter)
    or decorate another writer (ResponseRecorder, CompressingWriter).
    """

    @property
    @abstractmethod
    def headers(self) -> Dict[str, str]:
        """Mutable response header map (canonical "Title-Case" names)."""

    @abstractmethod
    def write_header(self, status: int) -> None:
        """Set the status code and commit the response head."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write body bytes, committing a 200 head first if needed."""


class ConnectionResponseWriter(ResponseWriter):
    """
    The bottom of every writer stack: serializes onto a client connection.

    Args:
        conn: Anything with send(bytes) -> bool (a core.Connection).
        request: The request being answered (method, version, keep-alive).
        server_name: Value for the Server header.
        keep_alive: Whether the server allows connection reuse at all.
    """

    def __init__(
        self,
        conn,
        request: HTTPRequest,
        server_name: str = "statichttpd/1.0",
        keep_alive: bool = True,
    ):
        self._conn = conn
        self._request = request
        self._server_name = server_name
        self._headers: Dict[str, str] = {}

        self.status = 0
        self._committed = False
        self._has_body = True
        self._chunked = False
        self._close = not (keep_alive and request.is_keep_alive)
        self._broken = False

    @property
    def headers(self) -> Dict[str, str]:
        return self._headers

    @property
    def committed(self) -> bool:
        """True once the status line and headers have been sent."""
        return self._committed

    def write_header(self, status: int) -> None:
        if self._committed:
            logger.warning(
                f"Superfluous write_header({int(status)}) for {self._request.method} "
                f"{self._request.uri}: head already sent with {self.status}"
            )
            return

        self.status = int(status)
        self._commit()

    def write(self, data: bytes) -> int:
        if not self._committed:
            self.write_header(self.status or HTTPStatus.OK)

        if not data or not self._has_body or self._broken:
            return 0

        if self._chunked:
            payload = b"%x\r\n" % len(data) + bytes(data) + b"\r\n"
        else:
            payload = bytes(data)

        if not self._send(payload):
            return 0
        return len(data)

    def finish(self) -> bool:
        """
        Complete the response after the handler chain returned.

        Returns:
            True if the connection can be reused for another request.
        """
        if not self._committed:
            # Handler wrote nothing: an empty 200 (or whatever status
            # was recorded) with an explicit zero length.
            self._headers.setdefault("Content-Length", "0")
            self.write_header(self.status or HTTPStatus.OK)

        if self._chunked:
            self._send(b"0\r\n\r\n")

        return not (self._close or self._broken)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _commit(self) -> None:
        """Decide the framing and send the status line plus headers."""
        self._committed = True
        headers = self._headers

        self._has_body = body_allowed(self.status) and self._request.method != "HEAD"

        if not body_allowed(self.status):
            headers.pop("Transfer-Encoding", None)
        elif "Content-Length" not in headers and self._request.method != "HEAD":
            if self._request.version == "HTTP/1.1":
                headers["Transfer-Encoding"] = "chunked"
                self._chunked = True
            else:
                self._close = True

        if headers.get("Connection", "").lower() == "close":
            self._close = True
        headers["Connection"] = "close" if self._close else "keep-alive"
        headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        headers.setdefault("Server", self._server_name)

        lines = [f"HTTP/1.1 {self.status} {status_phrase(self.status)}"]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1", errors="replace")

        self._send(head)

    def _send(self, data: bytes) -> bool:
        if self._broken:
            return False
        if not self._conn.send(data):
            self._broken = True
            return False
        return True


# =============================================================================
# HELPERS
# =============================================================================
#
# One-liners for the handful of canned responses the server produces.
# They write through whatever writer they are given, so a 404 coming from
# the host filter is still counted by the access log and compressed by the
# gzip layer like any other body.
#
# =============================================================================


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 9110), always in GMT.

    Example: Thu, 01 Jan 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def error(writer: ResponseWriter, status: int, message: Optional[str] = None) -> None:
    """
    Reply with a short plain-text error body.

        error(writer, 403)  →  "403 Forbidden\\n"
    """
    if message is None:
        message = f"{int(status)} {status_phrase(status)}"
    body = (message + "\n").encode("utf-8")

    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["X-Content-Type-Options"] = "nosniff"
    writer.headers["Content-Length"] = str(len(body))
    writer.write_header(status)
    writer.write(body)


def not_found(writer: ResponseWriter) -> None:
    """The standard 404 reply: "404 page not found"."""
    error(writer, HTTPStatus.NOT_FOUND, "404 page not found")


def redirect(
    writer: ResponseWriter,
    request: HTTPRequest,
    location: str,
    status: int = HTTPStatus.FOUND,
) -> None:
    """
    Send a redirect to `location`.

    GET and HEAD get a tiny HTML body with a link, for clients that do
    not follow Location automatically. Other methods get no body.
    """
    writer.headers["Location"] = location

    if request.method in ("GET", "HEAD"):
        body = f'<a href="{escape(location)}">{status_phrase(status)}</a>.\n'.encode("utf-8")
        writer.headers["Content-Type"] = "text/html; charset=utf-8"
        writer.headers["Content-Length"] = str(len(body))
        writer.write_header(status)
        writer.write(body)
    else:
        writer.headers["Content-Length"] = "0"
        writer.write_header(status)
