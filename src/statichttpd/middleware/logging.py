"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

Appends one line per completed request to the access log:

    203.0.113.5 [17/Oct/2026 20:15:02 +0200] GET "/css/site.css?v=3" 200 1832 "https://example.com/" "Mozilla/5.0 ..."
    ─────┬───── ─────────────┬────────────── ─┬─ ────────┬───────── ─┬─ ──┬─ ──────────┬────────── ──────┬───────
      client         completion time       method   request URI   status bytes     referer          user agent

=============================================================================
WHERE THE NUMBERS COME FROM
=============================================================================

The middleware wraps the writer it receives in a ResponseRecorder before
calling the rest of the chain. Because it is the OUTERMOST stage, the
recorder sees exactly what goes to the connection:

    - status:  whatever write_header() received (200 if the first
               write() came first)
    - bytes:   body bytes after compression, i.e. what was transferred

The line is written in a finally block, so a handler that raises is
still logged. A request that crashed before choosing a status is logged
as 500, one that simply wrote nothing as 200 (which is what the client
receives).

Fields are written as received. Quotes inside a Referer or User-Agent are
not escaped.

=============================================================================
THE LOG SINK
=============================================================================

The sink is a dedicated logger ("statichttpd.access") with a single
handler and a bare "%(message)s" format:

    access_log = create_access_logger("/var/log/statichttpd/access.log")

If the file cannot be opened the logger writes to stdout instead. That
decision is made once, here, not per request. A logging handler holds a
lock around each emit, so concurrent requests never interleave inside
one line.

=============================================================================
"""

import sys
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import ResponseWriter
from ..http.status_codes import HTTPStatus
from ..http.writers import ResponseRecorder

logger = logging.getLogger(__name__)

ACCESS_LOGGER_NAME = "statichttpd.access"

# strftime("%b") follows the process locale; log lines always use English
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_log_timestamp(dt: datetime) -> str:
    """
    Format an aware datetime as "dd/Mon/yyyy HH:MM:SS ±zzzz".

        17/Oct/2026 14:03:22 +0200
    """
    return (
        f"{dt.day:02d}/{_MONTHS[dt.month - 1]}/{dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} {dt.strftime('%z')}"
    )


def normalize_remote_addr(remote_addr: str) -> str:
    """
    Strip the port and IPv6 brackets from a peer address.

        "203.0.113.5:51000"  → "203.0.113.5"
        "[::1]:9999"         → "::1"
        "localhost"          → "localhost"
    """
    idx = remote_addr.rfind(":")
    if idx > 0:
        remote_addr = remote_addr[:idx]
    return remote_addr.strip("[]")


def create_access_logger(path: Optional[str], name: str = ACCESS_LOGGER_NAME) -> logging.Logger:
    """
    Build the process-wide access log sink.

    Args:
        path: Log file, opened in append mode. None means stdout.
        name: Logger name; any handlers already on it are replaced.

    Returns:
        A non-propagating logger that writes bare lines.
    """
    access_logger = logging.getLogger(name)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False

    for old in list(access_logger.handlers):
        access_logger.removeHandler(old)
        old.close()

    handler: logging.Handler
    if path:
        try:
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot open access log {path}: {e}; logging to stdout")
            handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(handler)
    return access_logger


@dataclass
class AccessLogEntry:
    """One access-log line, before formatting."""

    remote_host: str
    timestamp: str
    method: str
    uri: str
    status: int
    bytes_written: int
    referer: str
    user_agent: str

    def to_text(self) -> str:
        return (
            f'{self.remote_host} [{self.timestamp}] {self.method} "{self.uri}" '
            f'{self.status} {self.bytes_written} "{self.referer}" "{self.user_agent}"'
        )


class AccessLogMiddleware(Middleware):
    """
    Access logging middleware. Add it FIRST so it wraps everything:

        pipeline.add(AccessLogMiddleware(create_access_logger(path)))

    Args:
        access_log: Logger the lines go to (see create_access_logger).
    """

    def __init__(self, access_log: logging.Logger):
        self.access_log = access_log

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        recorder = ResponseRecorder(writer)
        failed = False

        try:
            next(request, recorder)
        except BaseException:
            failed = True
            raise
        finally:
            status = recorder.status
            if not status:
                status = HTTPStatus.INTERNAL_SERVER_ERROR if failed else HTTPStatus.OK

            entry = AccessLogEntry(
                remote_host=normalize_remote_addr(request.remote_addr),
                timestamp=format_log_timestamp(datetime.now().astimezone()),
                method=request.method,
                uri=request.uri,
                status=int(status),
                bytes_written=recorder.bytes_written,
                referer=request.referer,
                user_agent=request.user_agent,
            )
            self.access_log.info(entry.to_text())
