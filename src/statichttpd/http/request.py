"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes of one request into an HTTPRequest value.

=============================================================================
WHAT THE MIDDLEWARE NEEDS FROM A REQUEST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Field            │ Used by                                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │ method           │ access log, file server (GET/HEAD only)          │
    │ uri              │ access log (exactly as sent), redirect target    │
    │ path             │ gzip extension match, file resolution            │
    │ host             │ virtual host filter, redirect target             │
    │ accept_encoding  │ gzip decision                                    │
    │ referer          │ access log                                       │
    │ user_agent       │ access log                                       │
    │ remote_addr      │ access log ("203.0.113.5:51000", "[::1]:9999")   │
    └─────────────────────────────────────────────────────────────────────┘

The request is frozen once parsed. Middleware observe it, they never
rewrite it; the redirect layer builds a NEW URL instead of editing this one.

=============================================================================
REQUEST LINE FORMATS
=============================================================================

    origin-form      GET /css/site.css?v=3 HTTP/1.1
    absolute-form    GET http://example.com/css/site.css HTTP/1.1
    asterisk-form    OPTIONS * HTTP/1.1

`uri` keeps the target verbatim; `path` is the percent-decoded path
component without the query string.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple
from urllib.parse import urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code to answer with:

        400 Bad Request                - Malformed syntax, missing Host
        413 Payload Too Large          - Request exceeds size limit
        501 Not Implemented            - Chunked request bodies
        505 HTTP Version Not Supported - Anything but HTTP/1.0 and 1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def format_remote_addr(address) -> str:
    """
    Render a socket peer address the way it appears in access logs.

        ("203.0.113.5", 51000)        → "203.0.113.5:51000"
        ("::1", 9999, 0, 0)           → "[::1]:9999"

    Anything that is not a (host, port, ...) tuple is returned as str().
    """
    if not isinstance(address, tuple) or len(address) < 2:
        return str(address)

    host, port = address[0], address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:       GET, HEAD, POST, ...
        uri:          Request target exactly as sent on the request line
        path:         Decoded path without query string ("/" at minimum)
        version:      "HTTP/1.1" or "HTTP/1.0"
        headers:      Header name (lowercase) → value
        body:         Raw body bytes (usually empty for a static server)
        remote_addr:  Peer address, "host:port" / "[v6]:port"
    """

    method: str
    uri: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    remote_addr: str = ""

    @property
    def host(self) -> str:
        """Host header (includes the port when the client sent one)."""
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def referer(self) -> str:
        return self.headers.get("referer", "")

    @property
    def accept_encoding(self) -> str:
        return self.headers.get("accept-encoding", "")

    @property
    def query(self) -> str:
        """Raw query string, without the leading '?'."""
        return urlsplit(self.uri).query

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 defaults to keep-alive unless "Connection: close";
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return "close" not in connection
        return "keep-alive" in connection

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Raw Request Bytes
              │
              ▼
        1. Size check                → 413
        2. Split head / body at \\r\\n\\r\\n
        3. Request line              → 400 / 505
        4. Headers (lowercased, repeated headers joined with ", ")
        5. Host required on HTTP/1.1 → 400
        6. Body by Content-Length (chunked bodies → 501)
              │
              ▼
        HTTPRequest

    ==========================================================================
    """

    # Any RFC 9110 token is a method; which ones are served is up to the handlers
    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, remote_addr: str = "") -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw request bytes, as returned by Connection.read_request().
            remote_addr: Peer address string (see format_remote_addr).

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # ISO-8859-1 maps every byte to a code point, so odd bytes in
        # header values survive the round trip into the access log.
        header_section = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, uri, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # Absolute-form targets carry the authority; it wins over Host.
        authority = urlsplit(uri).netloc if uri.startswith(("http://", "https://")) else ""
        if authority:
            headers["host"] = authority

        if version == "HTTP/1.1" and "host" not in headers:
            raise HTTPParseError("Missing Host header")

        if "transfer-encoding" in headers:
            raise HTTPParseError("Chunked request bodies are not supported", status_code=501)

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length") from None

        if content_length < 0 or len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            uri=uri,
            path=path,
            version=version,
            headers=headers,
            body=body[:content_length],
            remote_addr=remote_addr,
        )

    def _parse_request_line(
        self,
        line: str,
    ) -> Tuple[str, str, str, str]:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            (method, uri, path, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        if uri == "*":
            return method, uri, "*", version

        parts = urlsplit(uri)
        path = unquote(parts.path) or "/"
        if not path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {uri!r}")

        # "..": no segment may climb out of the document root.
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..")

        return method, uri, path, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Obsolete line folding (continuation lines starting with whitespace)
        is appended to the previous header; repeated headers are joined
        with ", ". Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(data: bytes, remote_addr: str = "", max_size: int = 1024 * 1024) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, remote_addr)
