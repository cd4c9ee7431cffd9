"""
=============================================================================
STATIC FILE SERVER
=============================================================================

The terminal handler of the main chain: maps the request path onto the
document root and streams the file into the writer.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /../../etc/passwd HTTP/1.1

The parser already rejects ".." segments, but symlinks can still point
anywhere, so every path is resolved and checked against the root:

    full_path = (root / request_path).resolve()
    full_path.relative_to(root)     # ValueError → 404

Anything outside the root is answered exactly like a missing file. A 403
would confirm that the target exists.

=============================================================================
CANONICAL URLS
=============================================================================

    /docs            (directory)  → 301 /docs/
    /about.html/     (file)       → 301 /about.html
    /docs/index.html              → 301 /docs/

So every document has exactly one URL and relative links inside it
resolve the same way no matter how the visitor got there.

=============================================================================
CONDITIONAL REQUESTS
=============================================================================

    ETag: "<mtime>-<size>"
    Last-Modified: <mtime as HTTP-date>

    If-None-Match matches the ETag           → 304
    else If-Modified-Since >= Last-Modified  → 304

=============================================================================
CONTENT-LENGTH AND COMPRESSION
=============================================================================

When the gzip middleware runs in front of us it has already put
"Content-Encoding: gzip" on the writer. The on-disk size is then NOT the
length of the body on the wire, so Content-Length is only set when no
Content-Encoding is present; otherwise the transport falls back to
chunked encoding.

=============================================================================
"""

import stat
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from html import escape
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ..http.request import HTTPRequest
from ..http.response import ResponseWriter, error, format_http_date, not_found, redirect
from ..http.status_codes import HTTPStatus
from ..http.mime_types import get_content_type

logger = logging.getLogger(__name__)


class FileServer:
    """
    Serve files below `root`.

    Args:
        root: Document root. Must be an existing directory.
        index_file: File served for a directory request.
        directory_listing: Render an HTML index for directories without
                           an index file (otherwise 403).
        chunk_size: Read size when streaming a file.

    Usage:
        handler = pipeline.wrap(FileServer("/srv/www"))
    """

    ALLOWED_METHODS = ("GET", "HEAD")

    def __init__(
        self,
        root: str,
        index_file: str = "index.html",
        directory_listing: bool = True,
        chunk_size: int = 64 * 1024,
    ):
        self.root = Path(root).resolve()
        self.index_file = index_file
        self.directory_listing = directory_listing
        self.chunk_size = chunk_size

        if not self.root.is_dir():
            raise ValueError(f"Document root does not exist: {root}")

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        if request.method not in self.ALLOWED_METHODS:
            writer.headers["Allow"] = ", ".join(self.ALLOWED_METHODS)
            error(writer, HTTPStatus.METHOD_NOT_ALLOWED)
            return

        url_path = request.path
        if url_path.endswith("/" + self.index_file):
            self._redirect(writer, request, url_path[: -len(self.index_file)])
            return

        full_path = self.resolve(url_path)
        if full_path is None:
            not_found(writer)
            return

        try:
            st = full_path.stat()
        except (FileNotFoundError, NotADirectoryError):
            not_found(writer)
            return
        except PermissionError:
            error(writer, HTTPStatus.FORBIDDEN)
            return

        if stat.S_ISDIR(st.st_mode):
            if not url_path.endswith("/"):
                self._redirect(writer, request, url_path + "/")
                return

            index_path = full_path / self.index_file
            if index_path.is_file():
                self._serve_file(index_path, index_path.stat(), request, writer)
            elif self.directory_listing:
                self._serve_listing(full_path, url_path, request, writer)
            else:
                error(writer, HTTPStatus.FORBIDDEN)
            return

        if url_path.endswith("/"):
            self._redirect(writer, request, url_path.rstrip("/") or "/")
            return

        self._serve_file(full_path, st, request, writer)

    def resolve(self, url_path: str) -> Optional[Path]:
        """
        Map a decoded URL path to a filesystem path inside the root.

        Returns None when the path escapes the root (or cannot name a
        file at all, e.g. the "*" target or an embedded NUL byte).
        """
        if not url_path.startswith("/") or "\x00" in url_path:
            return None

        full_path = (self.root / url_path.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.root)
        except ValueError:
            logger.warning(f"Path outside document root: {url_path}")
            return None
        return full_path

    # =========================================================================
    # RESPONSES
    # =========================================================================

    def _redirect(self, writer: ResponseWriter, request: HTTPRequest, target: str) -> None:
        location = quote(target)
        if request.query:
            location += "?" + request.query
        redirect(writer, request, location, HTTPStatus.MOVED_PERMANENTLY)

    def _serve_file(self, path: Path, st, request: HTTPRequest, writer: ResponseWriter) -> None:
        mtime = datetime.fromtimestamp(int(st.st_mtime), tz=timezone.utc)
        etag = f'"{int(st.st_mtime)}-{st.st_size}"'

        headers = writer.headers
        headers["Content-Type"] = get_content_type(path)
        headers["Last-Modified"] = format_http_date(mtime)
        headers["ETag"] = etag

        if self._not_modified(request, etag, mtime):
            writer.write_header(HTTPStatus.NOT_MODIFIED)
            return

        try:
            f = path.open("rb")
        except PermissionError:
            error(writer, HTTPStatus.FORBIDDEN)
            return

        with f:
            # A gzip layer in front changes the body length
            if "Content-Encoding" not in headers:
                headers["Content-Length"] = str(st.st_size)
            writer.write_header(HTTPStatus.OK)

            if request.method == "HEAD":
                return

            while True:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                writer.write(chunk)

    def _not_modified(self, request: HTTPRequest, etag: str, mtime: datetime) -> bool:
        if_none_match = request.get_header("if-none-match")
        if if_none_match:
            candidates = [tag.strip() for tag in if_none_match.split(",")]
            return "*" in candidates or etag in candidates or f"W/{etag}" in candidates

        if_modified_since = request.get_header("if-modified-since")
        if if_modified_since:
            try:
                since = parsedate_to_datetime(if_modified_since)
            except (TypeError, ValueError):
                return False
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            return mtime <= since

        return False

    def _serve_listing(
        self,
        directory: Path,
        url_path: str,
        request: HTTPRequest,
        writer: ResponseWriter,
    ) -> None:
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name)
        except PermissionError:
            error(writer, HTTPStatus.FORBIDDEN)
            return

        entries = []
        if directory != self.root:
            entries.append('<li><a href="../">../</a></li>')

        for entry in children:
            name = entry.name
            if entry.is_dir():
                name += "/"
            entries.append(f'<li><a href="{escape(quote(name))}">{escape(name)}</a></li>')

        title = escape(url_path)
        html = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Index of {title}</title>
    <style>
        body {{ font-family: monospace; padding: 20px; }}
        h1 {{ border-bottom: 1px solid #ccc; padding-bottom: 10px; }}
        ul {{ list-style: none; padding: 0; }}
        li {{ padding: 5px 0; }}
        a {{ text-decoration: none; color: #0066cc; }}
        a:hover {{ text-decoration: underline; }}
    </style>
</head>
<body>
    <h1>Index of {title}</h1>
    <ul>
        {"".join(entries)}
    </ul>
</body>
</html>
"""
        body = html.encode("utf-8")

        writer.headers["Content-Type"] = "text/html; charset=utf-8"
        if "Content-Encoding" not in writer.headers:
            writer.headers["Content-Length"] = str(len(body))
        writer.write_header(HTTPStatus.OK)
        if request.method != "HEAD":
            writer.write(body)
