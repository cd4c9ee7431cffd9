"""
pytest configuration and fixtures.
"""

import logging
import socket
import threading
from pathlib import Path
from typing import Dict, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from statichttpd import HTTPServer, ServerConfig
from statichttpd.http import HTTPRequest, ResponseWriter, HTTPStatus


class MemoryWriter(ResponseWriter):
    """
    In-memory ResponseWriter.

    Mirrors the connection writer's commit rules: the first write_header()
    or write() fixes the status, later write_header() calls are counted
    but ignored.
    """

    def __init__(self):
        self._headers: Dict[str, str] = {}
        self.status = 0
        self.header_calls: List[int] = []
        self.chunks: List[bytes] = []
        self.committed_headers: Optional[Dict[str, str]] = None

    @property
    def headers(self) -> Dict[str, str]:
        return self._headers

    def write_header(self, status: int) -> None:
        self.header_calls.append(int(status))
        if self.committed_headers is None:
            self.status = int(status)
            self.committed_headers = dict(self._headers)

    def write(self, data: bytes) -> int:
        if self.committed_headers is None:
            self.write_header(HTTPStatus.OK)
        self.chunks.append(bytes(data))
        return len(data)

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)


def make_request(
    path: str = "/",
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    remote_addr: str = "203.0.113.5:51000",
    version: str = "HTTP/1.1",
    uri: Optional[str] = None,
) -> HTTPRequest:
    """Build an HTTPRequest directly, without going through the parser."""
    all_headers = {"host": "example.com"}
    all_headers.update({name.lower(): value for name, value in (headers or {}).items()})
    return HTTPRequest(
        method=method,
        uri=uri if uri is not None else path,
        path=path.split("?", 1)[0],
        version=version,
        headers=all_headers,
        remote_addr=remote_addr,
    )


@pytest.fixture
def writer() -> MemoryWriter:
    return MemoryWriter()


@pytest.fixture
def build_request():
    """Factory fixture for HTTPRequest values (see make_request)."""
    return make_request


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /css/site.css?v=3 HTTP/1.1\r\n"
        b"Host: example.com:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip, deflate\r\n"
        b"Referer: https://example.com/\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def docroot(tmp_path: Path) -> Path:
    """
    A small document root:

        index.html
        about.html
        css/site.css
        docs/             (no index.html)
        docs/guide.txt
        blog/index.html
    """
    root = tmp_path / "www"
    root.mkdir()
    (root / "index.html").write_text("<html><body>home " + "hello " * 200 + "</body></html>")
    (root / "about.html").write_text("<html><body>about</body></html>")
    (root / "css").mkdir()
    (root / "css" / "site.css").write_text("body { color: #333; }\n" * 50)
    (root / "docs").mkdir()
    (root / "docs" / "guide.txt").write_text("read me\n")
    (root / "blog").mkdir()
    (root / "blog" / "index.html").write_text("<html><body>blog</body></html>")
    return root


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.addresses["http"][1]

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:
            self.error = e

    def start(self):
        """Start server in background thread and wait for its listeners."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            self.stop()
            raise RuntimeError(f"Server failed to start: {self.error}")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def access_log_path(tmp_path: Path) -> Path:
    return tmp_path / "access.log"


@pytest.fixture
def test_server(
    docroot: Path, free_port: int, access_log_path: Path
) -> Generator[TestServer, None, None]:
    """A plain-HTTP server on 127.0.0.1 serving `docroot`."""
    server = HTTPServer(ServerConfig(
        http_address=f"127.0.0.1:{free_port}",
        root=str(docroot),
        hostname="127.0.0.1",
        gzip=("html", "css"),
        access_log=str(access_log_path),
        timeout=5.0,
        log_level="WARNING",
    ))

    test_srv = TestServer(server)
    test_srv.start()

    yield test_srv

    test_srv.stop()
    for handler in server.access_log.handlers:
        handler.close()


@pytest.fixture(autouse=True)
def _reset_access_logger():
    """Each test gets a fresh access logger (it is process-wide)."""
    yield
    access = logging.getLogger("statichttpd.access")
    for handler in list(access.handlers):
        access.removeHandler(handler)
        handler.close()
