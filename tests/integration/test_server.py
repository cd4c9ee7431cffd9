"""
Integration tests: real sockets, real threads, real HTTP clients.
"""

import gzip
import http.client
import re
import socket
import threading
import time
from contextlib import contextmanager

import pytest

from statichttpd import HTTPServer, ListenerError, ServerConfig
from statichttpd.core import SocketServer

LOG_LINE = re.compile(
    r'^(?P<addr>\S+) \[\d{2}/\w{3}/\d{4} \d{2}:\d{2}:\d{2} [+-]\d{4}\] '
    r'(?P<method>\S+) "(?P<uri>[^"]*)" (?P<status>\d{3}) (?P<bytes>\d+) '
    r'"(?P<referer>[^"]*)" "(?P<ua>[^"]*)"$'
)


def wait_for_lines(path, count, timeout=3.0):
    """The access log line is written after the response; poll for it."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists():
            lines = path.read_text(encoding="utf-8").splitlines()
            if len(lines) >= count:
                return lines
        time.sleep(0.02)
    raise AssertionError(f"expected {count} access log lines in {path}")


def get(port, path, headers=None, method="GET"):
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request(method, path, headers=headers or {})
        response = conn.getresponse()
        return response, response.read()
    finally:
        conn.close()


@contextmanager
def serving(server, listeners):
    """Run server.serve(listeners) in the background."""
    errors = []

    def run():
        try:
            server.serve(listeners)
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    assert server.wait_until_ready(timeout=5.0), errors
    try:
        yield
    finally:
        server.shutdown()
        thread.join(timeout=5.0)


class TestFileServing:

    def test_plain_get(self, test_server, docroot):
        response, body = get(test_server.port, "/about.html")

        assert response.status == 200
        assert body == (docroot / "about.html").read_bytes()
        assert response.getheader("Content-Length") == str(len(body))
        assert response.getheader("Content-Encoding") is None

    def test_gzip_root(self, test_server, docroot):
        response, body = get(test_server.port, "/", {"Accept-Encoding": "gzip"})

        assert response.status == 200
        assert response.getheader("Content-Encoding") == "gzip"
        assert response.getheader("Transfer-Encoding") == "chunked"
        assert gzip.decompress(body) == (docroot / "index.html").read_bytes()

    def test_gzip_not_configured_for_extension(self, test_server, docroot):
        response, body = get(test_server.port, "/docs/guide.txt", {"Accept-Encoding": "gzip"})

        assert response.getheader("Content-Encoding") is None
        assert body == b"read me\n"

    def test_host_filter(self, test_server):
        response, body = get(test_server.port, "/about.html", {"Host": "evil.test"})

        assert response.status == 404
        assert body == b"404 page not found\n"

    def test_not_found(self, test_server):
        response, _ = get(test_server.port, "/missing.css")
        assert response.status == 404

    def test_head(self, test_server, docroot):
        response, body = get(test_server.port, "/about.html", method="HEAD")

        assert response.status == 200
        assert body == b""
        assert response.getheader("Content-Length") == str((docroot / "about.html").stat().st_size)

    def test_keep_alive(self, test_server):
        conn = http.client.HTTPConnection("127.0.0.1", test_server.port, timeout=5)
        try:
            for path in ("/about.html", "/css/site.css", "/"):
                conn.request("GET", path, headers={"Accept-Encoding": "gzip"})
                response = conn.getresponse()
                response.read()
                assert response.status == 200
                assert response.getheader("Connection") == "keep-alive"
        finally:
            conn.close()

    def test_malformed_request(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as sock:
            sock.sendall(b"NONSENSE\r\n\r\n")
            data = sock.recv(4096)

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert b"Connection: close" in data


class TestAccessLog:

    def test_one_line_per_request(self, test_server, access_log_path):
        get(test_server.port, "/about.html", {"User-Agent": "it/1.0", "Referer": "http://r/"})
        get(test_server.port, "/missing", {"User-Agent": "it/1.0"})
        get(test_server.port, "/", {"Host": "evil.test"})

        lines = wait_for_lines(access_log_path, 3)
        assert len(lines) == 3

        # Lines are appended as each connection thread finishes
        about, = [line for line in lines if '"/about.html"' in line]
        missing, = [line for line in lines if '"/missing"' in line]
        filtered, = [line for line in lines if ' "/" ' in line]

        assert about.startswith("127.0.0.1 [")
        assert ' GET "/about.html" 200 ' in about
        assert about.endswith('"http://r/" "it/1.0"')
        assert ' GET "/missing" 404 19 ' in missing
        assert ' GET "/" 404 19 ' in filtered

    def test_logged_bytes_are_compressed_size(self, test_server, access_log_path):
        response, body = get(test_server.port, "/", {"Accept-Encoding": "gzip"})
        assert response.getheader("Content-Encoding") == "gzip"

        line = wait_for_lines(access_log_path, 1)[0]
        logged = int(line.split('"/" 200 ')[1].split(" ")[0])
        assert logged == len(body)

    def test_extension_method_gets_405_inside_chain(self, test_server, access_log_path):
        response, _ = get(test_server.port, "/about.html", method="MKCOL")

        assert response.status == 405
        assert response.getheader("Allow") == "GET, HEAD"

        line, = wait_for_lines(access_log_path, 1)
        assert ' MKCOL "/about.html" 405 ' in line

    def test_head_with_gzip_logs_zero_bytes(self, test_server, access_log_path):
        response, body = get(test_server.port, "/about.html", {"Accept-Encoding": "gzip"}, method="HEAD")

        assert response.status == 200
        assert response.getheader("Content-Encoding") == "gzip"
        assert body == b""

        line, = wait_for_lines(access_log_path, 1)
        assert ' HEAD "/about.html" 200 0 ' in line

    def test_concurrent_requests_never_interleave(self, test_server, access_log_path):
        count = 24
        errors = []

        def fetch(i):
            try:
                user_agent = f"load-{i}/" + "x" * 4000
                response, _ = get(test_server.port, "/about.html", {"User-Agent": user_agent})
                assert response.status == 200
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=fetch, args=(i,)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)

        assert errors == []
        wait_for_lines(access_log_path, count, timeout=10.0)
        time.sleep(0.1)  # a stray extra line would show up here
        lines = access_log_path.read_text(encoding="utf-8").splitlines()

        assert len(lines) == count
        for line in lines:
            assert LOG_LINE.match(line), line[:120]
        agents = {LOG_LINE.match(line)["ua"].split("/")[0] for line in lines}
        assert agents == {f"load-{i}" for i in range(count)}


class TestRedirectListener:

    def test_plain_http_redirects_to_https(self, docroot):
        server = HTTPServer(ServerConfig(
            root=str(docroot),
            https_address="127.0.0.1:8443",
            log_level="WARNING",
        ))
        listener = SocketServer("127.0.0.1", 0, name="http")

        with serving(server, [(listener, server.build_redirect_handler())]):
            port = server.addresses["http"][1]
            for path in ("/", "/health", "/docs/?page=2"):
                response, body = get(port, path, {"Host": f"example.com:{port}"})

                assert response.status == 301
                assert response.getheader("Location") == f"https://example.com:8443{path}"
                assert response.getheader("Strict-Transport-Security") == "max-age=604800"

    def test_extension_method_is_redirected_and_logged(self, docroot, tmp_path):
        log_path = tmp_path / "redirect-access.log"
        server = HTTPServer(ServerConfig(
            root=str(docroot),
            https_address="127.0.0.1:8443",
            access_log=str(log_path),
            log_level="WARNING",
        ))
        listener = SocketServer("127.0.0.1", 0, name="http")

        with serving(server, [(listener, server.build_redirect_handler())]):
            port = server.addresses["http"][1]
            response, body = get(port, "/x", {"Host": "example.com"}, method="PROPFIND")

            assert response.status == 301
            assert response.getheader("Location") == "https://example.com:8443/x"
            assert body == b""

            line, = wait_for_lines(log_path, 1)
            assert ' PROPFIND "/x" 301 0 ' in line


class TestListenerFailures:

    def test_occupied_port_raises_listener_error(self, docroot):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        busy_port = blocker.getsockname()[1]

        server = HTTPServer(ServerConfig(root=str(docroot), log_level="WARNING"))
        healthy = SocketServer("127.0.0.1", 0, name="https")
        broken = SocketServer("127.0.0.1", busy_port, name="http")

        try:
            with pytest.raises(ListenerError) as exc_info:
                server.serve([
                    (healthy, server.build_handler()),
                    (broken, server.build_redirect_handler()),
                ])
        finally:
            blocker.close()

        assert exc_info.value.name == "http"
        assert isinstance(exc_info.value.cause, OSError)
        assert not healthy.is_running
        assert not broken.is_running

    def test_run_raises_when_http_port_busy(self, docroot):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        busy_port = blocker.getsockname()[1]

        server = HTTPServer(ServerConfig(
            http_address=f"127.0.0.1:{busy_port}",
            root=str(docroot),
            log_level="WARNING",
        ))

        try:
            with pytest.raises(ListenerError):
                server.run()
        finally:
            blocker.close()


class TestHandlerErrors:

    def test_exception_before_response_is_500(self, docroot):
        server = HTTPServer(ServerConfig(root=str(docroot), log_level="WARNING"))

        def broken(request, writer):
            raise RuntimeError("boom")

        with serving(server, [(SocketServer("127.0.0.1", 0, name="http"), broken)]):
            response, body = get(server.addresses["http"][1], "/")

        assert response.status == 500
        assert body == b"500 Internal Server Error\n"
        assert response.getheader("Connection") == "close"

    def test_exception_after_headers_closes_connection(self, docroot):
        server = HTTPServer(ServerConfig(root=str(docroot), log_level="WARNING"))

        def half_done(request, writer):
            writer.write(b"partial")
            raise RuntimeError("boom")

        with serving(server, [(SocketServer("127.0.0.1", 0, name="http"), half_done)]):
            port = server.addresses["http"][1]
            with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
                sock.sendall(b"GET / HTTP/1.1\r\nHost: a\r\n\r\n")
                data = b""
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    data += chunk

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        # Chunked body never terminated: the client sees a truncated response
        assert not data.endswith(b"0\r\n\r\n")
