"""
Unit tests for HTTP request parsing.
"""

import pytest

from statichttpd.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    format_remote_addr,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        request = RequestParser().parse(sample_get_request, "203.0.113.5:51000")

        assert request.method == "GET"
        assert request.uri == "/css/site.css?v=3"
        assert request.path == "/css/site.css"
        assert request.version == "HTTP/1.1"
        assert request.remote_addr == "203.0.113.5:51000"

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.host == "example.com:8080"
        assert request.user_agent == "pytest"
        assert request.referer == "https://example.com/"
        assert request.accept_encoding == "gzip, deflate"
        assert request.get_header("Accept-Encoding") == "gzip, deflate"
        assert request.is_keep_alive is True

    def test_query(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)
        assert request.query == "v=3"

    @pytest.mark.parametrize("method", ["PROPFIND", "MKCOL", "BREW", "M-SEARCH"])
    def test_extension_methods_are_parsed(self, method):
        request = parse_request(f"{method} /x HTTP/1.1\r\nHost: a\r\n\r\n".encode())
        assert request.method == method
        assert request.path == "/x"

    def test_path_is_percent_decoded(self):
        request = parse_request(b"GET /my%20file.txt HTTP/1.1\r\nHost: a\r\n\r\n")
        assert request.path == "/my file.txt"
        assert request.uri == "/my%20file.txt"

    def test_absolute_form_sets_host(self):
        request = parse_request(
            b"GET http://example.com/docs/?x=1 HTTP/1.1\r\nHost: other\r\n\r\n"
        )
        assert request.host == "example.com"
        assert request.path == "/docs/"

    def test_repeated_headers_are_joined(self):
        request = parse_request(
            b"GET / HTTP/1.1\r\nHost: a\r\nAccept-Encoding: br\r\nAccept-Encoding: gzip\r\n\r\n"
        )
        assert request.accept_encoding == "br, gzip"

    def test_http10_without_host(self):
        request = parse_request(b"GET / HTTP/1.0\r\n\r\n")
        assert request.host == ""
        assert request.is_keep_alive is False

    def test_connection_close(self):
        request = parse_request(b"GET / HTTP/1.1\r\nHost: a\r\nConnection: close\r\n\r\n")
        assert request.is_keep_alive is False

    def test_body_by_content_length(self):
        request = parse_request(
            b"POST /form HTTP/1.1\r\nHost: a\r\nContent-Length: 3\r\n\r\nabcdef"
        )
        assert request.body == b"abc"


class TestParseErrors:
    """Malformed requests map to specific status codes."""

    @pytest.mark.parametrize("data, status", [
        (b"GARBAGE\r\n\r\n", 400),
        (b"G@T / HTTP/1.1\r\nHost: a\r\n\r\n", 400),
        (b"GET / HTTP/2.0\r\nHost: a\r\n\r\n", 505),
        (b"GET / HTTP/1.1\r\n\r\n", 400),
        (b"GET /../etc/passwd HTTP/1.1\r\nHost: a\r\n\r\n", 400),
        (b"GET /%2e%2e/etc/passwd HTTP/1.1\r\nHost: a\r\n\r\n", 400),
        (b"POST / HTTP/1.1\r\nHost: a\r\nTransfer-Encoding: chunked\r\n\r\n", 501),
        (b"POST / HTTP/1.1\r\nHost: a\r\nContent-Length: x\r\n\r\n", 400),
    ])
    def test_status(self, data, status):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(data)
        assert exc_info.value.status_code == status

    def test_incomplete(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: a\r\n")

    def test_too_large(self):
        data = b"GET / HTTP/1.1\r\nHost: a\r\nX-Pad: " + b"a" * 200 + b"\r\n\r\n"
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(data, max_size=100)
        assert exc_info.value.status_code == 413


class TestHTTPRequest:

    def test_frozen(self):
        request = HTTPRequest(method="GET", uri="/", path="/")
        with pytest.raises(AttributeError):
            request.path = "/other"

    def test_missing_headers_are_empty(self):
        request = HTTPRequest(method="GET", uri="/", path="/")
        assert request.host == ""
        assert request.referer == ""
        assert request.user_agent == ""
        assert request.accept_encoding == ""


class TestFormatRemoteAddr:

    def test_ipv4(self):
        assert format_remote_addr(("203.0.113.5", 51000)) == "203.0.113.5:51000"

    def test_ipv6(self):
        assert format_remote_addr(("::1", 9999, 0, 0)) == "[::1]:9999"

    def test_non_tuple(self):
        assert format_remote_addr("unix") == "unix"
