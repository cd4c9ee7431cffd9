"""
=============================================================================
HTTPS REDIRECT
=============================================================================

Mounted on the plain-HTTP listener when TLS is enabled. Every request,
whatever its path or method, is answered with:

    HTTP/1.1 301 Moved Permanently
    Location: https://example.com/docs/?page=2
    Strict-Transport-Security: max-age=604800

The Location keeps the request URI (path and query) and the host from
the Host header with its port removed. If the HTTPS listener is not on
443 its port is put back:

    Host: example.com:8080, https port 8443
        → https://example.com:8443/docs/?page=2

HSTS (RFC 6797) tells the browser to go straight to https for the next
week, so the redirect is normally paid once.

This is a TERMINAL handler: there is no next stage. Health checks over
plain HTTP get redirected like everything else.

=============================================================================
"""

import logging
from typing import Optional

from ..http.request import HTTPRequest
from ..http.response import ResponseWriter, redirect
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)

# One week
HSTS_MAX_AGE = 604800


def strip_port(host: str) -> str:
    """
    Remove a trailing :port from a Host header value.

        "example.com:8080"  → "example.com"
        "[::1]:8080"        → "[::1]"
        "[::1]"             → "[::1]"
    """
    if host.startswith("["):
        end = host.find("]")
        if end != -1:
            return host[: end + 1]
        return host
    return host.split(":", 1)[0]


class RedirectMiddleware:
    """
    Answer every request with a 301 to its https:// equivalent.

    Args:
        https_port: Port of the HTTPS listener. None or 443 means the
                    Location carries no explicit port.
        fallback_host: Host used when the request has no Host header
                       (HTTP/1.0 clients).
    """

    def __init__(self, https_port: Optional[int] = None, fallback_host: str = ""):
        self.https_port = https_port
        self.fallback_host = fallback_host

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def target_url(self, request: HTTPRequest) -> str:
        host = strip_port(request.host) or self.fallback_host or "localhost"
        if self.https_port and self.https_port != 443:
            host = f"{host}:{self.https_port}"

        uri = request.uri
        if not uri.startswith("/"):
            # absolute-form or "*": rebuild from the parsed path
            uri = request.path + (f"?{request.query}" if request.query else "")
        return f"https://{host}{uri}"

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        location = self.target_url(request)
        writer.headers["Strict-Transport-Security"] = f"max-age={HSTS_MAX_AGE}"
        redirect(writer, request, location, HTTPStatus.MOVED_PERMANENTLY)
