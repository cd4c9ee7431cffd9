"""
=============================================================================
VIRTUAL HOST FILTER
=============================================================================

Only answers requests addressed to the configured site:

    Host: www.example.com        hostname "example.com"   → served
    Host: example.com:8443       hostname "example.com"   → served
    Host: 203.0.113.5            hostname "example.com"   → 404

The check is a case-sensitive SUBSTRING match on the Host header, not an
exact comparison. "example.com" also admits "example.com.evil.test".
This keeps stray scanners hitting the bare IP away from the site; it is
not an access-control boundary.

An empty hostname admits every request.

=============================================================================
"""

import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import ResponseWriter, not_found

logger = logging.getLogger(__name__)


class HostFilterMiddleware(Middleware):
    """
    404s requests whose Host header does not contain `hostname`.

    Matching requests are passed to the next handler untouched, with the
    same writer.
    """

    def __init__(self, hostname: str):
        self.hostname = hostname

    def matches(self, request: HTTPRequest) -> bool:
        return self.hostname in request.host

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        if self.matches(request):
            next(request, writer)
            return

        logger.debug(f"Host {request.host!r} does not match {self.hostname!r}")
        not_found(writer)
