"""
=============================================================================
MIDDLEWARE
=============================================================================

Every stage has the same shape, handler(request, writer), so chains are
built by nesting:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  main listener                                                       │
    │    AccessLogMiddleware → GzipMiddleware → HostFilterMiddleware       │
    │      → FileServer                                                    │
    │                                                                      │
    │  plain-HTTP listener when TLS is on                                  │
    │    AccessLogMiddleware → RedirectMiddleware                          │
    └─────────────────────────────────────────────────────────────────────┘

AccessLogMiddleware:
    One line per request with the status and the bytes actually sent.

GzipMiddleware:
    Streams a gzip body for configured extensions when the client
    advertises gzip support.

HostFilterMiddleware:
    404s requests whose Host header does not contain the site hostname.

RedirectMiddleware:
    Terminal. 301 to the https:// URL plus an HSTS header.

=============================================================================
"""

from .base import Handler, Middleware, MiddlewarePipeline, NextHandler
from .logging import AccessLogMiddleware, create_access_logger, normalize_remote_addr
from .compression import GzipMiddleware, compile_extension_pattern
from .host_filter import HostFilterMiddleware
from .redirect import RedirectMiddleware, HSTS_MAX_AGE

__all__ = [
    # Base classes
    "Handler",
    "NextHandler",
    "Middleware",
    "MiddlewarePipeline",

    # Built-in middleware
    "AccessLogMiddleware",
    "GzipMiddleware",
    "HostFilterMiddleware",
    "RedirectMiddleware",

    # Helpers
    "create_access_logger",
    "normalize_remote_addr",
    "compile_extension_pattern",
    "HSTS_MAX_AGE",
]
