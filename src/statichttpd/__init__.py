"""
=============================================================================
STATICHTTPD - Static HTTP(S) Server With a Middleware Chain
=============================================================================

Serves a document root over HTTP/1.1 from raw sockets, with every
response passing through a small chain of streaming middleware:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   AccessLog ──► Gzip ──► HostFilter ──► FileServer                  │
    │   one line      by ext   Host must      files, listings,            │
    │   per request   + Accept contain the    304s, redirects             │
    │                 Encoding site name                                  │
    │                                                                      │
    │   With TLS enabled the plain-HTTP port runs                          │
    │   AccessLog ──► Redirect (301 to https + HSTS)                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    statichttpd/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m statichttpd)
    ├── server.py            # HTTPServer: listeners, connection loop
    ├── config.py            # ServerConfig dataclass, config.json loader
    ├── core/
    │   ├── socket_server.py # Listening socket + accept loop
    │   └── connection.py    # Per-client socket wrapper, TLS handshake
    ├── http/
    │   ├── request.py       # Request parsing
    │   ├── response.py      # ResponseWriter, ConnectionResponseWriter
    │   ├── writers.py       # ResponseRecorder, CompressingWriter
    │   ├── status_codes.py  # HTTP status enum
    │   └── mime_types.py    # Content-Type by extension
    ├── middleware/
    │   ├── base.py          # Middleware ABC, MiddlewarePipeline
    │   ├── logging.py       # Access log
    │   ├── compression.py   # gzip
    │   ├── host_filter.py   # Virtual host filter
    │   └── redirect.py      # HTTP → HTTPS redirect
    └── handlers/
        └── static.py        # FileServer

=============================================================================
QUICK START
=============================================================================

    from statichttpd import HTTPServer, ServerConfig

    config = ServerConfig(
        http_address=":8080",
        root="./public",
        hostname="example.com",
        gzip=("html", "css", "js"),
        access_log="access.log",
    )
    HTTPServer(config).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, ListenerError
from .config import ServerConfig

__all__ = ["HTTPServer", "ListenerError", "ServerConfig", "__version__"]
