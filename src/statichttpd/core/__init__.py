"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • One listening socket + accept loop per listen address            │
    │  • Bind/accept failures are raised, never swallowed                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one thread per accepted connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered request reading, keep-alive timeouts                    │
    │  • Optional TLS handshake in the worker thread                      │
    │  • sendall() based writes, graceful close                           │
    └─────────────────────────────────────────────────────────────────────┘

THREAD-PER-CONNECTION
    Each accepted connection gets its own daemon thread. There is no pool
    and no queue: concurrency is bounded only by what the OS will accept.
    Request handling shares no mutable state except the access log, whose
    logging handler serializes each line.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
]
