"""
=============================================================================
SOCKET SERVER (ONE LISTENER)
=============================================================================

Owns one listening TCP socket and its accept loop. The HTTP server runs
one SocketServer per listen address: a single one for plain HTTP, or two
(HTTPS + HTTP redirect) in the TLS variant.

=============================================================================
LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(handler)                                                    │
    │        ├──► _create_socket()   AF_INET / AF_INET6, SO_REUSEADDR,    │
    │        │                       TCP_NODELAY, 1 s accept timeout      │
    │        ├──► bind()             OSError here is FATAL, re-raised     │
    │        ├──► listen()                                                 │
    │        ├──► ready event set    (tests wait on this)                 │
    │        └──► _accept_loop()     blocks until shutdown()              │
    │                 └──► accept() → Connection → handler(conn)          │
    │                                                                      │
    │    shutdown()                  event, loop exits ≤ 1 s              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURES ARE NEVER SWALLOWED
=============================================================================

A bind error (port in use, permission denied) or an accept error while
the server is supposed to be running is logged and RAISED out of start().
The HTTP server watches every listener and turns one listener dying into
a process-level failure instead of a silent partial outage.

=============================================================================
"""

import socket
import ssl
import logging
import threading
from typing import Callable, Optional, Tuple

from .connection import Connection

logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

    Args:
        host: Interface to bind ("" = all interfaces).
        port: Port to bind (0 = let the OS pick one).
        name: Label used in log messages ("http", "https").
        ssl_context: If set, accepted connections are TLS; the handshake
                     happens later, in the connection's worker thread.
        backlog, buffer_size, timeout, keep_alive_timeout, max_request_size:
                     Socket and per-connection tuning.

    Usage:
        server = SocketServer("127.0.0.1", 8080)
        server.start(handle_connection)  # Blocks until shutdown()
    """

    def __init__(
        self,
        host: str,
        port: int,
        name: str = "http",
        ssl_context: Optional[ssl.SSLContext] = None,
        backlog: int = 128,
        buffer_size: int = 8192,
        timeout: Optional[float] = 30.0,
        keep_alive_timeout: float = 5.0,
        max_request_size: int = 1024 * 1024,
    ):
        self.host = host
        self.port = port
        self.name = name
        self.ssl_context = ssl_context
        self.backlog = backlog
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.max_request_size = max_request_size

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port), or the configured one before binding.

        After binding this reflects the real port, which matters when the
        configured port was 0.
        """
        if self._socket is not None:
            bound = self._socket.getsockname()
            return bound[0], bound[1]
        return self.host, self.port

    def _create_socket(self) -> socket.socket:
        """
        Create and configure the listening socket.

        "" binds every interface; when the platform supports it that is a
        dual-stack IPv6 socket so both IPv4 and IPv6 clients get in.
        """
        if ":" in self.host:
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        elif self.host == "" and socket.has_dualstack_ipv6():
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        else:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restarting the server must not fail on sockets in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses go out as soon as they are written
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second to notice shutdown()
        sock.settimeout(1.0)
        return sock

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and run the accept loop. Blocks until shutdown().

        Raises:
            OSError: If binding/listening fails, or accept() fails while
                     the server is running.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.host, self.port))
            self._socket.listen(self.backlog)
        except OSError as e:
            logger.error(f"[{self.name}] Failed to listen on {self.host or '*'}:{self.port}: {e}")
            self._close_socket()
            raise

        self._running = True
        self._ready.set()

        host, port = self.address
        logger.info(f"[{self.name}] Listening on {host}:{port}")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._running = False
            self._close_socket()
            logger.info(f"[{self.name}] Listener stopped")

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        socket.timeout is the normal 1-second wake-up. Any other OSError
        while we are still meant to be running is re-raised.
        """
        while not self._shutdown_event.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown_event.is_set():
                    break
                logger.error(f"[{self.name}] Accept error: {e}")
                raise

            logger.debug(f"[{self.name}] Accepted connection from {client_address[0]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.buffer_size,
                timeout=self.timeout,
                keep_alive_timeout=self.keep_alive_timeout,
                max_request_size=self.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """
        Ask the accept loop to stop. Safe to call repeatedly, from any
        thread, and before start(): a listener told to stop before it got
        going exits right after binding.
        """
        self._shutdown_event.set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._ready.wait(timeout)

    def _close_socket(self):
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
