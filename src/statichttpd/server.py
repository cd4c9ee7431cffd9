"""
=============================================================================
MAIN HTTP SERVER
=============================================================================

Ties the pieces together: configuration, listeners, per-connection
threads and the two handler chains.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HTTP SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │              ┌──────────────────┴──────────────────┐                │
    │              ▼                                     ▼                │
    │    ┌──────────────────┐                 ┌──────────────────┐        │
    │    │ SocketServer     │                 │ SocketServer     │        │
    │    │ "https" (TLS)    │                 │ "http"           │        │
    │    │ thread: listener │                 │ thread: listener │        │
    │    └────────┬─────────┘                 └────────┬─────────┘        │
    │             │ thread per connection              │                  │
    │             ▼                                    ▼                  │
    │    AccessLog → Gzip → HostFilter       AccessLog → Redirect         │
    │      → FileServer                                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Without TLS there is a single "http" listener running the file-serving
chain. Both chains share ONE access logger.

=============================================================================
LISTENER FAILURES
=============================================================================

The process is only healthy while every listener is accepting. If one of
them dies (port already in use, accept() failing), the failure is logged
at CRITICAL, the other listener is stopped, and run() raises
ListenerError. Nothing is retried.

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. Accept (listener thread) → spawn connection thread
    2. TLS handshake (HTTPS listener only)
    3. Read + parse request            parse error   → 4xx/5xx, close
    4. ConnectionResponseWriter
    5. handler(request, writer)        exception     → 500 or close
    6. writer.finish()                 keep-alive?   → back to 3

=============================================================================
"""

import signal
import ssl
import threading
import time
import logging
from typing import Dict, List, Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState
from .handlers import FileServer
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    ConnectionResponseWriter, HTTPStatus, error, format_remote_addr,
)
from .middleware import (
    Handler,
    MiddlewarePipeline,
    AccessLogMiddleware,
    GzipMiddleware,
    HostFilterMiddleware,
    RedirectMiddleware,
    create_access_logger,
)

logger = logging.getLogger(__name__)

# Stand-in request for errors raised before a request could be parsed
_UNPARSED_REQUEST = HTTPRequest(method="GET", uri="/", path="/", headers={"connection": "close"})

Listener = Tuple[SocketServer, Handler]


class ListenerError(Exception):
    """A listener could not bind, or stopped accepting while running."""

    def __init__(self, name: str, address: Tuple[str, int], cause: BaseException):
        host, port = address
        super().__init__(f"{name} listener on {host or '*'}:{port} failed: {cause}")
        self.name = name
        self.address = address
        self.cause = cause


class HTTPServer:
    """
    Static HTTP(S) server.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig.from_file("config.json")
        server = HTTPServer(config)
        server.run()                    # Blocks until SIGINT/SIGTERM

    run() builds the listeners from the config. Tests and embedders can
    drive the pieces separately:

        handler = server.build_handler()
        server.serve([(SocketServer("127.0.0.1", 0), handler)])

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._access_log: Optional[logging.Logger] = None

        self._listeners: List[SocketServer] = []
        self._running = False
        self._serving = threading.Event()
        self._stopped = threading.Event()
        self._failure: Optional[ListenerError] = None
        self._failure_lock = threading.Lock()

    # =========================================================================
    # HANDLER CHAINS
    # =========================================================================

    @property
    def access_log(self) -> logging.Logger:
        """The shared access logger, created on first use."""
        if self._access_log is None:
            self._access_log = create_access_logger(self.config.access_log)
        return self._access_log

    def build_handler(self) -> Handler:
        """AccessLog → Gzip → HostFilter → FileServer."""
        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware(self.access_log))
        pipeline.add(GzipMiddleware(self.config.gzip))
        pipeline.add(HostFilterMiddleware(self.config.hostname))
        return pipeline.wrap(
            FileServer(self.config.root, directory_listing=self.config.directory_listing)
        )

    def build_redirect_handler(self) -> Handler:
        """AccessLog → Redirect, for the plain-HTTP side of a TLS setup."""
        _, https_port = self.config.https_bind
        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware(self.access_log))
        return pipeline.wrap(
            RedirectMiddleware(https_port=https_port, fallback_host=self.config.hostname)
        )

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def create_ssl_context(self) -> ssl.SSLContext:
        """
        Server-side TLS context from the configured certificate and key.

        Raises:
            ValueError: If the certificate or key cannot be loaded.
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        try:
            context.load_cert_chain(self.config.ssl_cert, self.config.ssl_key)
        except (ssl.SSLError, OSError) as e:
            raise ValueError(f"Cannot load TLS certificate/key: {e}") from e
        return context

    def _socket_server(self, address: Tuple[str, int], name: str,
                       ssl_context: Optional[ssl.SSLContext] = None) -> SocketServer:
        host, port = address
        return SocketServer(
            host,
            port,
            name=name,
            ssl_context=ssl_context,
            backlog=self.config.backlog,
            buffer_size=self.config.buffer_size,
            timeout=self.config.timeout,
            keep_alive_timeout=self.config.keep_alive_timeout,
            max_request_size=self.config.max_request_size,
        )

    def listeners(self, ssl_context: Optional[ssl.SSLContext] = None) -> List[Listener]:
        """
        The (listener, handler) pairs this configuration runs.

            TLS off:  [http → file chain]
            TLS on:   [https → file chain, http → redirect chain]
        """
        if not self.config.ssl_enabled:
            return [(self._socket_server(self.config.http_bind, "http"), self.build_handler())]

        if ssl_context is None:
            ssl_context = self.create_ssl_context()

        return [
            (self._socket_server(self.config.https_bind, "https", ssl_context), self.build_handler()),
            (self._socket_server(self.config.http_bind, "http"), self.build_redirect_handler()),
        ]

    @property
    def addresses(self) -> Dict[str, Tuple[str, int]]:
        """Bound address of each running listener, by name."""
        return {server.name: server.address for server in self._listeners}

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Raises:
            ListenerError: If a listener fails to bind or stops accepting.
            ValueError: If the TLS certificate/key cannot be loaded.
        """
        self._setup_logging()
        listeners = self.listeners()
        previous_handlers = self._install_signal_handlers()
        self._print_startup_banner()
        try:
            self.serve(listeners)
        finally:
            for signum, handler in previous_handlers.items():
                if handler is not None:
                    signal.signal(signum, handler)

    def serve(self, listeners: List[Listener]):
        """
        Run every listener on its own thread until shutdown() or until
        one of them fails.
        """
        self._listeners = [server for server, _ in listeners]
        self._failure = None
        self._stopped.clear()
        self._running = True

        threads = []
        for server, handler in listeners:
            thread = threading.Thread(
                target=self._run_listener,
                args=(server, handler),
                name=f"listener-{server.name}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)

        self._serving.set()

        try:
            # Short waits keep the main thread responsive to signals
            while not self._stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.shutdown()
            for thread in threads:
                thread.join(timeout=5.0)
            self._serving.clear()
            logger.info("Server stopped")

        if self._failure is not None:
            raise self._failure

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until every listener is accepting. False on timeout or failure."""
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._serving.wait(timeout):
            return False

        for server in self._listeners:
            while not server.wait_until_ready(0.05):
                if self._stopped.is_set():
                    return False
                if deadline is not None and time.monotonic() > deadline:
                    return False
        return not self._stopped.is_set()

    def shutdown(self):
        """Stop every listener. Safe from signal handlers and other threads."""
        if self._running:
            logger.info("Shutting down server...")
        self._running = False
        for server in self._listeners:
            server.shutdown()
        self._stopped.set()

    def _run_listener(self, server: SocketServer, handler: Handler):
        def on_connection(conn: Connection):
            self._handle_connection(conn, handler, server.ssl_context)

        try:
            server.start(on_connection)
        except Exception as e:
            self._listener_failed(server, e)
            return

        if self._running:
            self._listener_failed(server, RuntimeError("accept loop exited"))

    def _listener_failed(self, server: SocketServer, cause: BaseException):
        failure = ListenerError(server.name, (server.host, server.port), cause)
        logger.critical(f"{failure}; stopping all listeners")
        with self._failure_lock:
            if self._failure is None:
                self._failure = failure
        self.shutdown()

    def _install_signal_handlers(self) -> Dict[int, object]:
        """
        SIGINT/SIGTERM → graceful shutdown (main thread only).

        Returns:
            The handlers that were replaced, for run() to restore.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; signal handlers not installed")
            return {}

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
            self.shutdown()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, handle_signal)
        return previous

    def _setup_logging(self):
        """Configure diagnostic logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("statichttpd").setLevel(level)

    def _print_startup_banner(self):
        """Print server startup information."""
        print()
        print(f"  {self.config.server_name}")
        if self.config.ssl_enabled:
            print(f"  https  {self.config.https_address}  (root {self.config.root})")
            print(f"  http   {self.config.http_address}  (redirect to https)")
        else:
            print(f"  http   {self.config.http_address}  (root {self.config.root})")
        if self.config.hostname:
            print(f"  host   *{self.config.hostname}*")
        if self.config.gzip:
            print(f"  gzip   {', '.join(self.config.gzip)}")
        print("  Press Ctrl+C to stop")
        print()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection, handler: Handler,
                           ssl_context: Optional[ssl.SSLContext] = None):
        """Give each accepted connection its own thread."""
        thread = threading.Thread(
            target=self._process_connection,
            args=(conn, handler, ssl_context),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()

    def _process_connection(self, conn: Connection, handler: Handler,
                            ssl_context: Optional[ssl.SSLContext] = None):
        """
        Serve requests on one connection until it closes (worker thread).

        =====================================================================
        CONNECTION PROCESSING LOOP
        =====================================================================

        1. Read request from socket
        2. Parse HTTP request
        3. Run the handler chain against a ConnectionResponseWriter
        4. finish() the response
        5. If the connection can be reused: repeat from step 1

        =====================================================================
        """
        with conn:
            if ssl_context is not None and not conn.start_tls(ssl_context):
                return

            remote_addr = format_remote_addr(conn.address)

            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break
                except ValueError as e:
                    logger.debug(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, remote_addr)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] Bad request from {remote_addr}: {e}")
                    self._send_error(conn, e.status_code)
                    break

                conn.state = ConnectionState.PROCESSING
                writer = ConnectionResponseWriter(
                    conn,
                    request,
                    server_name=self.config.server_name,
                    keep_alive=self.config.keep_alive,
                )

                try:
                    handler(request, writer)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Handler error for {request.method} {request.uri}: {e}")
                    if writer.committed:
                        # Part of the response is already out
                        break
                    writer.headers.clear()
                    writer.headers["Connection"] = "close"
                    error(writer, HTTPStatus.INTERNAL_SERVER_ERROR)
                    writer.finish()
                    break

                if not writer.finish():
                    break

                conn.set_keep_alive()

    def _send_error(self, conn: Connection, status: int):
        """
        Send an error response outside the handler chain.

        Used for errors that occur before a request exists (parse errors,
        timeouts, oversized requests). The connection is closed afterwards.
        """
        writer = ConnectionResponseWriter(
            conn,
            _UNPARSED_REQUEST,
            server_name=self.config.server_name,
            keep_alive=False,
        )
        error(writer, status)
        writer.finish()

