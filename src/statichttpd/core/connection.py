"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket: buffered request reading, sending,
optional TLS handshake and graceful close.

=============================================================================
READING A REQUEST FROM A STREAM
=============================================================================

TCP delivers bytes, not messages. One recv() may return half a request,
or one and a half requests (pipelining). So we buffer:

    1. recv() until the buffer contains \\r\\n\\r\\n (end of headers)
    2. read Content-Length from the raw header block
    3. recv() until the body is complete
    4. hand back exactly one request, keep the rest for the next call

=============================================================================
KEEP-ALIVE TIMEOUTS
=============================================================================

    first request on a connection     timeout (default 30 s)
    subsequent requests               keep_alive_timeout (default 5 s)

An idle keep-alive connection that times out is closed quietly; a FIRST
request that times out is reported so the server can answer 408.

=============================================================================
TLS
=============================================================================

For the HTTPS listener the accept loop hands over the raw socket and the
worker thread calls start_tls() before reading anything. The handshake
therefore never blocks the accept loop.

=============================================================================
"""

import socket
import ssl
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple
import uuid

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states (for logging and debugging)."""

    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket (an SSLSocket after start_tls()).
        address: Peer address tuple as returned by accept().
        id: Short identifier for log correlation.
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: Tuple
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    def start_tls(self, context: ssl.SSLContext) -> bool:
        """
        Perform the server side of the TLS handshake.

        Returns:
            True on success; False if the handshake failed (bad client,
            plain HTTP spoken to the HTTPS port, timeout, ...).
        """
        try:
            self.socket = context.wrap_socket(self.socket, server_side=True)
            return True
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake with {self.address[0]} failed: {e}")
            return False

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Returns:
            The request bytes, or None if the client closed the connection
            (or an idle keep-alive connection timed out).

        Raises:
            TimeoutError: If the first request on the connection times out.
            ValueError: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if content_length > self.max_request_size:
                raise ValueError(f"Request too large: {content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 or not self._buffer:
                logger.debug(f"[{self.id}] Idle timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if self.state != ConnectionState.CLOSED:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        """recv() that maps resets and TLS errors to end-of-stream."""
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError, ssl.SSLError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from the raw header block, 0 if absent or invalid."""
        for line in headers.split(b"\r\n")[1:]:
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                try:
                    return max(int(value.strip()), 0)
                except ValueError:
                    return 0
        return 0

    def send(self, data: bytes) -> bool:
        """
        Send bytes to the client with sendall().

        Returns:
            True if everything was sent, False if the peer went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    def close(self):
        """
        Close the connection gracefully.

        shutdown(SHUT_WR) sends FIN so the client sees a clean end of the
        response, a short drain avoids an RST discarding data still in
        flight, then the descriptor is released.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        """Mark the connection as waiting for its next request."""
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
