"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket for the lifetime of one request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Lifecycle                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NEW ──► HANDSHAKE ──► READING ──► PROCESSING ──► WRITING ──► CLOSED│
    │            │              │                                          │
    │            │              └── one line, at most 1024 bytes + CRLF    │
    │            └── TLS handshake, client certificate (optional)          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Gemini has no keep-alive: after the response is written the connection
is closed, and closing it is what tells the client the body is complete.

The TLS handshake runs here, in the worker thread, rather than in the
accept loop, so one slow client can't hold up accepting the next.

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..gemini.request import ClientIdentity, MAX_REQUEST_SIZE


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    HANDSHAKE = "handshake"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


class RequestTooLarge(ValueError):
    """The client sent more than a request line's worth of bytes without a CRLF."""


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket (an ssl.SSLSocket when TLS is on).
        address: Client's (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        identity: Client certificate identity, set by handshake().
    """

    socket: socket.socket
    address: tuple[str, int]
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    timeout: Optional[float] = 30.0
    max_request_size: int = MAX_REQUEST_SIZE

    identity: Optional[ClientIdentity] = None
    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    def handshake(self) -> Optional[ClientIdentity]:
        """
        Complete the TLS handshake and pick up the client certificate.

        A plain TCP socket (tests, a TLS-terminating proxy in front)
        has nothing to do here.

        Raises:
            ssl.SSLError, OSError: If the handshake fails.
        """
        if not self.is_tls:
            return None

        self.state = ConnectionState.HANDSHAKE
        self.socket.do_handshake()

        der = self.socket.getpeercert(binary_form=True)
        if der:
            self.identity = ClientIdentity.from_certificate(der, self.socket.getpeercert())
            logger.debug(f"[{self.id}] Client certificate {self.identity.fingerprint[:16]}")
        return self.identity

    def read_request(self) -> Optional[bytes]:
        """
        Read the request line, CRLF included.

        Returns:
            The request bytes. If the client closes early, whatever was
            received (the parser rejects it), or None if nothing was.

        Raises:
            TimeoutError: If the client is too slow.
            RequestTooLarge: If no CRLF arrives within the size limit.
        """
        self.state = ConnectionState.READING
        limit = self.max_request_size + 2

        try:
            while b"\r\n" not in self._buffer:
                chunk = self._recv(limit - len(self._buffer))
                if not chunk:
                    return self._buffer or None
                self._buffer += chunk

                if b"\r\n" not in self._buffer and len(self._buffer) >= limit:
                    raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

        except socket.timeout:
            raise TimeoutError("Request read timeout")

        end = self._buffer.index(b"\r\n") + 2
        request_data, self._buffer = self._buffer[:end], self._buffer[end:]
        self.state = ConnectionState.PROCESSING
        return request_data

    def _recv(self, size: int) -> bytes:
        try:
            return self.socket.recv(max(size, 1))
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def send_response(self, data: bytes) -> bool:
        """
        Send the whole response.

        Returns:
            True if sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def close(self):
        """
        Close the connection.

        TLS connections send close_notify first, so the client can tell
        a complete body from a truncated one.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        sock = self.socket
        if self.is_tls:
            try:
                sock.settimeout(0.5)
                sock = sock.unwrap()
            except (OSError, ValueError):
                sock = self.socket

        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        # Unread request bytes would turn close() into a reset, which can
        # destroy the response before the client reads it
        try:
            sock.settimeout(0.5)
            while sock.recv(1024):
                pass
        except OSError:
            pass

        for s in {sock, self.socket}:
            try:
                s.close()
            except OSError:
                pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
