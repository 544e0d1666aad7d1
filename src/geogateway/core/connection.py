"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered request reading, response
writing, the three per-connection timeouts and the close/abort paths used
by graceful shutdown.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever the kernel has, not one request. Bytes are
buffered until the header terminator arrives, then the body is read by
Content-Length. Anything left over belongs to the next pipelined request
and stays in the buffer.

    recv() → "GET /geocode/Los%20An"
    recv() → "geles HTTP/1.1\\r\\nHost: ...\\r\\n\\r\\n"    ← request complete

=============================================================================
TIMEOUTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept ──► [wait first byte] ──► [read rest] ──► handler ──►       │
    │                 read_timeout        read_timeout                     │
    │                                                                      │
    │   ──► [send response] ──► [wait next byte] ──► [read rest] ──► ...   │
    │         write_timeout       idle_timeout        read_timeout         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

read_timeout is a deadline for the whole request, not a per-recv() limit:
it runs from accept for the first request and from the first byte of
each later one. Running out of idle time (or read time before any byte
arrived) ends the connection quietly. Running out of read time in the
middle of a request raises TimeoutError so the server can answer 408.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐
     │                                                 ▲        │
     │                                                 └────────┘
     └──────────────────────► CLOSING ──► CLOSED ◄──────────────┘

KEEP_ALIVE is idle: the connection holds no request. NEW only counts as
idle once it has been open for NEW_CONNECTION_GRACE seconds, so a client
that connected just before shutdown still gets to send its request.
Graceful shutdown closes idle connections and waits for the others.

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


# A connection that has sent nothing yet is left alone this long by
# graceful shutdown.
NEW_CONNECTION_GRACE = 5.0


@dataclass
class Connection:
    """
    One client connection.

    Owned by the thread that serves it. The only calls made from other
    threads are ``close_if_idle()`` and ``abort()``, both of which take the
    connection's lock.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current connection state.
        created_at: time.monotonic() when the connection was accepted.
        requests_handled: Requests fully read on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    read_timeout: float = 15.0
    write_timeout: float = 15.0
    idle_timeout: float = 60.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _aborted: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.read_timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_idle(self) -> bool:
        with self._lock:
            return self._idle_locked()

    def _idle_locked(self) -> bool:
        if self.state is ConnectionState.KEEP_ALIVE:
            return True
        return (
            self.state is ConnectionState.NEW
            and time.monotonic() - self.created_at >= NEW_CONNECTION_GRACE
        )

    @property
    def aborted(self) -> bool:
        return self._aborted

    def _set_state(self, state: ConnectionState) -> None:
        with self._lock:
            if self.state not in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                self.state = state

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Returns:
            The request bytes, or None when the connection ended cleanly
            (client closed, idle timeout, or the connection was aborted).

        Raises:
            TimeoutError: If the read timeout expires mid-request.
            ValueError: If the request exceeds max_request_size.
        """
        first = self.requests_handled == 0
        if not self._buffer and not self._await_first_byte():
            return None

        started = self.created_at if first else time.monotonic()
        deadline = started + self.read_timeout
        self._set_state(ConnectionState.READING)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv_before(deadline)
                if not chunk:
                    return None
                self._append(chunk)

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv_before(deadline)
                if not chunk:
                    break
                self._append(chunk)

        except socket.timeout:
            raise TimeoutError("Request read timeout")

        request_end = body_start + content_length
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]

        self.requests_handled += 1
        self._set_state(ConnectionState.PROCESSING)
        return request_data

    def _await_first_byte(self) -> bool:
        """
        Block in an idle state until the next request starts.

        The first request gets what is left of its read deadline; later
        requests on a keep-alive connection get the idle timeout.
        """
        first = self.requests_handled == 0

        with self._lock:
            if self._aborted:
                return False
            if self.state not in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                self.state = ConnectionState.NEW if first else ConnectionState.KEEP_ALIVE

        if first:
            timeout = self.created_at + self.read_timeout - time.monotonic()
            if timeout <= 0:
                return False
        else:
            timeout = self.idle_timeout
        self.socket.settimeout(timeout)

        try:
            chunk = self._recv()
        except socket.timeout:
            logger.debug(f"[{self.id}] {'Read' if first else 'Idle'} timeout, closing")
            return False

        if not chunk:
            return False

        self._append(chunk)
        return True

    def _append(self, chunk: bytes) -> None:
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        """recv() that maps a dead peer to b""."""
        try:
            return self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            return b""

    def _recv_before(self, deadline: float) -> bytes:
        """recv() bounded by what is left until ``deadline`` (monotonic)."""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise socket.timeout("read deadline passed")
        self.socket.settimeout(remaining)
        return self._recv()

    def _parse_content_length(self, headers: bytes) -> int:
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a full response within the write timeout.

        Returns:
            True if sent, False if the peer is gone, the write timed out
            or the connection was aborted.
        """
        if self._aborted:
            return False

        self._set_state(ConnectionState.WRITING)
        self.socket.settimeout(self.write_timeout)

        try:
            self.socket.sendall(data)
        except socket.timeout:
            logger.warning(f"[{self.id}] Write timeout after {self.write_timeout}s")
            return False
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close_if_idle(self) -> bool:
        """
        Abort the connection if it holds no request. Called during
        graceful shutdown from outside the connection's thread.
        """
        with self._lock:
            if self._aborted or not self._idle_locked():
                return False
            self._abort_locked()
            return True

    def abort(self) -> None:
        """
        Forcibly cut the connection.

        shutdown(SHUT_RDWR) wakes the serving thread out of recv() or
        sendall(); that thread still owns the final close().
        """
        with self._lock:
            if not self._aborted:
                self._abort_locked()

    def _abort_locked(self) -> None:
        self._aborted = True
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        logger.debug(f"[{self.id}] Connection aborted in state {self.state.value}")

    def close(self) -> None:
        """
        Close gracefully: FIN, drain whatever the client still sends,
        release the descriptor. Safe to call more than once.
        """
        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

        if not self._aborted:
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

        with self._lock:
            self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
