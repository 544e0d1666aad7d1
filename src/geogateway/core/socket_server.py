"""
=============================================================================
SOCKET SERVER
=============================================================================

The TCP listener under the HTTP server: socket options, bind, listen and
the accept loop. Every accepted socket becomes a Connection that is handed
to a callback; this module knows nothing about HTTP.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   socket() ──► setsockopt() ──► bind() ──► listen()                  │
    │                                              │                       │
    │                        ┌─────────────────────┘                       │
    │                        ▼                                             │
    │                 ┌─────────────┐   timeout (0.5s)                     │
    │          ┌─────►│  accept()   │──────────────┐                       │
    │          │      └──────┬──────┘              │                       │
    │          │             │ client socket       │ still accepting?      │
    │          │             ▼                     │                       │
    │          │      connection_handler(conn)     │                       │
    │          └─────────────┴─────────────────────┘                       │
    │                                                                      │
    │   stop_accepting() ──► loop exits ──► listener closed ──► stopped    │
    └─────────────────────────────────────────────────────────────────────┘

Binding is a separate step from serving so that a bind failure can be
reported before the accept loop would have started. Signal handling lives
in the lifecycle controller, not here.

=============================================================================
"""

import socket
import threading
import logging
from typing import Callable, Optional, Tuple

from .connection import Connection
from ..config import GatewayConfig


logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 0.5


class SocketServer:
    """
    Low-level TCP socket server.

        server = SocketServer(config)
        if server.bind():
            server.serve_forever(handle_connection)   # blocks
    """

    def __init__(self, config: GatewayConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stopped = threading.Event()
        self._address: Tuple[str, int] = (config.host, config.port)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (ip, port); the real port once bound to port 0."""
        return self._address

    def _create_socket(self, family: int) -> socket.socket:
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Restart without waiting out TIME_WAIT on the old port
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Small responses go out immediately
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically to notice stop_accepting()
        sock.settimeout(ACCEPT_POLL_INTERVAL)

        return sock

    def bind(self) -> bool:
        """
        Create the listening socket, bind and listen.

        Returns:
            True when listening. On failure the error is logged and False
            is returned; nothing is raised.
        """
        host, port = self.config.host, self.config.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        bind_host = host or ("::" if family == socket.AF_INET6 else "0.0.0.0")

        sock = self._create_socket(family)

        try:
            sock.bind((bind_host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.bind_address}: {e}")
            sock.close()
            return False

        self._socket = sock
        self._address = sock.getsockname()[:2]
        self._running = True
        self._stopped.clear()

        logger.info(f"Server listening on {self._address[0]}:{self._address[1]}")
        return True

    def serve_forever(self, connection_handler: Callable[[Connection], None]) -> None:
        """
        Run the accept loop until stop_accepting(). Blocks.

        The listener is closed when the loop exits.
        """
        if self._socket is None:
            raise RuntimeError("serve_forever() called before a successful bind()")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            if not self._running:
                client_socket.close()
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                read_timeout=self.config.read_timeout,
                write_timeout=self.config.write_timeout,
                idle_timeout=self.config.idle_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def stop_accepting(self) -> None:
        """Ask the accept loop to exit. Idempotent."""
        if self._running:
            logger.info("No longer accepting connections")
        self._running = False

    def _cleanup(self) -> None:
        self._running = False
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        logger.info("Listener closed")
        self._stopped.set()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the listener is closed.

        Returns:
            True if closed, False on timeout.
        """
        return self._stopped.wait(timeout)
