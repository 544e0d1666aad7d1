"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the pieces together: the socket listener accepts, the tracker gives
each connection a thread, the parser turns bytes into requests and the
middleware-wrapped router turns requests into responses.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   SocketServer ──accept──► ConnectionTracker ──thread──►             │
    │                                                                      │
    │   _process_connection(conn):                                         │
    │       loop:                                                          │
    │         conn.read_request()          read / idle timeout             │
    │         RequestParser.parse()        400 / 405 / 413 / 505           │
    │         Logging ──► Router ──► handler                               │
    │         conn.send_response()         write timeout                   │
    │       until Connection: close, error, or draining                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    shutdown(timeout)
      1. mark draining            responses now carry Connection: close
      2. stop accepting           the listener is closed, port released
      3. close idle connections   KEEP_ALIVE, silent NEW, repeatedly
      4. wait for in-flight       until none remain or the deadline
      5. abort the rest           shutdown(SHUT_RDWR) on each socket

=============================================================================
"""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

from .config import GatewayConfig, SHUTDOWN_TIMEOUT
from .core.connection import Connection
from .core.socket_server import SocketServer
from .core.tracker import ConnectionTracker
from .http.request import HTTPRequest, RequestParser, HTTPParseError
from .http.response import HTTPResponse, ResponseBuilder, internal_error
from .http.router import Router
from .http.status_codes import HTTPStatus
from .middleware.base import Middleware, MiddlewarePipeline


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger for the gateway process."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("geogateway").setLevel(numeric_level)


class HTTPServer:
    """
    HTTP/1.1 server with a middleware pipeline and graceful shutdown.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(GatewayConfig(bind_address="127.0.0.1:8080"))

        @server.route("/")
        def index(request):
            return ok("Server is up and running!\\n")

        server.use(LoggingMiddleware())

        server.start()            # background thread, returns immediately
        ...
        server.shutdown(30.0)     # drain, then cut off stragglers

    ``serve()`` is the blocking variant of ``start()``. A server serves at
    most once; it is not restartable.

    =========================================================================
    """

    def __init__(self, config: Optional[GatewayConfig] = None, router: Optional[Router] = None):
        self.config = config or GatewayConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._tracker = ConnectionTracker(self._process_connection)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._router = router or Router()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        self._serve_thread: Optional[threading.Thread] = None
        self._served = False
        self._listening = False
        self._ready = threading.Event()
        self._draining = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_result: Optional[bool] = None

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add a middleware stage. The first one added runs first."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    def route(self, path: str, method: Optional[str] = None, name: Optional[str] = None):
        return self._router.route(path, method, name)

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (ip, port), meaningful once listening."""
        return self._socket_server.address

    @property
    def listening(self) -> bool:
        return self._listening and self._socket_server.is_running

    @property
    def draining(self) -> bool:
        return self._draining.is_set()

    @property
    def active_connections(self) -> int:
        return self._tracker.active_count

    # =========================================================================
    # RUNNING
    # =========================================================================

    def serve(self) -> bool:
        """
        Bind and run the accept loop. Blocks until shutdown.

        Returns:
            False if the listener could not be established (already
            logged), True after a normal stop.
        """
        if self._served:
            raise RuntimeError("A server can only be served once")
        self._served = True

        self._handler = self._middleware.wrap(self._router.handle)
        self._router.freeze()
        self._router.log_routes()

        if self._draining.is_set() or not self._socket_server.bind():
            self._ready.set()
            return False

        self._listening = True
        self._ready.set()

        # shutdown() may have run while bind() was in progress
        if self._draining.is_set():
            self._socket_server.stop_accepting()

        self._socket_server.serve_forever(self._tracker.dispatch)
        return True

    def start(self) -> threading.Thread:
        """Run serve() on a background thread and return immediately."""
        self._serve_thread = threading.Thread(
            target=self.serve,
            name="geogateway-server",
            daemon=True,
        )
        self._serve_thread.start()
        return self._serve_thread

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the bind attempt to finish.

        Returns:
            True if the server is listening.
        """
        self._ready.wait(timeout)
        return self._listening

    def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> bool:
        """
        Stop accepting and drain in-flight requests within ``timeout``
        seconds, then forcibly close whatever is left.

        Only the first call does the work; later calls return its result.

        Returns:
            True if every connection finished before the deadline.
        """
        with self._shutdown_lock:
            if self._shutdown_result is not None:
                return self._shutdown_result

            deadline = time.monotonic() + timeout
            logger.info(f"Shutting down, deadline {timeout:g}s")

            self._draining.set()
            self._tracker.stop_accepting()
            self._socket_server.stop_accepting()

            if self._listening:
                self._socket_server.wait_stopped(max(0.0, deadline - time.monotonic()))

            drained = self._tracker.wait_for_drain(deadline)
            if drained:
                logger.info("All connections drained")
            else:
                cut = self._tracker.abort_all()
                logger.warning(f"Shutdown deadline reached, cut off {cut} connection(s)")

            if self._serve_thread is not None:
                self._serve_thread.join(max(0.0, deadline - time.monotonic()))

            self._listening = False
            self._shutdown_result = drained
            logger.info("Server stopped")
            return drained

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _process_connection(self, conn: Connection) -> None:
        """
        Serve requests on one connection until it should close.

        Runs on the connection's thread. The tracker closes the
        connection afterwards.
        """
        while True:
            try:
                raw_request = conn.read_request()
            except TimeoutError:
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                return
            except ValueError as e:
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                return

            if raw_request is None:
                return

            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                self._send_error(conn, HTTPStatus(e.status_code), str(e))
                return

            try:
                response = self._handler(request)
            except Exception as e:
                logger.exception(f"[{conn.id}] Handler error: {e}")
                response = internal_error()

            keep_alive = request.is_keep_alive and not self._draining.is_set()
            if keep_alive:
                response.headers.setdefault("Connection", "keep-alive")
                response.headers.setdefault(
                    "Keep-Alive", f"timeout={int(self.config.idle_timeout)}"
                )
            else:
                response.headers["Connection"] = "close"

            # HEAD gets the headers of the full response, without its body
            payload = response.to_bytes(
                self.config.server_name,
                include_body=request.method != "HEAD",
            )
            if not conn.send_response(payload):
                return

            if response.headers.get("Connection") == "close":
                return

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str) -> None:
        """Answer a request that never reached the handler chain."""
        response = (ResponseBuilder()
            .status(status)
            .json({"error": message})
            .close_connection()
            .build())

        conn.send_response(response.to_bytes(self.config.server_name))
