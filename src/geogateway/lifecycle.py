"""
=============================================================================
LIFECYCLE CONTROLLER
=============================================================================

Starts the server in the background, blocks until the process is told to
stop, then drives a graceful shutdown with a fixed deadline.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   STARTING ──listener bound──► RUNNING                               │
    │      │                            │                                  │
    │      │                            │ SIGINT / SIGTERM                 │
    │      │                            ▼                                  │
    │      └────── signal ──────► DRAINING ──drained or 30s──► STOPPED     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

SIGKILL cannot be caught, so SIGTERM (what ``kill``, ``docker stop`` and
systemd send first) is the kill signal that is handled. A server whose
bind failed never leaves STARTING; the controller still waits for a
signal and then stops.

The controller is the only writer of the lifecycle state. The signal
handler only sets an Event; the main thread does the rest.

=============================================================================
"""

import logging
import signal
import threading
from enum import Enum
from typing import Dict, Optional, Sequence

from .config import SHUTDOWN_TIMEOUT
from .server import HTTPServer


logger = logging.getLogger(__name__)


SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class LifecycleController:
    """
    Owns one server for the lifetime of the process.

        controller = LifecycleController(server)
        sys.exit(controller.run())     # returns 0 after shutdown

    Args:
        server: The server to run. Not yet started.
        shutdown_timeout: Drain deadline in seconds.
        signals: Signals that trigger shutdown.
    """

    def __init__(
        self,
        server: HTTPServer,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        signals: Sequence[int] = SHUTDOWN_SIGNALS,
    ):
        self._server = server
        self._shutdown_timeout = shutdown_timeout
        self._signals = tuple(signals)

        self._state = LifecycleState.STARTING
        self._state_lock = threading.Lock()
        self._stop_requested = threading.Event()
        # request_shutdown() may be re-entered from a signal handler
        self._request_lock = threading.RLock()
        self._stopped = threading.Event()
        self._signum: Optional[int] = None
        self._original_handlers: Dict[int, object] = {}
        self.drained: Optional[bool] = None
        self.exit_code: Optional[int] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def server(self) -> HTTPServer:
        return self._server

    def _transition(self, expected: Sequence[LifecycleState], new: LifecycleState) -> bool:
        with self._state_lock:
            if self._state not in expected:
                return False
            logger.debug(f"Lifecycle {self._state.value} -> {new.value}")
            self._state = new
            return True

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def request_shutdown(self, signum: Optional[int] = None) -> bool:
        """
        Ask the controller to stop. Safe from signal handlers and other
        threads; only the first call has any effect.

        Returns:
            True for the call that triggered shutdown.
        """
        with self._request_lock:
            if self._stop_requested.is_set():
                return False
            self._signum = signum
            self._stop_requested.set()
            return True

    def _handle_signal(self, signum, frame):
        name = signal.Signals(signum).name
        if self.request_shutdown(signum):
            logger.info(f"Received {name}, initiating graceful shutdown...")
        else:
            logger.info(f"Received {name}, shutdown already in progress")

    def _install_signal_handlers(self) -> None:
        # signal.signal() only works on the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        for sig in self._signals:
            self._original_handlers[sig] = signal.signal(sig, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # RUNNING
    # =========================================================================

    def _watch_startup(self) -> None:
        if self._server.wait_ready():
            self._transition([LifecycleState.STARTING], LifecycleState.RUNNING)
        else:
            logger.error("Server is not listening; waiting for a termination signal")

    def run(self) -> int:
        """
        Run until a termination signal, then shut down.

        Returns:
            The process exit code, always 0.
        """
        self._install_signal_handlers()

        try:
            self._server.start()
            threading.Thread(
                target=self._watch_startup,
                name="geogateway-startup",
                daemon=True,
            ).start()

            self._stop_requested.wait()

            self._transition(
                [LifecycleState.STARTING, LifecycleState.RUNNING],
                LifecycleState.DRAINING,
            )
            self.drained = self._server.shutdown(self._shutdown_timeout)
            self._transition([LifecycleState.DRAINING], LifecycleState.STOPPED)
            logger.info("Shutdown complete")
            self.exit_code = 0
        finally:
            self._restore_signal_handlers()
            self._stopped.set()

        return self.exit_code

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has finished shutting down and set exit_code."""
        return self._stopped.wait(timeout)
