"""
=============================================================================
CONNECTION TRACKER
=============================================================================

Runs each connection on its own thread and keeps the set of live
connections, so that shutdown can see what is still in flight.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   accept loop                                                        │
    │       │ dispatch(conn)                                               │
    │       ▼                                                              │
    │   ┌────────────────────────────┐                                     │
    │   │  live: {id → Connection}   │◄── thread per connection            │
    │   └────────────────────────────┘     removes itself when done        │
    │                                                                      │
    │   shutdown:                                                          │
    │     stop_accepting()   new connections are refused                   │
    │     close_idle()       KEEP_ALIVE and silent NEW connections aborted │
    │     wait_for_drain()   block until empty or deadline                 │
    │     abort_all()        whatever is left is cut off                   │
    └─────────────────────────────────────────────────────────────────────┘

Unlike a fixed worker pool, a thread per connection never starves: a
client idling on keep-alive for the full idle timeout holds only its own
thread.

=============================================================================
"""

import threading
import time
import logging
from typing import Callable, Dict, List

from .connection import Connection


logger = logging.getLogger(__name__)


# A connection still open is re-checked for idleness this often while
# draining, since it may finish its request after the first sweep.
DRAIN_POLL_INTERVAL = 0.25


class ConnectionTracker:
    """
    Thread-per-connection dispatcher with drain support.

    Args:
        handler: Serves one connection to completion. Runs on the
                 connection's own thread; the tracker closes the
                 connection after it returns.
    """

    def __init__(self, handler: Callable[[Connection], None]):
        self._handler = handler
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._accepting = True

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def snapshot(self) -> List[Connection]:
        with self._lock:
            return list(self._connections.values())

    def dispatch(self, conn: Connection) -> bool:
        """
        Register ``conn`` and start its thread.

        Returns:
            False if the tracker is draining; the connection is closed.
        """
        with self._lock:
            if not self._accepting:
                refused = True
            else:
                refused = False
                self._connections[conn.id] = conn

        if refused:
            logger.debug(f"[{conn.id}] Refused, server is shutting down")
            conn.abort()
            conn.close()
            return False

        thread = threading.Thread(
            target=self._run,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()
        return True

    def _run(self, conn: Connection) -> None:
        try:
            self._handler(conn)
        except Exception:
            logger.exception(f"[{conn.id}] Unhandled error serving connection")
        finally:
            conn.close()
            with self._changed:
                self._connections.pop(conn.id, None)
                self._changed.notify_all()

    # =========================================================================
    # DRAINING
    # =========================================================================

    def stop_accepting(self) -> None:
        with self._lock:
            self._accepting = False

    def close_idle(self) -> int:
        """Abort every connection that is between requests."""
        closed = sum(1 for conn in self.snapshot() if conn.close_if_idle())
        if closed:
            logger.debug(f"Closed {closed} idle connection(s)")
        return closed

    def wait_for_drain(self, deadline: float) -> bool:
        """
        Block until no connections remain or ``deadline`` (a
        time.monotonic() value) passes.

        Returns:
            True if drained, False if the deadline passed first.
        """
        while True:
            self.close_idle()

            with self._changed:
                if not self._connections:
                    return True

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False

                self._changed.wait(min(remaining, DRAIN_POLL_INTERVAL))

    def abort_all(self) -> int:
        """Forcibly cut every remaining connection."""
        remaining = self.snapshot()
        for conn in remaining:
            logger.warning(
                f"[{conn.id}] Cutting off connection from {conn.client_ip} "
                f"in state {conn.state.value}"
            )
            conn.abort()
        return len(remaining)
