"""
Core networking: the TCP listener, client connections and the
thread-per-connection tracker used for graceful shutdown.
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .tracker import ConnectionTracker

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ConnectionTracker",
]
