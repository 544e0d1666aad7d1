"""
=============================================================================
GEOGATEWAY
=============================================================================

A small HTTP gateway in front of a geocoding provider.

    GET /                       liveness text
    GET /geocode/{address}      first geocoding result as JSON
    GET /geoloc/{lat},{lng}     echo of the coordinates

    ┌─────────────────────────────────────────────────────────────────────┐
    │   LifecycleController   waits for SIGINT/SIGTERM, drains (30s)       │
    │          │                                                           │
    │          ▼                                                           │
    │   HTTPServer            15s read, 15s write, 60s idle                │
    │          │                                                           │
    │          ▼                                                           │
    │   LoggingMiddleware     one access line per request                  │
    │          │                                                           │
    │          ▼                                                           │
    │   Router ──► GeoHandlers ──► Geocoder (fixture | live)              │
    └─────────────────────────────────────────────────────────────────────┘

Configuration comes from the environment (BIND_ADDRESS, GOOGLE_API_KEY,
GEOCODE_MODE, GEOCODE_FIXTURE, LOG_LEVEL) and is read once at startup.

=============================================================================
"""

__version__ = "1.0.0"

from .config import GatewayConfig
from .server import HTTPServer
from .lifecycle import LifecycleController, LifecycleState
from .app import create_app

__all__ = [
    "GatewayConfig",
    "HTTPServer",
    "LifecycleController",
    "LifecycleState",
    "create_app",
    "__version__",
]
