"""
Application assembly: the route table, the middleware chain and the
geocoding backend wired into one HTTPServer.
"""

from typing import Optional

from .config import GatewayConfig
from .geocoding.client import Geocoder, geocoder_from_config
from .handlers.geo import GeoHandlers
from .http.router import Router
from .middleware.logging import LoggingMiddleware
from .server import HTTPServer


def build_router(handlers: GeoHandlers) -> Router:
    """Register the gateway's three routes. No method restriction."""
    router = Router()
    router.add_route("/", handlers.home, name="home")
    router.add_route("/geocode/{address}", handlers.geocode, name="geocode")
    router.add_route("/geoloc/{lat},{lng}", handlers.geoloc, name="geoloc")
    return router


def create_app(
    config: Optional[GatewayConfig] = None,
    geocoder: Optional[Geocoder] = None,
) -> HTTPServer:
    """
    Build a ready-to-serve gateway.

    Args:
        config: Gateway configuration; read from the environment if omitted.
        geocoder: Backend override, mainly for tests. Chosen from
                  ``config.geocode_mode`` if omitted.

    Example:
        server = create_app(GatewayConfig(bind_address="127.0.0.1:0"))
        server.start()
    """
    config = config or GatewayConfig.from_env()
    geocoder = geocoder or geocoder_from_config(config)

    server = HTTPServer(config, router=build_router(GeoHandlers(geocoder)))
    server.use(LoggingMiddleware(log_format=config.access_log_format))
    return server
