"""
=============================================================================
GATEWAY CONFIGURATION
=============================================================================

One GatewayConfig is built at startup and handed to the server, the
handlers and the geocoding client. Nothing reads the environment after
that.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m geogateway serve --bind 127.0.0.1:8080          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── BIND_ADDRESS=:8080 python -m geogateway                   │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FIXED TIMEOUTS
=============================================================================

Read, write and idle timeouts and the shutdown deadline are constants of
the gateway, not settings:

    READ_TIMEOUT      15s   reading one request
    WRITE_TIMEOUT     15s   sending one response
    IDLE_TIMEOUT      60s   waiting for the next keep-alive request
    SHUTDOWN_TIMEOUT  30s   draining in-flight requests on shutdown

=============================================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


READ_TIMEOUT = 15.0
WRITE_TIMEOUT = 15.0
IDLE_TIMEOUT = 60.0
SHUTDOWN_TIMEOUT = 30.0

DEFAULT_BIND_ADDRESS = ":5000"
DEFAULT_PROVIDER_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DEFAULT_FIXTURE_PATH = Path(__file__).parent / "data" / "LA.json"

GEOCODE_MODES = ("fixture", "live")


def parse_bind_address(address: str) -> tuple[str, int]:
    """
    Split a ``host:port`` bind address.

    An empty host means every interface, so ``":5000"`` gives
    ``("", 5000)``. Bracketed IPv6 hosts are unwrapped:
    ``"[::1]:5000"`` gives ``("::1", 5000)``.

    Raises:
        ValueError: If there is no port or it is not a number.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"Invalid bind address {address!r}: missing port")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid bind address {address!r}: bad port {port!r}")


@dataclass
class GatewayConfig:
    """
    Configuration for the geocoding gateway.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK       bind_address, backlog, buffer_size, max_request_size
    GEOCODING     google_api_key, geocode_mode, fixture_path,
                  provider_url, provider_timeout
    LOGGING       log_level, access_log_format
    IDENTITY      server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    bind_address: str = DEFAULT_BIND_ADDRESS
    """
    ``host:port`` to listen on. ":5000" listens on every interface.
    """

    backlog: int = 128
    """Accept queue length passed to listen()."""

    buffer_size: int = 8192
    """Bytes read per recv() call."""

    max_request_size: int = 1024 * 1024
    """Requests larger than this are answered with 413."""

    # ─────────────────────────────────────────────────────────────────────
    # GEOCODING
    # ─────────────────────────────────────────────────────────────────────

    google_api_key: str = field(default="", repr=False)
    """Key for the Google Geocoding API. Kept out of repr()."""

    geocode_mode: str = "fixture"
    """
    "fixture" answers lookups from a local payload file;
    "live" calls the provider.
    """

    fixture_path: str = str(DEFAULT_FIXTURE_PATH)
    """Provider payload served in fixture mode."""

    provider_url: str = DEFAULT_PROVIDER_URL
    """Geocoding endpoint used in live mode."""

    provider_timeout: float = 10.0
    """Seconds to wait for the provider in live mode."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Root logging level (DEBUG, INFO, WARNING, ERROR)."""

    access_log_format: str = "text"
    """Access log format: "text" or "json"."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "geogateway/1.0"
    """Value of the Server response header."""

    @property
    def host(self) -> str:
        return parse_bind_address(self.bind_address)[0]

    @property
    def port(self) -> int:
        return parse_bind_address(self.bind_address)[1]

    @property
    def read_timeout(self) -> float:
        return READ_TIMEOUT

    @property
    def write_timeout(self) -> float:
        return WRITE_TIMEOUT

    @property
    def idle_timeout(self) -> float:
        return IDLE_TIMEOUT

    @property
    def shutdown_timeout(self) -> float:
        return SHUTDOWN_TIMEOUT

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """
        Build configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        BIND_ADDRESS      Listen address (default: :5000)
        GOOGLE_API_KEY    Provider key (default: empty)
        GEOCODE_MODE      fixture | live (default: fixture)
        GEOCODE_FIXTURE   Fixture payload path (default: bundled LA.json)
        LOG_LEVEL         Logging level (default: INFO)
        ACCESS_LOG_FORMAT text | json (default: text)

        =====================================================================
        """
        return cls(
            bind_address=os.getenv("BIND_ADDRESS", DEFAULT_BIND_ADDRESS),
            google_api_key=os.getenv("GOOGLE_API_KEY", ""),
            geocode_mode=os.getenv("GEOCODE_MODE", "fixture"),
            fixture_path=os.getenv("GEOCODE_FIXTURE", str(DEFAULT_FIXTURE_PATH)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            access_log_format=os.getenv("ACCESS_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values. Called once at startup.

        Raises:
            ValueError: On the first invalid value.
        """
        _, port = parse_bind_address(self.bind_address)
        if not 0 <= port < 65536:
            raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

        if self.geocode_mode not in GEOCODE_MODES:
            raise ValueError(
                f"geocode_mode must be one of {', '.join(GEOCODE_MODES)}, "
                f"got {self.geocode_mode!r}"
            )

        if self.access_log_format not in ("text", "json"):
            raise ValueError(f"access_log_format must be text or json")

        if self.buffer_size < 1024:
            raise ValueError(f"buffer_size must be >= 1024")

        if self.backlog < 1:
            raise ValueError(f"backlog must be >= 1")

        if self.provider_timeout <= 0:
            raise ValueError(f"provider_timeout must be > 0")
