"""
pytest configuration and fixtures.
"""

import http.client
import json
from typing import Generator, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geogateway import HTTPServer, GatewayConfig, create_app
from geogateway.config import DEFAULT_FIXTURE_PATH
from geogateway.geocoding import FixtureGeocoder


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /geocode/Los%20Angeles?lang=en&lang=fr HTTP/1.1\r\n"
        b"Host: localhost:5000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"language": "en"}'
    return (
        b"POST /geocode/Los%20Angeles HTTP/1.1\r\n"
        b"Host: localhost:5000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def la_payload() -> dict:
    """The bundled Los Angeles provider payload."""
    return json.loads(DEFAULT_FIXTURE_PATH.read_text())


@pytest.fixture
def empty_payload() -> dict:
    """A provider payload with no results."""
    return {"results": [], "status": "ZERO_RESULTS"}


@pytest.fixture
def write_payload(tmp_path):
    """Write a payload dict (or raw text) to a file and return its path."""
    def _write(payload, name: str = "payload.json") -> Path:
        path = tmp_path / name
        if isinstance(payload, str):
            path.write_text(payload)
        else:
            path.write_text(json.dumps(payload))
        return path
    return _write


@pytest.fixture
def config() -> GatewayConfig:
    """Test configuration: loopback, OS-assigned port."""
    return GatewayConfig(bind_address="127.0.0.1:0", log_level="WARNING")


class RunningServer:
    """A server serving on a background thread, plus a tiny HTTP client."""

    def __init__(self, server: HTTPServer):
        self.server = server

    def start(self) -> "RunningServer":
        self.server.start()
        if not self.server.wait_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    @property
    def port(self) -> int:
        return self.server.address[1]

    def connection(self, timeout: float = 5.0) -> http.client.HTTPConnection:
        return http.client.HTTPConnection("127.0.0.1", self.port, timeout=timeout)

    def get(self, path: str, method: str = "GET", timeout: float = 5.0):
        """Send one request; returns (status, headers, body)."""
        conn = self.connection(timeout)
        try:
            conn.request(method, path)
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()

    def stop(self, timeout: float = 5.0) -> Optional[bool]:
        return self.server.shutdown(timeout)


@pytest.fixture
def start_server() -> Generator:
    """Start any HTTPServer in the background; shut it down afterwards."""
    started = []

    def _start(server: HTTPServer) -> RunningServer:
        running = RunningServer(server).start()
        started.append(running)
        return running

    yield _start

    for running in started:
        running.stop()


@pytest.fixture
def gateway(config, start_server) -> RunningServer:
    """The full gateway in fixture mode."""
    server = create_app(config, geocoder=FixtureGeocoder(DEFAULT_FIXTURE_PATH))
    return start_server(server)
