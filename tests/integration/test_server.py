"""
Integration tests: a real server on a loopback port, real HTTP clients.
"""

import http.client
import json
import logging
import socket
import threading
import time

import pytest

from geogateway.app import create_app
from geogateway.config import GatewayConfig
from geogateway.geocoding import FixtureGeocoder
from geogateway.http.response import ok
from geogateway.server import HTTPServer


ACCESS_LOGGER = "geogateway.access"


def read_response(sock: socket.socket) -> bytes:
    """Read one response off a raw socket: headers, then Content-Length bytes."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk

    head, _, rest = data.partition(b"\r\n\r\n")

    length = 0
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            length = int(value.strip())

    while len(rest) < length:
        chunk = sock.recv(4096)
        if not chunk:
            break
        rest += chunk
    return head + b"\r\n\r\n" + rest


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def request_in_background(port: int, path: str, timeout: float = 10.0) -> dict:
    """Fire a GET on another thread; the result lands in the returned dict."""
    box = {}

    def target():
        conn = http.client.HTTPConnection("127.0.0.1", port, timeout=timeout)
        try:
            conn.request("GET", path)
            response = conn.getresponse()
            box["status"] = response.status
            box["body"] = response.read()
        except (http.client.HTTPException, OSError) as e:
            box["error"] = e
        finally:
            conn.close()

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    box["thread"] = thread
    return box


@pytest.fixture
def slow_server(config):
    """A server with a route that blocks until released."""
    server = HTTPServer(config)
    entered = threading.Event()
    release = threading.Event()

    @server.route("/slow")
    def slow(request):
        entered.set()
        release.wait(10.0)
        return ok("finished\n")

    @server.route("/boom")
    def boom(request):
        raise RuntimeError("handler failure")

    server.entered = entered
    server.release = release
    yield server
    release.set()


class TestGatewayRoutes:
    """The three routes end to end, fixture mode."""

    def test_home(self, gateway):
        status, headers, body = gateway.get("/")

        assert status == 200
        assert body == b"Server is up and running!\n"
        assert headers["Server"] == "geogateway/1.0"

    def test_geocode(self, gateway):
        status, headers, body = gateway.get("/geocode/Los%20Angeles")

        assert status == 200
        assert headers["Content-Type"].startswith("application/json")
        assert json.loads(body)["formatted_address"] == "Los Angeles, CA, USA"

    def test_geocode_ignores_address_in_fixture_mode(self, gateway):
        assert gateway.get("/geocode/anything")[2] == gateway.get("/geocode/other")[2]

    def test_geoloc(self, gateway):
        status, _, body = gateway.get("/geoloc/34.0522342,-118.2436849")

        assert status == 200
        assert b"34.0522342" in body
        assert b"-118.2436849" in body

    def test_geocode_without_results_is_404(self, config, start_server, write_payload, empty_payload):
        geocoder = FixtureGeocoder(write_payload(empty_payload))
        running = start_server(create_app(config, geocoder=geocoder))

        status, _, body = running.get("/geocode/nowhere")

        assert status == 404
        assert json.loads(body) == {"error": "no results", "status": "ZERO_RESULTS"}

    def test_head_has_headers_but_no_body(self, gateway):
        with socket.create_connection(("127.0.0.1", gateway.port), timeout=5.0) as sock:
            sock.sendall(
                b"HEAD / HTTP/1.1\r\nHost: test\r\n\r\n"
                b"GET / HTTP/1.1\r\nHost: test\r\nConnection: close\r\n\r\n"
            )
            replies = b""
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                replies += chunk

        head_reply, _, get_reply = replies.partition(b"\r\n\r\n")
        assert head_reply.startswith(b"HTTP/1.1 200 OK")
        assert b"Content-Length: 26" in head_reply
        assert get_reply.startswith(b"HTTP/1.1 200 OK")
        assert get_reply.endswith(b"\r\n\r\nServer is up and running!\n")

    def test_not_found(self, gateway):
        status, _, body = gateway.get("/nope")

        assert status == 404
        assert "error" in json.loads(body)

    def test_methods_are_not_restricted(self, gateway):
        assert gateway.get("/", method="POST")[0] == 200
        assert gateway.get("/geoloc/1,2", method="DELETE")[0] == 200

    def test_keep_alive_serves_several_requests(self, gateway):
        conn = gateway.connection()
        try:
            for path in ("/", "/geoloc/1,2", "/geocode/x"):
                conn.request("GET", path)
                response = conn.getresponse()
                response.read()
                assert response.status == 200
                assert response.getheader("Connection") == "keep-alive"
        finally:
            conn.close()

    def test_malformed_request_gets_400(self, gateway):
        with socket.create_connection(("127.0.0.1", gateway.port), timeout=5.0) as sock:
            sock.sendall(b"NONSENSE\r\n\r\n")
            reply = sock.recv(4096)

        assert reply.startswith(b"HTTP/1.1 400 Bad Request")
        assert b"Connection: close" in reply

    def test_one_access_line_per_request(self, gateway, caplog):
        with caplog.at_level(logging.INFO, logger=ACCESS_LOGGER):
            gateway.get("/")
            gateway.get("/geoloc/1,2")
            gateway.get("/missing?x=1")

        messages = [r.getMessage() for r in caplog.records if r.name == ACCESS_LOGGER]
        assert messages == ["GET /", "GET /geoloc/1,2", "GET /missing?x=1"]


class TestErrorHandling:

    def test_handler_exception_is_500_and_server_survives(self, slow_server, start_server):
        running = start_server(slow_server)

        status, _, body = running.get("/boom")
        assert status == 500
        assert json.loads(body) == {"error": "Internal Server Error"}

        slow_server.release.set()
        assert running.get("/slow")[0] == 200

    def test_bind_failure_is_logged_not_raised(self, caplog):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            server = HTTPServer(GatewayConfig(bind_address=f"127.0.0.1:{port}"))

            assert server.serve() is False
            assert not server.listening
            assert "Failed to bind" in caplog.text

            assert server.shutdown(1.0) is True


class TestGracefulShutdown:

    def test_idle_shutdown_is_fast_and_frees_the_port(self, config):
        server = HTTPServer(config)
        server.route("/")(lambda request: ok("up\n"))
        server.start()
        assert server.wait_ready(5.0)
        port = server.address[1]

        started = time.monotonic()
        assert server.shutdown(30.0) is True
        assert time.monotonic() - started < 5.0

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as rebind:
            rebind.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            rebind.bind(("127.0.0.1", port))

    def test_no_new_connections_after_shutdown(self, gateway):
        port = gateway.port
        gateway.stop()

        with pytest.raises(ConnectionRefusedError):
            socket.create_connection(("127.0.0.1", port), timeout=2.0)

    def test_idle_keep_alive_connection_does_not_hold_shutdown(self, gateway):
        conn = gateway.connection()
        conn.request("GET", "/")
        conn.getresponse().read()

        started = time.monotonic()
        try:
            assert gateway.stop(timeout=10.0) is True
            assert time.monotonic() - started < 3.0
        finally:
            conn.close()

    def test_request_sent_just_after_shutdown_starts_is_served(self, gateway):
        with socket.create_connection(("127.0.0.1", gateway.port), timeout=5.0) as sock:
            assert wait_for(lambda: gateway.server.active_connections == 1)

            shutdown = threading.Thread(target=gateway.stop, args=(5.0,))
            shutdown.start()
            time.sleep(0.3)

            sock.sendall(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
            reply = read_response(sock)

        shutdown.join(5.0)
        assert reply.startswith(b"HTTP/1.1 200 OK")
        assert b"Connection: close" in reply
        assert reply.endswith(b"Server is up and running!\n")

    def test_in_flight_request_completes_before_deadline(self, slow_server, start_server):
        running = start_server(slow_server)
        box = request_in_background(running.port, "/slow")
        assert slow_server.entered.wait(5.0)

        threading.Timer(0.3, slow_server.release.set).start()
        drained = slow_server.shutdown(5.0)

        box["thread"].join(5.0)
        assert drained is True
        assert box.get("status") == 200
        assert box.get("body") == b"finished\n"

    def test_response_during_drain_closes_connection(self, slow_server, start_server):
        running = start_server(slow_server)
        conn = running.connection(timeout=10.0)
        conn.request("GET", "/slow")
        assert slow_server.entered.wait(5.0)

        threading.Timer(0.3, slow_server.release.set).start()
        shutdown = threading.Thread(target=slow_server.shutdown, args=(5.0,))
        shutdown.start()

        try:
            response = conn.getresponse()
            response.read()
            assert response.getheader("Connection") == "close"
        finally:
            conn.close()
            shutdown.join(5.0)

    def test_request_past_deadline_is_cut_off(self, slow_server, start_server):
        running = start_server(slow_server)
        box = request_in_background(running.port, "/slow")
        assert slow_server.entered.wait(5.0)

        started = time.monotonic()
        drained = slow_server.shutdown(0.5)
        elapsed = time.monotonic() - started

        box["thread"].join(5.0)
        assert drained is False
        assert elapsed < 3.0
        assert "status" not in box
        assert isinstance(box.get("error"), (http.client.HTTPException, OSError))

    def test_shutdown_is_idempotent(self, slow_server, start_server):
        start_server(slow_server)

        assert slow_server.shutdown(2.0) is True
        assert slow_server.shutdown(2.0) is True

    def test_server_cannot_be_served_twice(self, slow_server, start_server):
        start_server(slow_server)
        slow_server.shutdown(2.0)

        with pytest.raises(RuntimeError):
            slow_server.serve()
